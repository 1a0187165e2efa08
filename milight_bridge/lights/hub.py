import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp
from loguru import logger

from milight_bridge.core.errors import MalformedResponseError, TransientNetworkError


class HubClient:
    """
    Minimal REST client for the MiLight hub.

    Can be used as an async context manager, in which case it owns its
    aiohttp session; otherwise pass in a session to reuse.
    """

    def __init__(
        self,
        host: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 5.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.host = host
        self.auth = aiohttp.BasicAuth(username, password) if username and password else None
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = False

        if self.auth:
            logger.debug("Using Basic Authorization")

    async def __aenter__(self) -> "HubClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        # Only close the session if we created it
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._owns_session = False

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    def url(self, path: str) -> str:
        return f"http://{self.host}{path}"

    async def get(self, path: str) -> Dict[str, Any]:
        """GET ``path`` and decode the JSON body.

        Raises:
            TransientNetworkError: on connection problems or a non-2xx status
            MalformedResponseError: when the body is not JSON
        """
        body = await self._request("GET", path)
        try:
            return json.loads(body)
        except ValueError as e:
            raise MalformedResponseError(f"Invalid JSON from {path}: {e}") from e

    async def put(self, path: str, payload: Dict[str, Any]) -> None:
        await self._request("PUT", path, payload)

    async def _request(
        self, method: str, path: str, payload: Optional[Dict[str, Any]] = None
    ) -> str:
        url = self.url(path)
        try:
            async with self.session.request(
                method, url, json=payload, auth=self.auth, timeout=self.timeout
            ) as response:
                body = await response.text()
                if not 200 <= response.status < 300:
                    raise TransientNetworkError(
                        f"{method} {url} returned HTTP {response.status}",
                        status=response.status,
                    )
                return body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientNetworkError(f"{method} {url} failed: {e}") from e
