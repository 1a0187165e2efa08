import asyncio
from typing import Awaitable, Callable, Dict, Generic, Optional, TypeVar

from loguru import logger

from milight_bridge.core.utils import run_with_errorhandling

T = TypeVar("T")


class SingleFlightCache(Generic[T]):
    """
    Share one in-flight fetch per key between all concurrent callers.

    The hub returns a light's complete state for every request while the
    controller asks for each attribute separately, so a burst of reads for
    the same light collapses into a single network call. Nothing is kept
    once the fetch settles; the next caller starts a fresh one.
    """

    def __init__(self):
        self._in_flight: Dict[str, asyncio.Task] = {}

    def is_pending(self, key: str) -> bool:
        return key in self._in_flight

    async def fetch(
        self, key: str, perform_fetch: Callable[[], Awaitable[T]]
    ) -> Optional[T]:
        """
        Return the outcome of ``perform_fetch`` for ``key``, joining an
        outstanding fetch if there is one.

        Any failure resolves to ``None`` for every waiting caller.
        """
        task = self._in_flight.get(key)
        if task is None:
            logger.debug(f"GET: {key}")
            task = asyncio.ensure_future(
                run_with_errorhandling(perform_fetch(), f"Failed to fetch {key}")
            )
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._settle(key, done))
        else:
            logger.debug(f"GET (dedup): {key}")

        # One caller being cancelled must not cancel the shared fetch
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
