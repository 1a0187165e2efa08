"""
MQTT connection to the broker the hub publishes to.

There is at most one of these per process. The dispatcher owns it and
replaces it wholesale when the hub reports a different broker address.
"""

from contextlib import AsyncExitStack
from typing import Awaitable, Callable, Optional, Set, Tuple

import aiomqtt
from loguru import logger

from milight_bridge.core.utils import TaskManager

MessageHandler = Callable[[str, bytes], Awaitable[None]]
DisconnectHandler = Callable[["BrokerConnection"], None]

DEFAULT_PORT = 1883


def parse_server(server: str) -> Tuple[str, int]:
    """Split the hub's ``mqtt_server`` setting into host and port."""
    host, _, port = server.rpartition(":")
    if host and port.isdigit():
        return host, int(port)
    return server, DEFAULT_PORT


class BrokerConnection:
    def __init__(
        self,
        server: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "milight_bridge",
        on_message: Optional[MessageHandler] = None,
        on_disconnect: Optional[DisconnectHandler] = None,
    ):
        self.server = server
        self.hostname, self.port = parse_server(server)
        self.username = username or None
        self.password = password if self.username else None
        self.client_id = client_id
        self.on_message = on_message
        self.on_disconnect = on_disconnect
        self.client: Optional[aiomqtt.Client] = None
        self.subscriptions: Set[str] = set()
        self._stack: Optional[AsyncExitStack] = None

    @property
    def connected(self) -> bool:
        return self._stack is not None

    async def connect(self) -> None:
        """Connect and start delivering messages to ``on_message``.

        Raises:
            aiomqtt.MqttError: if the broker cannot be reached
        """
        stack = AsyncExitStack()
        try:
            self.client = aiomqtt.Client(
                hostname=self.hostname,
                port=self.port,
                username=self.username,
                password=self.password,
                identifier=self.client_id,
            )
            await stack.enter_async_context(self.client)
            await stack.enter_async_context(
                TaskManager(self._listen, name="BrokerListener", timeout=1.0)
            )
        except BaseException:
            await stack.aclose()
            self.client = None
            raise
        self._stack = stack
        logger.info(f"Connected to MQTT broker at {self.server}")

    async def close(self) -> None:
        """Unsubscribe everything, stop listening and disconnect."""
        if self._stack is None:
            return
        for topic in list(self.subscriptions):
            await self.unsubscribe(topic)
        stack, self._stack = self._stack, None
        try:
            await stack.aclose()
        except aiomqtt.MqttError as e:
            logger.warning(f"Error while disconnecting from {self.server}: {e}")
        self.client = None
        logger.info(f"Disconnected from MQTT broker at {self.server}")

    async def publish(self, topic: str, payload: str) -> None:
        await self.client.publish(topic, payload=payload)

    async def subscribe(self, topic: str) -> None:
        if topic in self.subscriptions:
            return
        await self.client.subscribe(topic)
        self.subscriptions.add(topic)
        logger.debug(f"Subscribed to {topic}")

    async def unsubscribe(self, topic: str) -> None:
        if topic not in self.subscriptions:
            return
        self.subscriptions.discard(topic)
        try:
            await self.client.unsubscribe(topic)
        except aiomqtt.MqttError as e:
            logger.warning(f"Failed to unsubscribe from {topic}: {e}")
            return
        logger.debug(f"Unsubscribed from {topic}")

    async def _listen(self) -> None:
        try:
            async for message in self.client.messages:
                if self.on_message is None:
                    continue
                try:
                    await self.on_message(str(message.topic), message.payload)
                except Exception as e:
                    logger.error(f"Error handling MQTT message on {message.topic}: {e}")
        except aiomqtt.MqttError as e:
            logger.error(f"Lost connection to MQTT broker at {self.server}: {e}")
            # Subscriptions do not survive the session
            self.subscriptions.clear()
            if self.on_disconnect is not None:
                self.on_disconnect(self)
