from typing import Awaitable, Callable, Optional

import aiomqtt
from loguru import logger
from pydantic import ValidationError

from milight_bridge.core.config import FORCE_HTTP, MQTT_CLIENT_ID
from milight_bridge.core.utils import run_with_errorhandling
from milight_bridge.lights.broker import BrokerConnection
from milight_bridge.lights.cache import SingleFlightCache
from milight_bridge.lights.hub import HubClient
from milight_bridge.lights.models import Command, Device, HubSettings, HubState

SETTINGS_PATH = "/settings"


def render_topic(pattern: str, device: Device) -> str:
    """Fill a hub topic pattern in for one device.

    ``:hex_device_id`` and ``:dec_device_id`` go first so that the shorter
    ``:device_id`` placeholder does not eat into them.
    """
    return (
        pattern.replace(":hex_device_id", f"0x{device.device_id:X}")
        .replace(":dec_device_id", str(device.device_id))
        .replace(":device_id", str(device.device_id))
        .replace(":device_type", device.remote_type)
        .replace(":group_id", str(device.group_id))
    )


class TransportDispatcher:
    """
    Deliver commands to the hub over MQTT when the hub has a broker
    configured, and over HTTP otherwise.
    """

    def __init__(
        self,
        hub: HubClient,
        force_http: bool = FORCE_HTTP,
        client_id: str = MQTT_CLIENT_ID,
        on_message: Optional[Callable[[str, bytes], Awaitable[None]]] = None,
    ):
        self.hub = hub
        self.force_http = force_http
        self.client_id = client_id
        self.on_message = on_message
        self.cache: SingleFlightCache = SingleFlightCache()
        self.broker: Optional[BrokerConnection] = None
        self._lost_broker: Optional[BrokerConnection] = None
        self.mqtt_server: Optional[str] = None
        self.topic_pattern = ""
        self.state_topic_pattern = ""

    @property
    def using_broker(self) -> bool:
        return self.broker is not None

    async def configure(self, settings: HubSettings) -> bool:
        """Re-evaluate the transport against freshly polled hub settings.

        Returns:
            True if the transport was torn down and set up again
        """
        if settings.mqtt_server == self.mqtt_server:
            return False

        self.mqtt_server = settings.mqtt_server
        self.topic_pattern = settings.mqtt_topic_pattern
        self.state_topic_pattern = settings.mqtt_state_topic_pattern

        # The old connection must be fully gone before a new one exists
        await self.close()

        if self.mqtt_server and not self.force_http:
            logger.info(f"Using MQTT server at {self.mqtt_server}")
            broker = BrokerConnection(
                self.mqtt_server,
                username=settings.mqtt_username,
                password=settings.mqtt_password,
                client_id=self.client_id,
                on_message=self._dispatch_message,
                on_disconnect=self._broker_lost,
            )
            try:
                await broker.connect()
            except aiomqtt.MqttError as e:
                logger.error(f"Could not connect to MQTT server {self.mqtt_server}: {e}")
                logger.info(f"Falling back to HTTP server at {self.hub.host}")
                # Retried on the next settings poll
                self.mqtt_server = None
            else:
                self.broker = broker
        else:
            logger.info(f"Using HTTP server at {self.hub.host}")
        return True

    async def close(self) -> None:
        brokers = [broker for broker in (self.broker, self._lost_broker) if broker is not None]
        self.broker = self._lost_broker = None
        for broker in brokers:
            await broker.close()

    def _broker_lost(self, broker: BrokerConnection) -> None:
        if broker is not self.broker:
            return
        logger.info(
            f"Falling back to HTTP server at {self.hub.host} until the next settings poll"
        )
        self._lost_broker, self.broker = broker, None
        # Forgetting the server makes the next poll reconnect
        self.mqtt_server = None

    async def send(self, device: Device, command: Command) -> None:
        """Fire-and-forget delivery of ``command``; failures are only logged.

        A command the broker refuses goes to the hub over HTTP instead.
        """
        payload = command.payload()
        if self.broker is not None:
            topic = render_topic(self.topic_pattern, device)
            try:
                await self.broker.publish(topic, command.model_dump_json(exclude_none=True))
            except aiomqtt.MqttError as e:
                logger.warning(f"Failed to publish to {topic}, sending over HTTP: {e}")
            else:
                logger.info(f"SENT: {topic} {payload}")
                return

        logger.info(f"SENT: {device.rest_path} {payload}")
        await run_with_errorhandling(
            self.hub.put(device.rest_path, payload),
            f"Failed to send to MiLight hub {device.rest_path}",
        )

    async def fetch_state(self, device: Device) -> Optional[HubState]:
        """Read a light's state from the hub.

        Always ``None`` while the broker is in use: state then only arrives
        through subscribed messages.
        """
        if self.broker is not None:
            return None
        raw = await self.cache.fetch(device.rest_path, lambda: self.hub.get(device.rest_path))
        if raw is None:
            return None
        try:
            return HubState.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Unexpected state for {device.name}: {e}")
            return None

    async def fetch_settings(self) -> Optional[HubSettings]:
        logger.debug(f"Querying {SETTINGS_PATH}")
        raw = await self.cache.fetch(SETTINGS_PATH, lambda: self.hub.get(SETTINGS_PATH))
        if raw is None:
            return None
        try:
            return HubSettings.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Unexpected settings from MiLight hub: {e}")
            return None

    def state_topic(self, device: Device) -> str:
        return render_topic(self.state_topic_pattern, device)

    async def subscribe(self, device: Device) -> None:
        if self.broker is not None and self.state_topic_pattern:
            await run_with_errorhandling(
                self.broker.subscribe(self.state_topic(device)),
                f"Failed to subscribe for {device.name}",
            )

    async def unsubscribe(self, device: Device) -> None:
        if self.broker is not None and self.state_topic_pattern:
            await self.broker.unsubscribe(self.state_topic(device))

    async def _dispatch_message(self, topic: str, payload: bytes) -> None:
        if self.on_message is not None:
            await self.on_message(topic, payload)
