import asyncio
from typing import Any, Dict, List, Optional, Union

import aiomqtt
from loguru import logger
from pydantic import ValidationError

from milight_bridge.core.config import (
    BACKCHANNEL,
    DARK_MODE,
    DEBOUNCE_SECONDS,
    RGBCCT_MODE,
    SETTINGS_POLL_SECONDS,
)
from milight_bridge.core.errors import CapabilityMismatchError
from milight_bridge.core.utils import TaskManager, run_with_errorhandling
from milight_bridge.lights.bridge import ControllerBridge
from milight_bridge.lights.coalescer import CommandCoalescer
from milight_bridge.lights.models import (
    Attribute,
    Capabilities,
    Device,
    DeviceKey,
    HubState,
    LightInfo,
)
from milight_bridge.lights.reconciler import StateReconciler
from milight_bridge.lights.transport import TransportDispatcher


class MiLightPlatform:
    """Keeps the controller's lights in sync with the lights the hub knows about"""

    def __init__(
        self,
        bridge: ControllerBridge,
        dispatcher: TransportDispatcher,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        dark_mode: bool = DARK_MODE,
        rgbcct_mode: bool = RGBCCT_MODE,
        backchannel: bool = BACKCHANNEL,
        poll_interval: float = SETTINGS_POLL_SECONDS,
    ):
        self.bridge = bridge
        self.dispatcher = dispatcher
        self.rgbcct_mode = rgbcct_mode
        self.backchannel = backchannel
        self.poll_interval = poll_interval
        self.devices: Dict[DeviceKey, Device] = {}
        self.messages_processed = 0

        self.reconciler = StateReconciler(dispatcher, dark_mode=dark_mode)
        self.coalescer = CommandCoalescer(self.reconciler.reconcile, delay=debounce_seconds)
        dispatcher.on_message = self.handle_broker_message

    def capabilities_for(self, remote_type: str) -> Capabilities:
        return Capabilities.for_remote(
            remote_type, rgbcct_mode=self.rgbcct_mode, backchannel=self.backchannel
        )

    #
    # Hub settings and the light list
    #

    @property
    def poller(self) -> TaskManager:
        """Get a TaskManager for the periodic settings poll.

        Returns:
            A TaskManager that can be used with async with
        """
        return TaskManager(self.poll_settings_forever, name="SettingsPoller", timeout=1.0)

    async def poll_settings_forever(self) -> None:
        while True:
            await run_with_errorhandling(
                self.refresh_settings(), "Failed to refresh MiLight hub settings"
            )
            await asyncio.sleep(self.poll_interval)

    async def refresh_settings(self) -> bool:
        """Poll the hub's settings once and apply them.

        Returns:
            False if the hub could not be read
        """
        settings = await self.dispatcher.fetch_settings()
        if settings is None:
            return False
        await self.dispatcher.configure(settings)
        await self.sync_light_lists(settings.light_list())
        return True

    def restore_device(self, info: LightInfo, capabilities: Capabilities) -> Device:
        """Adopt a light the controller remembered from an earlier run.

        The capabilities it was created with are kept, so the next list sync
        can tell whether the configuration changed in between.
        """
        device = Device.from_light_info(info, capabilities)
        self.devices[device.key] = device
        logger.info(f"Restoring {device.name} from controller")
        return device

    def check_capabilities(self, device: Device) -> None:
        expected = self.capabilities_for(device.remote_type)
        if device.capabilities != expected:
            raise CapabilityMismatchError(
                f"{device.name} was created as {device.capabilities.details}, "
                f"now {expected.details}"
            )

    async def sync_light_lists(self, lights: List[LightInfo]) -> None:
        """Add lights the hub gained and drop the ones it lost or that changed."""
        removed: List[Device] = []
        for device in list(self.devices.values()):
            if not any(device.matches(info) for info in lights):
                logger.info(
                    f"Removing {device.name} because it could not be found in MiLight hub"
                )
            else:
                try:
                    self.check_capabilities(device)
                except CapabilityMismatchError as e:
                    logger.info(f"Removing {device.name} because of a capability mismatch: {e}")
                else:
                    if self.backchannel:
                        await self.dispatcher.subscribe(device)
                    continue
            await self._forget(device)
            removed.append(device)
        if removed:
            self.bridge.unregister_devices(removed)

        added: List[Device] = []
        for info in lights:
            existing = self.devices.get(info.key)
            if existing is not None:
                if existing.name != info.name:
                    logger.warning(f"Ignoring {info.name}, {info.uid} is already {existing.name}")
                continue
            device = Device.from_light_info(info, self.capabilities_for(info.remote_type))
            self.devices[device.key] = device
            added.append(device)
            if self.backchannel:
                await self.dispatcher.subscribe(device)
        if added:
            self.bridge.register_devices(added)

    async def _forget(self, device: Device) -> None:
        self.coalescer.cancel(device)
        self.devices.pop(device.key, None)
        await run_with_errorhandling(
            self.dispatcher.unsubscribe(device), f"Failed to unsubscribe {device.name}"
        )

    #
    # Controller-facing attributes
    #

    def set_attribute(self, device: Device, attribute: Attribute, value: Any) -> None:
        """Designate a new value and (re)start the device's debounce window.

        Raises:
            ValueError: if the device does not expose ``attribute``
            pydantic.ValidationError: if ``value`` is out of range
        """
        if attribute not in device.capabilities.attributes:
            raise ValueError(f"{device.name} has no {attribute.value}")

        logger.debug(f"[{device.name}] set {attribute.value} {value}")
        setattr(device.designated_state, attribute.value, value)
        self.coalescer.on_attribute_changed(device)
        self.bridge.notify_attribute_changed(device, attribute, value)

    def set_power(self, device: Device, on: bool) -> None:
        self.set_attribute(device, Attribute.POWER, on)

    def set_brightness(self, device: Device, level: int) -> None:
        self.set_attribute(device, Attribute.BRIGHTNESS, level)

    def set_hue(self, device: Device, hue: int) -> None:
        self.set_attribute(device, Attribute.HUE, hue)

    def set_saturation(self, device: Device, saturation: int) -> None:
        self.set_attribute(device, Attribute.SATURATION, saturation)

    def set_color_temperature(self, device: Device, mireds: int) -> None:
        self.set_attribute(device, Attribute.COLOR_TEMPERATURE, mireds)

    async def get_attribute(self, device: Device, attribute: Attribute) -> Optional[Any]:
        """Answer a controller read.

        With the backchannel over HTTP the hub is asked first; concurrent
        reads for one light share that request. Over MQTT the latest
        broker-reported state is used as is.

        Returns:
            The value, or None if the hub could not be reached
        """
        if self.backchannel and not self.dispatcher.using_broker:
            state = await self.dispatcher.fetch_state(device)
            if state is None:
                return None
            self.reconciler.apply_inbound_state(device, state)
        return device.current_state.value_of(attribute)

    #
    # Broker backchannel
    #

    async def handle_broker_message(self, topic: str, payload: Union[bytes, str]) -> None:
        """Apply a state notification to every light whose state topic matches."""
        self.messages_processed += 1
        if self.messages_processed <= 10 or self.messages_processed % 100 == 0:
            logger.debug(f"Processed {self.messages_processed} MQTT messages so far...")

        received = aiomqtt.Topic(topic)
        targets = []
        for device in self.devices.values():
            state_topic = self.dispatcher.state_topic(device)
            if state_topic and received.matches(state_topic):
                targets.append(device)
        if not targets:
            return

        text = payload.decode() if isinstance(payload, (bytes, bytearray)) else str(payload)
        try:
            state = HubState.model_validate_json(text)
        except ValidationError as e:
            logger.warning(f"Failed to parse MQTT message from {topic}: {e}")
            return

        for device in targets:
            current = device.current_state
            if current.last_inbound_message_signature == text:
                logger.debug(f"Skipping repeated MQTT message for {device.name}")
                continue
            current.last_inbound_message_signature = text
            logger.debug(f"Incoming MQTT message from {topic}: {text}")

            values = self.reconciler.apply_inbound_state(device, state)
            for attribute, value in values.items():
                self.bridge.push_value(device, attribute, value)

    async def shutdown(self) -> None:
        """Drop pending designations, finish running sends, close the transport."""
        self.coalescer.cancel_all()
        await self.coalescer.drain()
        await self.dispatcher.close()
