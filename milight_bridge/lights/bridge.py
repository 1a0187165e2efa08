from typing import Any, List, Protocol

from loguru import logger

from milight_bridge.lights.models import Attribute, Device


class ControllerBridge(Protocol):
    """What the platform needs from the home-automation controller side."""

    def register_devices(self, devices: List[Device]) -> None: ...

    def unregister_devices(self, devices: List[Device]) -> None: ...

    def notify_attribute_changed(self, device: Device, attribute: Attribute, value: Any) -> None:
        """Acknowledge a controller set once it has been designated."""
        ...

    def push_value(self, device: Device, attribute: Attribute, value: Any) -> None:
        """Report a value the hub announced without being asked."""
        ...


class LoggingControllerBridge:
    """Stand-alone bridge that only logs, used when no controller is attached."""

    def register_devices(self, devices: List[Device]) -> None:
        for device in devices:
            logger.info(f"Adding {device.name} ({device.uid})")

    def unregister_devices(self, devices: List[Device]) -> None:
        for device in devices:
            logger.info(f"Removing {device.name} ({device.uid})")

    def notify_attribute_changed(self, device: Device, attribute: Attribute, value: Any) -> None:
        logger.debug(f"[{device.name}] set {attribute.value} = {value}")

    def push_value(self, device: Device, attribute: Attribute, value: Any) -> None:
        logger.debug(f"[{device.name}] {attribute.value} is now {value}")
