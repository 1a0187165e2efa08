import asyncio
from typing import Awaitable, Callable, Dict, Set, Tuple

from loguru import logger

from milight_bridge.core.config import DEBOUNCE_SECONDS
from milight_bridge.core.utils import run_with_errorhandling
from milight_bridge.lights.models import Device, DeviceKey


class CommandCoalescer:
    """
    Debounce per-device attribute changes into a single reconcile call.

    Controllers tend to send hue, saturation and brightness as separate
    calls for one user action. Every change pushes the device's deadline
    out again; when it finally expires ``on_expiry`` runs once.

    Pending timers live here, keyed by device, rather than on the device,
    so removing a device can always find and cancel its timer.
    """

    def __init__(
        self,
        on_expiry: Callable[[Device], Awaitable[object]],
        delay: float = DEBOUNCE_SECONDS,
    ):
        self.on_expiry = on_expiry
        self.delay = delay
        self._timers: Dict[DeviceKey, Tuple[asyncio.TimerHandle, Device]] = {}
        self._running: Set[asyncio.Task] = set()

    def pending(self, device: Device) -> bool:
        return device.key in self._timers

    def on_attribute_changed(self, device: Device) -> None:
        self.cancel(device)
        loop = asyncio.get_running_loop()
        handle = loop.call_later(self.delay, self._expire, device.key)
        self._timers[device.key] = (handle, device)

    def cancel(self, device: Device) -> None:
        entry = self._timers.pop(device.key, None)
        if entry is not None:
            entry[0].cancel()

    def cancel_all(self) -> None:
        for handle, _ in self._timers.values():
            handle.cancel()
        self._timers.clear()

    async def drain(self) -> None:
        """Wait for reconciles that already started."""
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    def _expire(self, key: DeviceKey) -> None:
        entry = self._timers.pop(key, None)
        if entry is None:
            # Device was removed in the meantime
            return
        device = entry[1]
        logger.debug(f"Debounce window closed for {device.name}")
        task = asyncio.ensure_future(
            run_with_errorhandling(
                self.on_expiry(device), f"Failed to apply state for {device.name}"
            )
        )
        self._running.add(task)
        task.add_done_callback(self._running.discard)
