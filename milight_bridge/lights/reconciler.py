from typing import Any, Dict, Optional

from loguru import logger

from milight_bridge.core.config import DARK_MODE
from milight_bridge.core.utils import round_half_up
from milight_bridge.lights.color import (
    color_temperature_to_hue_saturation,
    hue_saturation_to_kelvin_knob,
    is_white_mode_region,
    rgb_to_hue_saturation,
)
from milight_bridge.lights.models import (
    MAX_MIREDS,
    MIN_MIREDS,
    Attribute,
    Command,
    CurrentState,
    DesignatedState,
    Device,
    HubState,
)
from milight_bridge.lights.transport import TransportDispatcher

DEFAULT_BRIGHTNESS = 100

NIGHT_MODE = "night_mode"
SET_WHITE = "set_white"


class StateReconciler:
    """
    Turn a device's designated state into one hub command and keep the
    device's current state in step with what was sent or reported.
    """

    def __init__(self, dispatcher: TransportDispatcher, dark_mode: bool = DARK_MODE):
        self.dispatcher = dispatcher
        self.dark_mode = dark_mode

    async def reconcile(self, device: Device) -> Command:
        """Send everything the controller changed since the last command.

        The designation is swapped out before anything else happens, so a
        setter arriving while the command is in flight starts a new one.

        Returns:
            The command that was sent; empty if there was nothing to send
        """
        designated = device.designated_state
        device.designated_state = DesignatedState()

        command = Command()
        if designated.is_empty:
            return command

        current = device.current_state
        self._apply_power(designated, current, command)
        self._apply_color(device, designated, current, command)

        if command.is_empty:
            logger.debug(f"Nothing to send for {device.name}")
            return command

        await self.dispatcher.send(device, command)
        return command

    def _apply_power(
        self, designated: DesignatedState, current: CurrentState, command: Command
    ) -> None:
        if designated.power is None and designated.brightness is None:
            return

        # A brightness change on its own means "on at this level"
        power = designated.power if designated.power is not None else True
        off_by_zero = self.dark_mode and designated.brightness == 0
        if off_by_zero:
            power = False

        if power:
            self._turn_on(designated.brightness, current, command)
        else:
            self._turn_off(designated.brightness, off_by_zero, current, command)

    def _turn_on(
        self, requested: Optional[int], current: CurrentState, command: Command
    ) -> None:
        level = requested
        if level is None:
            if (
                self.dark_mode
                and current.off_by_zero_brightness
                and current.cached_brightness_before_off
            ):
                level = current.cached_brightness_before_off
            else:
                level = current.brightness or DEFAULT_BRIGHTNESS

        if level > 1:
            command.state = "On"
            command.level = level
        else:
            # Night mode is the lowest level the lights can do
            command.add_verb(NIGHT_MODE)
            level = 1

        current.power = True
        current.brightness = level
        current.off_by_zero_brightness = False

    def _turn_off(
        self,
        requested: Optional[int],
        off_by_zero: bool,
        current: CurrentState,
        command: Command,
    ) -> None:
        command.state = "Off"

        if self.dark_mode:
            # Brightness 0 while already off leaves the cached level alone
            if current.brightness > 0:
                current.cached_brightness_before_off = current.brightness
            # Keeps the hub's internal level from drifting down to zero
            command.level = 1
            if off_by_zero:
                current.brightness = 0
                current.off_by_zero_brightness = True

        if requested and not off_by_zero:
            current.brightness = requested
        current.power = False

    def _apply_color(
        self,
        device: Device,
        designated: DesignatedState,
        current: CurrentState,
        command: Command,
    ) -> None:
        forcing_white = designated.saturation == 0

        if designated.saturation is not None:
            if forcing_white:
                command.add_verb(SET_WHITE)
            else:
                command.saturation = designated.saturation
            current.saturation = designated.saturation

        # Hue is meaningless once the light is switched to white
        if designated.hue is not None and not forcing_white:
            command.hue = designated.hue
            current.hue = designated.hue

        if device.capabilities.color_temperature:
            if designated.color_temperature is not None:
                command.color_temp = designated.color_temperature
                current.color_temperature = designated.color_temperature
            return

        if designated.hue is None and designated.saturation is None:
            return

        hue = designated.hue if designated.hue is not None else current.hue
        saturation = (
            designated.saturation if designated.saturation is not None else current.saturation
        )
        if is_white_mode_region(hue, saturation):
            command.hue = None
            command.saturation = None
            command.kelvin = hue_saturation_to_kelvin_knob(hue, saturation)
            logger.debug(
                f"Hue {hue} / saturation {saturation} rendered as white, kelvin {command.kelvin}"
            )

    def apply_inbound_state(self, device: Device, state: HubState) -> Dict[Attribute, Any]:
        """Overwrite the current state with what the hub reports.

        Returns:
            The controller-facing value of every attribute the device exposes
        """
        current = device.current_state
        night = state.bulb_mode == "night"

        current.power = (state.state or "").upper() == "ON" or night
        if current.power:
            current.off_by_zero_brightness = False

        if night:
            current.brightness = 1
        elif state.brightness is None:
            # Group-addressed states carry no single brightness
            current.brightness = 0
        else:
            current.brightness = round_half_up(state.brightness / 2.55)

        if state.bulb_mode == "color":
            # Color mode has no meaningful mired value; keep the last one
            if state.color is not None:
                current.hue, current.saturation = rgb_to_hue_saturation(
                    state.color.r, state.color.g, state.color.b
                )
        elif state.color_temp is not None and state.color_temp > 0:
            mireds = min(MAX_MIREDS, max(MIN_MIREDS, state.color_temp))
            current.hue, current.saturation = color_temperature_to_hue_saturation(mireds)
            current.color_temperature = mireds

        return {
            attribute: current.value_of(attribute)
            for attribute in device.capabilities.attributes
        }
