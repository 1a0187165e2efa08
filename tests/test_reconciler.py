import sys
from pathlib import Path

import pytest

# Add the parent directory to sys.path so we can import the project modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from milight_bridge.lights.models import Attribute, DesignatedState, HubState
from milight_bridge.lights.reconciler import StateReconciler


def designate(device, **changes):
    for name, value in changes.items():
        setattr(device.designated_state, name, value)


class TestReconcile:
    @pytest.fixture
    def reconciler(self, mock_dispatcher):
        return StateReconciler(mock_dispatcher, dark_mode=False)

    async def test_empty_designation_sends_nothing(self, reconciler, mock_dispatcher, rgb_device):
        command = await reconciler.reconcile(rgb_device)

        assert command.is_empty
        mock_dispatcher.send.assert_not_awaited()

    async def test_designation_is_consumed(self, reconciler, rgb_device):
        designate(rgb_device, power=True, brightness=40)

        await reconciler.reconcile(rgb_device)

        assert rgb_device.designated_state == DesignatedState()
        assert rgb_device.designated_state.is_empty

    async def test_on_with_brightness_one_is_night_mode(self, reconciler, mock_dispatcher, rgb_device):
        """Power on then brightness 1 becomes the hub's night mode, without a state"""
        rgb_device.current_state.power = False
        designate(rgb_device, power=True, brightness=1)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"commands": ["night_mode"]}
        mock_dispatcher.send.assert_awaited_once_with(rgb_device, command)
        assert rgb_device.current_state.power is True
        assert rgb_device.current_state.brightness == 1

    async def test_saturation_zero_drops_hue(self, reconciler, rgb_device):
        designate(rgb_device, saturation=0, hue=120)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"commands": ["set_white"]}
        assert rgb_device.current_state.saturation == 0
        assert rgb_device.current_state.hue == 0

    async def test_saturation_zero_in_white_region_sets_kelvin(self, reconciler, rgb_device):
        designate(rgb_device, saturation=0, hue=180)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"commands": ["set_white"], "kelvin": 50}
        assert rgb_device.current_state.saturation == 0

    async def test_on_with_level(self, reconciler, rgb_device):
        designate(rgb_device, power=True, brightness=40)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"state": "On", "level": 40}
        assert rgb_device.current_state.brightness == 40

    async def test_on_reuses_current_brightness(self, reconciler, rgb_device):
        rgb_device.current_state.brightness = 70
        designate(rgb_device, power=True)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"state": "On", "level": 70}

    async def test_brightness_alone_turns_on(self, reconciler, rgb_device):
        designate(rgb_device, brightness=55)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"state": "On", "level": 55}
        assert rgb_device.current_state.power is True

    async def test_off(self, reconciler, rgb_device):
        rgb_device.current_state.power = True
        designate(rgb_device, power=False)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"state": "Off"}
        assert rgb_device.current_state.power is False
        assert rgb_device.current_state.brightness == 100

    async def test_brightness_zero_without_dark_mode_is_night_mode(self, reconciler, rgb_device):
        designate(rgb_device, power=True, brightness=0)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"commands": ["night_mode"]}

    async def test_verbs_accumulate(self, reconciler, rgb_device):
        designate(rgb_device, power=True, brightness=1, saturation=0)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"commands": ["night_mode", "set_white"]}

    async def test_color(self, reconciler, rgb_device):
        designate(rgb_device, hue=240, saturation=80)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"hue": 240, "saturation": 80}
        assert rgb_device.current_state.hue == 240
        assert rgb_device.current_state.saturation == 80

    async def test_near_white_color_becomes_kelvin(self, reconciler, rgb_device):
        designate(rgb_device, hue=230, saturation=8)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"kelvin": 30}
        assert rgb_device.current_state.hue == 230
        assert rgb_device.current_state.saturation == 8

    async def test_white_mode_uses_current_hue_when_only_saturation_changes(
        self, reconciler, rgb_device
    ):
        rgb_device.current_state.hue = 20
        designate(rgb_device, saturation=8)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"kelvin": 66}

    async def test_color_temperature_channel_skips_white_mode(self, reconciler, rgbcct_device):
        designate(rgbcct_device, hue=230, saturation=8, color_temperature=200)

        command = await reconciler.reconcile(rgbcct_device)

        assert command.payload() == {"hue": 230, "saturation": 8, "color_temp": 200}
        assert rgbcct_device.current_state.color_temperature == 200

    async def test_white_light_color_temperature(self, reconciler, white_device):
        designate(white_device, color_temperature=300)

        command = await reconciler.reconcile(white_device)

        assert command.payload() == {"color_temp": 300}

    async def test_color_temperature_ignored_without_channel(self, reconciler, mock_dispatcher, rgb_device):
        designate(rgb_device, color_temperature=300)

        command = await reconciler.reconcile(rgb_device)

        assert command.is_empty
        mock_dispatcher.send.assert_not_awaited()


class TestDarkMode:
    @pytest.fixture
    def reconciler(self, mock_dispatcher):
        return StateReconciler(mock_dispatcher, dark_mode=True)

    async def test_brightness_zero_turns_off_and_caches(self, reconciler, rgb_device):
        rgb_device.current_state.power = True
        rgb_device.current_state.brightness = 60
        designate(rgb_device, brightness=0)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"state": "Off", "level": 1}
        current = rgb_device.current_state
        assert current.power is False
        assert current.brightness == 0
        assert current.cached_brightness_before_off == 60
        assert current.off_by_zero_brightness is True

    async def test_on_restores_cached_brightness(self, reconciler, rgb_device):
        rgb_device.current_state.power = True
        rgb_device.current_state.brightness = 60
        designate(rgb_device, brightness=0)
        await reconciler.reconcile(rgb_device)

        designate(rgb_device, power=True)
        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"state": "On", "level": 60}
        assert rgb_device.current_state.off_by_zero_brightness is False
        assert rgb_device.current_state.brightness == 60

    async def test_zero_while_already_off_keeps_cache(self, reconciler, rgb_device):
        rgb_device.current_state.power = True
        rgb_device.current_state.brightness = 60
        designate(rgb_device, brightness=0)
        await reconciler.reconcile(rgb_device)

        designate(rgb_device, brightness=0)
        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"state": "Off", "level": 1}
        assert rgb_device.current_state.cached_brightness_before_off == 60

    async def test_plain_off_keeps_brightness(self, reconciler, rgb_device):
        rgb_device.current_state.power = True
        rgb_device.current_state.brightness = 70
        designate(rgb_device, power=False)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"state": "Off", "level": 1}
        assert rgb_device.current_state.brightness == 70
        assert rgb_device.current_state.off_by_zero_brightness is False

        designate(rgb_device, power=True)
        command = await reconciler.reconcile(rgb_device)
        assert command.payload() == {"state": "On", "level": 70}

    async def test_brightness_one_is_still_night_mode(self, reconciler, rgb_device):
        designate(rgb_device, power=True, brightness=1)

        command = await reconciler.reconcile(rgb_device)

        assert command.payload() == {"commands": ["night_mode"]}


class TestInboundState:
    @pytest.fixture
    def reconciler(self, mock_dispatcher):
        return StateReconciler(mock_dispatcher)

    def test_color_mode(self, reconciler, rgb_device, sample_hub_state):
        values = reconciler.apply_inbound_state(rgb_device, HubState(**sample_hub_state))

        assert values == {
            Attribute.POWER: True,
            Attribute.BRIGHTNESS: 50,
            Attribute.SATURATION: 100,
            Attribute.HUE: 0,
        }
        # Color mode has no mired value
        assert rgb_device.current_state.color_temperature is None

    def test_white_mode_uses_color_temperature(self, reconciler, white_device):
        state = HubState(state="ON", brightness=255, bulb_mode="white", color_temp=370)

        values = reconciler.apply_inbound_state(white_device, state)

        assert values == {
            Attribute.POWER: True,
            Attribute.BRIGHTNESS: 100,
            Attribute.COLOR_TEMPERATURE: 370,
        }
        assert white_device.current_state.hue == 30
        assert white_device.current_state.saturation == 66

    def test_night_mode_is_on_at_one(self, reconciler, rgb_device):
        state = HubState(state="OFF", brightness=0, bulb_mode="night")

        reconciler.apply_inbound_state(rgb_device, state)

        assert rgb_device.current_state.power is True
        assert rgb_device.current_state.brightness == 1

    def test_missing_brightness_is_zero(self, reconciler, rgb_device):
        reconciler.apply_inbound_state(rgb_device, HubState(state="OFF"))

        assert rgb_device.current_state.power is False
        assert rgb_device.current_state.brightness == 0

    def test_color_mode_keeps_previous_color_temperature(self, reconciler, rgbcct_device, sample_hub_state):
        rgbcct_device.current_state.color_temperature = 250

        reconciler.apply_inbound_state(rgbcct_device, HubState(**sample_hub_state))

        assert rgbcct_device.current_state.color_temperature == 250

    def test_on_clears_dark_mode_bookkeeping(self, reconciler, rgb_device):
        rgb_device.current_state.off_by_zero_brightness = True

        reconciler.apply_inbound_state(rgb_device, HubState(state="ON", brightness=102))

        assert rgb_device.current_state.off_by_zero_brightness is False
        assert rgb_device.current_state.brightness == 40

    def test_zero_color_temperature_is_ignored(self, reconciler, white_device):
        white_device.current_state.color_temperature = 250

        values = reconciler.apply_inbound_state(
            white_device, HubState(state="ON", brightness=255, bulb_mode="white", color_temp=0)
        )

        assert values[Attribute.COLOR_TEMPERATURE] == 250

    def test_out_of_range_color_temperature_is_clamped(self, reconciler, white_device):
        reconciler.apply_inbound_state(
            white_device, HubState(state="ON", brightness=255, bulb_mode="white", color_temp=1000)
        )

        assert white_device.current_state.color_temperature == 370
        assert white_device.current_state.saturation == 66
