import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# Add the parent directory to sys.path so we can import the project modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from milight_bridge.lights.models import Capabilities, Device


@pytest.fixture
def sample_settings():
    """Fixture to provide a hub /settings document"""
    return {
        "admin_username": "",
        "mqtt_server": "",
        "mqtt_username": "",
        "mqtt_password": "",
        "mqtt_topic_pattern": "milight/commands/:hex_device_id/:device_type/:group_id",
        "mqtt_state_topic_pattern": "milight/states/:hex_device_id/:device_type/:group_id",
        "group_id_aliases": {
            "Living Room": ["rgb_cct", 4660, 1],
            "Hallway": ["cct", 43981, 2],
            "Kitchen Strip": ["rgbw", 4660, 3],
        },
    }


@pytest.fixture
def sample_hub_state():
    """Fixture to provide a light state as the hub reports it"""
    return {
        "state": "ON",
        "brightness": 128,
        "bulb_mode": "color",
        "color": {"r": 255, "g": 0, "b": 0},
        "color_temp": 200,
    }


@pytest.fixture
def rgb_device():
    """RGB light without a native color temperature channel"""
    return Device(
        name="Kitchen Strip",
        device_id=4660,
        remote_type="rgbw",
        group_id=3,
        capabilities=Capabilities.for_remote("rgbw"),
    )


@pytest.fixture
def rgbcct_device():
    """RGB+CCT light driven through its color temperature channel"""
    return Device(
        name="Living Room",
        device_id=4660,
        remote_type="rgb_cct",
        group_id=1,
        capabilities=Capabilities.for_remote("rgb_cct", rgbcct_mode=True),
    )


@pytest.fixture
def white_device():
    return Device(
        name="Hallway",
        device_id=43981,
        remote_type="cct",
        group_id=2,
        capabilities=Capabilities.for_remote("cct"),
    )


@pytest.fixture
def mock_dispatcher():
    """Dispatcher stand-in that records sends without touching the network"""
    dispatcher = MagicMock()
    dispatcher.send = AsyncMock()
    dispatcher.fetch_state = AsyncMock(return_value=None)
    dispatcher.fetch_settings = AsyncMock(return_value=None)
    dispatcher.configure = AsyncMock(return_value=False)
    dispatcher.subscribe = AsyncMock()
    dispatcher.unsubscribe = AsyncMock()
    dispatcher.close = AsyncMock()
    dispatcher.using_broker = False
    dispatcher.state_topic = MagicMock(
        side_effect=lambda device: f"milight/states/0x{device.device_id:X}/{device.remote_type}/{device.group_id}"
    )
    return dispatcher


@pytest.fixture
def mock_env_config():
    """Mock environment configuration"""
    with patch.dict(
        os.environ,
        {
            "MILIGHT_HUB_HOST": "192.168.1.50",
            "MILIGHT_HTTP_USERNAME": "admin",
            "MILIGHT_HTTP_PASSWORD": "secret",
            "DEBOUNCE_SECONDS": "0.25",
            "DARK_MODE": "true",
            "FORCE_HTTP": "1",
        },
    ):
        yield
