import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


MILIGHT_HUB_HOST: str = os.getenv("MILIGHT_HUB_HOST", "milight-hub.local")
MILIGHT_HTTP_USERNAME: str = os.getenv("MILIGHT_HTTP_USERNAME")
MILIGHT_HTTP_PASSWORD: str = os.getenv("MILIGHT_HTTP_PASSWORD")

DEBOUNCE_SECONDS: float = float(os.getenv("DEBOUNCE_SECONDS", 0.1))
SETTINGS_POLL_SECONDS: float = float(os.getenv("SETTINGS_POLL_SECONDS", 10))
HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", 5))

# Brightness 0 turns the light off and the previous level is restored on the next "on"
DARK_MODE: bool = _flag("DARK_MODE")
FORCE_HTTP: bool = _flag("FORCE_HTTP")
BACKCHANNEL: bool = _flag("BACKCHANNEL")
RGBCCT_MODE: bool = _flag("RGBCCT_MODE")
DEBUG: bool = _flag("DEBUG")

MQTT_CLIENT_ID: str = os.getenv("MQTT_CLIENT_ID", "milight_bridge")

if bool(MILIGHT_HTTP_USERNAME) != bool(MILIGHT_HTTP_PASSWORD):
    raise ValueError("MILIGHT_HTTP_USERNAME and MILIGHT_HTTP_PASSWORD must be set together")
