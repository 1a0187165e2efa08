from enum import Enum
from typing import Any, Dict, List, Literal, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

WHITE_REMOTES = ("cct", "fut091")
RGB_REMOTES = ("rgbw", "rgb", "fut020")
RGBCCT_REMOTES = ("fut089", "rgb_cct")

# Controller-facing color temperature range: 6500K .. 2700K
MIN_MIREDS = 153
MAX_MIREDS = 370


class Attribute(str, Enum):
    POWER = "power"
    BRIGHTNESS = "brightness"
    HUE = "hue"
    SATURATION = "saturation"
    COLOR_TEMPERATURE = "color_temperature"


class DeviceKey(NamedTuple):
    device_id: int
    remote_type: str
    group_id: int


class LightInfo(BaseModel):
    """One light as announced by the hub's ``group_id_aliases``."""

    name: str
    device_id: int
    remote_type: str
    group_id: int

    @property
    def key(self) -> DeviceKey:
        return DeviceKey(self.device_id, self.remote_type, self.group_id)

    @property
    def uid(self) -> str:
        return f"0x{self.device_id:X}/{self.remote_type}/{self.group_id}"


class Capabilities(BaseModel):
    """
    Which color attributes a light exposes to the controller.

    Derived from the remote type the hub emulates. RGB+CCT remotes only
    get a native color temperature channel when ``rgbcct_mode`` is on;
    otherwise near-white colors go through the white-mode heuristic.
    """

    saturation: bool = False
    hue: bool = False
    color_temperature: bool = False
    details: str = ""

    @classmethod
    def for_remote(
        cls, remote_type: str, rgbcct_mode: bool = False, backchannel: bool = False
    ) -> "Capabilities":
        colored = remote_type in RGB_REMOTES or remote_type in RGBCCT_REMOTES
        return cls(
            saturation=colored,
            hue=colored,
            color_temperature=remote_type in WHITE_REMOTES
            or (rgbcct_mode and remote_type in RGBCCT_REMOTES),
            details=f"0x{int(backchannel)},0x{int(rgbcct_mode)}",
        )

    @property
    def attributes(self) -> List[Attribute]:
        attributes = [Attribute.POWER, Attribute.BRIGHTNESS]
        if self.saturation:
            attributes.append(Attribute.SATURATION)
        if self.hue:
            attributes.append(Attribute.HUE)
        if self.color_temperature:
            attributes.append(Attribute.COLOR_TEMPERATURE)
        return attributes


class CurrentState(BaseModel):
    """The best belief about what the hub is actually showing."""

    power: bool = False
    brightness: int = 100
    hue: int = 0
    saturation: int = 0
    color_temperature: Optional[int] = None

    # Dark mode and broker bookkeeping, never sent to the hub
    cached_brightness_before_off: Optional[int] = None
    off_by_zero_brightness: bool = False
    last_inbound_message_signature: Optional[str] = None

    def value_of(self, attribute: Attribute) -> Any:
        return getattr(self, attribute.value)


class DesignatedState(BaseModel):
    """Attribute changes requested by the controller and not yet sent."""

    model_config = ConfigDict(validate_assignment=True)

    power: Optional[bool] = None
    brightness: Optional[int] = Field(default=None, ge=0, le=100)
    hue: Optional[int] = Field(default=None, ge=0, le=360)
    saturation: Optional[int] = Field(default=None, ge=0, le=100)
    color_temperature: Optional[int] = Field(default=None, ge=MIN_MIREDS, le=MAX_MIREDS)

    @property
    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class Command(BaseModel):
    """
    A hub command. Only fields that change are set; the hub leaves
    everything absent as it is.
    """

    state: Optional[Literal["On", "Off"]] = None
    level: Optional[int] = None
    hue: Optional[int] = None
    saturation: Optional[int] = None
    color_temp: Optional[int] = None
    kelvin: Optional[int] = None
    commands: Optional[List[str]] = None

    def add_verb(self, verb: str) -> None:
        self.commands = (self.commands or []) + [verb]

    @property
    def is_empty(self) -> bool:
        return not self.payload()

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Device(BaseModel):
    """
    A light managed through the hub.

    A radio ``device_id`` can host several groups and remote types, so all
    three parts of the key are needed to address a single light.
    """

    name: str
    device_id: int
    remote_type: str
    group_id: int
    capabilities: Capabilities = Field(default_factory=Capabilities)
    current_state: CurrentState = Field(default_factory=CurrentState)
    designated_state: DesignatedState = Field(default_factory=DesignatedState)

    @classmethod
    def from_light_info(cls, info: LightInfo, capabilities: Capabilities) -> "Device":
        return cls(
            name=info.name,
            device_id=info.device_id,
            remote_type=info.remote_type,
            group_id=info.group_id,
            capabilities=capabilities,
        )

    @property
    def key(self) -> DeviceKey:
        return DeviceKey(self.device_id, self.remote_type, self.group_id)

    @property
    def uid(self) -> str:
        return f"0x{self.device_id:X}/{self.remote_type}/{self.group_id}"

    @property
    def rest_path(self) -> str:
        return f"/gateways/0x{self.device_id:x}/{self.remote_type}/{self.group_id}"

    def matches(self, info: LightInfo) -> bool:
        return self.key == info.key and self.name == info.name


class RGBColor(BaseModel):
    r: int = 0
    g: int = 0
    b: int = 0


class HubState(BaseModel):
    """Device state as reported by the hub over HTTP or the broker."""

    model_config = ConfigDict(extra="ignore")

    state: Optional[str] = None
    brightness: Optional[int] = None
    bulb_mode: Optional[str] = None
    color: Optional[RGBColor] = None
    color_temp: Optional[int] = None


class HubSettings(BaseModel):
    """The parts of the hub's ``/settings`` document the bridge cares about."""

    model_config = ConfigDict(extra="ignore")

    mqtt_server: Optional[str] = None
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None
    mqtt_topic_pattern: str = ""
    mqtt_state_topic_pattern: str = ""
    # display name -> [remote_type, device_id, group_id]
    group_id_aliases: Dict[str, Tuple[str, int, int]] = {}

    def light_list(self) -> List[LightInfo]:
        return [
            LightInfo(name=name, remote_type=remote_type, device_id=device_id, group_id=group_id)
            for name, (remote_type, device_id, group_id) in self.group_id_aliases.items()
        ]
