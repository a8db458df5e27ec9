#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
YeelightDevice -- a single light known to the registry, and its connection state.
"""

from __future__ import annotations

import time
import datetime
from enum import Enum

from .internal_types import *
from .util import CaseInsensitiveDict
from .yeelight_message import parse_int, parse_location, rgb_from_header

if TYPE_CHECKING:
    from .connection import YeelightConnection

KNOWN_PROPERTY_NAMES: Tuple[str, ...] = (
    "id",
    "Location",
    "power",
    "bright",
    "model",
    "rgb",
    "hue",
    "sat",
    "ct",
    "color_mode",
    "name",
    "fw_ver",
    "support",
  )
"""The device-reported fields that have a typed accessor on YeelightDevice."""

_lower_known_property_names = frozenset(name.lower() for name in KNOWN_PROPERTY_NAMES)

class ConnectionState(Enum):
    """The state of a device's control connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"

class YeelightDevice:
    """A Yeelight device, keyed by the id it reports.

    `properties` holds the full header snapshot from the most recent sighting and
    is replaced wholesale by the registry. The typed attributes (power, brightness,
    rgb, address...) are derived from it on every access, so a refreshed snapshot
    is reflected immediately, including a changed control endpoint.
    """

    _id: str

    properties: CaseInsensitiveDict[str]
    """The device-reported fields from the latest sighting, plus any optimistic
       updates made by control commands since."""

    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    """Written only by YeelightConnectionManager."""

    connection: Optional[YeelightConnection] = None
    """The control connection; not None iff connection_state is not DISCONNECTED."""

    src_addr: Optional[HostAndPort] = None
    """The source address of the datagram that last reported this device."""

    last_seen: float
    """time.monotonic() at the last sighting."""

    last_seen_utc: datetime.datetime

    def __init__(
            self,
            device_id: str,
            properties: Mapping[str, str],
            src_addr: Optional[HostAndPort]=None
          ) -> None:
        self._id = device_id
        self.properties = CaseInsensitiveDict(properties)
        self.mark_seen(src_addr)

    @property
    def id(self) -> str:
        return self._id

    def mark_seen(self, src_addr: Optional[HostAndPort]=None) -> None:
        if src_addr is not None:
            self.src_addr = src_addr
        self.last_seen = time.monotonic()
        self.last_seen_utc = datetime.datetime.now(datetime.timezone.utc)

    @property
    def is_connected(self) -> bool:
        return self.connection_state == ConnectionState.CONNECTED

    @property
    def location(self) -> Optional[str]:
        """The raw advertised control endpoint, e.g. "yeelight://192.168.1.239:55443"."""
        return self.properties.get("Location")

    @property
    def address(self) -> Optional[HostAndPort]:
        """The (host, port) of the control endpoint, or None if the location is missing or invalid."""
        return parse_location(self.location)

    @property
    def host(self) -> Optional[str]:
        address = self.address
        return None if address is None else address[0]

    @property
    def port(self) -> Optional[int]:
        address = self.address
        return None if address is None else address[1]

    @property
    def power(self) -> Optional[str]:
        """"on", "off", or None if unknown."""
        return self.properties.get("power")

    @property
    def is_on(self) -> bool:
        return self.power == "on"

    @property
    def brightness(self) -> Optional[int]:
        """Brightness percentage 1..100, or None."""
        return parse_int(self.properties.get("bright"))

    @property
    def rgb(self) -> Optional[RgbColor]:
        return rgb_from_header(self.properties.get("rgb"))

    @property
    def hue(self) -> Optional[int]:
        return parse_int(self.properties.get("hue"))

    @property
    def saturation(self) -> Optional[int]:
        return parse_int(self.properties.get("sat"))

    @property
    def color_temperature(self) -> Optional[int]:
        """Color temperature in Kelvin, or None."""
        return parse_int(self.properties.get("ct"))

    @property
    def color_mode(self) -> Optional[int]:
        """1 = rgb, 2 = color temperature, 3 = hsv; None if unknown."""
        return parse_int(self.properties.get("color_mode"))

    @property
    def model(self) -> Optional[str]:
        return self.properties.get("model")

    @property
    def name(self) -> Optional[str]:
        return self.properties.get("name")

    @property
    def firmware_version(self) -> Optional[str]:
        return self.properties.get("fw_ver")

    @property
    def supported_methods(self) -> List[str]:
        """The control methods listed in the "support" header."""
        return self.properties.get("support", "").split()

    @property
    def extra_properties(self) -> Dict[str, str]:
        """The reported fields that have no typed accessor (e.g., "Cache-Control", "Server")."""
        return { name: value for name, value in self.properties.items()
                 if name.lower() not in _lower_known_property_names }

    def to_jsonable(self) -> JsonableDict:
        result: JsonableDict = {
            "id": self.id,
            "connection_state": self.connection_state.value,
            "properties": dict(self.properties),
            "last_seen_utc": self.last_seen_utc.isoformat(),
          }
        if self.src_addr is not None:
            result["src_addr"] = f"{self.src_addr[0]}:{self.src_addr[1]}"
        return result

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, YeelightDevice):
            return NotImplemented
        return self._id == other._id

    def __hash__(self) -> int:
        return hash(self._id)

    def __str__(self) -> str:
        return f"YeelightDevice(id={self.id}, location={self.location}, state={self.connection_state.value})"

    def __repr__(self) -> str:
        return str(self)
