# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package yeelight_lan_protocol discovers and controls Yeelight smart lights on the local network.

Devices are found with an SSDP-like exchange: a search request is multicast to
239.255.255.250:1982, and each device answers with HTTP-style headers describing
itself (id, control endpoint, power, brightness, color...). Devices also multicast
the same headers unsolicited when their state changes or they join the network.

Control uses a persistent plaintext TCP connection to the advertised endpoint, over
which one JSON request per line is written (set_power, set_bright, set_rgb).

Everything runs on one asyncio event loop, and outcomes are reported through a
single event bus rather than raised.
"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict, HostAndPort, RgbColor

from .exceptions import YeelightError, BindError, MalformedMessage, TransportError, PreconditionError

from .yeelight_message import YeelightMessage, parse_headers, parse_int, pack_rgb, unpack_rgb, parse_location
from .device import YeelightDevice, ConnectionState, KNOWN_PROPERTY_NAMES
from .registry import DeviceRegistry, UpsertResult
from .events import (
    YeelightEventBus,
    YeelightEvent,
    YeelightEventKind,
    YeelightEventHandler,
    YeelightEventSubscriber,
  )
from .config import YeelightConfig
from .discovery import YeelightDiscoveryListener
from .connection import YeelightConnectionManager, YeelightConnection
from .commands import YeelightCommand, YeelightCommandDispatcher
from .client import YeelightClient
from .util import CaseInsensitiveDict
from .constants import (
    YEELIGHT_MULTICAST_ADDRESS,
    YEELIGHT_DISCOVERY_PORT,
    YEELIGHT_CONTROL_PORT,
    DEFAULT_DISCOVERY_MESSAGE,
    DEFAULT_TRANSITION_MS,
  )

__all__ = [
    '__version__',
    'Jsonable', 'JsonableDict', 'HostAndPort', 'RgbColor',
    'YeelightError', 'BindError', 'MalformedMessage', 'TransportError', 'PreconditionError',
    'YeelightMessage', 'parse_headers', 'parse_int', 'pack_rgb', 'unpack_rgb', 'parse_location',
    'YeelightDevice', 'ConnectionState', 'KNOWN_PROPERTY_NAMES',
    'DeviceRegistry', 'UpsertResult',
    'YeelightEventBus', 'YeelightEvent', 'YeelightEventKind', 'YeelightEventHandler', 'YeelightEventSubscriber',
    'YeelightConfig',
    'YeelightDiscoveryListener',
    'YeelightConnectionManager', 'YeelightConnection',
    'YeelightCommand', 'YeelightCommandDispatcher',
    'YeelightClient',
    'CaseInsensitiveDict',
    'YEELIGHT_MULTICAST_ADDRESS', 'YEELIGHT_DISCOVERY_PORT', 'YEELIGHT_CONTROL_PORT',
    'DEFAULT_DISCOVERY_MESSAGE', 'DEFAULT_TRANSITION_MS',
]
