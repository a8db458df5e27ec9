#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Control commands and the dispatcher that sends them.

Every request is one JSON object followed by CRLF:

    {"id":1,"method":"set_power","params":["on","smooth",300]}\r\n

The device answers each request with a result line carrying the same id, but this
package does not wait for it: a command is complete once the write has been accepted
by the local transport. Local device properties are updated optimistically before
the write.
"""

from __future__ import annotations

import json

from .internal_types import *
from .pkg_logging import logger
from .constants import DEFAULT_TRANSITION_MS, DEFAULT_COMMAND_ID
from .exceptions import PreconditionError
from .device import YeelightDevice, ConnectionState
from .events import YeelightEventBus, YeelightEventKind
from .connection import YeelightConnectionManager
from .yeelight_message import pack_rgb

TRANSITION_SMOOTH = "smooth"
"""The transition effect requested for every command; duration_ms applies to it."""

CommandParam = Union[str, int]

CommandCompletionCallback = Callable[[YeelightDevice], None]
"""Called with the device once a command's write has completed."""

class YeelightCommand:
    """A JSON-RPC style request to a device"""
    method: str
    params: List[CommandParam]
    id: int

    def __init__(self, method: str, params: Iterable[CommandParam], id: int=DEFAULT_COMMAND_ID):
        self.method = method
        self.params = list(params)
        self.id = id

    def to_jsonable(self) -> JsonableDict:
        return { "id": self.id, "method": self.method, "params": list(self.params) }

    def encode(self) -> bytes:
        """Returns the wire form: compact JSON terminated by CRLF."""
        return (json.dumps(self.to_jsonable(), separators=(',', ':')) + '\r\n').encode('utf-8')

    @classmethod
    def set_power(cls, on: bool, duration_ms: int=DEFAULT_TRANSITION_MS) -> YeelightCommand:
        return cls("set_power", ["on" if on else "off", TRANSITION_SMOOTH, _check_duration(duration_ms)])

    @classmethod
    def set_bright(cls, percent: int, duration_ms: int=DEFAULT_TRANSITION_MS) -> YeelightCommand:
        if not isinstance(percent, int) or isinstance(percent, bool) or percent < 0 or percent > 100:
            raise ValueError(f"Brightness must be an integer percentage in 0..100: {percent!r}")
        return cls("set_bright", [percent, TRANSITION_SMOOTH, _check_duration(duration_ms)])

    @classmethod
    def set_rgb(cls, rgb: Sequence[int], duration_ms: int=DEFAULT_TRANSITION_MS) -> YeelightCommand:
        if len(rgb) != 3:
            raise ValueError(f"Color must be a (red, green, blue) triple: {rgb!r}")
        packed = pack_rgb(rgb[0], rgb[1], rgb[2])
        return cls("set_rgb", [packed, TRANSITION_SMOOTH, _check_duration(duration_ms)])

    def __str__(self) -> str:
        return f"YeelightCommand({self.method}: {self.params})"

    def __repr__(self) -> str:
        return str(self)

def _check_duration(duration_ms: int) -> int:
    if not isinstance(duration_ms, int) or isinstance(duration_ms, bool) or duration_ms < 0:
        raise ValueError(f"Transition duration must be a non-negative number of milliseconds: {duration_ms!r}")
    return duration_ms

class YeelightCommandDispatcher:
    """Encodes control operations and writes them to connected devices.

    A command on a device that is not CONNECTED is rejected without a write or a local
    property change, and DEVICE_DISCONNECTED is published instead.
    """

    connections: YeelightConnectionManager
    bus: YeelightEventBus

    def __init__(self, connections: YeelightConnectionManager, bus: YeelightEventBus) -> None:
        self.connections = connections
        self.bus = bus

    def check_connected(self, device: YeelightDevice) -> bool:
        """Returns True if commands can be sent to the device. Otherwise publishes
           DEVICE_DISCONNECTED and returns False."""
        if device.connection_state == ConnectionState.CONNECTED and device.connection is not None:
            return True
        e = PreconditionError(f"Device {device.id} is {device.connection_state.value}; command rejected")
        logger.warning(f"{e}")
        self.bus.emit(YeelightEventKind.DEVICE_DISCONNECTED, device=device)
        return False

    async def send_command(
            self,
            device: YeelightDevice,
            command: YeelightCommand,
            on_complete: Optional[CommandCompletionCallback]=None
          ) -> bool:
        """Writes a command to the device, then calls on_complete (if given).

        Returns True if the write completed, False if the command was rejected or the write failed.
        """
        if not self.check_connected(device):
            return False
        logger.debug(f"Sending {command} to {device}")
        if not await self.connections.send(device, command.encode()):
            return False
        if on_complete is not None:
            on_complete(device)
        return True

    async def set_power(self, device: YeelightDevice, on: bool, duration_ms: int=DEFAULT_TRANSITION_MS) -> bool:
        """Turns the device on or off. Publishes POWER_UPDATED once written."""
        command = YeelightCommand.set_power(on, duration_ms)
        if not self.check_connected(device):
            return False
        device.properties["power"] = "on" if on else "off"
        return await self.send_command(
            device, command, lambda d: self.bus.emit(YeelightEventKind.POWER_UPDATED, device=d))

    async def set_brightness(self, device: YeelightDevice, percent: int, duration_ms: int=DEFAULT_TRANSITION_MS) -> bool:
        """Sets the brightness percentage. A device that is off is first turned on instantly.
           Publishes BRIGHTNESS_UPDATED once written."""
        command = YeelightCommand.set_bright(percent, duration_ms)
        if not self.check_connected(device):
            return False
        if device.power == "off":
            if not await self.set_power(device, True, 0):
                return False
        device.properties["bright"] = str(percent)
        return await self.send_command(
            device, command, lambda d: self.bus.emit(YeelightEventKind.BRIGHTNESS_UPDATED, device=d))

    async def set_color(self, device: YeelightDevice, rgb: Sequence[int], duration_ms: int=DEFAULT_TRANSITION_MS) -> bool:
        """Sets the color as (red, green, blue). Publishes COLOR_UPDATED once written."""
        command = YeelightCommand.set_rgb(rgb, duration_ms)
        if not self.check_connected(device):
            return False
        device.properties["rgb"] = str(command.params[0])
        return await self.send_command(
            device, command, lambda d: self.bus.emit(YeelightEventKind.COLOR_UPDATED, device=d))
