#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
YeelightConnectionManager -- owns the control connection of each device.

Per-device state machine:

    DISCONNECTED --connect()--> CONNECTING --success--> CONNECTED
         ^                          |                       |
         +------- error / close ----+-------- close --------+

Transport errors are never raised to the caller. They are logged, the connection is
released, and DEVICE_DISCONNECTED is published. There is no automatic retry.
"""

from __future__ import annotations

import asyncio
import json

from .internal_types import *
from .pkg_logging import logger
from .exceptions import TransportError
from .config import YeelightConfig
from .device import YeelightDevice, ConnectionState
from .events import YeelightEventBus, YeelightEventKind

class YeelightConnection:
    """A single TCP control connection to one device. Not reused after it closes."""

    manager: YeelightConnectionManager
    device: YeelightDevice
    address: Optional[HostAndPort] = None
    """The endpoint this connection was opened to. May differ from device.address if
       the device has since advertised a new location."""

    reader: Optional[asyncio.StreamReader] = None
    writer: Optional[asyncio.StreamWriter] = None
    reader_task: Optional[asyncio.Task[None]] = None
    closed: bool = False

    def __init__(self, manager: YeelightConnectionManager, device: YeelightDevice):
        self.manager = manager
        self.device = device

    async def open(self, address: HostAndPort, timeout: float) -> None:
        assert self.reader is None and self.writer is None
        self.address = address
        host, port = address
        logger.debug(f"Connecting to {self.device} at {host}:{port}")
        self.reader, self.writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)

    def start_reader(self) -> None:
        assert self.reader_task is None
        self.reader_task = asyncio.create_task(self._run_reader())

    async def _run_reader(self) -> None:
        """Consumes lines sent by the device until EOF or error, then closes the connection.

        Command results and "props" notifications are logged only; a command is complete
        once its write has been accepted.
        """
        assert self.reader is not None
        exc: Optional[Exception] = None
        try:
            while True:
                line = await self.reader.readline()
                if len(line) == 0:
                    logger.debug(f"Connection to {self.device} closed by device")
                    break
                self._handle_line(line)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.info(f"Error reading from {self.device}: {e}")
            exc = e
        await self.close(exc)

    def _handle_line(self, line: bytes) -> None:
        try:
            msg = json.loads(line)
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning(f"Ignoring unparseable line from {self.device}: {line!r}")
            return
        if not isinstance(msg, dict):
            logger.warning(f"Ignoring non-object line from {self.device}: {line!r}")
        elif msg.get("method") == "props":
            logger.debug(f"Property notification from {self.device}: {msg.get('params')}")
        elif "error" in msg:
            logger.info(f"Device {self.device} reported error for request {msg.get('id')}: {msg['error']}")
        else:
            logger.debug(f"Response from {self.device}: {msg}")

    async def write_line(self, data: bytes) -> None:
        """Writes data and waits until the local transport has accepted it.

        Raises TransportError if the connection is not open or the write fails.
        """
        if self.closed or self.writer is None:
            raise TransportError(f"Connection to {self.device} is not open")
        logger.debug(f"Writing to {self.device}: {data!r}")
        try:
            self.writer.write(data)
            await self.writer.drain()
        except (OSError, RuntimeError) as e:
            raise TransportError(f"Write to {self.device} failed: {e}") from e

    async def close(self, exc: Optional[BaseException]=None) -> None:
        """Releases the socket and notifies the manager. Idempotent."""
        if self.closed:
            return
        self.closed = True
        reader_task = self.reader_task
        if reader_task is not None and reader_task is not asyncio.current_task():
            reader_task.cancel()
            try:
                await reader_task
            except asyncio.CancelledError:
                pass
        if self.writer is not None:
            try:
                self.writer.close()
                await self.writer.wait_closed()
            except Exception as e:
                logger.debug(f"Exception while closing connection to {self.device}: {e}")
        self.reader = None
        self.writer = None
        self.manager.connection_closed(self, exc)

    def __str__(self) -> str:
        return f"YeelightConnection(device={self.device.id}, address={self.address}, closed={self.closed})"

    def __repr__(self) -> str:
        return str(self)

class YeelightConnectionManager:
    config: YeelightConfig
    bus: YeelightEventBus

    connections: Dict[str, YeelightConnection]
    """The live connections, indexed by device id."""

    def __init__(self, config: YeelightConfig, bus: YeelightEventBus) -> None:
        self.config = config
        self.bus = bus
        self.connections = {}

    async def connect(self, device: YeelightDevice) -> None:
        """Opens a control connection to the device. A no-op unless the device is DISCONNECTED.

        Publishes DEVICE_CONNECTED on success and DEVICE_DISCONNECTED on failure; never raises
        for transport errors.
        """
        if device.connection_state != ConnectionState.DISCONNECTED:
            logger.debug(f"Not connecting {device}; already {device.connection_state.value}")
            return
        connection = YeelightConnection(self, device)
        device.connection = connection
        device.connection_state = ConnectionState.CONNECTING
        self.connections[device.id] = connection
        try:
            address = device.address
            if address is None:
                raise TransportError(f"Device {device.id} has no valid location: {device.location!r}")
            await connection.open(address, self.config.connect_timeout)
        except (OSError, asyncio.TimeoutError, TransportError) as e:
            logger.warning(f"Unable to connect to {device}: {e!r}")
            await connection.close(e)
            return
        except BaseException as e:
            await connection.close(e)
            raise
        if connection.closed:
            # disconnect() was called while the connection was being opened
            if connection.writer is not None:
                connection.writer.close()
            connection.reader = None
            connection.writer = None
            return
        device.connection_state = ConnectionState.CONNECTED
        connection.start_reader()
        logger.info(f"Connected to {device}")
        self.bus.emit(YeelightEventKind.DEVICE_CONNECTED, device=device)

    async def disconnect(self, device: YeelightDevice) -> None:
        """Closes the device's control connection, if any. Publishes DEVICE_DISCONNECTED."""
        connection = device.connection
        if connection is not None:
            await connection.close()

    async def reconnect(self, device: YeelightDevice) -> None:
        """Closes the device's control connection, if any, and opens a new one to its current location."""
        await self.disconnect(device)
        await self.connect(device)

    async def send(self, device: YeelightDevice, data: bytes) -> bool:
        """Writes data to the device's connection.

        Returns True once the write has been accepted by the local transport. On a transport
        error the connection is closed (publishing DEVICE_DISCONNECTED) and False is returned.
        """
        connection = device.connection
        if connection is None:
            return False
        try:
            await connection.write_line(data)
        except TransportError as e:
            logger.warning(f"{e}; closing connection")
            await connection.close(e)
            return False
        return True

    def connection_closed(self, connection: YeelightConnection, exc: Optional[BaseException]) -> None:
        """Called exactly once by each connection when it closes."""
        device = connection.device
        if self.connections.get(device.id) is connection:
            del self.connections[device.id]
        if device.connection is not connection:
            return
        device.connection_state = ConnectionState.DISCONNECTED
        device.connection = None
        logger.info(f"Disconnected from {device}" + ("" if exc is None else f": {exc!r}"))
        self.bus.emit(YeelightEventKind.DEVICE_DISCONNECTED, device=device)

    async def close_all(self) -> None:
        for connection in list(self.connections.values()):
            await connection.close()
