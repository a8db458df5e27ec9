#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
YeelightDiscoveryListener -- owns the discovery UDP socket, and:

  1. Binds the discovery port (typically 1982) with broadcast enabled, and joins the multicast group
  2. Multicasts search requests on demand (fire-and-forget)
  3. Receives search responses and unsolicited NOTIFY advertisements, drops the ones this host sent,
     and feeds the rest into the DeviceRegistry
  4. Publishes READY, DEVICE_ADDED and DEVICE_UPDATED events
"""

from __future__ import annotations

import asyncio
from asyncio import Future
import socket

from .internal_types import *
from .pkg_logging import logger
from .exceptions import YeelightError, BindError, MalformedMessage
from .config import YeelightConfig
from .yeelight_message import YeelightMessage
from .registry import DeviceRegistry, UpsertResult
from .events import YeelightEventBus, YeelightEventKind
from .util import get_local_ip_addresses

class _YeelightDiscoveryProtocol(asyncio.DatagramProtocol):
    """An adapter between the asyncio datagram transport and YeelightDiscoveryListener."""

    listener: YeelightDiscoveryListener

    def __init__(self, listener: YeelightDiscoveryListener):
        self.listener = listener

    def connection_made(self, transport: asyncio.BaseTransport):
        """Called when a connection is made."""
        logger.debug(f"Discovery socket ready: {transport}")

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        """Called when some datagram is received."""
        try:
            self.listener.datagram_received(addr, data)
        except Exception as e:
            logger.warning(f"Error handling datagram from {addr}, raw=[{data!r}]: {e}")

    def error_received(self, exc: Exception):
        """Called when a send or receive operation raises an OSError.

        (Other than BlockingIOError or InterruptedError.)
        """
        logger.info(f"Error received on discovery socket: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        """Called when the connection is lost or closed."""
        self.listener.connection_lost(exc)

class YeelightDiscoveryListener(AsyncContextManager['YeelightDiscoveryListener']):
    """
    The discovery side of the protocol. There is no timeout or retry: each discover() is a
    single best-effort multicast, and responses (and any later advertisements) are handled
    as they arrive for as long as the listener runs.
    """

    config: YeelightConfig
    registry: DeviceRegistry
    bus: YeelightEventBus

    sock: Optional[socket.socket] = None
    transport: Optional[asyncio.DatagramTransport] = None

    bound_port: Optional[int] = None
    """The port the discovery socket is bound to, once started."""

    local_addresses: Set[str]
    """The local host's own IP addresses. Datagrams from these are our own multicasts."""

    final_result: Optional[Future[None]] = None
    """A future that is set when the listener is stopped. Created by start()."""

    def __init__(
            self,
            config: YeelightConfig,
            registry: DeviceRegistry,
            bus: YeelightEventBus,
          ) -> None:
        self.config = config
        self.registry = registry
        self.bus = bus
        self.local_addresses = set(config.local_addresses or ())

    @property
    def is_started(self) -> bool:
        return self.transport is not None

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind((self.config.bind_address, self.config.port))
        except OSError as e:
            sock.close()
            raise BindError(f"Unable to bind discovery socket to {self.config.bind_address or '*'}:{self.config.port}: {e}") from e
        if self.config.join_multicast_group:
            # Needed to receive NOTIFY advertisements; search responses are unicast and arrive regardless
            try:
                group_bin = socket.inet_aton(self.config.multicast_address)
                mreq = group_bin + socket.inet_aton(self.config.bind_address or '0.0.0.0')
                logger.debug(f"Joining multicast group {self.config.multicast_address}; mreq={mreq!r}")
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
            except OSError as e:
                logger.warning(f"Unable to join multicast group {self.config.multicast_address}; advertisements will not be received: {e}")
        sock.setblocking(False)
        return sock

    async def start(self) -> None:
        """Binds the discovery socket and publishes READY.

        Raises BindError if the port is unavailable. This is not retried.
        """
        if self.is_started:
            raise YeelightError("Discovery listener is already started")
        if self.config.local_addresses is None:
            self.local_addresses = set(get_local_ip_addresses(include_loopback=True))
        else:
            self.local_addresses = set(self.config.local_addresses)
        logger.debug(f"Ignoring datagrams from local addresses {sorted(self.local_addresses)}")
        sock = self._create_socket()
        self.sock = sock
        loop = asyncio.get_running_loop()
        self.final_result = loop.create_future()
        try:
            untyped_transport, _ = await loop.create_datagram_endpoint(
                lambda: _YeelightDiscoveryProtocol(self),
                sock=sock
              )
        except BaseException:
            self.sock = None
            sock.close()
            raise
        # asyncio datagram transports do not inherit from asyncio.DatagramTransport, though
        # they implement its interface.
        self.transport = untyped_transport # type: ignore[assignment]
        self.bound_port = sock.getsockname()[1]
        logger.info(f"Discovery listener bound to port {self.bound_port}")
        self.bus.emit(YeelightEventKind.READY, port=self.bound_port)

    def discover(self) -> None:
        """Multicasts a search request. Responses arrive asynchronously; none are awaited here."""
        if self.transport is None:
            raise YeelightError("Discovery listener is not started")
        message = self.config.discovery_message.encode('utf-8')
        target = (self.config.multicast_address, self.config.port)
        logger.debug(f"Sending search request to {target}: {message!r}")
        self.transport.sendto(message, target)

    def datagram_received(self, addr: HostAndPort, data: bytes) -> None:
        """Handles one inbound datagram: a search response or an advertisement."""
        src_ip = addr[0]
        if src_ip in self.local_addresses:
            logger.debug(f"Ignoring datagram from local address {addr}")
            return
        try:
            message = YeelightMessage(raw_data=data)
        except MalformedMessage as e:
            logger.warning(f"Dropping malformed datagram from {addr}, raw=[{data!r}]: {e}")
            return
        if message.is_search_request:
            logger.debug(f"Ignoring search request from {addr}")
            return
        device_id = message.hdr_id
        if device_id is None:
            logger.debug(f"Ignoring datagram without id from {addr}: {message}")
            return
        logger.debug(f"Received from {addr}: {message}")
        result, device = self.registry.upsert(device_id, message.headers, src_addr=addr)
        if result == UpsertResult.ADDED:
            logger.info(f"Discovered {device}")
            self.bus.emit(YeelightEventKind.DEVICE_ADDED, device=device)
        elif result == UpsertResult.UPDATED:
            self.bus.emit(YeelightEventKind.DEVICE_UPDATED, device=device)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        logger.debug(f"Discovery socket closed, exc={exc}")
        self.transport = None
        self.sock = None
        if self.final_result is not None and not self.final_result.done():
            if exc is None:
                self.final_result.set_result(None)
            else:
                self.final_result.set_exception(exc)

    async def stop(self) -> None:
        """Closes the discovery socket."""
        if self.transport is not None:
            self.transport.close()
        elif self.final_result is not None and not self.final_result.done():
            self.final_result.set_result(None)

    async def wait_for_done(self) -> None:
        """Waits until the discovery socket has been closed. Returns at once if never started."""
        if self.final_result is not None:
            await self.final_result

    async def stop_and_wait(self) -> None:
        await self.stop()
        await self.wait_for_done()

    async def __aenter__(self) -> YeelightDiscoveryListener:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        await self.stop()
        try:
            await self.wait_for_done()
        except Exception as e:
            logger.debug(f"Discovery listener ended with exception: {e}")
        return False
