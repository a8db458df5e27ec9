#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
YeelightClient -- the public entry point. Wires a discovery listener, a device registry,
a connection manager and a command dispatcher to one event bus.

Usage:

    async with YeelightClient() as client:
        async with client.subscribe() as events:
            client.discover()
            async for event in events:
                if event.kind == YeelightEventKind.DEVICE_ADDED:
                    await client.connect(event.device)
                elif event.kind == YeelightEventKind.DEVICE_CONNECTED:
                    await client.set_power(event.device, True)
"""

from __future__ import annotations

import asyncio

from .internal_types import *
from .pkg_logging import logger
from .constants import DEFAULT_TRANSITION_MS
from .config import YeelightConfig
from .device import YeelightDevice, ConnectionState
from .registry import DeviceRegistry
from .events import (
    YeelightEventBus,
    YeelightEvent,
    YeelightEventKind,
    YeelightEventHandler,
    YeelightEventSubscriber,
  )
from .discovery import YeelightDiscoveryListener
from .connection import YeelightConnectionManager
from .commands import YeelightCommandDispatcher

class YeelightClient(AsyncContextManager['YeelightClient']):
    config: YeelightConfig
    bus: YeelightEventBus
    registry: DeviceRegistry
    listener: YeelightDiscoveryListener
    connections: YeelightConnectionManager
    dispatcher: YeelightCommandDispatcher

    _background_tasks: Set[asyncio.Task[None]]

    def __init__(self, config: Optional[YeelightConfig]=None, **overrides: Any) -> None:
        """Create a client.

        Parameters:
            config:     The configuration to use. Defaults to YeelightConfig().
            overrides:  Individual YeelightConfig attributes to replace, e.g. port=0.
        """
        if config is None:
            config = YeelightConfig()
        if len(overrides) > 0:
            config = config.copy(**overrides)
        self.config = config
        self.bus = YeelightEventBus(max_queue_size=config.max_queue_size)
        self.registry = DeviceRegistry()
        self.listener = YeelightDiscoveryListener(config, self.registry, self.bus)
        self.connections = YeelightConnectionManager(config, self.bus)
        self.dispatcher = YeelightCommandDispatcher(self.connections, self.bus)
        self._background_tasks = set()
        self.bus.add_handler(self._on_event)

    def _on_event(self, event: YeelightEvent) -> None:
        if event.kind != YeelightEventKind.DEVICE_UPDATED or not self.config.reconnect_on_location_change:
            return
        device = event.device
        assert device is not None
        connection = device.connection
        if (device.connection_state == ConnectionState.CONNECTED and connection is not None
                and connection.address != device.address):
            logger.info(f"{device} moved from {connection.address} to {device.address}; reconnecting")
            task = asyncio.create_task(self.connections.reconnect(device))
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

    @property
    def port(self) -> Optional[int]:
        """The bound discovery port, once started."""
        return self.listener.bound_port

    async def start(self) -> None:
        """Binds the discovery socket and publishes READY. Raises BindError on failure."""
        await self.listener.start()

    def discover(self) -> None:
        """Multicasts a search request. Call repeatedly for a wider capture window."""
        self.listener.discover()

    async def connect(self, device: YeelightDevice) -> None:
        await self.connections.connect(device)

    async def disconnect(self, device: YeelightDevice) -> None:
        await self.connections.disconnect(device)

    async def set_power(self, device: YeelightDevice, on: bool, duration_ms: int=DEFAULT_TRANSITION_MS) -> bool:
        return await self.dispatcher.set_power(device, on, duration_ms)

    async def set_brightness(self, device: YeelightDevice, percent: int, duration_ms: int=DEFAULT_TRANSITION_MS) -> bool:
        return await self.dispatcher.set_brightness(device, percent, duration_ms)

    async def set_color(self, device: YeelightDevice, rgb: Sequence[int], duration_ms: int=DEFAULT_TRANSITION_MS) -> bool:
        return await self.dispatcher.set_color(device, rgb, duration_ms)

    def list(self) -> List[YeelightDevice]:
        """Returns all devices discovered so far, in discovery order."""
        return self.registry.list()

    def get(self, device_id: str) -> Optional[YeelightDevice]:
        return self.registry.get(device_id)

    def find_by_host(self, host: str) -> Optional[YeelightDevice]:
        """Returns the first discovered device whose control endpoint is on the given host, or None."""
        return self.registry.find_by_host(host)

    def add_event_handler(self, handler: YeelightEventHandler) -> int:
        return self.bus.add_handler(handler)

    def remove_event_handler(self, i: int) -> None:
        self.bus.remove_handler(i)

    def subscribe(self) -> YeelightEventSubscriber:
        return self.bus.subscribe()

    async def stop(self) -> None:
        """Closes every control connection and the discovery socket, and ends event subscriptions."""
        for task in list(self._background_tasks):
            task.cancel()
        await self.connections.close_all()
        await self.listener.stop()
        self.bus.close()

    async def wait_for_done(self) -> None:
        await self.listener.wait_for_done()

    async def __aenter__(self) -> YeelightClient:
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
            logger.debug(f"Client ended with exception: {e}")
        return False
