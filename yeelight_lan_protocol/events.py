#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
YeelightEventBus -- the single publish point through which discovery, connection and
command outcomes are reported to the application.

Events can be consumed two ways:

  1. Synchronous handlers registered with add_handler(), called in publish order
     on the event loop thread.
  2. Async subscribers, which queue events and hand them out through an async iterator:

        async with bus.subscribe() as subscriber:
            async for event in subscriber:
                ...
"""

from __future__ import annotations

import asyncio
from asyncio import Future
from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .constants import MAX_QUEUE_SIZE
from .device import YeelightDevice

class YeelightEventKind(Enum):
    """The kinds of event published on the bus. Values are the conventional event names."""
    READY = "ready"
    DEVICE_ADDED = "deviceadded"
    DEVICE_UPDATED = "deviceupdated"
    DEVICE_CONNECTED = "deviceconnected"
    DEVICE_DISCONNECTED = "devicedisconnected"
    POWER_UPDATED = "powerupdated"
    BRIGHTNESS_UPDATED = "brightnessupdated"
    COLOR_UPDATED = "colorupdated"

class YeelightEvent:
    kind: YeelightEventKind

    device: Optional[YeelightDevice]
    """The device the event is about. None only for READY."""

    port: Optional[int]
    """The bound discovery port. Set only for READY."""

    def __init__(
            self,
            kind: YeelightEventKind,
            device: Optional[YeelightDevice]=None,
            port: Optional[int]=None
          ) -> None:
        self.kind = kind
        self.device = device
        self.port = port

    def __str__(self) -> str:
        if self.kind == YeelightEventKind.READY:
            return f"YeelightEvent({self.kind.value}, port={self.port})"
        return f"YeelightEvent({self.kind.value}, device={self.device})"

    def __repr__(self) -> str:
        return str(self)

YeelightEventHandler = Callable[[YeelightEvent], None]
"""A synchronous callback for published events."""

class YeelightEventSubscriber(
        AsyncContextManager['YeelightEventSubscriber'],
        AsyncIterable[YeelightEvent]
      ):
    """Queues published events for a single async consumer, until the bus is closed
       or the subscriber is exited."""

    bus: YeelightEventBus
    queue: asyncio.Queue[Optional[YeelightEvent]]
    final_result: Future[None]
    eos: bool = False

    def __init__(self, bus: YeelightEventBus, max_queue_size: int=MAX_QUEUE_SIZE):
        self.bus = bus
        self.queue = asyncio.Queue(max_queue_size)
        self.final_result = asyncio.get_running_loop().create_future()

    async def __aenter__(self) -> YeelightEventSubscriber:
        self.bus.add_subscriber(self)
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.bus.remove_subscriber(self)
        self.set_final_result()
        return False

    async def iter_events(self) -> AsyncIterator[YeelightEvent]:
        while True:
            result = await self.receive()
            if result is None:
                break
            yield result

    def __aiter__(self) -> AsyncIterator[YeelightEvent]:
        return self.iter_events()

    def set_final_result(self) -> None:
        if not self.final_result.done():
            self.final_result.set_result(None)
            self.eos = True
            try:
                # wake up any waiting tasks
                self.queue.put_nowait(None)
            except asyncio.QueueFull:
                # queue is full so waiters will wake up soon
                pass

    async def receive(self) -> Optional[YeelightEvent]:
        """Returns the next event, or None once the stream has ended and the queue is drained."""
        if self.eos and self.queue.empty():
            return None
        result = await self.queue.get()
        self.queue.task_done()
        return result

    def on_event(self, event: YeelightEvent) -> None:
        if not self.eos:
            try:
                self.queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Event queue full, dropping {event}")

class YeelightEventBus:
    handlers: Dict[int, YeelightEventHandler]
    """Handlers called for every published event, indexed by ID number."""

    i_next_handler: int = 0
    """The next handler ID to assign."""

    subscribers: Set[YeelightEventSubscriber]

    max_queue_size: int

    closed: bool = False

    def __init__(self, max_queue_size: int=MAX_QUEUE_SIZE) -> None:
        self.handlers = {}
        self.subscribers = set()
        self.max_queue_size = max_queue_size

    def add_handler(self, handler: YeelightEventHandler) -> int:
        """Adds a handler to be called for every published event. Returns an ID for remove_handler()."""
        i = self.i_next_handler
        self.i_next_handler += 1
        self.handlers[i] = handler
        return i

    def remove_handler(self, i: int) -> None:
        """Removes a previously added handler."""
        del self.handlers[i]

    def subscribe(self) -> YeelightEventSubscriber:
        """Creates an async context manager/iterable that receives events published while it is entered."""
        return YeelightEventSubscriber(self, max_queue_size=self.max_queue_size)

    def add_subscriber(self, subscriber: YeelightEventSubscriber) -> None:
        if self.closed:
            subscriber.set_final_result()
        else:
            self.subscribers.add(subscriber)

    def remove_subscriber(self, subscriber: YeelightEventSubscriber) -> None:
        self.subscribers.discard(subscriber)

    def publish(self, event: YeelightEvent) -> None:
        """Delivers an event to all handlers and subscribers, in registration order.

        A handler that raises does not prevent delivery to the others.
        """
        logger.debug(f"Publishing {event}")
        for handler in list(self.handlers.values()):
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"Event handler raised exception processing {event}: {e}")
        for subscriber in list(self.subscribers):
            subscriber.on_event(event)

    def emit(self, kind: YeelightEventKind, device: Optional[YeelightDevice]=None, port: Optional[int]=None) -> None:
        self.publish(YeelightEvent(kind, device=device, port=port))

    def close(self) -> None:
        """Ends the event stream of every subscriber. Handlers remain registered."""
        self.closed = True
        for subscriber in list(self.subscribers):
            subscriber.set_final_result()
        self.subscribers.clear()
