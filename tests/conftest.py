"""Shared fixtures: a fake bulb control server, discovery datagram builders, and an event recorder."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from yeelight_lan_protocol import (
    YeelightConfig,
    YeelightEvent,
    YeelightEventBus,
    YeelightEventKind,
)

DEVICE_ID = "0x000000000015243f"
LOCAL_ADDRESS = "10.0.0.2"
DEVICE_ADDR = ("10.0.0.5", 1982)


def make_response(
    device_id: Optional[str] = DEVICE_ID,
    location: str = "yeelight://10.0.0.5:55443",
    statement: str = "HTTP/1.1 200 OK",
    **fields: str,
) -> bytes:
    """Build a discovery response datagram the way a bulb formats it."""
    lines = [statement, "Cache-Control: max-age=3600", "Date: ", "Ext: ", f"Location: {location}", "Server: POSIX UPnP/1.0 YGLC/1"]
    if device_id is not None:
        lines.append(f"id: {device_id}")
    lines.append("model: color")
    lines.append("fw_ver: 18")
    lines.append("support: get_prop set_default set_power toggle set_bright set_rgb")
    for name, value in fields.items():
        lines.append(f"{name}: {value}")
    return ("\r\n".join(lines) + "\r\n").encode("utf-8")


class EventRecorder:
    """Collects every event published on a bus."""

    def __init__(self, bus: YeelightEventBus) -> None:
        self.events: List[YeelightEvent] = []
        bus.add_handler(self.events.append)

    @property
    def kinds(self) -> List[YeelightEventKind]:
        return [event.kind for event in self.events]

    def count(self, kind: YeelightEventKind) -> int:
        return self.kinds.count(kind)


class FakeBulb:
    """A TCP server that records the lines written to it and answers each with an ok result."""

    def __init__(self) -> None:
        self.lines: List[bytes] = []
        self.writers: List[asyncio.StreamWriter] = []
        self.server: Optional[asyncio.AbstractServer] = None
        self.port = 0

    @property
    def location(self) -> str:
        return f"yeelight://127.0.0.1:{self.port}"

    async def start(self) -> None:
        self.server = await asyncio.start_server(self._handle_client, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.writers.append(writer)
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                self.lines.append(line)
                writer.write(b'{"id":1,"result":["ok"]}\r\n')
                await writer.drain()
        except (ConnectionError, asyncio.CancelledError):
            pass
        finally:
            writer.close()

    async def wait_for_lines(self, n: int, timeout: float = 2.0) -> List[bytes]:
        loop = asyncio.get_running_loop()
        end_time = loop.time() + timeout
        while len(self.lines) < n:
            if loop.time() > end_time:
                raise AssertionError(f"Expected {n} lines, got {self.lines}")
            await asyncio.sleep(0.01)
        return self.lines

    async def drop_clients(self) -> None:
        for writer in self.writers:
            writer.close()
        self.writers = []

    async def close(self) -> None:
        await self.drop_clients()
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    end_time = loop.time() + timeout
    while not predicate():
        if loop.time() > end_time:
            raise AssertionError("Condition not reached in time")
        await asyncio.sleep(0.01)


def bulb_properties(location: str, **fields: str) -> Dict[str, str]:
    properties = {"id": DEVICE_ID, "Location": location, "power": "on", "bright": "50", "model": "color"}
    properties.update(fields)
    return properties


@pytest.fixture
def config() -> YeelightConfig:
    return YeelightConfig(
        port=0,
        bind_address="127.0.0.1",
        local_addresses=[LOCAL_ADDRESS],
        join_multicast_group=False,
        connect_timeout=2.0,
    )


@pytest.fixture
def bus() -> YeelightEventBus:
    return YeelightEventBus()


@pytest.fixture
def recorder(bus: YeelightEventBus) -> EventRecorder:
    return EventRecorder(bus)


@pytest_asyncio.fixture
async def fake_bulb():
    bulb = FakeBulb()
    await bulb.start()
    yield bulb
    await bulb.close()
