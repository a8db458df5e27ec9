"""Tests for YeelightConnectionManager, against a local fake bulb."""

import asyncio
from unittest.mock import patch

import pytest

from yeelight_lan_protocol import (
    ConnectionState,
    DeviceRegistry,
    YeelightConnectionManager,
    YeelightEventKind,
)

from .conftest import DEVICE_ID, bulb_properties, wait_until


@pytest.fixture
def registry():
    return DeviceRegistry()


@pytest.fixture
def manager(config, bus):
    return YeelightConnectionManager(config, bus)


async def unused_port() -> int:
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()
    return port


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_succeeds(self, manager, registry, recorder, fake_bulb):
        _, device = registry.upsert(DEVICE_ID, bulb_properties(fake_bulb.location))
        await manager.connect(device)
        try:
            assert device.connection_state == ConnectionState.CONNECTED
            assert device.is_connected
            assert device.connection is not None
            assert device.connection.address == ("127.0.0.1", fake_bulb.port)
            assert manager.connections[DEVICE_ID] is device.connection
            assert recorder.kinds == [YeelightEventKind.DEVICE_CONNECTED]
        finally:
            await manager.close_all()

    @pytest.mark.asyncio
    async def test_connect_when_connected_is_noop(self, manager, registry, recorder, fake_bulb):
        _, device = registry.upsert(DEVICE_ID, bulb_properties(fake_bulb.location))
        await manager.connect(device)
        connection = device.connection
        await manager.connect(device)
        try:
            assert device.connection is connection
            assert recorder.count(YeelightEventKind.DEVICE_CONNECTED) == 1
        finally:
            await manager.close_all()

    @pytest.mark.asyncio
    async def test_refused_connection_publishes_disconnected(self, manager, registry, recorder):
        port = await unused_port()
        _, device = registry.upsert(DEVICE_ID, bulb_properties(f"yeelight://127.0.0.1:{port}"))
        await manager.connect(device)

        assert device.connection_state == ConnectionState.DISCONNECTED
        assert device.connection is None
        assert DEVICE_ID not in manager.connections
        assert recorder.kinds == [YeelightEventKind.DEVICE_DISCONNECTED]

    @pytest.mark.asyncio
    async def test_missing_location_publishes_disconnected(self, manager, registry, recorder):
        _, device = registry.upsert(DEVICE_ID, {"id": DEVICE_ID, "power": "on"})
        await manager.connect(device)

        assert device.connection_state == ConnectionState.DISCONNECTED
        assert recorder.kinds == [YeelightEventKind.DEVICE_DISCONNECTED]

    @pytest.mark.asyncio
    async def test_can_connect_again_after_failure(self, manager, registry, recorder, fake_bulb):
        port = await unused_port()
        _, device = registry.upsert(DEVICE_ID, bulb_properties(f"yeelight://127.0.0.1:{port}"))
        await manager.connect(device)
        registry.upsert(DEVICE_ID, bulb_properties(fake_bulb.location))
        await manager.connect(device)
        try:
            assert device.is_connected
            assert recorder.kinds == [YeelightEventKind.DEVICE_DISCONNECTED, YeelightEventKind.DEVICE_CONNECTED]
        finally:
            await manager.close_all()


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_local_disconnect(self, manager, registry, recorder, fake_bulb):
        _, device = registry.upsert(DEVICE_ID, bulb_properties(fake_bulb.location))
        await manager.connect(device)
        await manager.disconnect(device)
        await manager.disconnect(device)

        assert device.connection_state == ConnectionState.DISCONNECTED
        assert device.connection is None
        assert manager.connections == {}
        assert recorder.kinds == [YeelightEventKind.DEVICE_CONNECTED, YeelightEventKind.DEVICE_DISCONNECTED]

    @pytest.mark.asyncio
    async def test_peer_close_publishes_disconnected_once(self, manager, registry, recorder, fake_bulb):
        _, device = registry.upsert(DEVICE_ID, bulb_properties(fake_bulb.location))
        await manager.connect(device)
        await wait_until(lambda: len(fake_bulb.writers) == 1)
        await fake_bulb.drop_clients()
        await wait_until(lambda: device.connection_state == ConnectionState.DISCONNECTED)
        await asyncio.sleep(0.05)

        assert device.connection is None
        assert recorder.count(YeelightEventKind.DEVICE_DISCONNECTED) == 1

    @pytest.mark.asyncio
    async def test_send_after_disconnect_fails(self, manager, registry, fake_bulb):
        _, device = registry.upsert(DEVICE_ID, bulb_properties(fake_bulb.location))
        await manager.connect(device)
        await manager.disconnect(device)

        assert await manager.send(device, b"{}\r\n") is False
        assert fake_bulb.lines == []

    @pytest.mark.asyncio
    async def test_location_change_keeps_connection(self, manager, registry, recorder, fake_bulb):
        _, device = registry.upsert(DEVICE_ID, bulb_properties(fake_bulb.location))
        await manager.connect(device)
        connection = device.connection
        registry.upsert(DEVICE_ID, bulb_properties("yeelight://127.0.0.1:1"))
        try:
            assert device.connection is connection
            assert device.is_connected
            assert connection.address == ("127.0.0.1", fake_bulb.port)
            assert await manager.send(device, b'{"id":1}\r\n')
            await fake_bulb.wait_for_lines(1)
        finally:
            await manager.close_all()

    @pytest.mark.asyncio
    async def test_reconnect_uses_current_location(self, manager, registry, recorder, fake_bulb):
        _, device = registry.upsert(DEVICE_ID, bulb_properties("yeelight://127.0.0.1:1"))
        device_connection_before = device.connection
        registry.upsert(DEVICE_ID, bulb_properties(fake_bulb.location))
        await manager.reconnect(device)
        try:
            assert device_connection_before is None
            assert device.is_connected
            assert device.connection.address == ("127.0.0.1", fake_bulb.port)
        finally:
            await manager.close_all()


class TestConnectTimeout:
    @pytest.mark.asyncio
    async def test_connect_timeout_publishes_disconnected(self, config, bus, registry, recorder):
        async def never_connects(host, port):
            await asyncio.sleep(10)

        manager = YeelightConnectionManager(config.copy(connect_timeout=0.05), bus)
        _, device = registry.upsert(DEVICE_ID, bulb_properties("yeelight://127.0.0.1:55443"))
        with patch("yeelight_lan_protocol.connection.asyncio.open_connection", never_connects):
            await manager.connect(device)

        assert device.connection_state == ConnectionState.DISCONNECTED
        assert device.connection is None
        assert manager.connections == {}
        assert recorder.kinds == [YeelightEventKind.DEVICE_DISCONNECTED]
