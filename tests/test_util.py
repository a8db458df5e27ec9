"""Tests for the header and network helpers in yeelight_lan_protocol.util."""

import socket
from unittest.mock import MagicMock, patch

import pytest

from yeelight_lan_protocol.util import get_local_ip_addresses, parse_http_headers

AF_INET = 2
AF_INET6 = 10

INTERFACES = {
    "lo": {AF_INET: [{"addr": "127.0.0.1"}], AF_INET6: [{"addr": "::1"}]},
    "eth0": {AF_INET: [{"addr": "192.168.1.10"}], AF_INET6: [{"addr": "fe80::1%eth0"}]},
    "wlan0": {AF_INET: [{"addr": "192.168.1.11"}, {"addr": "192.168.1.10"}]},
}


@pytest.fixture
def fake_netifaces():
    fake = MagicMock()
    fake.AF_INET = AF_INET
    fake.AF_INET6 = AF_INET6
    fake.interfaces.return_value = list(INTERFACES)
    fake.ifaddresses.side_effect = lambda ifname: INTERFACES[ifname]
    with patch("yeelight_lan_protocol.util.netifaces", fake):
        yield fake


class TestGetLocalIpAddresses:
    def test_ipv4_with_loopback(self, fake_netifaces):
        assert get_local_ip_addresses() == ["127.0.0.1", "192.168.1.10", "192.168.1.11"]

    def test_ipv4_without_loopback(self, fake_netifaces):
        assert get_local_ip_addresses(include_loopback=False) == ["192.168.1.10", "192.168.1.11"]

    def test_ipv6_strips_zone(self, fake_netifaces):
        assert get_local_ip_addresses(socket.AF_INET6, include_loopback=False) == ["fe80::1"]


class TestParseHttpHeaders:
    def test_body_after_blank_line(self):
        headers, body = parse_http_headers("id: 0x1\r\npower: on\r\n\r\nextra")

        assert dict(headers) == {"id": "0x1", "power": "on"}
        assert body == "extra"

    def test_last_duplicate_wins(self):
        headers, _ = parse_http_headers("power: on\r\nPOWER: off\r\n")

        assert headers["power"] == "off"
