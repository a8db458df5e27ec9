"""Tests for discovery datagram parsing and the header value helpers."""

import pytest

from yeelight_lan_protocol import (
    DEFAULT_DISCOVERY_MESSAGE,
    MalformedMessage,
    YeelightMessage,
    pack_rgb,
    parse_headers,
    parse_int,
    parse_location,
    unpack_rgb,
)

from .conftest import DEVICE_ID, make_response


class TestYeelightMessage:
    def test_parses_search_response(self):
        msg = YeelightMessage(raw_data=make_response(power="on", bright="100", rgb="16711680"))

        assert msg.statement_line == "HTTP/1.1 200 OK"
        assert not msg.is_search_request
        assert msg.hdr_id == DEVICE_ID
        assert msg.hdr_location == ("10.0.0.5", 55443)
        assert msg.hdr_power == "on"
        assert msg.hdr_bright == 100
        assert msg.hdr_model == "color"
        assert msg.hdr_rgb == (255, 0, 0)

    def test_header_names_are_case_insensitive(self):
        msg = YeelightMessage(raw_data=make_response())

        assert msg["LOCATION"] == "yeelight://10.0.0.5:55443"
        assert msg.get("Id") == DEVICE_ID
        assert "location" in msg

    def test_empty_value_is_empty_string(self):
        msg = YeelightMessage(raw_data=make_response())

        assert msg["Date"] == ""
        assert msg["Ext"] == ""

    def test_missing_fields_are_absent(self):
        msg = YeelightMessage(raw_data=make_response())

        assert "hue" not in msg
        assert msg.hdr_hue is None
        assert msg.hdr_sat is None
        assert msg.hdr_power is None

    def test_accepts_lf_line_endings(self):
        data = b"NOTIFY * HTTP/1.1\nid: 0x1\nLocation: yeelight://10.0.0.9:55443\npower: off\n"
        msg = YeelightMessage(raw_data=data)

        assert msg.statement_line == "NOTIFY * HTTP/1.1"
        assert msg.hdr_id == "0x1"
        assert msg.hdr_power == "off"

    def test_value_keeps_colons(self):
        msg = YeelightMessage(raw_data=make_response(location="yeelight://192.168.1.239:55443"))

        assert msg["Location"] == "yeelight://192.168.1.239:55443"

    def test_line_without_colon_skips_only_that_line(self):
        data = (b"HTTP/1.1 200 OK\r\nLocation: yeelight://10.0.0.5:55443\r\nbogus line\r\n"
                b"id: 0x1\r\npower: on\r\n")
        msg = YeelightMessage(raw_data=data)

        assert msg.hdr_id == "0x1"
        assert msg.hdr_power == "on"
        assert msg.hdr_location == ("10.0.0.5", 55443)
        assert len(msg.headers) == 3

    def test_line_with_empty_name_is_skipped(self):
        msg = YeelightMessage(raw_data=b"HTTP/1.1 200 OK\r\n: orphan\r\nid: 0x1\r\n")

        assert dict(msg.headers) == {"id": "0x1"}

    def test_leading_whitespace_is_not_a_continuation(self):
        msg = YeelightMessage(raw_data=b"HTTP/1.1 200 OK\r\nid: 0x1\r\n name: x\r\npower: off\r\n")

        assert msg.hdr_id == "0x1"
        assert msg["name"] == "x"
        assert msg.hdr_power == "off"

    def test_empty_id_is_absent(self):
        msg = YeelightMessage(raw_data=b"HTTP/1.1 200 OK\r\nid: \r\n")

        assert msg.hdr_id is None

    def test_zero_rgb_is_absent(self):
        msg = YeelightMessage(raw_data=make_response(rgb="0"))

        assert msg.hdr_rgb is None

    @pytest.mark.parametrize("data", [b"", b"  \r\n", b"HTTP/1.1 200 OK\r\nid: \xff\xfe\r\n"])
    def test_malformed_raises(self, data):
        with pytest.raises(MalformedMessage):
            YeelightMessage(raw_data=data)

    def test_search_request_is_recognized(self):
        msg = YeelightMessage(raw_data=DEFAULT_DISCOVERY_MESSAGE.encode("utf-8"))

        assert msg.is_search_request
        assert msg["MAN"] == '"ssdp:discover"'
        assert msg["ST"] == "wifi_bulb"
        assert msg.hdr_id is None

    def test_builds_raw_data(self):
        msg = YeelightMessage("M-SEARCH * HTTP/1.1", {"HOST": "239.255.255.250:1982", "ST": "wifi_bulb"})

        assert msg.raw_data == b"M-SEARCH * HTTP/1.1\r\nHOST: 239.255.255.250:1982\r\nST: wifi_bulb\r\n\r\n"

    def test_requires_statement_or_raw_data(self):
        with pytest.raises(ValueError):
            YeelightMessage()

    def test_parse_headers(self):
        headers = parse_headers(make_response(power="off"))

        assert headers["power"] == "off"
        assert headers["ID"] == DEVICE_ID


class TestParseInt:
    @pytest.mark.parametrize("value,expected", [
        ("50", 50),
        (" 7 ", 7),
        ("-3", -3),
        ("0", 0),
        (12, 12),
        (None, None),
        ("", None),
        ("abc", None),
        ("1.5", None),
        ("0x10", None),
    ])
    def test_parse_int(self, value, expected):
        assert parse_int(value) == expected


class TestParseLocation:
    def test_host_and_port(self):
        assert parse_location("yeelight://192.168.1.239:55443") == ("192.168.1.239", 55443)

    def test_default_port(self):
        assert parse_location("yeelight://192.168.1.239") == ("192.168.1.239", 55443)

    @pytest.mark.parametrize("location", [None, "", "192.168.1.239:55443", "yeelight://", "yeelight://host:notaport"])
    def test_invalid(self, location):
        assert parse_location(location) is None


class TestRgb:
    @pytest.mark.parametrize("rgb", [(0, 0, 1), (255, 0, 0), (0, 255, 0), (18, 52, 86), (255, 255, 255)])
    def test_pack_unpack(self, rgb):
        assert unpack_rgb(pack_rgb(*rgb)) == rgb

    def test_pack_value(self):
        assert pack_rgb(255, 0, 0) == 16711680
        assert pack_rgb(1, 2, 3) == 65536 + 2 * 256 + 3

    @pytest.mark.parametrize("rgb", [(256, 0, 0), (0, -1, 0), (0, 0, 1000), (True, 0, 0)])
    def test_pack_out_of_range(self, rgb):
        with pytest.raises(ValueError):
            pack_rgb(*rgb)
