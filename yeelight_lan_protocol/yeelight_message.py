#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Abstraction of the HTTP-like datagrams used in Yeelight discovery, and the typed
accessors for the header values they carry.

A discovery response looks like:

    HTTP/1.1 200 OK
    Cache-Control: max-age=3600
    Location: yeelight://192.168.1.239:55443
    id: 0x000000000015243f
    model: color
    power: on
    bright: 100
    rgb: 16711680
    ...

Devices also multicast the same headers unsolicited, with a "NOTIFY * HTTP/1.1"
statement line, whenever they (re)join the network.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from .internal_types import *
from .constants import YEELIGHT_CONTROL_PORT
from .exceptions import MalformedMessage
from .util import (
    CaseInsensitiveDict,
    split_lines_at_lf_or_crlf,
    parse_http_headers,
    encode_http_header,
)

_decimal_re = re.compile(r'^[+-]?[0-9]+$')

def parse_int(value: Optional[Union[str, int]]) -> Optional[int]:
    """Parses a base-10 integer header value.

    Returns None if the value is absent or is not a valid integer; never raises.
    """
    if value is None:
        return None
    if isinstance(value, int):
        return value
    value = value.strip()
    if not _decimal_re.match(value):
        return None
    return int(value, 10)

def unpack_rgb(packed: int) -> RgbColor:
    """Decomposes a packed color integer into its (red, green, blue) channels."""
    return ((packed >> 16) & 0xff, (packed >> 8) & 0xff, packed & 0xff)

def pack_rgb(red: int, green: int, blue: int) -> int:
    """Packs (red, green, blue) channels, each in 0..255, into a single integer."""
    for channel in (red, green, blue):
        if not isinstance(channel, int) or isinstance(channel, bool) or channel < 0 or channel > 255:
            raise ValueError(f"Color channel out of range 0..255: {channel!r}")
    return red * 65536 + green * 256 + blue

def parse_location(location: Optional[str]) -> Optional[HostAndPort]:
    """Parses a Location header (e.g., "yeelight://192.168.1.239:55443") into (host, port).

    If the port is omitted, YEELIGHT_CONTROL_PORT is assumed.
    Returns None if there is no Location or it cannot be parsed.
    """
    if location is None or '://' not in location:
        return None
    try:
        parts = urlsplit(location.strip())
        host = parts.hostname
        port = parts.port
    except ValueError:
        return None
    if not host:
        return None
    return (host, YEELIGHT_CONTROL_PORT if port is None else port)

def parse_headers(raw_data: bytes) -> CaseInsensitiveDict[str]:
    """Parses the headers out of a raw discovery datagram.

    Raises MalformedMessage if the datagram cannot be split into header lines at all.
    """
    return YeelightMessage(raw_data=raw_data).headers

class YeelightMessage:
    """Wrapper for a raw Yeelight discovery datagram.

    This class provides parsing and formatting of the HTTP-like packets, a case-insensitive
    dict interface to the headers, and typed accessors for the headers a device reports.
    Header values are kept as the strings the device sent; no semantic validation is done.
    """

    _raw_data: bytes
    """The raw UDP datagram contents"""

    _statement_line: str
    """The first line of the datagram; e.g., "HTTP/1.1 200 OK", "NOTIFY * HTTP/1.1",
       or "M-SEARCH * HTTP/1.1"."""

    _headers: CaseInsensitiveDict[str]
    """The headers as a CaseInsensitiveDict[str]."""

    _body: str
    """The body of the datagram, if any. If there is no body, '' is returned."""

    def __init__(
            self,
            statement: Optional[str]=None,
            headers: Optional[Mapping[str, str]]=None,
            raw_data: Optional[bytes]=None,
          ):
        if raw_data is None:
            if statement is None:
                raise ValueError("Either statement or raw_data must be provided")
            self._statement_line = statement
            self._headers = CaseInsensitiveDict(headers or {})
            self._body = ''
            self._raw_data = self._build_raw_data()
        else:
            if not (statement is None and headers is None):
                raise ValueError("If raw_data is provided, statement and headers must be None")
            self._raw_data = raw_data
            self._parse_raw_data()

    def _parse_raw_data(self) -> None:
        if len(self._raw_data.strip()) == 0:
            raise MalformedMessage("Empty datagram")
        try:
            text = self._raw_data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedMessage(f"Datagram is not valid UTF-8: {e}") from e
        statement_and_remainder = split_lines_at_lf_or_crlf(text, 1)
        self._statement_line = statement_and_remainder[0].strip()
        remainder = '' if len(statement_and_remainder) < 2 else statement_and_remainder[1]
        self._headers, self._body = parse_http_headers(remainder)

    def _build_raw_data(self) -> bytes:
        text = self._statement_line + '\r\n'
        for name, value in self._headers.items():
            text += encode_http_header(name, value)
        text += '\r\n'
        return text.encode('utf-8')

    def __str__(self) -> str:
        return f"YeelightMessage('{self._statement_line}', headers={dict(self._headers)})"

    def __repr__(self) -> str:
        return str(self)

    @property
    def raw_data(self) -> bytes:
        """The raw UDP datagram contents"""
        return self._raw_data

    @property
    def statement_line(self) -> str:
        return self._statement_line

    @property
    def headers(self) -> CaseInsensitiveDict[str]:
        return self._headers

    @property
    def body(self) -> str:
        return self._body

    @property
    def is_search_request(self) -> bool:
        """True if this is a search request (ours or another controller's) rather than a device message."""
        return self._statement_line.upper().startswith('M-SEARCH')

    def get(self, name: str, default: Optional[str]=None) -> Optional[str]:
        return self._headers.get(name, default)

    def __contains__(self, name: object) -> bool:
        return name in self._headers

    def __getitem__(self, name: str) -> str:
        return self._headers[name]

    @property
    def hdr_id(self) -> Optional[str]:
        """The "id" header, the device's unique identifier. None if absent or empty."""
        result = self._headers.get("id")
        if result is None or result == '':
            return None
        return result

    @property
    def hdr_location(self) -> Optional[HostAndPort]:
        """The "Location" header as a (host, port) tuple, or None."""
        return parse_location(self._headers.get("Location"))

    @property
    def hdr_power(self) -> Optional[str]:
        return self._headers.get("power")

    @property
    def hdr_model(self) -> Optional[str]:
        return self._headers.get("model")

    @property
    def hdr_bright(self) -> Optional[int]:
        return parse_int(self._headers.get("bright"))

    @property
    def hdr_hue(self) -> Optional[int]:
        return parse_int(self._headers.get("hue"))

    @property
    def hdr_sat(self) -> Optional[int]:
        return parse_int(self._headers.get("sat"))

    @property
    def hdr_rgb(self) -> Optional[RgbColor]:
        """The "rgb" header decomposed into (red, green, blue).

        Devices without color support report "rgb: 0", so a non-positive value
        is treated as absent.
        """
        return rgb_from_header(self._headers.get("rgb"))

def rgb_from_header(value: Optional[str]) -> Optional[RgbColor]:
    """Converts a packed decimal "rgb" header value into (red, green, blue), or None."""
    packed = parse_int(value)
    if packed is None or packed <= 0 or packed > 0xffffff:
        return None
    return unpack_rgb(packed)
