#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

from typing_extensions import SupportsIndex

import netifaces
import socket
from ipaddress import IPv4Address, IPv6Address

from .internal_types import *

from requests.structures import CaseInsensitiveDict

def split_lines_at_lf_or_crlf(data: str, maxsplit: SupportsIndex = -1) -> List[str]:
    """Split a string at LF or CRLF.

    If maxsplit is given, at most maxsplit splits are done.

    Returns a List[str] representing the delimited lines with the delimiters removed.
    """
    parts = data.split('\n', maxsplit)
    if len(parts) > 1:
        for i, part in enumerate(parts[:-1]):
            if part.endswith('\r'):
                parts[i] = part[:-1]
    return parts

def split_headers_and_body(data: str) -> Tuple[str, str]:
    """Splits a string with HTTP headers and an optional body into the headers and the body.

    A relaxed interpretation of '\n' as a line delimiter is accepted even though '\r\n' is required
    by the standard.

    Returns a Tuple[headers: str, body: str]. If there is no body, '' is returned for the body.
    """
    first_i = -1
    first_nb = 0

    for delim in ('\n\r\n', '\n\n'):
        i = data.find(delim)
        if i != -1 and (first_i == -1 or i < first_i):
            first_i = i
            first_nb = len(delim)
    if first_i == -1:
        return (data, '')
    headers, body = data[:first_i], data[first_i + first_nb:]
    if headers.endswith('\r'):
        headers = headers[:-1]
    return (headers, body)

def parse_http_headers(data: str) -> Tuple[CaseInsensitiveDict[str], str]:
    """Parse HTTP-style "Name: value" headers out of a string. Also returns the body of the message, if any.

    Lines may be delimited by '\r\n' or '\n'. The final line of the headers does not need to
    be terminated by a newline. It is assumed that any preceding statement line
    (e.g., "HTTP/1.1 200 OK\r\n") has already been removed.

    Each line is parsed on its own: a line with no ':' or with an empty name is skipped, and
    does not affect the lines around it. Header values are not interpreted; a header with
    an empty value ("Date: ") maps to ''.

    Returns a tuple of (headers: CaseInsensitiveDict[str], body: str).
    """
    headers_data, body = split_headers_and_body(data)
    headers: CaseInsensitiveDict[str] = CaseInsensitiveDict()
    for line in split_lines_at_lf_or_crlf(headers_data):
        name, sep, value = line.partition(':')
        name = name.strip()
        if sep == '' or name == '':
            continue
        headers[name] = value.strip()
    return (headers, body)

def encode_http_header(name: str, value: str) -> str:
    """Encodes a raw HTTP header name/value pair. The result is terminated with '\r\n'."""
    return f"{name}: {value}\r\n"

def get_local_ip_addresses(
        address_family: Union[socket.AddressFamily, int]=socket.AF_INET,
        include_loopback: bool=True
    ) -> List[str]:
    """Returns a List[ip_address: str] for the IP addresses of the local host in a requested
       address family, without duplicates."""
    assert int(address_family) in (int(socket.AF_INET), int(socket.AF_INET6))
    is_ipv6 = int(address_family) == int(socket.AF_INET6)
    netiface_family = netifaces.AF_INET6 if is_ipv6 else netifaces.AF_INET
    result: List[str] = []
    for ifname in netifaces.interfaces():
        for addrinfo in netifaces.ifaddresses(ifname).get(netiface_family, []):
            # IPv6 link-local addresses carry a "%<ifname>" zone suffix
            ip_str = addrinfo['addr'].split('%', 1)[0]
            ip = IPv6Address(ip_str) if is_ipv6 else IPv4Address(ip_str)
            if ip.is_loopback and not include_loopback:
                continue
            if ip_str not in result:
                result.append(ip_str)
    return result
