# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints used internally by this package"""

from __future__ import annotations

from typing import (
    Dict, List, Optional, Type, Union, Any, Tuple, Set, Callable, Awaitable,
    Mapping, MutableMapping, Iterable, Iterator, Sequence,
    AsyncIterator, AsyncIterable, AsyncContextManager, TYPE_CHECKING,
  )

from types import TracebackType

HostAndPort = Tuple[str, int]
"""An IP address (or hostname) and port number pair, as used by the socket module."""

RgbColor = Tuple[int, int, int]
"""A color as (red, green, blue), each channel in 0..255."""

Jsonable = Union[Dict[str, 'Jsonable'], List['Jsonable'], str, int, float, bool, None]
"""A type hint for a value that can be serialized to JSON."""

JsonableDict = Dict[str, Jsonable]
"""A type hint for a JSON object."""
