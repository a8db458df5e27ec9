#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Configuration of the discovery listener and control connections.

A YeelightConfig is passed explicitly to each component; there is no process-wide
configuration state.
"""

from __future__ import annotations

from .internal_types import *
from .constants import (
    YEELIGHT_MULTICAST_ADDRESS,
    YEELIGHT_DISCOVERY_PORT,
    DEFAULT_DISCOVERY_MESSAGE,
    DEFAULT_CONNECT_TIMEOUT,
    MAX_QUEUE_SIZE,
  )

class YeelightConfig:
    port: int = YEELIGHT_DISCOVERY_PORT
    """The UDP port to bind for discovery, and to send search requests to."""

    multicast_address: str = YEELIGHT_MULTICAST_ADDRESS
    """The multicast address to send search requests to."""

    discovery_message: str = DEFAULT_DISCOVERY_MESSAGE
    """The search request payload."""

    bind_address: str = ''
    """The local IP address to bind the discovery socket to. '' binds all interfaces."""

    local_addresses: Optional[List[str]] = None
    """The local host's own IP addresses, used to drop our own multicasts. If None, they are
       enumerated from the network interfaces when the listener starts."""

    join_multicast_group: bool = True
    """If True, the discovery socket joins the multicast group so that unsolicited device
       advertisements are received as well as search responses."""

    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    """The time (in seconds) allowed for a control connection to be established."""

    reconnect_on_location_change: bool = False
    """If True, a connected device that is rediscovered at a different control endpoint is
       disconnected and reconnected to the new endpoint. By default the existing connection
       is left untouched."""

    max_queue_size: int = MAX_QUEUE_SIZE
    """The maximum number of undelivered events held for each event subscriber."""

    def __init__(
            self,
            port: int=YEELIGHT_DISCOVERY_PORT,
            multicast_address: str=YEELIGHT_MULTICAST_ADDRESS,
            discovery_message: str=DEFAULT_DISCOVERY_MESSAGE,
            bind_address: str='',
            local_addresses: Optional[Iterable[str]]=None,
            join_multicast_group: bool=True,
            connect_timeout: float=DEFAULT_CONNECT_TIMEOUT,
            reconnect_on_location_change: bool=False,
            max_queue_size: int=MAX_QUEUE_SIZE,
          ) -> None:
        if port < 0 or port > 65535:
            raise ValueError(f"Invalid port: {port}")
        if connect_timeout <= 0.0:
            raise ValueError(f"connect_timeout must be positive: {connect_timeout}")
        self.port = port
        self.multicast_address = multicast_address
        self.discovery_message = discovery_message
        self.bind_address = bind_address
        self.local_addresses = None if local_addresses is None else list(local_addresses)
        self.join_multicast_group = join_multicast_group
        self.connect_timeout = connect_timeout
        self.reconnect_on_location_change = reconnect_on_location_change
        self.max_queue_size = max_queue_size

    def to_dict(self) -> Dict[str, Any]:
        return dict(
            port=self.port,
            multicast_address=self.multicast_address,
            discovery_message=self.discovery_message,
            bind_address=self.bind_address,
            local_addresses=self.local_addresses,
            join_multicast_group=self.join_multicast_group,
            connect_timeout=self.connect_timeout,
            reconnect_on_location_change=self.reconnect_on_location_change,
            max_queue_size=self.max_queue_size,
          )

    def copy(self, **overrides: Any) -> YeelightConfig:
        """Returns a copy of this configuration with the given attributes replaced."""
        values = self.to_dict()
        for name in overrides:
            if name not in values:
                raise TypeError(f"Unknown configuration option: {name}")
        values.update(overrides)
        return YeelightConfig(**values)

    def __str__(self) -> str:
        return f"YeelightConfig({self.to_dict()})"

    def __repr__(self) -> str:
        return str(self)
