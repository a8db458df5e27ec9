# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

YEELIGHT_MULTICAST_ADDRESS = "239.255.255.250"
"""The multicast address that Yeelight devices listen on for search requests."""

YEELIGHT_DISCOVERY_PORT = 1982
"""The UDP port used for Yeelight discovery requests, responses and advertisements."""

YEELIGHT_CONTROL_PORT = 55443
"""The TCP control port most devices advertise in their Location header."""

DEFAULT_DISCOVERY_MESSAGE = (
    'M-SEARCH * HTTP/1.1\r\n'
    f'HOST: {YEELIGHT_MULTICAST_ADDRESS}:{YEELIGHT_DISCOVERY_PORT}\r\n'
    'MAN: "ssdp:discover"\r\n'
    'ST: wifi_bulb\r\n'
    '\r\n'
  )
"""The search request multicast by discover()."""

DEFAULT_TRANSITION_MS = 300
"""The default device-side transition duration for control commands, in milliseconds."""

DEFAULT_CONNECT_TIMEOUT = 5.0
"""The default time (in seconds) allowed for a control connection to be established."""

DEFAULT_COMMAND_ID = 1
"""The request id placed in every control command."""

MAX_QUEUE_SIZE = 1000
"""The default maximum number of undelivered events held for an event subscriber."""
