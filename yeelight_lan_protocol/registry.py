#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
DeviceRegistry -- the in-memory table of known devices, keyed by device id.
"""

from __future__ import annotations

from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .util import CaseInsensitiveDict
from .device import YeelightDevice

class UpsertResult(Enum):
    """The outcome of DeviceRegistry.upsert()."""
    ADDED = "added"
    UPDATED = "updated"
    UNCHANGED = "unchanged"

class DeviceRegistry:
    """
    Owns the set of known devices. Each sighting is treated as the authoritative full
    snapshot of a device's state: properties are compared structurally and replaced
    wholesale, never merged. Devices are never removed.

    All mutation happens on the event loop thread, so no locking is done.
    """

    _devices: Dict[str, YeelightDevice]

    def __init__(self) -> None:
        self._devices = {}

    def upsert(
            self,
            device_id: str,
            properties: Mapping[str, str],
            src_addr: Optional[HostAndPort]=None
          ) -> Tuple[UpsertResult, YeelightDevice]:
        """Adds a new device, or replaces the properties of a known one.

        Returns (UpsertResult.ADDED, device) on first sighting, (UpsertResult.UNCHANGED, device) if the
        properties equal the stored snapshot, and (UpsertResult.UPDATED, device) otherwise.
        """
        device = self._devices.get(device_id)
        if device is None:
            device = YeelightDevice(device_id, properties, src_addr=src_addr)
            self._devices[device_id] = device
            logger.debug(f"Registry: added {device}")
            return (UpsertResult.ADDED, device)
        device.mark_seen(src_addr)
        new_properties: CaseInsensitiveDict[str] = CaseInsensitiveDict(properties)
        if new_properties == device.properties:
            return (UpsertResult.UNCHANGED, device)
        device.properties = new_properties
        logger.debug(f"Registry: updated {device}")
        return (UpsertResult.UPDATED, device)

    def get(self, device_id: str) -> Optional[YeelightDevice]:
        """Returns the device with the given id, or None if it is not known."""
        return self._devices.get(device_id)

    def list(self) -> List[YeelightDevice]:
        """Returns all known devices, in the order they were first seen."""
        return list(self._devices.values())

    def find_by_host(self, host: str) -> Optional[YeelightDevice]:
        """Returns the first device whose control endpoint is on the given host, or None."""
        for device in self._devices.values():
            if device.host == host:
                return device
        return None

    def __getitem__(self, device_id: str) -> YeelightDevice:
        return self._devices[device_id]

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def __iter__(self) -> Iterator[YeelightDevice]:
        return iter(list(self._devices.values()))

    def __len__(self) -> int:
        return len(self._devices)
