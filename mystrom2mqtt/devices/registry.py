"""Read-only registry of known switches."""

import logging
from typing import Dict, Iterator, List, Mapping, Optional

from ..models import Device

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Name-keyed lookup of devices, fixed for the lifetime of the process."""

    def __init__(self, devices: Mapping[str, str]):
        """Build the registry.

        Args:
            devices: Mapping of device name to hostname/IP
        """
        self._devices: Dict[str, Device] = {
            name: Device(name=name, address=address)
            for name, address in devices.items()
        }
        logger.debug(f"Registered {len(self._devices)} devices: {', '.join(self._devices)}")

    def get(self, name: str) -> Optional[Device]:
        """Look up a device by name, or None if unknown."""
        return self._devices.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._devices)

    def __contains__(self, name: object) -> bool:
        return name in self._devices

    def __iter__(self) -> Iterator[Device]:
        return iter(list(self._devices.values()))

    def __len__(self) -> int:
        return len(self._devices)
