"""
Registry of devices already seen on the network.

Shared between scan workers (which record every device they emit) and
the alerting layer (which flags devices it has not seen before).
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Optional

from ._types import UNKNOWN, Device

logger = logging.getLogger(__name__)


def device_key(device: Device) -> str:
    """Identify a device by MAC when nmap reported one, else by address."""
    if device.mac and device.mac != UNKNOWN:
        return device.mac.lower()
    return device.address.lower()


class KnownDeviceRegistry:
    """Thread-safe set of known device keys."""

    def __init__(self, keys: Optional[Iterable[str]] = None):
        self._lock = threading.Lock()
        self._keys: set[str] = {k.lower() for k in keys or ()}

    def add(self, device: Device) -> bool:
        """Record a device. Returns True if it was not known before."""
        key = device_key(device)
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
        logger.debug(f"New device registered: {key} ({device.address})")
        return True

    def add_many(self, devices: Iterable[Device]) -> int:
        return sum(1 for d in devices if self.add(d))

    def is_known(self, device: Device) -> bool:
        with self._lock:
            return device_key(device) in self._keys

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key.lower() in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
