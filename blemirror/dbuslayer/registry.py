"""Guarded arena of device mirrors keyed by bus object path.

Signal handlers (event-loop thread) and caller operations share the same
entry points; nothing outside this module touches the underlying dicts.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

from blemirror.dbuslayer.device_le import DeviceMirror

__all__ = ["DeviceRegistry"]


class DeviceRegistry:
    def __init__(self):
        self._lock = threading.RLock()
        self._by_path: Dict[str, DeviceMirror] = {}
        self._by_address: Dict[str, str] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_path)

    def __contains__(self, object_path: str) -> bool:
        with self._lock:
            return object_path in self._by_path

    def insert(self, device: DeviceMirror) -> bool:
        """Add *device* unless its path is already registered.

        A different path reusing a known address replaces the old entry; the
        displaced mirror is released.
        """
        displaced: Optional[DeviceMirror] = None
        with self._lock:
            if device.object_path in self._by_path:
                return False
            old_path = self._by_address.get(device.address)
            if old_path is not None:
                displaced = self._by_path.pop(old_path, None)
            self._by_path[device.object_path] = device
            self._by_address[device.address] = device.object_path
        if displaced is not None:
            displaced.release()
        return True

    def get_by_path(self, object_path: str) -> Optional[DeviceMirror]:
        with self._lock:
            return self._by_path.get(object_path)

    def get_by_address(self, address: str) -> Optional[DeviceMirror]:
        with self._lock:
            path = self._by_address.get(address.upper())
            return self._by_path.get(path) if path is not None else None

    def owner_of(self, object_path: str) -> Optional[DeviceMirror]:
        """Return the device whose path is a strict prefix of *object_path*."""
        with self._lock:
            for path, device in self._by_path.items():
                if object_path.startswith(path + "/"):
                    return device
        return None

    def evict_path(self, object_path: str) -> Optional[DeviceMirror]:
        with self._lock:
            device = self._by_path.pop(object_path, None)
            if device is not None and self._by_address.get(device.address) == object_path:
                del self._by_address[device.address]
        return device

    def devices(self) -> List[DeviceMirror]:
        with self._lock:
            return list(self._by_path.values())

    def clear(self) -> List[DeviceMirror]:
        with self._lock:
            removed = list(self._by_path.values())
            self._by_path.clear()
            self._by_address.clear()
        return removed
