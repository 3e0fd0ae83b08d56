"""
D-Bus layer for blemirror.
Local mirrors of the BlueZ adapter, devices and GATT characteristics.
"""

from .adapter import Adapter
from .characteristic import CharacteristicMirror
from .device_le import DeviceMirror, DeviceState
from .manager import DeviceManager
from .notifications import NotificationSubscription
from .registry import DeviceRegistry

__all__ = [
    "Adapter",
    "CharacteristicMirror",
    "DeviceMirror",
    "DeviceState",
    "DeviceManager",
    "DeviceRegistry",
    "NotificationSubscription",
]
