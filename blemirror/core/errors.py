#!/usr/bin/python3

"""Core error classes for blemirror.

Bus failures arrive as :class:`BusCallError` and are translated into the
:class:`BlemirrorError` taxonomy at the boundary that issued the call; raw
transport errors never leave the package.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from blemirror.core.constants import (
    BLUEZ_ERROR_IN_PROGRESS,
    BLUEZ_ERROR_NOT_AUTHORIZED,
    BLUEZ_ERROR_NOT_CONNECTED,
    BLUEZ_ERROR_NOT_PERMITTED,
    BLUEZ_ERROR_NOT_SUPPORTED,
    DBUS_ERROR_NO_REPLY,
    DBUS_ERROR_TIMEOUT,
    DBUS_ERROR_UNKNOWN_OBJECT,
    RESULT_ERR,
    RESULT_ERR_ACCESS_DENIED,
    RESULT_ERR_ACTION_IN_PROGRESS,
    RESULT_ERR_METHOD_CALL_FAIL,
    RESULT_ERR_NO_ADAPTER,
    RESULT_ERR_NO_REPLY,
    RESULT_ERR_NOT_CONNECTED,
    RESULT_ERR_NOT_FOUND,
    RESULT_ERR_NOT_SUPPORTED,
    RESULT_ERR_NOTIFY_NOT_PERMITTED,
    RESULT_ERR_POWER,
    RESULT_ERR_UNKNOWN_CONNECT_FAILURE,
    RESULT_ERR_UNKNOWN_OBJECT,
    RESULT_ERR_WRONG_STATE,
)


class BusCallError(Exception):
    """A method call, property access or subscription on the object bus failed.

    ``name`` is the D-Bus error name (e.g. ``org.bluez.Error.Failed``) when
    the bus supplied one.
    """

    def __init__(self, name: str, message: str = ""):
        super().__init__(f"{name}: {message}" if message else name)
        self.name = name
        self.message = message


class BlemirrorError(Exception):
    """Base exception for every error raised by the package.

    The `.code` attribute maps to ``constants.RESULT_*`` values.
    """

    def __init__(self, message: str, code: int = RESULT_ERR):
        super().__init__(message)
        self.code = code


class NoAdapterFoundError(BlemirrorError):
    """Raised when the object tree holds no Bluetooth adapter."""

    def __init__(self, adapter_name: Optional[str] = None):
        msg = "No Bluetooth adapter found"
        if adapter_name:
            msg += f" matching {adapter_name}"
        super().__init__(msg, RESULT_ERR_NO_ADAPTER)
        self.adapter_name = adapter_name


class AdapterPowerOnFailedError(BlemirrorError):
    """Raised when the adapter does not report powered after a power-on."""

    def __init__(self, adapter_path: str, reason: Optional[str] = None):
        msg = f"Adapter {adapter_path} did not power on"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, RESULT_ERR_POWER)
        self.adapter_path = adapter_path
        self.reason = reason


class DiscoveryStartFailedError(BlemirrorError):
    """Raised when StartDiscovery is rejected."""

    def __init__(self, reason: Optional[str] = None):
        msg = "Failed to start discovery"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, RESULT_ERR_WRONG_STATE)
        self.reason = reason


class DeviceNotFoundError(BlemirrorError):
    """Raised when a device address is not in the registry."""

    def __init__(self, device_address: str):
        super().__init__(f"Device {device_address} not found", RESULT_ERR_NOT_FOUND)
        self.device_address = device_address


class ConnectCallFailedError(BlemirrorError):
    """Raised when the Connect call itself is rejected."""

    def __init__(self, device_address: str, reason: Optional[str] = None):
        msg = f"Failed to connect to device {device_address}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, RESULT_ERR_UNKNOWN_CONNECT_FAILURE)
        self.device_address = device_address
        self.reason = reason


class ConnectTimeoutError(ConnectCallFailedError):
    """Raised when the Connect call does not reply within its timeout."""

    def __init__(self, device_address: str, reason: Optional[str] = None):
        super().__init__(device_address, reason or "timed out")
        self.code = RESULT_ERR_NO_REPLY


class DisconnectCallFailedError(BlemirrorError):
    """Raised when the Disconnect call is rejected."""

    def __init__(self, device_address: str, reason: Optional[str] = None):
        msg = f"Failed to disconnect from device {device_address}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, RESULT_ERR_METHOD_CALL_FAIL)
        self.device_address = device_address
        self.reason = reason


class CharacteristicNotFoundError(BlemirrorError):
    """Raised when no mirrored characteristic matches the requested UUIDs."""

    def __init__(self, char_uuid: str, service_uuid: Optional[str] = None):
        msg = f"Characteristic {char_uuid} not found"
        if service_uuid:
            msg += f" in service {service_uuid}"
        super().__init__(msg, RESULT_ERR_NOT_FOUND)
        self.char_uuid = char_uuid
        self.service_uuid = service_uuid


class UnsupportedOperationError(BlemirrorError):
    """Raised when a characteristic lacks the flag an operation needs."""

    def __init__(self, operation: str, char_uuid: str, flags=()):
        flag_list = ", ".join(sorted(flags)) or "none"
        super().__init__(
            f"Characteristic {char_uuid} does not support {operation} (flags: {flag_list})",
            RESULT_ERR_NOT_SUPPORTED,
        )
        self.operation = operation
        self.char_uuid = char_uuid


class RemoteCallFailedError(BlemirrorError):
    """Raised when a bus call returned an error."""

    def __init__(self, operation: str, reason: Optional[str] = None, code: int = RESULT_ERR_METHOD_CALL_FAIL):
        msg = f"Remote call failed: {operation}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg, code)
        self.operation = operation
        self.reason = reason


class NotificationEnableFailedError(BlemirrorError):
    """Raised when notifications could not be enabled end to end."""

    def __init__(self, char_uuid: str, reason: Optional[str] = None):
        msg = f"Failed to enable notifications for {char_uuid}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, RESULT_ERR_NOTIFY_NOT_PERMITTED)
        self.char_uuid = char_uuid
        self.reason = reason


@dataclass
class BestEffortResult:
    """Outcome of a teardown-style call whose failure is reported, not raised."""

    attempted: bool
    ok: bool
    error: Optional[Exception] = None

    def __bool__(self):
        return self.ok


# Result codes for well-known bus error names
BUS_ERROR_CODES = {
    DBUS_ERROR_NO_REPLY: RESULT_ERR_NO_REPLY,
    DBUS_ERROR_TIMEOUT: RESULT_ERR_NO_REPLY,
    DBUS_ERROR_UNKNOWN_OBJECT: RESULT_ERR_UNKNOWN_OBJECT,
    BLUEZ_ERROR_IN_PROGRESS: RESULT_ERR_ACTION_IN_PROGRESS,
    BLUEZ_ERROR_NOT_PERMITTED: RESULT_ERR_ACCESS_DENIED,
    BLUEZ_ERROR_NOT_AUTHORIZED: RESULT_ERR_ACCESS_DENIED,
    BLUEZ_ERROR_NOT_SUPPORTED: RESULT_ERR_NOT_SUPPORTED,
    BLUEZ_ERROR_NOT_CONNECTED: RESULT_ERR_NOT_CONNECTED,
}


def is_timeout(exc: BusCallError) -> bool:
    """True when *exc* means the call did not reply in time."""
    return exc.name in (DBUS_ERROR_NO_REPLY, DBUS_ERROR_TIMEOUT)


def map_bus_error(exc: BusCallError, operation: str) -> RemoteCallFailedError:
    """Return a RemoteCallFailedError for *exc* with the matching result code."""
    code = BUS_ERROR_CODES.get(exc.name, RESULT_ERR_METHOD_CALL_FAIL)
    return RemoteCallFailedError(operation, str(exc), code)


__all__ = [
    "BusCallError",
    "BlemirrorError",
    "NoAdapterFoundError",
    "AdapterPowerOnFailedError",
    "DiscoveryStartFailedError",
    "DeviceNotFoundError",
    "ConnectCallFailedError",
    "ConnectTimeoutError",
    "DisconnectCallFailedError",
    "CharacteristicNotFoundError",
    "UnsupportedOperationError",
    "RemoteCallFailedError",
    "NotificationEnableFailedError",
    "BestEffortResult",
    "is_timeout",
    "map_bus_error",
]
