"""Local read-through/write-through proxy for one BlueZ *GattCharacteristic1* object."""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, Optional

from blemirror.ble_ops.conversion import bytes_to_hex_string, format_flags, normalize_uuid
from blemirror.core.config import ClientConfig
from blemirror.core.constants import (
    FLAG_INDICATE,
    FLAG_NOTIFY,
    FLAG_READ,
    FLAG_WRITE,
    FLAG_WRITE_WITHOUT_RESPONSE,
    GATT_CHARACTERISTIC_INTERFACE,
)
from blemirror.core.errors import (
    BestEffortResult,
    BusCallError,
    NotificationEnableFailedError,
    UnsupportedOperationError,
    map_bus_error,
)
from blemirror.core.log import print_and_log, LOG__DEBUG, get_logger
from blemirror.dbus.objectbus import ObjectBus
from blemirror.dbuslayer.notifications import NotificationCallback, NotificationSubscription

logger = get_logger(__name__)

__all__ = ["CharacteristicMirror"]


class CharacteristicMirror:
    """Mirror of a remote characteristic with capability gating."""

    def __init__(
        self,
        bus: ObjectBus,
        object_path: str,
        device_path: str,
        uuid: str,
        flags: Iterable[str] = (),
        service_path: Optional[str] = None,
        service_uuid: Optional[str] = None,
        config: Optional[ClientConfig] = None,
    ):
        self._bus = bus
        self._config = config or ClientConfig()
        self.object_path = object_path
        self.owning_device_path = device_path
        self.uuid = normalize_uuid(uuid)
        self.flags = frozenset(str(f) for f in flags)
        self.service_path = service_path
        self.service_uuid = normalize_uuid(service_uuid) if service_uuid else None
        self._subscription: Optional[NotificationSubscription] = None
        self._lock = threading.RLock()

    @classmethod
    def from_properties(
        cls,
        bus: ObjectBus,
        object_path: str,
        device_path: str,
        properties: Dict[str, Any],
        service_uuids: Optional[Dict[str, str]] = None,
        config: Optional[ClientConfig] = None,
    ) -> "CharacteristicMirror":
        """Build a mirror from a *GattCharacteristic1* property map.

        Raises ``ValueError`` when the map lacks a usable ``UUID``.
        """
        uuid = properties.get("UUID")
        if not isinstance(uuid, str) or not uuid:
            raise ValueError(f"characteristic {object_path} has no UUID")
        flags = properties.get("Flags") or []
        if isinstance(flags, str) or not isinstance(flags, (list, tuple, set, frozenset)):
            raise ValueError(f"characteristic {object_path} has malformed Flags: {flags!r}")
        service_path = properties.get("Service")
        service_uuid = (service_uuids or {}).get(service_path) if service_path else None
        return cls(
            bus,
            object_path,
            device_path,
            uuid,
            flags,
            service_path=service_path,
            service_uuid=service_uuid,
            config=config,
        )

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------
    def can_read(self) -> bool:
        return FLAG_READ in self.flags

    def can_write(self) -> bool:
        return FLAG_WRITE in self.flags

    def can_write_without_response(self) -> bool:
        return FLAG_WRITE_WITHOUT_RESPONSE in self.flags

    def can_notify(self) -> bool:
        return FLAG_NOTIFY in self.flags

    def can_indicate(self) -> bool:
        return FLAG_INDICATE in self.flags

    def flags_to_string(self) -> str:
        return format_flags(self.flags)

    @property
    def notification_active(self) -> bool:
        sub = self._subscription
        return sub is not None and sub.active

    # ------------------------------------------------------------------
    # Read / Write
    # ------------------------------------------------------------------
    def read(self) -> bytes:
        if not self.can_read():
            raise UnsupportedOperationError("read", self.uuid, self.flags)
        try:
            raw = self._bus.call(
                self.object_path,
                GATT_CHARACTERISTIC_INTERFACE,
                "ReadValue",
                ({},),
                signature="a{sv}",
                timeout=self._config.read_timeout,
            )
        except BusCallError as exc:
            raise map_bus_error(exc, f"ReadValue {self.uuid}") from exc
        result = bytes(raw)
        print_and_log(
            f"[DEBUG] Read {len(result)} bytes from characteristic {self.uuid}: {bytes_to_hex_string(result)}",
            LOG__DEBUG,
        )
        return result

    def write(self, data: bytes) -> None:
        if not (self.can_write() or self.can_write_without_response()):
            raise UnsupportedOperationError("write", self.uuid, self.flags)
        payload = bytes(data)
        try:
            self._bus.call(
                self.object_path,
                GATT_CHARACTERISTIC_INTERFACE,
                "WriteValue",
                (payload, {}),
                signature="aya{sv}",
                timeout=self._config.write_timeout,
            )
        except BusCallError as exc:
            raise map_bus_error(exc, f"WriteValue {self.uuid}") from exc
        print_and_log(
            f"[DEBUG] Wrote {len(payload)} bytes to characteristic {self.uuid}",
            LOG__DEBUG,
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def start_notifications(self, callback: NotificationCallback) -> None:
        """Subscribe locally, then ask the peripheral to notify.

        Either both sides end up active or neither does.
        """
        if not (self.can_notify() or self.can_indicate()):
            raise UnsupportedOperationError("notify", self.uuid, self.flags)

        with self._lock:
            if self._subscription is not None:
                self.stop_notifications()

            subscription = NotificationSubscription(self._bus, self.object_path)
            subscription.enable(callback)
            # Values may arrive while StartNotify is still in flight
            self._subscription = subscription
            try:
                self._bus.call(
                    self.object_path,
                    GATT_CHARACTERISTIC_INTERFACE,
                    "StartNotify",
                    timeout=self._config.notify_timeout,
                )
            except BusCallError as exc:
                self._subscription = None
                subscription.disable()
                raise NotificationEnableFailedError(self.uuid, str(exc)) from exc

        print_and_log(
            f"[DEBUG] Notifications enabled for characteristic {self.uuid}", LOG__DEBUG
        )

    def stop_notifications(self) -> BestEffortResult:
        with self._lock:
            subscription, self._subscription = self._subscription, None
            if subscription is None:
                return BestEffortResult(attempted=False, ok=True)

            result = BestEffortResult(attempted=True, ok=True)
            try:
                self._bus.call(
                    self.object_path,
                    GATT_CHARACTERISTIC_INTERFACE,
                    "StopNotify",
                    timeout=self._config.notify_timeout,
                )
            except BusCallError as exc:
                logger.warning(f"StopNotify on {self.uuid} failed: {exc}")
                result = BestEffortResult(attempted=True, ok=False, error=map_bus_error(exc, f"StopNotify {self.uuid}"))
            subscription.disable()

        print_and_log(
            f"[DEBUG] Notifications disabled for characteristic {self.uuid}", LOG__DEBUG
        )
        return result

    def release(self) -> None:
        """Drop the local subscription without talking to the peripheral."""
        with self._lock:
            subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.disable()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def describe(self) -> Dict[str, Any]:
        return {
            "path": self.object_path,
            "uuid": self.uuid,
            "service_uuid": self.service_uuid,
            "flags": sorted(self.flags),
            "notifying": self.notification_active,
        }

    def __repr__(self):
        return f"CharacteristicMirror(uuid={self.uuid!r}, path={self.object_path!r}, flags=[{self.flags_to_string()}])"
