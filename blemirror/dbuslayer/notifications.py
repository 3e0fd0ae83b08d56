"""Bridge a characteristic's ``PropertiesChanged`` signal into a value callback."""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional, Tuple

from blemirror.core.constants import (
    DBUS_PROPERTIES,
    GATT_CHARACTERISTIC_INTERFACE,
    SIGNAL_PROPERTIES_CHANGED,
)
from blemirror.core.errors import BusCallError, NotificationEnableFailedError
from blemirror.core.log import get_logger
from blemirror.dbus.objectbus import ObjectBus

logger = get_logger(__name__)

# callback(characteristic_path, payload)
NotificationCallback = Callable[[str, bytes], None]

__all__ = ["NotificationSubscription", "NotificationCallback"]


class NotificationSubscription:
    """At most one live signal subscription for one characteristic object.

    Inert until :meth:`enable`; the token is non-zero exactly while active.
    """

    INACTIVE = 0

    def __init__(self, bus: ObjectBus, characteristic_path: str):
        self._bus = bus
        self.characteristic_path = characteristic_path
        self.token: int = self.INACTIVE
        self.callback: Optional[NotificationCallback] = None
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self.token != self.INACTIVE

    def enable(self, callback: NotificationCallback) -> None:
        with self._lock:
            if self.active:
                raise NotificationEnableFailedError(self.characteristic_path, "subscription already active")
            try:
                token = self._bus.subscribe_signal(
                    DBUS_PROPERTIES,
                    SIGNAL_PROPERTIES_CHANGED,
                    self._on_properties_changed,
                    object_path=self.characteristic_path,
                    arg0=GATT_CHARACTERISTIC_INTERFACE,
                )
            except BusCallError as exc:
                raise NotificationEnableFailedError(self.characteristic_path, str(exc)) from exc
            self.callback = callback
            self.token = token
        logger.debug(f"Notification subscription {token} on {self.characteristic_path}")

    def disable(self) -> None:
        with self._lock:
            token, self.token = self.token, self.INACTIVE
            self.callback = None
        if token == self.INACTIVE:
            return
        try:
            self._bus.unsubscribe(token)
        except BusCallError as exc:
            logger.warning(f"Unsubscribe of {self.characteristic_path} failed: {exc}")

    def _on_properties_changed(self, object_path: str, _interface: str, _signal: str, args: Tuple[Any, ...]) -> None:
        # Runs on the event-loop thread
        if len(args) < 2 or args[0] != GATT_CHARACTERISTIC_INTERFACE:
            return
        changed = args[1] or {}
        if "Value" not in changed:
            return
        callback = self.callback
        if callback is None:
            return
        try:
            callback(self.characteristic_path, bytes(changed["Value"]))
        except Exception:  # noqa: BLE001 - keep the event loop alive
            logger.exception(f"Notification callback for {self.characteristic_path} raised")
