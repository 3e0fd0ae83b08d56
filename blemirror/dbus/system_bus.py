#!/usr/bin/python3

"""System D-Bus implementation of :class:`~blemirror.dbus.objectbus.ObjectBus`.

A private connection to the system bus is driven by a GLib main loop running
on its own daemon thread; every signal callback executes on that thread while
method calls block the caller's thread.
"""

from __future__ import annotations

import itertools
import threading
from typing import Any, Dict, Optional, Sequence

import dbus
import dbus.exceptions
import dbus.mainloop.glib
from gi.repository import GLib

from blemirror.core.constants import BLUEZ_SERVICE_NAME, DBUS_OM_IFACE, DBUS_PROPERTIES, ROOT_PATH
from blemirror.core.errors import BusCallError
from blemirror.core.log import print_and_log, LOG__DEBUG, get_logger
from blemirror.dbus.objectbus import ManagedObjects, ObjectBus, SignalCallback

logger = get_logger(__name__)

__all__ = ["SystemObjectBus", "dbus_to_python", "python_to_dbus"]


def dbus_to_python(data):
    """Recursively convert dbus-python values into plain Python values."""
    if isinstance(data, (dbus.String, dbus.ObjectPath, dbus.Signature)):
        return str(data)
    if isinstance(data, dbus.Boolean):
        return bool(data)
    if isinstance(data, (dbus.Byte, dbus.Int16, dbus.UInt16, dbus.Int32, dbus.UInt32, dbus.Int64, dbus.UInt64)):
        return int(data)
    if isinstance(data, dbus.Double):
        return float(data)
    if isinstance(data, dbus.ByteArray):
        return bytes(data)
    if isinstance(data, dbus.Array):
        if data.signature == "y":
            return bytes(int(b) for b in data)
        return [dbus_to_python(value) for value in data]
    if isinstance(data, dbus.Struct):
        return tuple(dbus_to_python(value) for value in data)
    if isinstance(data, dbus.Dictionary):
        return {dbus_to_python(k): dbus_to_python(v) for k, v in data.items()}
    return data


def python_to_dbus(value):
    """Wrap values whose D-Bus type cannot be guessed reliably."""
    if isinstance(value, bool):
        return dbus.Boolean(value)
    if isinstance(value, (bytes, bytearray)):
        return dbus.ByteArray(bytes(value))
    if isinstance(value, dict):
        return dbus.Dictionary(
            {str(k): python_to_dbus(v) for k, v in value.items()}, signature="sv"
        )
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return dbus.Array(list(value), signature="s")
    return value


def _as_bus_error(exc: dbus.exceptions.DBusException) -> BusCallError:
    return BusCallError(exc.get_dbus_name() or "org.freedesktop.DBus.Error.Failed", exc.get_dbus_message() or "")


class SystemObjectBus(ObjectBus):
    """BlueZ object tree reached through dbus-python on the system bus."""

    def __init__(self, service_name: str = BLUEZ_SERVICE_NAME):
        self.service_name = service_name
        self._bus: Optional[dbus.Bus] = None
        self._mainloop: Optional[GLib.MainLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._matches: Dict[int, Any] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._bus is not None:
            return
        try:
            dbus.mainloop.glib.DBusGMainLoop(set_as_default=True)
            if hasattr(dbus.mainloop.glib, "threads_init"):
                dbus.mainloop.glib.threads_init()
            self._bus = dbus.SystemBus(private=True)
        except dbus.exceptions.DBusException as exc:
            raise _as_bus_error(exc) from exc

        self._mainloop = GLib.MainLoop()
        self._loop_thread = threading.Thread(
            target=self._mainloop.run, name="blemirror-glib", daemon=True
        )
        self._loop_thread.start()
        print_and_log("[*] System bus session opened", LOG__DEBUG)

    def close(self) -> None:
        with self._lock:
            matches = list(self._matches.values())
            self._matches.clear()
        for match in matches:
            match.remove()

        if self._mainloop is not None:
            self._mainloop.quit()
        if self._loop_thread is not None and self._loop_thread is not threading.current_thread():
            self._loop_thread.join(timeout=2.0)
        if self._bus is not None:
            self._bus.close()
        self._bus = None
        self._mainloop = None
        self._loop_thread = None
        print_and_log("[*] System bus session closed", LOG__DEBUG)

    def _require_bus(self) -> dbus.Bus:
        if self._bus is None:
            raise BusCallError("org.freedesktop.DBus.Error.Disconnected", "bus session not started")
        return self._bus

    # ------------------------------------------------------------------
    # Method calls
    # ------------------------------------------------------------------
    def call(
        self,
        object_path: str,
        interface: str,
        method: str,
        args: Sequence[Any] = (),
        signature: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        bus = self._require_bus()
        try:
            reply = bus.call_blocking(
                self.service_name,
                object_path,
                interface,
                method,
                signature,
                tuple(python_to_dbus(a) for a in args),
                timeout=-1 if timeout is None else timeout,
            )
        except dbus.exceptions.DBusException as exc:
            logger.debug(f"{interface}.{method} on {object_path} failed: {exc}")
            raise _as_bus_error(exc) from exc
        return dbus_to_python(reply)

    def get_property(self, object_path: str, interface: str, name: str) -> Any:
        return self.call(object_path, DBUS_PROPERTIES, "Get", (interface, name), signature="ss")

    def get_all_properties(self, object_path: str, interface: str) -> Dict[str, Any]:
        return self.call(object_path, DBUS_PROPERTIES, "GetAll", (interface,), signature="s")

    def set_property(self, object_path: str, interface: str, name: str, value: Any) -> None:
        self.call(
            object_path,
            DBUS_PROPERTIES,
            "Set",
            (interface, name, python_to_dbus(value)),
            signature="ssv",
        )

    def get_managed_objects(self) -> ManagedObjects:
        return self.call(ROOT_PATH, DBUS_OM_IFACE, "GetManagedObjects")

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------
    def subscribe_signal(
        self,
        interface: str,
        signal_name: str,
        callback: SignalCallback,
        object_path: Optional[str] = None,
        arg0: Optional[str] = None,
    ) -> int:
        bus = self._require_bus()

        def _handler(*args, **kwargs):
            path = str(kwargs.get("path") or "")
            callback(path, interface, signal_name, tuple(dbus_to_python(a) for a in args))

        match_kwargs: Dict[str, Any] = {
            "signal_name": signal_name,
            "dbus_interface": interface,
            "bus_name": self.service_name,
            "path_keyword": "path",
        }
        if object_path is not None:
            match_kwargs["path"] = object_path
        if arg0 is not None:
            match_kwargs["arg0"] = arg0

        try:
            match = bus.add_signal_receiver(_handler, **match_kwargs)
        except dbus.exceptions.DBusException as exc:
            raise _as_bus_error(exc) from exc

        with self._lock:
            token = next(self._tokens)
            self._matches[token] = match
        logger.debug(f"Subscribed {interface}.{signal_name} path={object_path} token={token}")
        return token

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            match = self._matches.pop(token, None)
        if match is not None:
            match.remove()
            logger.debug(f"Unsubscribed token={token}")
