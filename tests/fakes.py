"""In-memory object bus and BlueZ tree builders for the test-suite."""

from __future__ import annotations

import itertools
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from blemirror.core.constants import (
    ADAPTER_INTERFACE,
    DBUS_OM_IFACE,
    DBUS_PROPERTIES,
    DEVICE_INTERFACE,
    GATT_CHARACTERISTIC_INTERFACE,
    GATT_SERVICE_INTERFACE,
    SIGNAL_INTERFACES_ADDED,
    SIGNAL_INTERFACES_REMOVED,
    SIGNAL_PROPERTIES_CHANGED,
)
from blemirror.core.errors import BusCallError
from blemirror.dbus.objectbus import ObjectBus

ADAPTER_PATH = "/org/bluez/hci0"
DEVICE_ADDRESS = "AA:BB:CC:DD:EE:FF"

HEART_RATE_SERVICE = "0000180d-0000-1000-8000-00805f9b34fb"
HEART_RATE_MEASUREMENT = "00002a37-0000-1000-8000-00805f9b34fb"
BATTERY_SERVICE = "0000180f-0000-1000-8000-00805f9b34fb"
BATTERY_LEVEL = "00002a19-0000-1000-8000-00805f9b34fb"
CUSTOM_SERVICE = "12345678-1234-5678-1234-56789abcdef0"

UNKNOWN_OBJECT = "org.freedesktop.DBus.Error.UnknownObject"
BLUEZ_FAILED = "org.bluez.Error.Failed"

Handler = Callable[[str, Tuple[Any, ...]], Any]


class FakeObjectBus(ObjectBus):
    """Object tree held in dicts; signals are delivered synchronously."""

    def __init__(self):
        self.objects: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.calls: List[Tuple[str, str, str, Tuple[Any, ...]]] = []
        self.timeouts: Dict[str, Optional[float]] = {}
        self.property_sets: List[Tuple[str, str, str, Any]] = []
        self.subscriptions: Dict[int, Tuple[str, str, Callable, Optional[str], Optional[str]]] = {}
        self.started = False
        self.closed = False
        self.managed_objects_error: Optional[BusCallError] = None
        self.subscribe_error: Optional[BusCallError] = None
        self.ignored_sets = set()
        self._handlers: Dict[Tuple[Optional[str], str], Handler] = {}
        self._tokens = itertools.count(1)

    # ------------------------------------------------------------------
    # Tree helpers
    # ------------------------------------------------------------------
    def add_object(self, path: str, interface: str, props: Dict[str, Any]) -> None:
        self.objects.setdefault(path, {})[interface] = dict(props)

    def props(self, path: str, interface: str) -> Dict[str, Any]:
        return self.objects[path][interface]

    # ------------------------------------------------------------------
    # Scripting
    # ------------------------------------------------------------------
    def on(self, method: str, handler: Handler, path: Optional[str] = None) -> None:
        self._handlers[(path, method)] = handler

    def fail(self, method: str, name: str = BLUEZ_FAILED, message: str = "", path: Optional[str] = None) -> None:
        def _raise(_path, _args):
            raise BusCallError(name, message)

        self.on(method, _raise, path)

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[2] == method)

    # ------------------------------------------------------------------
    # ObjectBus
    # ------------------------------------------------------------------
    def start(self) -> None:
        self.started = True

    def close(self) -> None:
        self.subscriptions.clear()
        self.closed = True

    def call(self, object_path, interface, method, args: Sequence[Any] = (), signature=None, timeout=None):
        self.calls.append((object_path, interface, method, tuple(args)))
        self.timeouts[method] = timeout
        handler = self._handlers.get((object_path, method)) or self._handlers.get((None, method))
        if handler is None:
            return None
        return handler(object_path, tuple(args))

    def get_property(self, object_path, interface, name):
        try:
            return self.objects[object_path][interface][name]
        except KeyError:
            raise BusCallError(UNKNOWN_OBJECT, f"{object_path} {interface}.{name}") from None

    def get_all_properties(self, object_path, interface):
        try:
            return dict(self.objects[object_path][interface])
        except KeyError:
            raise BusCallError(UNKNOWN_OBJECT, f"{object_path} {interface}") from None

    def set_property(self, object_path, interface, name, value):
        self.property_sets.append((object_path, interface, name, value))
        if object_path not in self.objects or interface not in self.objects[object_path]:
            raise BusCallError(UNKNOWN_OBJECT, object_path)
        if (object_path, interface, name) in self.ignored_sets:
            return
        self.objects[object_path][interface][name] = value

    def get_managed_objects(self):
        if self.managed_objects_error is not None:
            raise self.managed_objects_error
        return {
            path: {iface: dict(props) for iface, props in ifaces.items()}
            for path, ifaces in self.objects.items()
        }

    def subscribe_signal(self, interface, signal_name, callback, object_path=None, arg0=None) -> int:
        if self.subscribe_error is not None:
            raise self.subscribe_error
        token = next(self._tokens)
        self.subscriptions[token] = (interface, signal_name, callback, object_path, arg0)
        return token

    def unsubscribe(self, token: int) -> None:
        self.subscriptions.pop(token, None)

    # ------------------------------------------------------------------
    # Signal emission
    # ------------------------------------------------------------------
    def emit(self, interface: str, signal_name: str, path: str, args: Tuple[Any, ...]) -> None:
        for iface, sig, callback, obj_path, arg0 in list(self.subscriptions.values()):
            if iface != interface or sig != signal_name:
                continue
            if obj_path is not None and obj_path != path:
                continue
            if arg0 is not None and (not args or args[0] != arg0):
                continue
            callback(path, interface, signal_name, args)

    def emit_interfaces_added(self, path: str, interfaces: Dict[str, Dict[str, Any]]) -> None:
        for iface, props in interfaces.items():
            self.add_object(path, iface, props)
        self.emit(DBUS_OM_IFACE, SIGNAL_INTERFACES_ADDED, "/", (path, interfaces))

    def emit_interfaces_removed(self, path: str, interfaces: Optional[Iterable[str]] = None) -> None:
        existing = self.objects.get(path, {})
        names = list(interfaces) if interfaces is not None else list(existing)
        for name in names:
            existing.pop(name, None)
        if path in self.objects and not self.objects[path]:
            del self.objects[path]
        self.emit(DBUS_OM_IFACE, SIGNAL_INTERFACES_REMOVED, "/", (path, names))

    def emit_properties_changed(self, path: str, interface: str, changed: Dict[str, Any]) -> None:
        if path in self.objects and interface in self.objects[path]:
            self.objects[path][interface].update(changed)
        self.emit(DBUS_PROPERTIES, SIGNAL_PROPERTIES_CHANGED, path, (interface, changed, []))


class FakeTimer:
    """Stand-in for ``threading.Timer`` that only runs when fired by the test."""

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled:
            self.function()


class TimerRecorder:
    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]


# ---------------------------------------------------------------------------
# BlueZ tree builders
# ---------------------------------------------------------------------------

def device_path(address: str, adapter_path: str = ADAPTER_PATH) -> str:
    return f"{adapter_path}/dev_{address.upper().replace(':', '_')}"


def add_adapter(bus: FakeObjectBus, path: str = ADAPTER_PATH, powered: bool = True) -> str:
    bus.add_object(path, ADAPTER_INTERFACE, {"Address": "00:11:22:33:44:55", "Powered": powered, "Discovering": False})
    return path


def device_props(address: str = DEVICE_ADDRESS, uuids: Iterable[str] = (), name: Optional[str] = "Sensor",
                 connected: bool = False, services_resolved: bool = False) -> Dict[str, Any]:
    props: Dict[str, Any] = {
        "Address": address,
        "Alias": address.replace(":", "-"),
        "UUIDs": list(uuids),
        "Connected": connected,
        "ServicesResolved": services_resolved,
        "Paired": False,
        "RSSI": -60,
    }
    if name is not None:
        props["Name"] = name
    return props


def add_device(bus: FakeObjectBus, address: str = DEVICE_ADDRESS, **kwargs) -> str:
    path = device_path(address)
    bus.add_object(path, DEVICE_INTERFACE, device_props(address, **kwargs))
    return path


def add_gatt(bus: FakeObjectBus, dev_path: str, services: Dict[str, List[Tuple[str, List[str]]]]) -> Dict[Tuple[str, str], str]:
    """Add services/characteristics under *dev_path*; returns ``{(svc, char): path}``."""
    paths: Dict[Tuple[str, str], str] = {}
    handle = 0x0a
    for svc_uuid, chars in services.items():
        svc_path = f"{dev_path}/service{handle:04x}"
        bus.add_object(svc_path, GATT_SERVICE_INTERFACE, {"UUID": svc_uuid, "Device": dev_path, "Primary": True})
        handle += 1
        for char_uuid, flags in chars:
            char_path = f"{svc_path}/char{handle:04x}"
            bus.add_object(
                char_path,
                GATT_CHARACTERISTIC_INTERFACE,
                {"UUID": char_uuid, "Service": svc_path, "Flags": list(flags), "Value": b"", "Notifying": False},
            )
            paths[(svc_uuid, char_uuid)] = char_path
            handle += 2
    return paths


def install_bluez_handlers(bus: FakeObjectBus) -> None:
    """Script the method calls the mirrors issue the way BlueZ answers them."""

    def _set(path, iface, **values):
        if path in bus.objects and iface in bus.objects[path]:
            bus.objects[path][iface].update(values)

    bus.on("Connect", lambda path, _args: _set(path, DEVICE_INTERFACE, Connected=True))
    bus.on("Disconnect", lambda path, _args: _set(path, DEVICE_INTERFACE, Connected=False, ServicesResolved=False))
    bus.on("Pair", lambda path, _args: _set(path, DEVICE_INTERFACE, Paired=True))
    bus.on("ReadValue", lambda path, _args: bus.props(path, GATT_CHARACTERISTIC_INTERFACE)["Value"])
    bus.on("WriteValue", lambda path, args: _set(path, GATT_CHARACTERISTIC_INTERFACE, Value=bytes(args[0])))
    bus.on("StartNotify", lambda path, _args: _set(path, GATT_CHARACTERISTIC_INTERFACE, Notifying=True))
    bus.on("StopNotify", lambda path, _args: _set(path, GATT_CHARACTERISTIC_INTERFACE, Notifying=False))
    bus.on("StartDiscovery", lambda path, _args: _set(path, ADAPTER_INTERFACE, Discovering=True))
    bus.on("StopDiscovery", lambda path, _args: _set(path, ADAPTER_INTERFACE, Discovering=False))
