"""BlueZ device manager for low-energy devices.

Owns the bus session, the adapter handle, the registry of device mirrors and
the discovery state.  Bus-wide ``InterfacesAdded`` / ``InterfacesRemoved`` /
``PropertiesChanged`` signals are routed here (on the event-loop thread) and
forwarded to the mirror they concern.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from blemirror.ble_ops.conversion import normalize_uuid
from blemirror.core.config import ClientConfig
from blemirror.core.constants import (
    DBUS_OM_IFACE,
    DBUS_PROPERTIES,
    DEVICE_INTERFACE,
    SIGNAL_INTERFACES_ADDED,
    SIGNAL_INTERFACES_REMOVED,
    SIGNAL_PROPERTIES_CHANGED,
)
from blemirror.core.errors import (
    BestEffortResult,
    BlemirrorError,
    BusCallError,
    DeviceNotFoundError,
    map_bus_error,
)
from blemirror.core.log import print_and_log, LOG__DEBUG, LOG__GENERAL, get_logger
from blemirror.dbus.objectbus import ObjectBus
from blemirror.dbuslayer.adapter import Adapter
from blemirror.dbuslayer.device_le import DeviceMirror
from blemirror.dbuslayer.registry import DeviceRegistry

logger = get_logger(__name__)

__all__ = ["DeviceManager"]


class DeviceManager:
    """Entry point for discovering and tracking BLE devices on one adapter."""

    def __init__(
        self,
        bus: Optional[ObjectBus] = None,
        config: Optional[ClientConfig] = None,
        *,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        if bus is None:
            from blemirror.dbus.system_bus import SystemObjectBus

            bus = SystemObjectBus()
        self._bus = bus
        self.config = config or ClientConfig()
        self._timer_factory = timer_factory

        self.adapter: Optional[Adapter] = None
        self.registry = DeviceRegistry()

        self._init_lock = threading.Lock()
        self._initialized = False
        self._signal_tokens: List[int] = []

        self._scan_lock = threading.Lock()
        self._scanning = False
        self._filter: frozenset = frozenset()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def initialize(self) -> None:
        """Open the bus, resolve and power the adapter, start routing signals."""
        with self._init_lock:
            if self._initialized:
                return
            try:
                self._bus.start()
            except BusCallError as exc:
                raise map_bus_error(exc, "open bus session") from exc
            try:
                self.adapter = Adapter.resolve(self._bus, self.config)
                self._subscribe_signals()
                self.adapter.power_on()
            except BlemirrorError:
                self._close_bus()
                self.adapter = None
                raise
            self._initialized = True
        print_and_log(f"[*] Using adapter {self.adapter.object_path}", LOG__DEBUG)

    def _subscribe_signals(self) -> None:
        routes: Tuple[Tuple[str, str, Callable, Optional[str]], ...] = (
            (DBUS_OM_IFACE, SIGNAL_INTERFACES_ADDED, self._on_interfaces_added, None),
            (DBUS_OM_IFACE, SIGNAL_INTERFACES_REMOVED, self._on_interfaces_removed, None),
            (DBUS_PROPERTIES, SIGNAL_PROPERTIES_CHANGED, self._on_properties_changed, DEVICE_INTERFACE),
        )
        for interface, signal_name, handler, arg0 in routes:
            try:
                token = self._bus.subscribe_signal(interface, signal_name, handler, arg0=arg0)
            except BusCallError as exc:
                raise map_bus_error(exc, f"subscribe {signal_name}") from exc
            self._signal_tokens.append(token)

    def _close_bus(self) -> None:
        tokens, self._signal_tokens = self._signal_tokens, []
        for token in tokens:
            try:
                self._bus.unsubscribe(token)
            except BusCallError as exc:
                logger.debug(f"Unsubscribe {token} failed: {exc}")
        self._bus.close()

    def shutdown(self) -> None:
        """Best-effort teardown: stop scanning, disconnect, release, close."""
        with self._init_lock:
            if not self._initialized:
                return
            self._initialized = False

        self.stop_discovery()
        for device in self.registry.devices():
            device.try_disconnect()
        for device in self.registry.clear():
            device.release()
        self._close_bus()
        print_and_log("[*] Device manager shut down", LOG__DEBUG)

    def __enter__(self) -> "DeviceManager":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _require_adapter(self) -> Adapter:
        if self.adapter is None:
            raise BlemirrorError("Device manager is not initialized")
        return self.adapter

    # ------------------------------------------------------------------
    # Adapter power
    # ------------------------------------------------------------------
    def is_powered(self) -> bool:
        return self._require_adapter().is_powered()

    def power_on(self) -> None:
        self._require_adapter().power_on()

    def power_off(self) -> BestEffortResult:
        adapter = self._require_adapter()
        self.stop_discovery()
        return adapter.power_off()

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------
    def start_discovery(self, service_uuids: Optional[Iterable[str]] = None) -> None:
        """(Re)start discovery admitting devices that advertise *service_uuids*.

        An empty filter admits every device.
        """
        adapter = self._require_adapter()
        wanted = frozenset(normalize_uuid(u) for u in service_uuids or ())
        with self._scan_lock:
            if self._scanning:
                self._stop_discovery_locked(adapter)
            self._filter = wanted
            adapter.set_discovery_filter(wanted)
            adapter.start_discovery()
            self._scanning = True
        print_and_log("[*] Discovery started", LOG__GENERAL)
        self._admit_known_devices()

    def stop_discovery(self) -> BestEffortResult:
        with self._scan_lock:
            if not self._scanning:
                return BestEffortResult(attempted=False, ok=True)
            result = self._stop_discovery_locked(self._require_adapter())
        print_and_log("[*] Discovery stopped", LOG__GENERAL)
        return result

    def _stop_discovery_locked(self, adapter: Adapter) -> BestEffortResult:
        result = adapter.stop_discovery()
        self._scanning = False
        return result

    def is_discovering(self) -> bool:
        with self._scan_lock:
            return self._scanning

    @property
    def discovery_filter(self) -> frozenset:
        return self._filter

    def scan(self, duration: float, service_uuids: Optional[Iterable[str]] = None,
             sleep: Callable[[float], None] = time.sleep) -> List[DeviceMirror]:
        """Run discovery for *duration* seconds and return what was seen."""
        self.start_discovery(service_uuids)
        try:
            sleep(duration)
        finally:
            self.stop_discovery()
        return self.get_discovered_devices()

    def _admit_known_devices(self) -> None:
        # BlueZ does not re-announce devices it already caches
        try:
            objects = self._bus.get_managed_objects()
        except BusCallError as exc:
            logger.warning(f"Failed to list known devices: {exc}")
            return
        for path in sorted(objects):
            props = objects[path].get(DEVICE_INTERFACE)
            if props is not None and path not in self.registry:
                self._admit(path, props)

    def _passes_filter(self, props: Dict[str, Any]) -> bool:
        wanted = self._filter
        if not wanted:
            return True
        advertised = {normalize_uuid(u) for u in props.get("UUIDs") or () if isinstance(u, str)}
        return bool(advertised & wanted)

    def _admit(self, object_path: str, props: Dict[str, Any]) -> Optional[DeviceMirror]:
        adapter = self.adapter
        if adapter is not None and not object_path.startswith(adapter.object_path + "/"):
            return None
        if not props.get("Address"):
            logger.debug(f"Ignoring device {object_path} without Address")
            return None
        if not self._passes_filter(props):
            logger.debug(f"Device {object_path} filtered out")
            return None

        existing = self.registry.get_by_path(object_path)
        if existing is not None:
            existing.properties_changed(props)
            return existing

        device = DeviceMirror(self._bus, object_path, props, self.config, timer_factory=self._timer_factory)
        if not self.registry.insert(device):
            # Admitted concurrently from the other thread
            device.release()
            existing = self.registry.get_by_path(object_path)
            if existing is not None:
                existing.properties_changed(props)
            return existing
        print_and_log(f"[+] Found {device.address} ({device.display_name})", LOG__DEBUG)
        return device

    # ------------------------------------------------------------------
    # Signal routing (event-loop thread)
    # ------------------------------------------------------------------
    def _on_interfaces_added(self, _path: str, _iface: str, _signal: str, args: Tuple[Any, ...]) -> None:
        try:
            object_path, interfaces = args[0], args[1]
            props = interfaces.get(DEVICE_INTERFACE)
            if props is not None:
                self._admit(object_path, props)
        except Exception:  # noqa: BLE001 - never break the event loop
            logger.exception("InterfacesAdded handling failed")

    def _on_interfaces_removed(self, _path: str, _iface: str, _signal: str, args: Tuple[Any, ...]) -> None:
        try:
            object_path, interfaces = args[0], list(args[1] or ())
            device = self.registry.get_by_path(object_path)
            if device is not None:
                if interfaces and DEVICE_INTERFACE not in interfaces:
                    return
                self.registry.evict_path(object_path)
                device.release()
                print_and_log(f"[-] Device {device.address} removed", LOG__DEBUG)
                return
            owner = self.registry.owner_of(object_path)
            if owner is not None:
                owner.interfaces_removed(object_path, interfaces)
        except Exception:  # noqa: BLE001
            logger.exception("InterfacesRemoved handling failed")

    def _on_properties_changed(self, path: str, _iface: str, _signal: str, args: Tuple[Any, ...]) -> None:
        try:
            if not args or args[0] != DEVICE_INTERFACE:
                return
            changed: Dict[str, Any] = args[1] if len(args) > 1 else {}
            device = self.registry.get_by_path(path)
            if device is not None:
                device.properties_changed(changed)
            elif "UUIDs" in changed and self._filter and self._passes_filter(changed):
                self._admit_late(path)
        except Exception:  # noqa: BLE001
            logger.exception("PropertiesChanged handling failed")

    def _admit_late(self, object_path: str) -> None:
        """Admit a device whose matching UUIDs arrived after it appeared."""
        try:
            props = self._bus.get_all_properties(object_path, DEVICE_INTERFACE)
        except BusCallError as exc:
            logger.debug(f"Fetching properties of {object_path} failed: {exc}")
            return
        self._admit(object_path, props)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def get_device(self, address: str) -> Optional[DeviceMirror]:
        return self.registry.get_by_address(address)

    def require_device(self, address: str) -> DeviceMirror:
        device = self.get_device(address)
        if device is None:
            raise DeviceNotFoundError(address.upper())
        return device

    def get_device_by_path(self, object_path: str) -> Optional[DeviceMirror]:
        return self.registry.get_by_path(object_path)

    def get_discovered_devices(self) -> List[DeviceMirror]:
        return self.registry.devices()

    def remove_device(self, address: str) -> bool:
        device = self.registry.get_by_address(address)
        if device is None:
            return False
        device.try_disconnect()
        self.registry.evict_path(device.object_path)
        device.release()
        print_and_log(f"[*] Removed {device.address}", LOG__DEBUG)
        return True
