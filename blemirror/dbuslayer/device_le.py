#!/usr/bin/python3

"""Low-energy device mirror: connection and service-discovery state machine.

A :class:`DeviceMirror` tracks one BlueZ *Device1* object.  Its flags are
written both by caller-driven poll loops (``connect``/``disconnect``/
``refresh_services``) and by ``PropertiesChanged`` signals routed in from the
manager; whichever arrives last wins.  All field access goes through the
mirror's re-entrant lock, bus calls are issued outside it.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from blemirror.ble_ops.conversion import normalize_uuid
from blemirror.core.config import ClientConfig
from blemirror.core.constants import (
    DEVICE_INTERFACE,
    GATT_CHARACTERISTIC_INTERFACE,
    GATT_SERVICE_INTERFACE,
)
from blemirror.core.errors import (
    BusCallError,
    CharacteristicNotFoundError,
    ConnectCallFailedError,
    ConnectTimeoutError,
    DisconnectCallFailedError,
    BestEffortResult,
    is_timeout,
    map_bus_error,
)
from blemirror.core.log import print_and_log, LOG__DEBUG, LOG__GENERAL, LOG__USER, get_logger
from blemirror.dbus.objectbus import ManagedObjects, ObjectBus
from blemirror.dbuslayer.characteristic import CharacteristicMirror
from blemirror.dbuslayer.notifications import NotificationCallback

logger = get_logger(__name__)

UNKNOWN_DEVICE_NAME = "Unknown Device"

__all__ = ["DeviceMirror", "DeviceState", "UNKNOWN_DEVICE_NAME"]


class DeviceState(Enum):
    """Connection state of a mirrored device."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED_SERVICES_UNRESOLVED = "connected (services unresolved)"
    CONNECTED_SERVICES_RESOLVED = "connected (services resolved)"
    DISCONNECTING = "disconnecting"


class DeviceMirror:
    """Local mirror of one remote peripheral.

    Parameters
    ----------
    bus
        Object bus the device lives on.
    object_path
        Bus identity of the *Device1* object.
    properties
        Initial *Device1* property map; must carry ``Address``.
    config
        Timeouts, poll policies and the grace delay.
    timer_factory
        ``threading.Timer``-compatible factory for the deferred enumeration.
    """

    def __init__(
        self,
        bus: ObjectBus,
        object_path: str,
        properties: Dict[str, Any],
        config: Optional[ClientConfig] = None,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        address = properties.get("Address")
        if not isinstance(address, str) or not address:
            raise ValueError(f"device {object_path} has no Address")

        self._bus = bus
        self._config = config or ClientConfig()
        self._timer_factory = timer_factory
        self._lock = threading.RLock()

        self.object_path = object_path
        self.address = address.upper()
        self.name: Optional[str] = None
        self.alias: Optional[str] = None
        self.rssi: Optional[int] = None
        self.paired = False
        self.connected = False
        self.services_resolved = False
        self.advertised_service_ids: frozenset = frozenset()
        self.characteristics: Dict[str, CharacteristicMirror] = {}

        self._transition: Optional[DeviceState] = None
        self._deferred_job = None
        self._released = False

        self._apply_properties(properties)

    # ------------------------------------------------------------------
    # Property bookkeeping
    # ------------------------------------------------------------------
    def _apply_properties(self, props: Dict[str, Any]) -> None:
        with self._lock:
            if "Name" in props:
                self.name = props["Name"]
            if "Alias" in props:
                self.alias = props["Alias"]
            if "RSSI" in props:
                self.rssi = props["RSSI"]
            if "Paired" in props:
                self.paired = bool(props["Paired"])
            if "UUIDs" in props:
                self.advertised_service_ids = frozenset(
                    normalize_uuid(u) for u in props["UUIDs"] or () if isinstance(u, str)
                )
            if "Connected" in props:
                self.connected = bool(props["Connected"])
            if "ServicesResolved" in props:
                self.services_resolved = bool(props["ServicesResolved"])

    @property
    def display_name(self) -> str:
        return self.name or self.alias or UNKNOWN_DEVICE_NAME

    @property
    def state(self) -> DeviceState:
        with self._lock:
            if self._transition is not None:
                return self._transition
            if not self.connected:
                return DeviceState.DISCONNECTED
            if self.services_resolved:
                return DeviceState.CONNECTED_SERVICES_RESOLVED
            return DeviceState.CONNECTED_SERVICES_UNRESOLVED

    def _read_flag(self, name: str) -> Optional[bool]:
        """Re-read a boolean *Device1* property; ``None`` when the read fails."""
        try:
            value = bool(self._bus.get_property(self.object_path, DEVICE_INTERFACE, name))
        except BusCallError as exc:
            logger.debug(f"Reading {name} of {self.address} failed: {exc}")
            return None
        with self._lock:
            if name == "Connected":
                self.connected = value
            elif name == "ServicesResolved":
                self.services_resolved = value
        return value

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------
    def connect(self) -> bool:
        """Connect and wait (bounded) for *Connected* to read true.

        Returns ``False`` when the poll budget runs out; the call itself
        failing raises :class:`ConnectCallFailedError`.
        """
        with self._lock:
            if self.connected:
                return True
            self._transition = DeviceState.CONNECTING
            self._cancel_deferred_job()
            stale = self._take_characteristics()
        self._release_all(stale)

        print_and_log(f"[*] Attempting connection to {self.address}", LOG__USER)
        try:
            self._bus.call(
                self.object_path,
                DEVICE_INTERFACE,
                "Connect",
                timeout=self._config.connect_timeout,
            )
        except BusCallError as exc:
            with self._lock:
                self._transition = None
            print_and_log(f"[-] Connect to {self.address} failed: {exc}", LOG__DEBUG)
            if is_timeout(exc):
                raise ConnectTimeoutError(self.address, str(exc)) from exc
            raise ConnectCallFailedError(self.address, str(exc)) from exc

        try:
            connected = self._config.connect_poll.wait_until(lambda: self._read_flag("Connected") is True)
        finally:
            with self._lock:
                self._transition = None

        if connected:
            print_and_log(f"[+] Connected to {self.address}", LOG__GENERAL)
        else:
            print_and_log(
                f"[-] {self.address} did not report Connected within {self._config.connect_poll.budget:.1f}s",
                LOG__GENERAL,
            )
        return connected

    def disconnect(self) -> bool:
        """Disconnect and wait (bounded) for *Connected* to read false."""
        with self._lock:
            if not self.connected:
                return True
            self._cancel_deferred_job()
            self._transition = DeviceState.DISCONNECTING

        print_and_log(f"[*] Disconnecting from {self.address}", LOG__USER)
        try:
            self._bus.call(
                self.object_path,
                DEVICE_INTERFACE,
                "Disconnect",
                timeout=self._config.disconnect_timeout,
            )
        except BusCallError as exc:
            with self._lock:
                self._transition = None
            print_and_log(f"[-] Disconnect failed: {exc}", LOG__DEBUG)
            raise DisconnectCallFailedError(self.address, str(exc)) from exc

        try:
            disconnected = self._config.disconnect_poll.wait_until(lambda: self._read_flag("Connected") is False)
        finally:
            with self._lock:
                self._transition = None

        if disconnected:
            with self._lock:
                self.services_resolved = False
                stale = self._take_characteristics()
            self._release_all(stale)
            print_and_log(f"[+] Disconnected from {self.address}", LOG__GENERAL)
        return disconnected

    def try_disconnect(self) -> BestEffortResult:
        """Disconnect for teardown; failures are reported in the result."""
        if not self.connected:
            return BestEffortResult(attempted=False, ok=True)
        try:
            ok = self.disconnect()
        except DisconnectCallFailedError as exc:
            logger.warning(f"Best-effort disconnect of {self.address} failed: {exc}")
            return BestEffortResult(attempted=True, ok=False, error=exc)
        return BestEffortResult(attempted=True, ok=ok)

    def pair(self) -> bool:
        try:
            self._bus.call(
                self.object_path,
                DEVICE_INTERFACE,
                "Pair",
                timeout=self._config.pair_timeout,
            )
        except BusCallError as exc:
            print_and_log(f"[-] Pairing failed: {exc}", LOG__DEBUG)
            raise map_bus_error(exc, f"Pair {self.address}") from exc
        with self._lock:
            self.paired = True
        print_and_log(f"[+] Paired with {self.address}", LOG__GENERAL)
        return True

    # ------------------------------------------------------------------
    # Signal hooks, called by the manager on the event-loop thread
    # ------------------------------------------------------------------
    def properties_changed(self, changed: Dict[str, Any]) -> None:
        """Apply a *Device1* ``PropertiesChanged`` payload."""
        connected = changed.get("Connected")
        resolved = changed.get("ServicesResolved")
        self._apply_properties({k: v for k, v in changed.items() if k not in ("Connected", "ServicesResolved")})

        if connected is not None:
            self._connected_changed(bool(connected))
        if resolved is not None:
            self._services_resolved_changed(bool(resolved))

    def _connected_changed(self, value: bool) -> None:
        stale: List[CharacteristicMirror] = []
        with self._lock:
            if self._released:
                return
            self.connected = value
            if value:
                print_and_log(f"[*] Device {self.address} connected", LOG__DEBUG)
                if not self.services_resolved:
                    self._schedule_deferred_job()
            else:
                print_and_log(f"[*] Device {self.address} disconnected", LOG__DEBUG)
                self._cancel_deferred_job()
                self.services_resolved = False
                stale = self._take_characteristics()
        self._release_all(stale)

    def _services_resolved_changed(self, value: bool) -> None:
        with self._lock:
            if self._released:
                return
            self.services_resolved = value
            enumerate_now = value and self.connected
            if enumerate_now:
                self._cancel_deferred_job()
        if enumerate_now:
            print_and_log(f"[+] Services resolved for {self.address}", LOG__DEBUG)
            self._enumerate_characteristics()

    def interfaces_removed(self, object_path: str, interfaces: Iterable[str] = ()) -> None:
        """Drop mirrors for a vanished service or characteristic object."""
        prefix = object_path + "/"
        with self._lock:
            gone = [
                path for path in self.characteristics
                if path == object_path or path.startswith(prefix)
            ]
            stale = [self.characteristics.pop(path) for path in gone]
        if stale:
            print_and_log(
                f"[DEBUG] Device {self.address} dropped {len(stale)} characteristic(s) under {object_path}",
                LOG__DEBUG,
            )
        self._release_all(stale)

    # ------------------------------------------------------------------
    # Deferred enumeration
    # ------------------------------------------------------------------
    def _schedule_deferred_job(self) -> None:
        self._cancel_deferred_job()
        job = self._timer_factory(self._config.services_grace_delay, self._deferred_refresh)
        job.daemon = True
        self._deferred_job = job
        job.start()

    def _cancel_deferred_job(self) -> None:
        job, self._deferred_job = self._deferred_job, None
        if job is not None:
            job.cancel()

    def _deferred_refresh(self) -> None:
        with self._lock:
            self._deferred_job = None
            if self._released or not self.connected or self.characteristics:
                return
        try:
            self.refresh_services()
        except Exception:  # noqa: BLE001 - timer thread has no caller to report to
            logger.exception(f"Deferred service refresh for {self.address} failed")

    # ------------------------------------------------------------------
    # Service discovery
    # ------------------------------------------------------------------
    def refresh_services(self) -> bool:
        """Wait (bounded) for *ServicesResolved*, then enumerate regardless.

        Returns True iff at least one characteristic was mirrored.
        """
        if not self.connected:
            return False

        resolved = self._config.services_poll.wait_until(
            lambda: self._released or self._read_flag("ServicesResolved") is True
        )
        if self._released:
            return False
        if not resolved:
            print_and_log(
                f"[*] Services of {self.address} not resolved after {self._config.services_poll.budget:.1f}s, "
                "discovering characteristics anyway",
                LOG__GENERAL,
            )
        return self._enumerate_characteristics() > 0

    def _enumerate_characteristics(self) -> int:
        with self._lock:
            stale = self._take_characteristics()
        self._release_all(stale)

        try:
            objects: ManagedObjects = self._bus.get_managed_objects()
        except BusCallError as exc:
            logger.warning(f"Enumerating objects for {self.address} failed: {exc}")
            return 0

        fresh = self._build_characteristics(objects)

        with self._lock:
            if self._released or not self.connected:
                # Disconnected while enumerating
                discard = list(fresh.values())
                fresh = {}
            else:
                discard = self._take_characteristics()
                self.characteristics = fresh
        self._release_all(discard)

        print_and_log(f"[*] Discovered {len(fresh)} characteristics on {self.address}", LOG__GENERAL)
        return len(fresh)

    def _build_characteristics(self, objects: ManagedObjects) -> Dict[str, CharacteristicMirror]:
        prefix = self.object_path + "/"
        nested = {path: ifaces for path, ifaces in objects.items() if path.startswith(prefix)}

        service_uuids: Dict[str, str] = {}
        for path, ifaces in nested.items():
            uuid = (ifaces.get(GATT_SERVICE_INTERFACE) or {}).get("UUID")
            if isinstance(uuid, str):
                service_uuids[path] = uuid

        built: Dict[str, CharacteristicMirror] = {}
        for path in sorted(nested):
            props = nested[path].get(GATT_CHARACTERISTIC_INTERFACE)
            if props is None:
                continue
            try:
                built[path] = CharacteristicMirror.from_properties(
                    self._bus,
                    path,
                    self.object_path,
                    props,
                    service_uuids=service_uuids,
                    config=self._config,
                )
            except (ValueError, TypeError, AttributeError) as exc:
                logger.warning(f"Skipping malformed characteristic {path}: {exc}")
        return built

    def _take_characteristics(self) -> List[CharacteristicMirror]:
        # Caller holds the lock
        stale = list(self.characteristics.values())
        self.characteristics = {}
        return stale

    @staticmethod
    def _release_all(mirrors: Iterable[CharacteristicMirror]) -> None:
        for mirror in mirrors:
            mirror.release()

    # ------------------------------------------------------------------
    # Characteristic lookup and delegation
    # ------------------------------------------------------------------
    def get_characteristics(self) -> List[CharacteristicMirror]:
        with self._lock:
            return list(self.characteristics.values())

    def get_characteristic_by_path(self, object_path: str) -> Optional[CharacteristicMirror]:
        with self._lock:
            return self.characteristics.get(object_path)

    def get_characteristic(self, service_uuid: Optional[str], char_uuid: str) -> Optional[CharacteristicMirror]:
        """Return the characteristic matching *char_uuid*.

        With a *service_uuid* the parent service must match as well; without
        one the first match (by object path) wins.
        """
        wanted = normalize_uuid(char_uuid)
        service = normalize_uuid(service_uuid) if service_uuid else None
        with self._lock:
            for mirror in self.characteristics.values():
                if mirror.uuid != wanted:
                    continue
                if service is None or mirror.service_uuid == service:
                    return mirror
        return None

    def _find_characteristic(self, service_uuid: Optional[str], char_uuid: str) -> CharacteristicMirror:
        mirror = self.get_characteristic(service_uuid, char_uuid)
        if mirror is None:
            raise CharacteristicNotFoundError(char_uuid, service_uuid or None)
        return mirror

    def read(self, service_uuid: Optional[str], char_uuid: str) -> bytes:
        return self._find_characteristic(service_uuid, char_uuid).read()

    def write(self, service_uuid: Optional[str], char_uuid: str, data: bytes) -> None:
        self._find_characteristic(service_uuid, char_uuid).write(data)

    def start_notifications(self, service_uuid: Optional[str], char_uuid: str, callback: NotificationCallback) -> None:
        self._find_characteristic(service_uuid, char_uuid).start_notifications(callback)

    def stop_notifications(self, service_uuid: Optional[str], char_uuid: str) -> BestEffortResult:
        return self._find_characteristic(service_uuid, char_uuid).stop_notifications()

    def has_service(self, service_uuid: str) -> bool:
        wanted = normalize_uuid(service_uuid)
        with self._lock:
            if wanted in self.advertised_service_ids:
                return True
            return any(m.service_uuid == wanted for m in self.characteristics.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def release(self) -> None:
        """Cancel pending work and drop local subscriptions (no bus calls)."""
        with self._lock:
            self._released = True
            self._cancel_deferred_job()
            stale = self._take_characteristics()
        self._release_all(stale)

    def describe(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "path": self.object_path,
                "address": self.address,
                "name": self.display_name,
                "rssi": self.rssi,
                "paired": self.paired,
                "connected": self.connected,
                "services_resolved": self.services_resolved,
                "state": self.state.value,
                "uuids": sorted(self.advertised_service_ids),
                "characteristics": [m.describe() for m in self.characteristics.values()],
            }

    def __repr__(self):
        return f"<DeviceMirror {self.address} connected={self.connected}>"
