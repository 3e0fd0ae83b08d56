"""
Adapter D-Bus Interface
Resolves the local *Adapter1* object and wraps its power and discovery calls.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from blemirror.core.config import ClientConfig
from blemirror.core.constants import ADAPTER_INTERFACE, BLUEZ_NAMESPACE
from blemirror.core.errors import (
    AdapterPowerOnFailedError,
    BestEffortResult,
    BusCallError,
    DiscoveryStartFailedError,
    NoAdapterFoundError,
    map_bus_error,
)
from blemirror.core.log import get_logger
from blemirror.dbus.objectbus import ManagedObjects, ObjectBus

logger = get_logger(__name__)

__all__ = ["Adapter", "find_adapter_path"]


def find_adapter_path(objects: ManagedObjects, adapter_name: Optional[str] = None) -> str:
    """Pick the adapter object from a tree snapshot.

    The first path (sorted) under ``/org/bluez/`` implementing *Adapter1*
    wins; *adapter_name* (``hci1``) restricts the match to that adapter.
    """
    for path in sorted(objects):
        if not path.startswith(BLUEZ_NAMESPACE) or ADAPTER_INTERFACE not in objects[path]:
            continue
        if adapter_name and path.rsplit("/", 1)[-1] != adapter_name:
            continue
        return path
    raise NoAdapterFoundError(adapter_name)


class Adapter:
    """Handle to the local radio adapter, resolved once."""

    def __init__(self, bus: ObjectBus, object_path: str, config: Optional[ClientConfig] = None):
        self._bus = bus
        self._config = config or ClientConfig()
        self.object_path = object_path
        self.powered = False

    @classmethod
    def resolve(cls, bus: ObjectBus, config: Optional[ClientConfig] = None) -> "Adapter":
        config = config or ClientConfig()
        try:
            objects = bus.get_managed_objects()
        except BusCallError as exc:
            logger.error(f"Failed to get managed objects: {exc}")
            raise NoAdapterFoundError(config.adapter_name) from exc
        adapter = cls(bus, find_adapter_path(objects, config.adapter_name), config)
        adapter.powered = bool(objects[adapter.object_path][ADAPTER_INTERFACE].get("Powered", False))
        return adapter

    @property
    def name(self) -> str:
        return self.object_path.rsplit("/", 1)[-1]

    # ------------------------------------------------------------------
    # Power
    # ------------------------------------------------------------------
    def is_powered(self) -> bool:
        try:
            self.powered = bool(self._bus.get_property(self.object_path, ADAPTER_INTERFACE, "Powered"))
        except BusCallError as exc:
            logger.debug(f"Reading Powered of {self.object_path} failed: {exc}")
            return False
        return self.powered

    def power_on(self) -> None:
        """Ensure the adapter reports powered, or raise."""
        if self.is_powered():
            return
        logger.info(f"Powering on adapter {self.name}")
        try:
            self._bus.set_property(self.object_path, ADAPTER_INTERFACE, "Powered", True)
        except BusCallError as exc:
            raise AdapterPowerOnFailedError(self.object_path, str(exc)) from exc
        if not self._config.power_poll.wait_until(self.is_powered):
            raise AdapterPowerOnFailedError(self.object_path, "Powered still false")

    def power_off(self) -> BestEffortResult:
        try:
            self._bus.set_property(self.object_path, ADAPTER_INTERFACE, "Powered", False)
        except BusCallError as exc:
            logger.warning(f"Adapter power-off failed: {exc}")
            return BestEffortResult(attempted=True, ok=False, error=map_bus_error(exc, "power off"))
        self.powered = False
        return BestEffortResult(attempted=True, ok=True)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------
    def set_discovery_filter(self, uuids: Iterable[str]) -> bool:
        """Restrict discovery to LE (and *uuids* when given); failure is logged."""
        discovery_filter: Dict[str, Any] = {"Transport": "le"}
        uuid_list = sorted(uuids)
        if uuid_list:
            discovery_filter["UUIDs"] = uuid_list
        try:
            self._bus.call(
                self.object_path,
                ADAPTER_INTERFACE,
                "SetDiscoveryFilter",
                (discovery_filter,),
                signature="a{sv}",
                timeout=self._config.discovery_timeout,
            )
        except BusCallError as exc:
            logger.warning(f"Failed to set discovery filter: {exc}")
            return False
        return True

    def start_discovery(self) -> None:
        try:
            self._bus.call(
                self.object_path,
                ADAPTER_INTERFACE,
                "StartDiscovery",
                timeout=self._config.discovery_timeout,
            )
        except BusCallError as exc:
            raise DiscoveryStartFailedError(str(exc)) from exc

    def stop_discovery(self) -> BestEffortResult:
        try:
            self._bus.call(
                self.object_path,
                ADAPTER_INTERFACE,
                "StopDiscovery",
                timeout=self._config.discovery_timeout,
            )
        except BusCallError as exc:
            # The adapter may already have stopped on its own
            logger.debug(f"StopDiscovery failed: {exc}")
            return BestEffortResult(attempted=True, ok=False, error=map_bus_error(exc, "StopDiscovery"))
        return BestEffortResult(attempted=True, ok=True)

    def __repr__(self):
        return f"<Adapter {self.object_path} powered={self.powered}>"
