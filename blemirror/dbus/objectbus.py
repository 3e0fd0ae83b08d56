"""Abstract object-bus contract consumed by the mirror layer.

The bus exposes remote objects by path, each implementing a set of interfaces
with a property map, plus synchronous method calls and asynchronous signals.
Implementations convert every transport value into plain Python types
(``str``, ``bool``, ``int``, ``bytes``/``list``, ``dict``) and raise
:class:`~blemirror.core.errors.BusCallError` for every failure.
"""

from __future__ import annotations

import abc
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from blemirror.core.errors import BusCallError

# (object_path, interface, signal_name, args)
SignalCallback = Callable[[str, str, str, Tuple[Any, ...]], None]

ManagedObjects = Dict[str, Dict[str, Dict[str, Any]]]

__all__ = ["ObjectBus", "BusCallError", "SignalCallback", "ManagedObjects"]


class ObjectBus(abc.ABC):
    """RPC + pub/sub primitive over a remote object tree."""

    @abc.abstractmethod
    def start(self) -> None:
        """Open the session and start delivering signals."""

    @abc.abstractmethod
    def close(self) -> None:
        """Drop every subscription and stop signal delivery."""

    @abc.abstractmethod
    def call(
        self,
        object_path: str,
        interface: str,
        method: str,
        args: Sequence[Any] = (),
        signature: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Invoke *method* and return its (converted) reply.

        *timeout* is in seconds; ``None`` uses the bus default.
        """

    @abc.abstractmethod
    def get_property(self, object_path: str, interface: str, name: str) -> Any:
        ...

    @abc.abstractmethod
    def get_all_properties(self, object_path: str, interface: str) -> Dict[str, Any]:
        ...

    @abc.abstractmethod
    def set_property(self, object_path: str, interface: str, name: str, value: Any) -> None:
        ...

    @abc.abstractmethod
    def get_managed_objects(self) -> ManagedObjects:
        """Return ``{path: {interface: {property: value}}}`` for every live object."""

    @abc.abstractmethod
    def subscribe_signal(
        self,
        interface: str,
        signal_name: str,
        callback: SignalCallback,
        object_path: Optional[str] = None,
        arg0: Optional[str] = None,
    ) -> int:
        """Register *callback* and return a non-zero token for :meth:`unsubscribe`.

        *object_path* restricts delivery to one object; *arg0* matches the
        first string argument (the interface name for ``PropertiesChanged``).
        """

    @abc.abstractmethod
    def unsubscribe(self, token: int) -> None:
        """Remove the subscription; unknown tokens are ignored."""
