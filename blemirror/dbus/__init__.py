"""
Object-bus access for blemirror.

``objectbus`` holds the transport-neutral contract; ``system_bus`` binds it to
the system D-Bus and is imported on demand so the rest of the package loads
without dbus-python.
"""

from .objectbus import BusCallError, ObjectBus

__all__ = ["ObjectBus", "BusCallError", "SystemObjectBus"]


def __getattr__(name):
    if name == "SystemObjectBus":
        from .system_bus import SystemObjectBus
        return SystemObjectBus
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
