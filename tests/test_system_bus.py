import pytest

dbus = pytest.importorskip("dbus")
pytest.importorskip("gi")

from blemirror.core.errors import BusCallError  # noqa: E402
from blemirror.dbus.system_bus import SystemObjectBus, dbus_to_python, python_to_dbus  # noqa: E402


def test_dbus_to_python_unwraps_nested_values():
    reply = dbus.Dictionary(
        {
            dbus.String("Address"): dbus.String("AA:BB:CC:DD:EE:FF"),
            dbus.String("Connected"): dbus.Boolean(True),
            dbus.String("RSSI"): dbus.Int16(-60),
            dbus.String("Value"): dbus.Array([dbus.Byte(1), dbus.Byte(255)], signature="y"),
            dbus.String("UUIDs"): dbus.Array([dbus.String("0000180d-0000-1000-8000-00805f9b34fb")], signature="s"),
        },
        signature="sv",
    )

    assert dbus_to_python(reply) == {
        "Address": "AA:BB:CC:DD:EE:FF",
        "Connected": True,
        "RSSI": -60,
        "Value": b"\x01\xff",
        "UUIDs": ["0000180d-0000-1000-8000-00805f9b34fb"],
    }
    assert type(dbus_to_python(dbus.Boolean(False))) is bool


def test_python_to_dbus_wraps_ambiguous_values():
    assert isinstance(python_to_dbus(True), dbus.Boolean)
    assert isinstance(python_to_dbus(b"\x01"), dbus.ByteArray)
    wrapped = python_to_dbus({"Transport": "le", "UUIDs": ["180d"]})
    assert wrapped.signature == "sv"
    assert wrapped["UUIDs"].signature == "s"
    assert python_to_dbus(5) == 5


def test_calls_before_start_fail():
    with pytest.raises(BusCallError, match="Disconnected"):
        SystemObjectBus().get_managed_objects()
