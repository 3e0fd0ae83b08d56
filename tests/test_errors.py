import pytest

from blemirror.core import constants as C
from blemirror.core.errors import (
    BestEffortResult,
    BlemirrorError,
    BusCallError,
    ConnectCallFailedError,
    ConnectTimeoutError,
    RemoteCallFailedError,
    is_timeout,
    map_bus_error,
)


@pytest.mark.parametrize(
    "name, code",
    [
        (C.DBUS_ERROR_NO_REPLY, C.RESULT_ERR_NO_REPLY),
        (C.BLUEZ_ERROR_IN_PROGRESS, C.RESULT_ERR_ACTION_IN_PROGRESS),
        (C.BLUEZ_ERROR_NOT_PERMITTED, C.RESULT_ERR_ACCESS_DENIED),
        (C.BLUEZ_ERROR_NOT_CONNECTED, C.RESULT_ERR_NOT_CONNECTED),
        (C.BLUEZ_ERROR_FAILED, C.RESULT_ERR_METHOD_CALL_FAIL),
    ],
)
def test_map_bus_error_codes(name, code):
    mapped = map_bus_error(BusCallError(name, "boom"), "ReadValue")
    assert isinstance(mapped, RemoteCallFailedError)
    assert isinstance(mapped, BlemirrorError)
    assert mapped.code == code
    assert "ReadValue" in str(mapped)


def test_timeout_detection():
    assert is_timeout(BusCallError(C.DBUS_ERROR_TIMEOUT))
    assert not is_timeout(BusCallError(C.BLUEZ_ERROR_FAILED))


def test_connect_timeout_is_a_connect_failure():
    err = ConnectTimeoutError("AA:BB:CC:DD:EE:FF")
    assert isinstance(err, ConnectCallFailedError)
    assert err.code == C.RESULT_ERR_NO_REPLY


def test_best_effort_result_truthiness():
    assert BestEffortResult(attempted=False, ok=True)
    assert not BestEffortResult(attempted=True, ok=False, error=RuntimeError("x"))
