import os
import tempfile

# Keep log files out of the user's data directory; must run before the
# package (and its logging module) is imported.
os.environ.setdefault("BLEMIRROR_LOG_DIR", tempfile.mkdtemp(prefix="blemirror-logs-"))

import pytest

from blemirror.core.config import ClientConfig
from blemirror.core.constants import DEVICE_INTERFACE
from blemirror.core.policies import RetryPolicy
from blemirror.dbuslayer.device_le import DeviceMirror
from blemirror.dbuslayer.manager import DeviceManager

from tests.fakes import (
    FakeObjectBus,
    TimerRecorder,
    add_adapter,
    add_device,
    install_bluez_handlers,
)


@pytest.fixture
def sleeps():
    """Records every poll-loop sleep instead of sleeping."""
    return []

@pytest.fixture
def config(sleeps):
    def _sleep(seconds):
        sleeps.append(seconds)

    return ClientConfig(
        connect_poll=RetryPolicy(5, 0.1, sleep=_sleep),
        disconnect_poll=RetryPolicy(3, 0.1, sleep=_sleep),
        services_poll=RetryPolicy(4, 0.1, sleep=_sleep),
        power_poll=RetryPolicy(3, 0.1, sleep=_sleep),
        services_grace_delay=2.0,
    )

@pytest.fixture
def bus():
    bus = FakeObjectBus()
    add_adapter(bus)
    install_bluez_handlers(bus)
    return bus

@pytest.fixture
def timers():
    return TimerRecorder()

@pytest.fixture
def device_path(bus):
    return add_device(bus)

@pytest.fixture
def device(bus, device_path, config, timers):
    return DeviceMirror(bus, device_path, bus.props(device_path, DEVICE_INTERFACE), config, timer_factory=timers)

@pytest.fixture
def manager(bus, config, timers):
    mgr = DeviceManager(bus, config, timer_factory=timers)
    mgr.initialize()
    yield mgr
    mgr.shutdown()
