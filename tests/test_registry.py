import pytest

from blemirror.dbuslayer.device_le import DeviceMirror
from blemirror.dbuslayer.registry import DeviceRegistry

from tests.fakes import DEVICE_ADDRESS, device_path, device_props


@pytest.fixture
def make(bus, config, timers):
    def _make(address=DEVICE_ADDRESS, path=None):
        return DeviceMirror(bus, path or device_path(address), device_props(address), config, timer_factory=timers)

    return _make


def test_insert_and_lookup(make):
    registry = DeviceRegistry()
    dev = make()

    assert registry.insert(dev)
    assert len(registry) == 1
    assert dev.object_path in registry
    assert registry.get_by_path(dev.object_path) is dev
    assert registry.get_by_address(DEVICE_ADDRESS.lower()) is dev


def test_same_path_is_not_inserted_twice(make):
    registry = DeviceRegistry()
    first = make()
    registry.insert(first)

    assert not registry.insert(make())
    assert registry.get_by_path(first.object_path) is first


def test_new_path_for_known_address_displaces_old_entry(make, timers):
    registry = DeviceRegistry()
    old = make()
    old.properties_changed({"Connected": True})
    registry.insert(old)
    new = make(path="/org/bluez/hci1/dev_AA_BB_CC_DD_EE_FF")

    assert registry.insert(new)

    assert len(registry) == 1
    assert registry.get_by_address(DEVICE_ADDRESS) is new
    assert old.object_path not in registry
    assert timers.last.cancelled


def test_owner_of_requires_strict_prefix(make):
    registry = DeviceRegistry()
    dev = make()
    registry.insert(dev)

    assert registry.owner_of(dev.object_path + "/service000a/char000b") is dev
    assert registry.owner_of(dev.object_path) is None
    assert registry.owner_of(dev.object_path + "0/service000a") is None


def test_evict(make):
    registry = DeviceRegistry()
    a = make("AA:AA:AA:AA:AA:AA")
    b = make("BB:BB:BB:BB:BB:BB")
    registry.insert(a)
    registry.insert(b)

    assert registry.evict_path(a.object_path) is a
    assert registry.get_by_address(a.address) is None
    assert registry.evict_path(a.object_path) is None
    assert registry.evict_path(b.object_path) is b
    assert len(registry) == 0


def test_clear_returns_removed(make):
    registry = DeviceRegistry()
    devices = [make("AA:AA:AA:AA:AA:AA"), make("BB:BB:BB:BB:BB:BB")]
    for dev in devices:
        registry.insert(dev)

    assert set(map(id, registry.clear())) == set(map(id, devices))
    assert registry.devices() == []
    assert registry.get_by_address("AA:AA:AA:AA:AA:AA") is None
