"""
Command-line interface for blemirror.
"""

import argparse
import os
import sys
import time

# Importing log initialises the per-category handlers
from blemirror.core.log import set_level

from . import __version__

LOG_LEVEL_ENV_VAR = "BLEMIRROR_LOG_LEVEL"


def parse_args(args=None):
    parser = argparse.ArgumentParser(
        description="blemirror - BLE central client mirroring the BlueZ object tree"
    )
    parser.add_argument("--version", action="version", version=f"blemirror {__version__}")
    parser.add_argument("--config", help="YAML configuration file", default=None)

    subparsers = parser.add_subparsers(dest="mode", help="Operation mode")

    # Interactive mode (default)
    subparsers.add_parser("interactive", help="Interactive shell")

    # Scan mode
    scan_parser = subparsers.add_parser("scan", help="Discover BLE devices")
    scan_parser.add_argument("--timeout", type=float, default=10.0, help="Scan duration (s)")
    scan_parser.add_argument("--uuid", action="append", default=[], help="Only admit devices advertising this service UUID (repeatable)")

    # One-shot characteristic operations
    def _target(sub):
        sub.add_argument("address", help="Target device address")
        sub.add_argument("service", help="Service UUID ('-' for any)")
        sub.add_argument("characteristic", help="Characteristic UUID")
        sub.add_argument("--scan-timeout", type=float, default=10.0, help="Seconds to look for an unknown device")

    read_parser = subparsers.add_parser("read", help="Read a characteristic")
    _target(read_parser)

    write_parser = subparsers.add_parser("write", help="Write hex bytes to a characteristic")
    _target(write_parser)
    write_parser.add_argument("data", help="Hex payload, e.g. 01ff or '01 ff'")

    notify_parser = subparsers.add_parser("notify", help="Print notifications from a characteristic")
    _target(notify_parser)
    notify_parser.add_argument("--duration", type=float, default=30.0, help="Seconds to listen")

    return parser.parse_args(args)


def _service_arg(value):
    return None if value in ("-", "*", "any") else value


def _locate_device(manager, address, scan_timeout):
    """Return the mirror for *address*, scanning for it when unknown."""
    from blemirror.core.policies import RetryPolicy

    device = manager.get_device(address)
    if device is not None:
        return device
    manager.start_discovery()
    try:
        attempts = max(1, int(scan_timeout / 0.5))
        RetryPolicy(attempts, 0.5).wait_until(lambda: manager.get_device(address) is not None)
    finally:
        manager.stop_discovery()
    return manager.require_device(address)


def _connected_device(manager, args):
    device = _locate_device(manager, args.address, args.scan_timeout)
    if not device.connect():
        raise RuntimeError(f"{device.address} did not report a connection")
    device.refresh_services()
    return device


def _run_scan(manager, args):
    devices = manager.scan(args.timeout, args.uuid)
    for dev in devices:
        rssi = f" RSSI={dev.rssi}" if dev.rssi is not None else ""
        print(f"{dev.address}  {dev.display_name}{rssi}")
    print(f"[*] {len(devices)} device(s) found")
    return 0


def _run_read(manager, args):
    from blemirror.ble_ops.conversion import bytes_to_hex_string

    device = _connected_device(manager, args)
    data = device.read(_service_arg(args.service), args.characteristic)
    print(bytes_to_hex_string(data))
    return 0


def _run_write(manager, args):
    from blemirror.ble_ops.conversion import hex_string_to_bytes

    payload = hex_string_to_bytes(args.data)
    device = _connected_device(manager, args)
    device.write(_service_arg(args.service), args.characteristic, payload)
    print(f"[+] Wrote {len(payload)} bytes")
    return 0


def _run_notify(manager, args):
    from blemirror.ble_ops.conversion import bytes_to_hex_string

    def _print(path, data):
        print(f"{path}: {bytes_to_hex_string(data)}", flush=True)

    device = _connected_device(manager, args)
    service = _service_arg(args.service)
    device.start_notifications(service, args.characteristic, _print)
    try:
        time.sleep(args.duration)
    finally:
        device.stop_notifications(service, args.characteristic)
    return 0


_ONE_SHOT = {
    "scan": _run_scan,
    "read": _run_read,
    "write": _run_write,
    "notify": _run_notify,
}


def main(args=None):
    """Main entry point for blemirror."""
    args = parse_args(args)

    # Honour BLEMIRROR_LOG_LEVEL so users can tweak verbosity
    _lvl = os.getenv(LOG_LEVEL_ENV_VAR)
    if _lvl:
        set_level(_lvl)

    try:
        from blemirror.core.config import load_config
        from blemirror.dbuslayer.manager import DeviceManager

        config = load_config(args.config)
        manager = DeviceManager(config=config)

        if args.mode in _ONE_SHOT:
            with manager:
                return _ONE_SHOT[args.mode](manager, args)

        from blemirror.modes.interactive import main as _interactive_main

        return _interactive_main(manager) or 0

    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
