"""Simple text-based interactive shell.

Commands mirror the manager/device API one to one: power, scan, stop, list,
connect, disconnect, pair, services, read, write, notify and device.  A
service UUID of ``-`` means "any service".
"""

from __future__ import annotations

import shlex
from typing import Callable, Dict, List, Optional

from blemirror.ble_ops.conversion import bytes_to_hex_string, convert__hex_to_ascii, hex_string_to_bytes
from blemirror.core.config import ClientConfig
from blemirror.core.errors import BlemirrorError
from blemirror.core.log import print_and_log, LOG__GENERAL, LOG__USER
from blemirror.dbuslayer.device_le import DeviceMirror
from blemirror.dbuslayer.manager import DeviceManager

_PROMPT = "blemirror> "

_HELP = """Available commands:
  help                                   - Show this help
  quit | exit                            - Leave the shell
  power on|off                           - Power the adapter on or off
  scan [service_uuid ...]                - Start discovery (optionally filtered)
  stop                                   - Stop discovery
  list                                   - List discovered devices
  connect <address>                      - Connect and discover services
  disconnect                             - Disconnect the current device
  pair                                   - Pair with the current device
  services                               - List characteristics of the current device
  read <service_uuid> <char_uuid>        - Read a characteristic
  write <service_uuid> <char_uuid> <hex> - Write hex bytes to a characteristic
  notify <service_uuid> <char_uuid> [on|off] - Toggle notifications
  device                                 - Show the current device"""


class _Session:
    def __init__(self, manager: DeviceManager):
        self.manager = manager
        self.device: Optional[DeviceMirror] = None

    def require_device(self) -> Optional[DeviceMirror]:
        if self.device is None:
            print("[-] No device selected - use 'connect <address>' first")
        return self.device


def _service_arg(value: str) -> Optional[str]:
    return None if value in ("-", "*", "any") else value


def _on_notification(path: str, data: bytes) -> None:
    print_and_log(f"[NOTIFY] {path}: {bytes_to_hex_string(data)}", LOG__USER)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------

def _cmd_help(_session: _Session, _args: List[str]):
    print(_HELP)


def _cmd_power(session: _Session, args: List[str]):
    if not args or args[0] not in ("on", "off"):
        print(f"Usage: power on|off (currently {'on' if session.manager.is_powered() else 'off'})")
        return
    if args[0] == "on":
        session.manager.power_on()
        print("[+] Adapter powered on")
    else:
        result = session.manager.power_off()
        print("[+] Adapter powered off" if result.ok else f"[-] Power off failed: {result.error}")


def _cmd_scan(session: _Session, args: List[str]):
    session.manager.start_discovery(args)
    suffix = f" for {', '.join(args)}" if args else ""
    print_and_log(f"[*] Scanning{suffix} - 'list' shows devices, 'stop' ends the scan", LOG__GENERAL)


def _cmd_stop(session: _Session, _args: List[str]):
    result = session.manager.stop_discovery()
    if not result.attempted:
        print("[*] Not scanning")
    elif not result.ok:
        print(f"[!] Discovery stop reported: {result.error}")


def _cmd_list(session: _Session, _args: List[str]):
    devices = session.manager.get_discovered_devices()
    if not devices:
        print("No devices discovered")
        return
    for dev in devices:
        rssi = f" RSSI={dev.rssi}" if dev.rssi is not None else ""
        state = " [connected]" if dev.connected else ""
        print(f"  {dev.address}  {dev.display_name}{rssi}{state}")


def _cmd_connect(session: _Session, args: List[str]):
    if not args:
        print("Usage: connect <address>")
        return
    device = session.manager.require_device(args[0])
    if not device.connect():
        print(f"[-] {device.address} did not report a connection")
        return
    session.device = device
    print(f"[+] Connected to {device.address} ({device.display_name})")
    if device.refresh_services():
        print(f"[+] {len(device.get_characteristics())} characteristics available")
    else:
        print("[!] No characteristics found")


def _cmd_disconnect(session: _Session, _args: List[str]):
    device = session.require_device()
    if device is None:
        return
    if device.disconnect():
        print(f"[+] Disconnected from {device.address}")
    else:
        print(f"[-] {device.address} still reports connected")


def _cmd_pair(session: _Session, _args: List[str]):
    device = session.require_device()
    if device is not None and device.pair():
        print(f"[+] Paired with {device.address}")


def _cmd_services(session: _Session, _args: List[str]):
    device = session.require_device()
    if device is None:
        return
    chars = device.get_characteristics()
    if not chars:
        print("No characteristics (not connected or services not discovered)")
        return
    for char in chars:
        print(f"  {char.service_uuid or '?'}  {char.uuid}  [{char.flags_to_string()}]")


def _cmd_read(session: _Session, args: List[str]):
    if len(args) < 2:
        print("Usage: read <service_uuid> <char_uuid>")
        return
    device = session.require_device()
    if device is None:
        return
    data = device.read(_service_arg(args[0]), args[1])
    print(f"Value: {bytes_to_hex_string(data)} ({len(data)} bytes)")
    print(f"ASCII: {convert__hex_to_ascii(data)}")


def _cmd_write(session: _Session, args: List[str]):
    if len(args) < 3:
        print("Usage: write <service_uuid> <char_uuid> <hex_data>")
        return
    device = session.require_device()
    if device is None:
        return
    try:
        data = hex_string_to_bytes("".join(args[2:]))
    except ValueError as exc:
        print(f"[-] Invalid hex data: {exc}")
        return
    device.write(_service_arg(args[0]), args[1], data)
    print(f"[+] Wrote {bytes_to_hex_string(data)}")


def _cmd_notify(session: _Session, args: List[str]):
    if len(args) < 2:
        print("Usage: notify <service_uuid> <char_uuid> [on|off]")
        return
    device = session.require_device()
    if device is None:
        return
    mode = args[2] if len(args) > 2 else "on"
    if mode == "off":
        result = device.stop_notifications(_service_arg(args[0]), args[1])
        print("[+] Notifications disabled" if result.ok else f"[!] Notifications disabled locally ({result.error})")
    else:
        device.start_notifications(_service_arg(args[0]), args[1], _on_notification)
        print("[+] Notifications enabled")


def _cmd_device(session: _Session, _args: List[str]):
    device = session.require_device()
    if device is None:
        return
    info = device.describe()
    for key in ("address", "name", "path", "state", "paired", "rssi"):
        print(f"  {key:<10} {info[key]}")
    print(f"  {'chars':<10} {len(info['characteristics'])}")


_CMDS: Dict[str, Callable[[_Session, List[str]], None]] = {
    "help": _cmd_help,
    "power": _cmd_power,
    "scan": _cmd_scan,
    "stop": _cmd_stop,
    "list": _cmd_list,
    "connect": _cmd_connect,
    "disconnect": _cmd_disconnect,
    "pair": _cmd_pair,
    "services": _cmd_services,
    "read": _cmd_read,
    "write": _cmd_write,
    "notify": _cmd_notify,
    "device": _cmd_device,
}


def run_command(session: _Session, line: str) -> bool:
    """Execute one shell line; returns False when the shell should exit."""
    try:
        parts = shlex.split(line)
    except ValueError as exc:
        print(f"[-] {exc}")
        return True
    if not parts:
        return True
    cmd, *rest = parts
    if cmd in {"quit", "exit"}:
        return False
    handler = _CMDS.get(cmd)
    if handler is None:
        print("Unknown command - type 'help'")
        return True
    try:
        handler(session, rest)
    except BlemirrorError as exc:
        print(f"[-] {exc}")
    return True


def main(manager: Optional[DeviceManager] = None, config: Optional[ClientConfig] = None,
         input_func: Callable[[str], str] = input):
    """Entry point for the interactive shell."""
    manager = manager or DeviceManager(config=config)
    manager.initialize()
    session = _Session(manager)
    print("[*] blemirror interactive mode - type 'help' for commands, 'quit' to exit")
    try:
        while True:
            try:
                line = input_func(_PROMPT)
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not run_command(session, line):
                break
    finally:
        manager.shutdown()
    return 0
