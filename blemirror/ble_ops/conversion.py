"""blemirror.ble_ops.conversion - byte/hex and flag formatting helpers."""
from __future__ import annotations

import binascii as _binascii
from typing import Iterable, Union

__all__ = [
    "bytes_to_hex_string",
    "hex_string_to_bytes",
    "convert__hex_to_ascii",
    "format_flags",
    "parse_flags",
    "normalize_uuid",
]


def bytes_to_hex_string(data: Union[bytes, bytearray, Iterable[int]], sep: str = " ") -> str:
    """Return lower-case hex pairs of *data* joined by *sep* (``"01 ab ff"``)."""
    if not data:
        return ""
    return _binascii.hexlify(bytes(data), sep).decode() if sep else bytes(data).hex()


def hex_string_to_bytes(hex_str: str) -> bytes:
    """Parse ``"01ab"``, ``"01 ab"`` or ``"0x01ab"`` into bytes.

    Raises ``ValueError`` on non-hex characters or an odd number of digits.
    """
    clean = "".join(hex_str.split())
    if clean[:2].lower() == "0x":
        clean = clean[2:]
    if len(clean) % 2:
        raise ValueError(f"odd number of hex digits in {hex_str!r}")
    return bytes.fromhex(clean)


def convert__hex_to_ascii(data) -> str:  # noqa: D401
    """Return an ASCII decode of *data*, replacing undecodable bytes."""
    if not data:
        return ""
    return bytes(data).decode("ascii", errors="replace")


def format_flags(flags: Iterable[str]) -> str:
    """Render characteristic flags as a stable, comma separated string."""
    return ", ".join(sorted(flags))


def parse_flags(text: str) -> frozenset:
    """Inverse of :func:`format_flags`; tolerates spaces, case and empty items."""
    return frozenset(part.strip().lower() for part in text.split(",") if part.strip())


# Standard BT SIG Base UUID
BT_SIG_BASE_UUID = "00000000-0000-1000-8000-00805f9b34fb"
_HEX_DIGITS = frozenset("0123456789abcdef")


def normalize_uuid(uuid: str) -> str:
    """Return the lower-case 128-bit form of *uuid*.

    16-bit (``"180d"``) and 32-bit short forms are expanded over the BT SIG
    base UUID; anything else is only lower-cased and stripped.
    """
    target = uuid.strip().lower()
    if target.startswith("0x"):
        target = target[2:]
    if len(target) in (4, 8) and set(target) <= _HEX_DIGITS:
        return f"{target:0>8}{BT_SIG_BASE_UUID[8:]}"
    return target
