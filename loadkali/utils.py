"""Parsing helpers, message loading and payload generation."""

from __future__ import annotations

import random
import re
import string
import sys
import time
from datetime import timedelta
from itertools import islice

_U64_MAX = 2**64 - 1
_UNSIGNED = re.compile(r"\+?[0-9]+")
_HEX_BYTE = re.compile(r"\+?[0-9A-Fa-f]+")
_ALPHANUMERIC = string.ascii_uppercase + string.ascii_lowercase + string.digits

_DURATION_UNITS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}

_SIMPLE_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "\\": "\\",
    "0": "\0",
}


def _parse_u64(text: str, message: str) -> int:
    """Parse an unsigned 64-bit integer, raising ValueError(message) on failure."""
    if _UNSIGNED.fullmatch(text) is None:
        raise ValueError(message)
    value = int(text)
    if value > _U64_MAX:
        raise ValueError(message)
    return value


def parse_duration(s: str) -> timedelta:
    """Parse durations such as ``250ms``, ``15s``, ``2m``, ``1h`` or ``3d``."""
    if len(s) < 2:
        raise ValueError("Duration string too short")

    if s.endswith("ms"):
        millis = _parse_u64(s[:-2], "Invalid duration number")
        return timedelta(milliseconds=millis)

    number, unit = s[:-1], s[-1]
    amount = _parse_u64(number, "Invalid duration number")
    try:
        multiplier = _DURATION_UNITS[unit]
    except KeyError:
        raise ValueError("Invalid duration unit") from None
    try:
        return timedelta(seconds=amount * multiplier)
    except OverflowError:
        raise ValueError("Duration out of range") from None


def parse_rate(s: str) -> int:
    """Parse a rate such as ``100`` or ``5k`` (thousands)."""
    if not s:
        raise ValueError("Empty rate string")
    if s.endswith("k"):
        return _parse_u64(s[:-1], "Invalid rate number") * 1000
    return _parse_u64(s, "Invalid rate number")


def parse_bandwidth(s: str) -> int:
    """Parse a bandwidth such as ``64kbps`` or ``10Mbps`` into bits per second."""
    if not s:
        raise ValueError("Empty bandwidth string")
    lowered = s.lower()
    if lowered.endswith("kbps"):
        return _parse_u64(lowered[:-4], "Invalid bandwidth number") * 1000
    if lowered.endswith("mbps"):
        return _parse_u64(lowered[:-4], "Invalid bandwidth number") * 1_000_000
    return _parse_u64(lowered, "Invalid bandwidth number")


def unescape_string(s: str) -> str:
    """Expand ``\\n``, ``\\r``, ``\\t``, ``\\\\``, ``\\0`` and ``\\xHH`` escapes.

    Unknown escapes and malformed hex escapes are kept verbatim.
    """
    result: list[str] = []
    chars = iter(s)
    for char in chars:
        if char != "\\":
            result.append(char)
            continue

        escaped = next(chars, None)
        if escaped is None:
            result.append("\\")
        elif escaped in _SIMPLE_ESCAPES:
            result.append(_SIMPLE_ESCAPES[escaped])
        elif escaped == "x":
            digits = "".join(islice(chars, 2))
            if len(digits) == 2 and _HEX_BYTE.fullmatch(digits):
                result.append(chr(int(digits, 16)))
            else:
                result.append("\\x" + digits)
        else:
            result.append("\\" + escaped)

    return "".join(result)


def _to_bytes(text: str, unescape: bool) -> bytes:
    if unescape:
        text = unescape_string(text)
    return text.encode("utf-8", "surrogateescape")


def message_arg(value: str | None, unescape: bool) -> bytes | None:
    """Turn a message given on the command line into bytes."""
    if value is None:
        return None
    return _to_bytes(value, unescape)


def file_arg(filename: str | None, unescape: bool) -> bytes | None:
    """Read a message from a UTF-8 file; report failures and return None."""
    if filename is None:
        return None
    try:
        with open(filename, encoding="utf-8", newline="") as handle:
            content = handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Failed to read file {filename}: {exc}", file=sys.stderr)
        return None
    return _to_bytes(content, unescape)


def generate_payload(size: int) -> bytes:
    """Return ``size`` random ASCII letters and digits."""
    return "".join(random.choices(_ALPHANUMERIC, k=size)).encode("ascii")


def unix_timestamp_millis() -> int:
    """Milliseconds since the Unix epoch."""
    return time.time_ns() // 1_000_000