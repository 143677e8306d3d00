"""
Parsers for the human-readable values RouterOS returns.
"""

import re

_UPTIME_UNITS = {
    "w": 604800,
    "d": 86400,
    "h": 3600,
    "m": 60,
    "s": 1,
}
_UPTIME_RE = {unit: re.compile(rf"(\d+){unit}(?![a-z])") for unit in _UPTIME_UNITS}

_BYTE_UNITS = {
    "KiB": 1024,
    "MiB": 1024 ** 2,
    "GiB": 1024 ** 3,
    "TiB": 1024 ** 4,
}
_BYTES_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMGT]iB)?")


def parse_uptime(uptime: str) -> int:
    """'1w2d3h4m5s' -> 788645. Every unit is optional."""
    seconds = 0
    for unit, multiplier in _UPTIME_UNITS.items():
        match = _UPTIME_RE[unit].search(uptime or "")
        if match:
            seconds += int(match.group(1)) * multiplier
    return seconds


def parse_bytes(value: str | int | float | None) -> int:
    """'512MiB' -> 536870912, '268435456' -> 268435456, 0 -> 0."""
    if isinstance(value, (int, float)):
        return int(value)
    match = _BYTES_RE.match(str(value or ""))
    if not match:
        return 0
    number = float(match.group(1))
    return int(number * _BYTE_UNITS.get(match.group(2), 1))


def parse_int(value, default: int = 0) -> int:
    """'12%' -> 12. Non-numeric input returns default."""
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip().rstrip("%"))
    except (TypeError, ValueError):
        return default


def parse_flag(value) -> bool:
    return str(value).lower() in ("true", "yes")
