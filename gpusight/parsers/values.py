"""Field-level value parsing and unit normalization.

Hardware query tools print sentinel text such as ``N/A`` or
``[Not Supported]`` where a reading does not exist. Those parse to ``None``;
only text that is neither a number nor a sentinel raises ``FieldValueError``.
"""

from __future__ import annotations

import re
from typing import Any

from gpusight.models.constants import THROTTLE_REASON_BITS

NOT_SUPPORTED_TOKENS = frozenset(
    {
        "",
        "-",
        "n/a",
        "[n/a]",
        "na",
        "not supported",
        "[not supported]",
        "unknown error",
        "[unknown error]",
        "[insufficient permissions]",
        "[gpu is lost]",
    }
)

# Binary multiples; the tools in scope label KiB-based values as kB/KB too.
BYTE_UNITS: dict[str, int] = {
    "b": 1,
    "k": 1024,
    "kb": 1024,
    "kib": 1024,
    "m": 1024**2,
    "mb": 1024**2,
    "mib": 1024**2,
    "g": 1024**3,
    "gb": 1024**3,
    "gib": 1024**3,
    "t": 1024**4,
    "tb": 1024**4,
    "tib": 1024**4,
}

_NUMBER_WITH_UNIT = re.compile(r"^([-+]?\d+(?:[.,]\d+)?)\s*([A-Za-z%/]*)$")
_HEADER_UNIT = re.compile(r"^(?P<name>.*?)\s*\[(?P<unit>[^\]]*)\]\s*$")

# NVML reports this for per-process memory it cannot attribute
NVML_VALUE_NOT_AVAILABLE = 2**64 - 1


class FieldValueError(ValueError):
    """A field holds text that is neither a number nor a known sentinel."""

    pass


def is_not_supported(value: Any) -> bool:
    """True if the value is missing or a "not supported" sentinel."""
    if value is None:
        return True
    return isinstance(value, str) and value.strip().lower() in NOT_SUPPORTED_TOKENS


def split_number(value: Any) -> tuple[float, str] | None:
    """Split a reading such as ``"1024 MiB"`` into ``(1024.0, "MiB")``.

    Returns:
        None for sentinels, otherwise the number and its (possibly empty) unit.

    Raises:
        FieldValueError: If the text is not a number with an optional unit.
    """
    if is_not_supported(value):
        return None
    if isinstance(value, bool):
        raise FieldValueError(f"boolean is not a reading: {value!r}")
    if isinstance(value, int | float):
        return float(value), ""

    text = str(value).strip()
    match = _NUMBER_WITH_UNIT.match(text)
    if match is None:
        raise FieldValueError(f"not a number: {text!r}")
    # sysstat honours LC_NUMERIC, so "12,50" means 12.5
    number = float(match.group(1).replace(",", "."))
    return number, match.group(2)


def parse_float(value: Any) -> float | None:
    """Parse a plain reading, discarding any unit suffix."""
    parsed = split_number(value)
    return None if parsed is None else parsed[0]


def parse_percent(value: Any) -> float | None:
    """Parse a percentage (``"45 %"``, ``"45"``, ``45``) to a 0-100 float."""
    parsed = split_number(value)
    if parsed is None:
        return None
    number, unit = parsed
    if unit not in ("", "%"):
        raise FieldValueError(f"not a percentage: {value!r}")
    return number


def parse_bytes(value: Any, default_unit: str = "B") -> int | None:
    """Parse a size to bytes; an explicit unit suffix overrides default_unit."""
    parsed = split_number(value)
    if parsed is None:
        return None
    number, unit = parsed
    factor = BYTE_UNITS.get((unit or default_unit).lower())
    if factor is None:
        raise FieldValueError(f"unknown size unit in {value!r}")
    return int(round(number * factor))


def parse_watts(value: Any) -> float | None:
    """Parse a power reading to watts (accepts W and mW suffixes)."""
    parsed = split_number(value)
    if parsed is None:
        return None
    number, unit = parsed
    if unit.lower() == "mw":
        return number / 1000.0
    if unit not in ("", "W", "w"):
        raise FieldValueError(f"not a power reading: {value!r}")
    return number


def parse_key(value: Any) -> int:
    """Parse an integer key field (device index, pid).

    Raises:
        FieldValueError: If the key is missing or not a non-negative integer.
    """
    if is_not_supported(value):
        raise FieldValueError("key field missing")
    text = str(value).strip()
    if not text.isdigit():
        raise FieldValueError(f"invalid key: {text!r}")
    return int(text)


def parse_text(value: Any) -> str | None:
    """Normalize a text field, mapping sentinels to None."""
    if is_not_supported(value):
        return None
    return str(value).strip()


def split_header_unit(header: str) -> tuple[str, str | None]:
    """Split an nvidia-smi CSV header such as ``"memory.used [MiB]"``."""
    match = _HEADER_UNIT.match(header.strip())
    if match is None:
        return header.strip(), None
    return match.group("name").strip(), match.group("unit").strip()


def decode_throttle_reasons(mask: Any) -> tuple[str, ...]:
    """Decode an NVML clocks throttle bitmask (int or hex string) to names.

    Raises:
        FieldValueError: If the mask is present but not an integer.
    """
    if is_not_supported(mask):
        return ()
    if isinstance(mask, int):
        bits = mask
    else:
        text = str(mask).strip()
        try:
            bits = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError as e:
            raise FieldValueError(f"invalid throttle mask: {text!r}") from e
    return tuple(name for bit, name in THROTTLE_REASON_BITS if bits & bit)


def format_elapsed(seconds: float | None) -> str | None:
    """Format seconds like ps etime: ``[[dd-]hh:]mm:ss``."""
    if seconds is None or seconds < 0:
        return None
    total = int(seconds)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    if days:
        return f"{days}-{hours:02d}:{minutes:02d}:{secs:02d}"
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"
