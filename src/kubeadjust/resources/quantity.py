"""Kubernetes quantity parsing and formatting.

Converts quantity strings ("500m", "256Mi", "18447n") to canonical integer
units (millicores for CPU, bytes for memory and storage) and back to short
human-readable strings. Parsing is lenient: malformed input yields 0 rather
than an error, since upstream data is not always well-formed.
"""

import re
from enum import Enum

from .types import ResourceValue


class ResourceKey(str, Enum):
    """Resource names read from requests, limits, capacity and usage maps."""

    CPU = "cpu"
    MEMORY = "memory"
    EPHEMERAL_STORAGE = "ephemeral-storage"
    STORAGE = "storage"
    PODS = "pods"


KIB = 1024
MIB = 1024**2
GIB = 1024**3

# Binary suffixes come first so "Ki" is never read as "K".
_MEMORY_SUFFIXES: tuple[tuple[str, int], ...] = (
    ("Ki", 1024),
    ("Mi", 1024**2),
    ("Gi", 1024**3),
    ("Ti", 1024**4),
    ("K", 1000),
    ("M", 1000**2),
    ("G", 1000**3),
    ("T", 1000**4),
)

NANOS_PER_MILLI = 1_000_000
NANOS_PER_UNIT = 1_000_000_000

_INT_RE = re.compile(r"[+-]?[0-9]+")
_DECIMAL_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


def _parse_int(value: str) -> int:
    if _INT_RE.fullmatch(value) is None:
        return 0
    return int(value)


def _truncating_div(value: int, divisor: int) -> int:
    """Integer division rounding toward zero."""
    quotient = abs(value) // divisor
    return quotient if value >= 0 else -quotient


def parse_cpu_millicores(raw: str) -> int:
    """Parse a CPU quantity to millicores.

    - Nanocores: "18447n" -> 0, "1500000000n" -> 1500 (truncated)
    - Millicores: "500m" -> 500
    - Cores: "2" -> 2000, "0.5" -> 500 (truncated)

    Returns 0 for empty or unparsable input.
    """
    if raw.endswith("n"):
        return _truncating_div(_parse_int(raw[:-1]), NANOS_PER_MILLI)
    if raw.endswith("m"):
        return _parse_int(raw[:-1])
    if _DECIMAL_RE.fullmatch(raw) is None:
        return 0
    try:
        return int(float(raw) * 1000)
    except OverflowError:
        return 0


def parse_memory_bytes(raw: str) -> int:
    """Parse a memory or storage quantity to bytes.

    Supports binary (Ki/Mi/Gi/Ti) and decimal (K/M/G/T) suffixes, the "n"
    suffix some summary APIs emit, and plain integers. Returns 0 for empty or
    unparsable input.
    """
    for suffix, factor in _MEMORY_SUFFIXES:
        if raw.endswith(suffix):
            return _parse_int(raw[: -len(suffix)]) * factor
    if raw.endswith("n"):
        return _truncating_div(_parse_int(raw[:-1]), NANOS_PER_UNIT)
    return _parse_int(raw)


def parse_pod_count(raw: str) -> int:
    """Parse a plain integer count such as a node's ``pods`` capacity."""
    return _parse_int(raw.strip())


def parse_resource(raw: str, is_cpu: bool) -> ResourceValue:
    """Parse a quantity into a ResourceValue keeping the raw string.

    An empty raw string yields an empty ResourceValue, which marks the
    resource as unset rather than zero.
    """
    if not raw:
        return ResourceValue(raw="")
    if is_cpu:
        return ResourceValue(raw=raw, millicores=parse_cpu_millicores(raw))
    return ResourceValue(raw=raw, bytes=parse_memory_bytes(raw))


def parse_storage_bytes(raw: str) -> ResourceValue:
    """Parse a storage quantity into a ResourceValue with bytes populated."""
    if not raw:
        return ResourceValue()
    return ResourceValue(raw=raw, bytes=parse_memory_bytes(raw))


def format_bytes(value: int) -> str:
    """Format a byte count as "1.50 Gi", "256 Mi", "12 Ki" or "100 B"."""
    if value >= GIB:
        return f"{value / GIB:.2f} Gi"
    if value >= MIB:
        return f"{value // MIB} Mi"
    if value >= KIB:
        return f"{value // KIB} Ki"
    return f"{value} B"


def format_millicores(value: int) -> str:
    """Format millicores as cores ("1.50") from 1000m upward, else "500m"."""
    if value >= 1000:
        return f"{value / 1000:.2f}"
    return f"{value}m"


def bytes_value(value: int) -> ResourceValue:
    """Wrap a measured byte count with its formatted raw string."""
    return ResourceValue(raw=format_bytes(value), bytes=value)


def millicores_value(value: int) -> ResourceValue:
    """Wrap a computed millicore count with its formatted raw string."""
    return ResourceValue(raw=format_millicores(value), millicores=value)
