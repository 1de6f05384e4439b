"""Duration and throughput helpers shared by the aggregation code."""

from __future__ import annotations

from datetime import timedelta

_NANOS_PER_MICRO = 1_000
_NANOS_PER_MILLI = 1_000_000
_NANOS_PER_SECOND = 1_000_000_000

_THROUGHPUT_STEPS = (
    (2 << 10, 1, "B", 1),
    (2 << 20, 1 << 10, "KiB", 1),
    (10 << 30, 1 << 20, "MiB", 2),
    (10 << 40, 1 << 30, "GiB", 2),
)


def _nanos(d: timedelta) -> int:
    """Return the exact number of nanoseconds in a timedelta."""
    return ((d.days * 86_400 + d.seconds) * 1_000_000 + d.microseconds) * _NANOS_PER_MICRO


def dur_to_millis(d: timedelta) -> int:
    """Convert a duration to whole milliseconds, rounding half away from zero."""
    ns = _nanos(d)
    quotient, remainder = divmod(abs(ns), _NANOS_PER_MILLI)
    if remainder * 2 >= _NANOS_PER_MILLI:
        quotient += 1
    return -quotient if ns < 0 else quotient


def dur_to_millis_f(d: timedelta) -> float:
    """Convert a duration to fractional milliseconds."""
    return _nanos(d) / _NANOS_PER_MILLI


def _fraction(value: int, precision: int) -> str:
    digits = f"{value:0{precision}d}".rstrip("0")
    return f".{digits}" if digits else ""


def _scaled(value: int, precision: int) -> str:
    whole, frac = divmod(value, 10**precision)
    return f"{whole}{_fraction(frac, precision)}"


def format_duration(d: timedelta) -> str:
    """Format a duration as e.g. ``1h2m3.5s``, ``12.5ms`` or ``0s``."""
    ns = _nanos(d)
    sign = "-" if ns < 0 else ""
    magnitude = abs(ns)
    if magnitude == 0:
        return "0s"
    if magnitude < _NANOS_PER_SECOND:
        if magnitude < _NANOS_PER_MICRO:
            text = f"{magnitude}ns"
        elif magnitude < _NANOS_PER_MILLI:
            text = _scaled(magnitude, 3) + "µs"
        else:
            text = _scaled(magnitude, 6) + "ms"
        return sign + text

    whole, frac = divmod(magnitude, _NANOS_PER_SECOND)
    text = f"{whole % 60}{_fraction(frac, 9)}s"
    minutes = whole // 60
    if minutes:
        text = f"{minutes % 60}m{text}"
        hours = minutes // 60
        if hours:
            text = f"{hours}h{text}"
    return sign + text


def format_throughput(bps: float) -> str:
    """Format a bytes-per-second figure with a binary unit suffix."""
    for limit, divisor, unit, decimals in _THROUGHPUT_STEPS:
        if bps < limit:
            return f"{bps / divisor:.{decimals}f} {unit}/s"
    return f"{bps / (1 << 40):.2f} TiB/s"