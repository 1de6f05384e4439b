"""Time-to-first-byte statistics."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta

from warpagg.units import dur_to_millis_f, format_duration

PERCENTILE_COUNT = 101


def _trunc_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


def _ms(value: float | int) -> str:
    return format_duration(timedelta(milliseconds=int(value)))


@dataclass
class TTFB:
    """Times to first byte, in milliseconds."""

    average_millis: float = 0.0
    fastest_millis: float = 0.0
    p25_millis: float = 0.0
    median_millis: float = 0.0
    p75_millis: float = 0.0
    p90_millis: float = 0.0
    p99_millis: float = 0.0
    slowest_millis: float = 0.0
    std_dev_millis: float = 0.0
    percentiles_millis: list[float] | None = None

    def __str__(self) -> str:
        if self.average_millis == 0:
            return ""
        return (
            f"Avg: {_ms(self.average_millis)}, Best: {_ms(self.fastest_millis)}, "
            f"25th: {_ms(self.p25_millis)}, Median: {_ms(self.median_millis)}, "
            f"75th: {_ms(self.p75_millis)}, 90th: {_ms(self.p90_millis)}, "
            f"99th: {_ms(self.p99_millis)}, Worst: {_ms(self.slowest_millis)} "
            f"StdDev: {_ms(self.std_dev_millis)}"
        )

    def add(self, other: TTFB) -> None:
        """Accumulate another result; fastest and slowest are kept as extremes."""
        self.average_millis += other.average_millis
        self.median_millis += other.median_millis
        if other.fastest_millis != 0:
            self.fastest_millis = min(self.fastest_millis, other.fastest_millis)
            if self.fastest_millis == 0:
                self.fastest_millis = other.fastest_millis
        self.slowest_millis = max(self.slowest_millis, other.slowest_millis)
        self.p25_millis += other.p25_millis
        self.p75_millis += other.p75_millis
        self.p90_millis += other.p90_millis
        self.p99_millis += other.p99_millis
        self.std_dev_millis += other.std_dev_millis

    def string_by_n(self, n: int) -> str:
        """Describe accumulated values averaged over ``n`` merged entries."""
        if self.average_millis == 0 or n == 0:
            return ""
        half = n // 2

        def avg(value: float) -> str:
            return format_duration(
                timedelta(milliseconds=_trunc_div(half + int(value), n))
            )

        return (
            f"Avg: {avg(self.average_millis)}, Best: {_ms(self.fastest_millis)}, "
            f"25th: {avg(self.p25_millis)}, Median: {avg(self.median_millis)}, "
            f"75th: {avg(self.p75_millis)}, 90th: {avg(self.p90_millis)}, "
            f"99th: {avg(self.p99_millis)}, Worst: {_ms(self.slowest_millis)} "
            f"StdDev: {avg(self.std_dev_millis)}"
        )


def ttfb_from_stats(
    average: timedelta,
    best: timedelta,
    p25: timedelta,
    median: timedelta,
    p75: timedelta,
    p90: timedelta,
    p99: timedelta,
    worst: timedelta,
    std_dev: timedelta,
    percentiles: Sequence[timedelta],
) -> TTFB | None:
    """Build a TTFB from raw durations; None when there is no positive average."""
    if average <= timedelta(0):
        return None
    values = [dur_to_millis_f(p) for p in percentiles[:PERCENTILE_COUNT]]
    values.extend([0.0] * (PERCENTILE_COUNT - len(values)))
    return TTFB(
        average_millis=dur_to_millis_f(average),
        fastest_millis=dur_to_millis_f(best),
        p25_millis=dur_to_millis_f(p25),
        median_millis=dur_to_millis_f(median),
        p75_millis=dur_to_millis_f(p75),
        p90_millis=dur_to_millis_f(p90),
        p99_millis=dur_to_millis_f(p99),
        slowest_millis=dur_to_millis_f(worst),
        std_dev_millis=dur_to_millis_f(std_dev),
        percentiles_millis=values,
    )