"""Per-request latency and throughput statistics."""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Sequence

from warpagg.mapasslice import MapAsSlice
from warpagg.ops import Operation
from warpagg.ttfb import TTFB, ttfb_from_stats
from warpagg.units import dur_to_millis_f, format_duration, format_throughput

PERCENTILE_COUNT = 101

# Threshold above which an averaged value is shown as a rounded duration.
# The comparison is made against the value in milliseconds.
_LONG_FORMAT_THRESHOLD = 100 * 1_000_000


def _round_half_away(x: float) -> float:
    if x >= 0:
        return math.floor(x + 0.5)
    return -math.floor(-x + 0.5)


def _pick(sorted_values: Sequence, m: float):
    """Element at fraction ``m`` of a sorted sequence, clamped to its ends."""
    index = _round_half_away(len(sorted_values) * m)
    index = min(max(index, 0), len(sorted_values) - 1)
    return sorted_values[int(index)]


def _time_range(ops: Sequence[Operation]) -> tuple[datetime | None, datetime | None]:
    if not ops:
        return None, None
    return min(op.start for op in ops), max(op.end for op in ops)


def _mean(values: Sequence[timedelta]) -> timedelta:
    if not values:
        return timedelta(0)
    return sum(values, timedelta(0)) / len(values)


def _std_dev(values: Sequence[timedelta]) -> timedelta:
    if len(values) < 2:
        return timedelta(0)
    secs = [v.total_seconds() for v in values]
    avg = sum(secs) / len(secs)
    variance = sum((s - avg) ** 2 for s in secs) / len(secs)
    return timedelta(seconds=math.sqrt(variance))


def _ttfb_of(ops: Sequence[Operation]) -> TTFB | None:
    """Time-to-first-byte statistics of the operations that recorded one."""
    values = sorted(op.ttfb() for op in ops if op.first_byte is not None)
    if not values:
        return None
    return ttfb_from_stats(
        average=_mean(values),
        best=values[0],
        p25=_pick(values, 0.25),
        median=_pick(values, 0.5),
        p75=_pick(values, 0.75),
        p90=_pick(values, 0.9),
        p99=_pick(values, 0.99),
        worst=values[-1],
        std_dev=_std_dev(values),
        percentiles=[_pick(values, i / 100) for i in range(PERCENTILE_COUNT)],
    )


@dataclass
class SingleSizedRequests:
    """Request statistics when all objects have the same size."""

    by_host: dict[str, SingleSizedRequests] | None = None
    first_access: SingleSizedRequests | None = None
    last_access: SingleSizedRequests | None = None
    first_byte: TTFB | None = None
    host_names: MapAsSlice = field(default_factory=MapAsSlice)
    dur_pct: list[float] | None = None
    dur_median_millis: float = 0.0
    fastest_millis: float = 0.0
    slowest_millis: float = 0.0
    std_dev: float = 0.0
    dur_99_millis: float = 0.0
    dur_90_millis: float = 0.0
    dur_avg_millis: float = 0.0
    requests: int = 0
    obj_size: int = 0
    skipped: bool = False
    merged_entries: int = 0

    def string_by_n(self) -> str:
        """Describe accumulated values averaged over the merged entries."""
        n = float(self.merged_entries)
        if self.requests == 0 or n == 0:
            return ""
        inv_n = 1 / n

        def fmt_millis(v: float) -> str:
            if v * inv_n > _LONG_FORMAT_THRESHOLD:
                nanos = int(v * 1_000_000 * inv_n)
                millis = int(_round_half_away(nanos / 1_000_000))
                return format_duration(timedelta(milliseconds=millis))
            return f"{v * inv_n:.1f}ms"

        return (
            f"Avg: {fmt_millis(self.dur_avg_millis)}"
            f", 50%: {fmt_millis(self.dur_median_millis)}"
            f", 90%: {fmt_millis(self.dur_90_millis)}"
            f", 99%: {fmt_millis(self.dur_99_millis)}"
            f", Fastest: {fmt_millis(self.fastest_millis * n)}"
            f", Slowest: {fmt_millis(self.slowest_millis * n)}"
            f", StdDev: {fmt_millis(self.std_dev)}"
        )

    def add(self, other: SingleSizedRequests) -> None:
        """Accumulate another result into this one; skipped results are ignored."""
        if other.skipped:
            return
        self.requests += other.requests
        self.obj_size += other.obj_size
        self.dur_avg_millis += other.dur_avg_millis
        self.dur_median_millis += other.dur_median_millis
        if self.merged_entries == 0:
            self.fastest_millis = other.fastest_millis
        else:
            self.fastest_millis = min(self.fastest_millis, other.fastest_millis)
        self.slowest_millis = max(self.slowest_millis, other.slowest_millis)
        self.dur_99_millis += other.dur_99_millis
        self.dur_90_millis += other.dur_90_millis
        self.std_dev += other.std_dev
        self.merged_entries += other.merged_entries
        self.host_names.add_map(other.host_names)

        if self.by_host is None and other.by_host:
            self.by_host = {}
        for host, value in (other.by_host or {}).items():
            entry = self.by_host.setdefault(host, SingleSizedRequests())
            entry.add(value)

        if self.dur_pct is None:
            self.dur_pct = [0.0] * PERCENTILE_COUNT
        if other.dur_pct is not None:
            self.dur_pct = [a + b for a, b in zip(self.dur_pct, other.dur_pct)]

        if other.first_access is not None:
            if self.first_access is None:
                self.first_access = SingleSizedRequests()
            self.first_access.add(other.first_access)
        if other.last_access is not None:
            if self.last_access is None:
                self.last_access = SingleSizedRequests()
            self.last_access.add(other.last_access)
        if other.first_byte is not None:
            if self.first_byte is None:
                self.first_byte = TTFB()
            self.first_byte.add(other.first_byte)

    def fill(self, ops: Sequence[Operation]) -> None:
        """Compute statistics from a set of operations."""
        ordered = sorted(ops, key=lambda op: op.duration())
        durations = [op.duration() for op in ordered]

        def at(m: float) -> float:
            if not durations:
                return 0.0
            return dur_to_millis_f(_pick(durations, m))

        self.requests = len(ordered)
        self.obj_size = ordered[0].size if ordered else 0
        self.dur_avg_millis = dur_to_millis_f(_mean(durations))
        self.std_dev = dur_to_millis_f(_std_dev(durations))
        self.dur_median_millis = at(0.5)
        self.dur_90_millis = at(0.9)
        self.dur_99_millis = at(0.99)
        self.slowest_millis = at(1)
        self.fastest_millis = at(0)
        self.first_byte = _ttfb_of(ordered)
        self.merged_entries = 1
        self.dur_pct = [at(i / 100) for i in range(PERCENTILE_COUNT)]


@dataclass
class RequestSizeRange:
    """Request throughput statistics for one range of object sizes."""

    first_byte: TTFB | None = None
    first_access: RequestSizeRange | None = None
    min_size_string: str = ""
    max_size_string: str = ""
    bps_pct: list[float] | None = None
    bps_median: float = 0.0
    avg_duration_millis: float = 0.0
    bps_average: float = 0.0
    requests: int = 0
    bps_90: float = 0.0
    bps_99: float = 0.0
    bps_fastest: float = 0.0
    bps_slowest: float = 0.0
    avg_obj_size: int = 0
    max_size: int = 0
    min_size: int = 0
    merged_entries: int = 0

    def _describe(self, label: str, mul: float) -> str:
        return (
            f"{label}: {format_throughput(self.bps_average * mul)}"
            f", 50%: {format_throughput(self.bps_median * mul)}"
            f", 90%: {format_throughput(self.bps_90 * mul)}"
            f", 99%: {format_throughput(self.bps_99 * mul)}"
            f", Fastest: {format_throughput(self.bps_fastest * mul)}"
            f", Slowest: {format_throughput(self.bps_slowest * mul)}"
        )

    def __str__(self) -> str:
        if self.merged_entries <= 0 or self.requests == 0:
            return ""
        return self._describe("Average", 1.0)

    def string_by_n(self) -> str:
        """Describe accumulated values averaged over the merged entries."""
        if self.merged_entries <= 0 or self.requests == 0:
            return ""
        return self._describe("Avg", 1 / self.merged_entries)

    def add(self, other: RequestSizeRange) -> None:
        """Accumulate another range's statistics; size bounds are kept."""
        self.requests += other.requests
        if other.first_byte is not None:
            if self.first_byte is None:
                self.first_byte = TTFB()
            self.first_byte.add(other.first_byte)
        self.avg_obj_size += other.avg_obj_size
        self.avg_duration_millis += other.avg_duration_millis
        self.bps_average += other.bps_average
        self.bps_median += other.bps_median
        self.bps_fastest += other.bps_fastest
        self.bps_slowest += other.bps_slowest
        if other.bps_pct is not None:
            self.bps_pct = list(other.bps_pct)
        self.merged_entries += other.merged_entries


class RequestSizeRanges(list):
    """A list of RequestSizeRange values."""

    def sort_by_size(self) -> None:
        """Sort ranges by their minimum size."""
        self.sort(key=lambda r: r.min_size)

    def find_matching(self, want: RequestSizeRange) -> tuple[RequestSizeRange, bool]:
        """Return the range containing ``want`` and True, or a new empty range and False.

        A new range is not added to the list.
        """
        for existing in self:
            if want.min_size >= existing.min_size and want.max_size <= existing.max_size:
                return existing, True
        return (
            RequestSizeRange(
                min_size_string=want.min_size_string,
                max_size_string=want.max_size_string,
                max_size=want.max_size,
                min_size=want.min_size,
            ),
            False,
        )


@dataclass
class MultiSizedRequests:
    """Request statistics when objects have different sizes."""

    by_host: dict[str, RequestSizeRange] | None = None
    by_size: RequestSizeRanges = field(default_factory=RequestSizeRanges)
    requests: int = 0
    avg_obj_size: int = 0
    skipped: bool = False
    merged_entries: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.by_size, RequestSizeRanges):
            self.by_size = RequestSizeRanges(self.by_size)

    def add(self, other: MultiSizedRequests) -> None:
        """Accumulate another result into this one; skipped results are ignored."""
        if other.skipped:
            return
        if self.by_host is None:
            self.by_host = {}
        for host, value in (other.by_host or {}).items():
            entry = self.by_host.setdefault(host, RequestSizeRange())
            entry.add(value)
        self.requests += other.requests
        self.avg_obj_size += other.avg_obj_size
        for to_merge in other.by_size:
            dst, found = self.by_size.find_matching(to_merge)
            dst.add(to_merge)
            if not found:
                self.by_size.append(copy.deepcopy(to_merge))
                self.by_size.sort_by_size()
        self.merged_entries += other.merged_entries