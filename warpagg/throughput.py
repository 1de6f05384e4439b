"""Throughput accounting and time-segmented throughput summaries."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Iterable

from warpagg.ops import Operation
from warpagg.units import format_duration, format_throughput

_ONE_MILLI = timedelta(milliseconds=1)


def _millis_between(start: datetime | None, end: datetime | None) -> int:
    """Whole milliseconds from start to end, truncated toward zero."""
    if start is None or end is None:
        return 0
    delta = end - start
    if delta >= timedelta(0):
        return delta // _ONE_MILLI
    return -((-delta) // _ONE_MILLI)


def _divide(numerator: float, denominator: float) -> float:
    """Floating division that yields inf or nan instead of raising."""
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator)
    return numerator / denominator


def _fixed2(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return f"{value:.2f}"


def _clock(t: datetime | None) -> str:
    """Format a time of day with its zone abbreviation."""
    if t is None:
        return "00:00:00 UTC"
    return f"{t.strftime('%H:%M:%S')} {t.tzname() or 'UTC'}"


def _round_half_away(x: float) -> float:
    if x >= 0:
        return math.floor(x + 0.5)
    return -math.floor(-x + 0.5)


@dataclass
class SegmentSmall:
    """One time segment of a run; its length is recorded elsewhere."""

    start: datetime | None = None
    bps: float = 0.0
    ops: float = 0.0
    errors: int = 0

    def add(self, other: SegmentSmall) -> None:
        """Accumulate the counters of another segment into this one."""
        self.errors += other.errors
        self.ops += other.ops
        self.bps += other.bps

    def string_long(self, d: timedelta, details: bool) -> str:
        """Describe the segment, optionally with its length and start time."""
        speed = f"{format_throughput(self.bps)}, " if self.bps > 0 else ""
        detail = ""
        if details:
            detail = f" ({format_duration(d)}, starting {_clock(self.start)})"
        return f"{speed}{_fixed2(self.ops)} obj/s{detail}"


class SegmentsSmall(list):
    """A list of SegmentSmall values."""

    def sort_by_throughput(self) -> None:
        """Sort by bytes per second, slowest first."""
        self.sort(key=lambda s: s.bps)

    def sort_by_objs_per_sec(self) -> None:
        """Sort by objects per second, lowest first."""
        self.sort(key=lambda s: s.ops)

    def sort_by_start_time(self) -> None:
        """Sort by start time, earliest first."""
        self.sort(key=lambda s: s.start)

    def median(self, m: float) -> SegmentSmall:
        """Return the element at fraction ``m`` of the list, clamped to its ends."""
        if not self:
            return SegmentSmall()
        index = _round_half_away(len(self) * m)
        index = max(index, 0)
        index = min(index, len(self) - 1)
        return self[int(index)]

    def merge(self, other: Iterable[SegmentSmall]) -> None:
        """Add segments of ``other`` into segments with the same start time.

        Segments of ``other`` that have no counterpart here are not added.
        The result is sorted by start time.
        """
        incoming = list(other)
        if not incoming:
            return
        if not self:
            self.extend(replace(seg) for seg in incoming)
            return
        for to_merge in incoming:
            for existing in self:
                if existing.start == to_merge.start:
                    existing.add(to_merge)
                    break
        self.sort_by_start_time()


@dataclass
class ThroughputSegmented:
    """Throughput statistics over equally long time segments."""

    fastest_start: datetime | None = None
    median_start: datetime | None = None
    slowest_start: datetime | None = None
    sorted_by: str = ""
    segments: SegmentsSmall = field(default_factory=SegmentsSmall)
    segment_duration_millis: int = 0
    fastest_bps: float = 0.0
    fastest_ops: float = 0.0
    median_bps: float = 0.0
    median_ops: float = 0.0
    slowest_bps: float = 0.0
    slowest_ops: float = 0.0

    def __post_init__(self) -> None:
        if not isinstance(self.segments, SegmentsSmall):
            self.segments = SegmentsSmall(self.segments)

    def merge(self, other: ThroughputSegmented) -> None:
        """Merge time-aligned segments of another summary into this one."""
        if not other.segments:
            return
        if self.segment_duration_millis == 0:
            self.segment_duration_millis = other.segment_duration_millis
        self.segments.merge(other.segments)
        self.fill_from_segments()
        self.segments.sort_by_start_time()

    def fill_from_segments(self) -> None:
        """Recompute fastest, median and slowest from the held segments.

        Segments are left sorted by the measure used: bytes per second if any
        segment moved bytes, otherwise objects per second.
        """
        segs = self.segments
        if any(seg.bps > 0 for seg in segs):
            segs.sort_by_throughput()
            self.sorted_by = "bps"
        else:
            segs.sort_by_objs_per_sec()
            self.sorted_by = "ops"

        fast = segs.median(1)
        med = segs.median(0.5)
        slow = segs.median(0)

        self.fastest_start = fast.start
        self.fastest_bps = fast.bps
        self.fastest_ops = fast.ops
        self.median_start = med.start
        self.median_bps = med.bps
        self.median_ops = med.ops
        self.slowest_start = slow.start
        self.slowest_bps = slow.bps
        self.slowest_ops = slow.ops


@dataclass
class Throughput:
    """Totals over a measurement period."""

    start_time: datetime | None = None
    end_time: datetime | None = None
    segmented: ThroughputSegmented | None = None
    errors: int = 0
    measure_duration_millis: int = 0
    bytes: float = 0.0
    objects: float = 0.0
    operations: int = 0

    def add(self, op: Operation) -> None:
        """Count one operation and widen the time range to include it."""
        if self.start_time is None or self.start_time > op.start:
            self.start_time = op.start
        if self.end_time is None or self.end_time < op.end:
            self.end_time = op.end
        self.measure_duration_millis = _millis_between(self.start_time, self.end_time)
        self.operations += 1
        if op.err:
            self.errors += 1
        self.bytes += float(op.size)
        self.objects += float(op.obj_per_op)

    def bytes_ps(self) -> float:
        """Bytes per second over the measured period."""
        return _divide(1000 * self.bytes, float(self.measure_duration_millis))

    def objects_ps(self) -> float:
        """Objects per second over the measured period."""
        return _divide(1000 * self.objects, float(self.measure_duration_millis))

    def merge(self, other: Throughput) -> None:
        """Merge a concurrently running measurement into this one."""
        if other.operations == 0:
            return
        self.errors += other.errors
        self.bytes += other.bytes
        self.objects += other.objects
        self.operations += other.operations
        if other.start_time is not None and (
            self.start_time is None or other.start_time < self.start_time
        ):
            self.start_time = other.start_time
        if other.end_time is not None and (
            self.end_time is None or other.end_time > self.end_time
        ):
            self.end_time = other.end_time
        self.measure_duration_millis = _millis_between(self.start_time, self.end_time)
        if self.segmented is None and other.segmented is not None:
            self.segmented = ThroughputSegmented()
        if other.segmented is not None:
            self.segmented.merge(other.segmented)

    def string_duration(self) -> str:
        """Describe the measured duration and when it started."""
        duration = format_duration(timedelta(milliseconds=self.measure_duration_millis))
        return f"Duration: {duration}, starting {_clock(self.start_time)}"

    def string_details(self, details: bool) -> str:
        """Describe speed and errors, optionally with the duration in seconds."""
        if self.bytes == 0 and self.objects == 0:
            return ""
        speed = ""
        if self.bytes > 0:
            speed = f"{_fixed2(self.bytes_ps() / (1 << 20))} MiB/s, "
        errs = f", {self.errors} errors" if self.errors > 0 else ""
        dur = ""
        if details:
            dur = f" ({int((self.measure_duration_millis + 500) / 1000)}s)"
        return f"{speed}{_fixed2(self.objects_ps())} obj/s{errs}{dur}"

    def __str__(self) -> str:
        return f"{self.string_details(True)} {self.string_duration()}"


def bps_or_ops(bps: float, ops: float) -> str:
    """Bytes per second if non-zero, otherwise objects per second, as text."""
    if bps > 0:
        return format_throughput(bps)
    return f"{_fixed2(ops)} obj/s"