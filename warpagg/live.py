"""Live aggregation of benchmark operations as they arrive."""

from __future__ import annotations

import copy
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone

from warpagg.mapasslice import MapAsSlice
from warpagg.ops import Operation, ops_have_multiple_sizes
from warpagg.requests import (
    MultiSizedRequests,
    RequestSizeRange,
    RequestSizeRanges,
    SingleSizedRequests,
)
from warpagg.throughput import SegmentSmall, SegmentsSmall, Throughput, ThroughputSegmented
from warpagg.units import dur_to_millis_f

CURRENT_VERSION = 2
MAX_FIRST_ERRORS = 10
REQUEST_SEGMENTS_DUR = 10

_NANOS_PER_SECOND = 1_000_000_000
_REMOVE_SEGMENTS = 2
_EPOCH_UTC = datetime(1970, 1, 1, tzinfo=timezone.utc)
_EPOCH_NAIVE = datetime(1970, 1, 1)
_SEGMENT_SPAN = timedelta(seconds=REQUEST_SEGMENTS_DUR)
_MIN_MULTI_SPAN = timedelta(milliseconds=100)


def _unix_nanos(t: datetime) -> int:
    d = t - (_EPOCH_NAIVE if t.tzinfo is None else _EPOCH_UTC)
    return ((d.days * 86_400 + d.seconds) * 1_000_000 + d.microseconds) * 1_000


def _from_unix(seconds: int, aware: bool) -> datetime:
    return (_EPOCH_UTC if aware else _EPOCH_NAIVE) + timedelta(seconds=seconds)


def _round_half_away(x: float) -> float:
    if x >= 0:
        return math.floor(x + 0.5)
    return -math.floor(-x + 0.5)


def _size_string(n: int) -> str:
    for shift, unit in ((30, "GiB"), (20, "MiB"), (10, "KiB")):
        if n >= 1 << shift:
            return f"{n / (1 << shift):.1f}{unit}"
    return f"{n}B"


def _pick(values: list, m: float):
    index = int(_round_half_away(len(values) * m))
    return values[min(max(index, 0), len(values) - 1)]


@dataclass
class RequestSegment:
    """Request statistics for one fixed-length time window."""

    start_time: datetime | None = None
    end_time: datetime | None = None
    multi: MultiSizedRequests | None = None
    single: SingleSizedRequests | None = None


@dataclass
class _LiveSegment:
    ops: float = 0.0
    objs: float = 0.0
    bytes: float = 0.0
    ops_started: int = 0
    ops_ended: int = 0
    full_ops: int = 0
    partial_ops: int = 0
    errors: int = 0
    req_dur: timedelta = timedelta(0)
    ttfb: timedelta = timedelta(0)


@dataclass
class _LiveThroughput:
    """Per-second buckets that operations are spread across."""

    segments_start: int = 0
    aware: bool = True
    segments: list[_LiveSegment] = field(default_factory=list)

    def add(self, op: Operation) -> None:
        start_ns = _unix_nanos(op.start)
        start_unix = start_ns // _NANOS_PER_SECOND
        if not self.segments:
            self.segments_start = start_unix
            self.aware = op.start.tzinfo is not None
        if start_unix < self.segments_start:
            return
        end_ns = _unix_nanos(op.end)
        end_unix = end_ns // _NANOS_PER_SECOND
        dur_ns = end_ns - start_ns

        start_seg = start_unix - self.segments_start
        end_seg = end_unix - self.segments_start + 1
        if end_seg > len(self.segments):
            self.segments.extend(_LiveSegment() for _ in range(end_seg - len(self.segments)))
        segs = self.segments[start_seg:end_seg]
        count = len(segs)
        for i, seg in enumerate(segs):
            if i == 0:
                seg.ops_started += 1
                seg.req_dur += op.duration()
                if op.err:
                    seg.errors += 1
                seg.ttfb += op.ttfb()
            if i == count - 1:
                seg.ops_ended += 1
            if count == 1:
                seg.full_ops += 1
                seg.ops += 1
                seg.objs += float(op.obj_per_op)
                seg.bytes += float(op.size)
                continue

            seg.partial_ops += 1
            seg_start_ns = (start_unix + i) * _NANOS_PER_SECOND
            seg_end_ns = seg_start_ns + _NANOS_PER_SECOND
            nanos_in_seg = _NANOS_PER_SECOND
            if start_ns >= seg_start_ns:
                nanos_in_seg = seg_end_ns - start_ns
            if end_ns <= seg_end_ns:
                nanos_in_seg = end_ns - seg_start_ns
            if nanos_in_seg > 0:
                fraction = nanos_in_seg / dur_ns
                seg.objs += op.obj_per_op * fraction
                seg.bytes += op.size * fraction
                seg.ops += fraction

    def as_throughput(self) -> Throughput:
        t = Throughput()
        if not self.segments:
            return t
        t.start_time = _from_unix(self.segments_start, self.aware)
        t.end_time = _from_unix(self.segments_start + len(self.segments), self.aware)
        if len(self.segments) <= _REMOVE_SEGMENTS * 2:
            return t
        segs = self.segments[_REMOVE_SEGMENTS:-_REMOVE_SEGMENTS]
        t.start_time = _from_unix(self.segments_start + _REMOVE_SEGMENTS, self.aware)
        t.end_time = t.start_time + timedelta(seconds=len(self.segments))

        smalls = SegmentsSmall()
        for i, seg in enumerate(segs):
            t.errors += seg.errors
            t.bytes += seg.bytes
            t.objects += seg.objs
            t.operations += seg.ops_started
            smalls.append(
                SegmentSmall(
                    start=_from_unix(self.segments_start + i, self.aware),
                    bps=_round_half_away(seg.bytes),
                    ops=_round_half_away(seg.objs * 100) / 100,
                    errors=seg.errors,
                )
            )
        ts = ThroughputSegmented(segments=smalls, segment_duration_millis=1000)
        ts.fill_from_segments()
        ts.segments.sort_by_start_time()
        t.measure_duration_millis = len(segs) * 1000
        t.segmented = ts
        return t


def _multi_from_ops(ops: list[Operation]) -> MultiSizedRequests:
    """Summarise operations of varying size as one size range."""
    result = MultiSizedRequests(requests=len(ops))
    if not ops:
        result.skipped = True
        return result
    start = min(op.start for op in ops)
    end = max(op.end for op in ops)
    if end - start < _MIN_MULTI_SPAN:
        result.skipped = True
        return result
    result.avg_obj_size = sum(op.size for op in ops) // len(ops)
    result.merged_entries = 1

    latency = SingleSizedRequests()
    latency.fill(ops)
    size_range = RequestSizeRange()
    rated = [
        (op.size / op.duration().total_seconds(), op)
        for op in ops
        if op.size > 0 and op.duration() > timedelta(0)
    ]
    if rated:
        rated.sort(key=lambda item: item[0], reverse=True)
        rates = [rate for rate, _ in rated]
        rated_ops = [op for _, op in rated]
        smallest = min(op.size for op in ops)
        biggest = max(op.size for op in ops)
        total_secs = sum(op.duration().total_seconds() for op in rated_ops)
        size_range.requests = len(rated_ops)
        size_range.min_size = smallest
        size_range.max_size = biggest
        size_range.min_size_string = _size_string(smallest)
        size_range.max_size_string = _size_string(biggest)
        size_range.avg_obj_size = sum(op.size for op in rated_ops) // len(rated_ops)
        size_range.avg_duration_millis = dur_to_millis_f(
            sum((op.duration() for op in rated_ops), timedelta(0)) / len(rated_ops)
        )
        size_range.bps_average = sum(op.size for op in rated_ops) / total_secs
        size_range.bps_median = _pick(rates, 0.5)
        size_range.bps_90 = _pick(rates, 0.9)
        size_range.bps_99 = _pick(rates, 0.99)
        size_range.bps_fastest = _pick(rates, 0.0)
        size_range.bps_slowest = _pick(rates, 1.0)
        size_range.merged_entries = 1
    size_range.first_byte = latency.first_byte
    if size_range.first_byte is not None:
        size_range.first_byte.percentiles_millis = None
    result.by_size = RequestSizeRanges([size_range])
    return result


@dataclass
class _LiveRequests:
    """Operations grouped into fixed-length windows of request statistics."""

    curr_start: int = 0
    first_seg: int | None = None
    aware: bool = True
    ops: list[Operation] = field(default_factory=list)
    is_multi: bool | None = None
    client: str = ""
    single: list[SingleSizedRequests] = field(default_factory=list)
    multi: list[MultiSizedRequests] = field(default_factory=list)

    def add(self, op: Operation) -> None:
        log_time = _unix_nanos(op.end) // _NANOS_PER_SECOND
        if self.first_seg is None:
            self.first_seg = log_time
            self.curr_start = log_time
            self.aware = op.end.tzinfo is not None
        log_time = max(log_time, self.curr_start)
        if log_time - self.curr_start < REQUEST_SEGMENTS_DUR:
            self.ops.append(op)
            return
        if not self.client:
            self.client = op.client_id
        self.cycle()
        self.curr_start += REQUEST_SEGMENTS_DUR
        self.ops = []
        while self.curr_start + REQUEST_SEGMENTS_DUR < log_time:
            if self.is_multi:
                self.multi.append(MultiSizedRequests(skipped=True))
            else:
                self.single.append(SingleSizedRequests(skipped=True))
            self.curr_start += REQUEST_SEGMENTS_DUR
        self.ops.append(op)

    def cycle(self) -> None:
        if not self.ops:
            return
        if self.is_multi is None:
            self.is_multi = ops_have_multiple_sizes(self.ops)
        if self.is_multi:
            self.multi.append(_multi_from_ops(self.ops))
        else:
            summary = SingleSizedRequests()
            summary.fill(self.ops)
            summary.by_host = None
            summary.dur_pct = None
            if summary.first_byte is not None:
                summary.first_byte.percentiles_millis = None
            self.single.append(summary)
        self.ops = []

    def request_segments(self) -> list[RequestSegment]:
        start = _from_unix(self.first_seg or 0, self.aware)
        result = []
        for multi in self.multi:
            result.append(RequestSegment(start, start + _SEGMENT_SPAN, multi=multi))
            start += _SEGMENT_SPAN
        for single in self.single:
            result.append(RequestSegment(start, start + _SEGMENT_SPAN, single=single))
            start += _SEGMENT_SPAN
        return result


@dataclass
class LiveAggregate:
    """Running totals for one slice of a benchmark (an operation, host, ...)."""

    title: str = ""
    total_requests: int = 0
    total_objects: int = 0
    total_errors: int = 0
    total_bytes: int = 0
    concurrency: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None
    first_errors: list[str] = field(default_factory=list)
    hosts: MapAsSlice = field(default_factory=MapAsSlice)
    clients: MapAsSlice = field(default_factory=MapAsSlice)
    throughput: Throughput = field(default_factory=Throughput)
    throughput_by_host: dict[str, Throughput] | None = None
    throughput_by_client: dict[str, Throughput] | None = None
    requests: dict[str, list[RequestSegment]] = field(default_factory=dict)
    _live_throughput: _LiveThroughput = field(
        default_factory=_LiveThroughput, repr=False, compare=False
    )
    _live_requests: dict[str, _LiveRequests] = field(
        default_factory=dict, repr=False, compare=False
    )
    _thread_ids: set[int] = field(default_factory=set, repr=False, compare=False)

    def add(self, op: Operation) -> None:
        """Add one operation to the totals."""
        self.total_requests += 1
        self.total_objects += op.obj_per_op
        self.total_bytes += op.size
        if op.client_id:
            self.clients.add(op.client_id)
        self._thread_ids.add(op.thread)
        self.hosts.add(op.endpoint)
        if self.start_time is None or self.start_time > op.start:
            self.start_time = op.start
        if self.end_time is None or self.end_time < op.end:
            self.end_time = op.end
        if op.err:
            if len(self.first_errors) < MAX_FIRST_ERRORS:
                self.first_errors.append(op.err)
            self.total_errors += 1
        if self.throughput_by_host is None:
            self.throughput_by_host = {}
        if self.throughput_by_client is None:
            self.throughput_by_client = {}
        self.throughput_by_host.setdefault(op.endpoint, Throughput()).add(op)
        self.throughput_by_client.setdefault(op.client_id, Throughput()).add(op)
        self._live_throughput.add(op)
        self._live_requests.setdefault(op.client_id, _LiveRequests()).add(op)

    @staticmethod
    def _merge_map(
        own: dict[str, Throughput] | None, other: dict[str, Throughput] | None
    ) -> dict[str, Throughput] | None:
        if own is None and other:
            return copy.deepcopy(other)
        for key, value in (other or {}).items():
            own.setdefault(key, Throughput()).merge(value)
        return own

    def merge(self, other: LiveAggregate) -> None:
        """Merge another aggregate into this one."""
        self.throughput.merge(other.throughput)
        self.requests.update(other.requests)
        self.concurrency += other.concurrency
        self.total_bytes += other.total_bytes
        self.total_objects += other.total_objects
        self.total_errors += other.total_errors
        self.first_errors.extend(other.first_errors)
        del self.first_errors[MAX_FIRST_ERRORS:]
        self.clients.add_map(other.clients)
        self.hosts.add_map(other.hosts)
        self.total_requests += other.total_requests
        if other.start_time is not None and (
            self.start_time is None or other.start_time < self.start_time
        ):
            self.start_time = other.start_time
        if other.end_time is not None and (
            self.end_time is None or other.end_time > self.end_time
        ):
            self.end_time = other.end_time
        self.throughput_by_host = self._merge_map(
            self.throughput_by_host, other.throughput_by_host
        )
        self.throughput_by_client = self._merge_map(
            self.throughput_by_client, other.throughput_by_client
        )
        if not self.title and other.title:
            self.title = other.title

    def update(self) -> LiveAggregate:
        """Return an interim snapshot that shares no state with this aggregate."""
        requests = {
            client_id: copy.deepcopy(live.request_segments())
            for client_id, live in self._live_requests.items()
            if live.client
        }
        return LiveAggregate(
            title=self.title + " (update)",
            total_requests=self.total_requests,
            total_objects=self.total_objects,
            total_errors=self.total_errors,
            total_bytes=self.total_bytes,
            concurrency=self.concurrency,
            start_time=self.start_time,
            end_time=self.end_time,
            first_errors=list(self.first_errors),
            hosts=self.hosts.clone(),
            clients=self.clients.clone(),
            throughput=self._live_throughput.as_throughput(),
            throughput_by_host=None,
            throughput_by_client=None,
            requests=requests,
        )

    def finalize(self) -> None:
        """Compute final throughput and request segments."""
        self.throughput = self._live_throughput.as_throughput()
        for client_id, live in self._live_requests.items():
            live.cycle()
            self.concurrency = len(self._thread_ids)
            existing = self.requests.get(client_id, [])
            self.requests[client_id] = existing + live.request_segments()
        self.title += " (Final)"


@dataclass
class Realtime:
    """All aggregates collected for one benchmark run."""

    data_version: int = 0
    commandline: str = ""
    final: bool = False
    warp_version: str = ""
    warp_commit: str = ""
    warp_date: str = ""
    total: LiveAggregate = field(default_factory=LiveAggregate)
    by_op_type: dict[str, LiveAggregate] = field(default_factory=dict)
    by_host: dict[str, LiveAggregate] = field(default_factory=dict)
    by_obj_log2_size: dict[int, LiveAggregate] = field(default_factory=dict)
    by_client: dict[str, LiveAggregate] = field(default_factory=dict)
    by_category: dict[int, LiveAggregate] = field(default_factory=dict)

    def _maps(self) -> tuple[dict, ...]:
        return (
            self.by_op_type,
            self.by_host,
            self.by_obj_log2_size,
            self.by_client,
            self.by_category,
        )

    def finalize(self) -> None:
        """Finalize every aggregate and mark the run as final."""
        for mapping in self._maps():
            for value in mapping.values():
                if value is not None:
                    value.finalize()
        self.total.finalize()
        self.final = True

    def merge(self, other: Realtime | None) -> None:
        """Merge the results of another client into this one."""
        if other is None:
            return
        for own, theirs in zip(self._maps(), other._maps()):
            for key, value in theirs.items():
                if value is None:
                    continue
                dst = own.get(key)
                if dst is None:
                    dst = LiveAggregate(title=value.title)
                dst.merge(value)
                own[key] = dst
        self.total.merge(other.total)
        self.final = other.final and (self.final or self.total.total_requests == 0)
        self.warp_commit = self.warp_commit or other.warp_commit
        self.warp_date = self.warp_date or other.warp_date
        self.warp_version = self.warp_version or other.warp_version
        self.commandline = self.commandline or other.commandline
        if self.data_version == 0:
            self.data_version = other.data_version

    def overlapping_ops(self) -> bool:
        """True if some pair of operation types ran in disjoint time ranges."""
        items = list(self.by_op_type.items())
        if len(items) <= 1:
            return False
        for op_a, a in items:
            for op_b, b in items:
                if op_a == op_b:
                    continue
                if a.start_time is not None and b.end_time is not None and a.start_time > b.end_time:
                    return True
                if a.end_time is not None and b.start_time is not None and a.end_time < b.start_time:
                    return True
        return False


def new_realtime() -> Realtime:
    """Return an empty collection at the current data version."""
    return Realtime(data_version=CURRENT_VERSION, total=LiveAggregate(title="Total"))


def _split_categories(categories: int) -> list[int]:
    return [1 << bit for bit in range(categories.bit_length()) if categories >> bit & 1]


def live(ops: Iterable[Operation], client_id: str = "") -> Realtime:
    """Aggregate a stream of operations and return the finalized result."""
    result = new_realtime()
    for op in ops:
        if client_id:
            op = replace(op, client_id=client_id)

        by_op = result.by_op_type.get(op.op_type)
        if by_op is None:
            by_op = result.by_op_type[op.op_type] = LiveAggregate(title="Operation: " + op.op_type)
        by_op.add(op)

        by_host = result.by_host.get(op.endpoint)
        if by_host is None:
            by_host = result.by_host[op.endpoint] = LiveAggregate(title="Host: " + op.endpoint)
        by_host.add(op)

        if op.client_id:
            by_client = result.by_client.get(op.client_id)
            if by_client is None:
                by_client = result.by_client[op.client_id] = LiveAggregate(
                    title="Client: " + op.client_id
                )
            by_client.add(op)

        if op.size != 0:
            l2_size = (op.size & 0xFFFF_FFFF_FFFF_FFFF).bit_length()
            by_size = result.by_obj_log2_size.get(l2_size)
            if by_size is None:
                start = 1 >> (l2_size - 1) if l2_size > 0 else 0
                by_size = result.by_obj_log2_size[l2_size] = LiveAggregate(
                    title=f"Size: {start}->{(1 << l2_size) - 1}"
                )
            by_size.add(op)

        result.total.add(op)

        for cat in _split_categories(op.categories):
            by_cat = result.by_category.get(cat)
            if by_cat is None:
                by_cat = result.by_category[cat] = LiveAggregate(title=f"Category: {cat}")
            by_cat.add(op)
    result.finalize()
    return result


def merge_requests(
    data: Mapping[str, Iterable[RequestSegment]],
) -> tuple[SingleSizedRequests, MultiSizedRequests]:
    """Merge all request segments of all clients."""
    single = SingleSizedRequests()
    multi = MultiSizedRequests()
    for segments in data.values():
        for seg in segments:
            if seg.single is not None:
                single.add(seg.single)
            if seg.multi is not None:
                multi.add(seg.multi)
    return single, multi


def string_keys_sorted(m: Mapping) -> list[str]:
    """Return the keys of a mapping as sorted strings."""
    return sorted(str(k) for k in m)