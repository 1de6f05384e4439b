"""Human readable reports of aggregated benchmark results."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import IntEnum

from warpagg.live import LiveAggregate, Realtime, merge_requests, string_keys_sorted
from warpagg.requests import MultiSizedRequests, SingleSizedRequests
from warpagg.throughput import SegmentSmall, Throughput
from warpagg.units import format_duration

_SEPARATOR = "\n──────────────────────────────────\n\n"
_ANSI = re.compile(r"\x1b\[[0-9;]*m")


class _Color(IntEnum):
    WHITE = 37
    HI_RED = 91
    HI_YELLOW = 93
    HI_BLUE = 94
    HI_WHITE = 97


@dataclass(frozen=True)
class ReportOptions:
    """Options controlling report generation."""

    details: bool = False
    color: bool = False
    skip_reqs: bool = False
    only_ops: frozenset[str] = field(default_factory=frozenset)

    def paint(self, color: _Color, text: str) -> str:
        """Wrap text in an ANSI colour sequence when colour is enabled."""
        if not self.color or not text:
            return text
        return f"\x1b[{int(color)}m{text}\x1b[0m"


def strip_color(text: str) -> str:
    """Remove ANSI colour sequences from text."""
    return _ANSI.sub("", text)


def _size_requests_lines(
    ms: MultiSizedRequests, opts: ReportOptions, compact: bool
) -> list[str]:
    lines: list[str] = []
    ms.by_size.sort_by_size()
    for s in ms.by_size:
        lines.append(
            opts.paint(
                _Color.WHITE,
                f"\nRequest size {s.min_size_string} -> {s.max_size_string} . "
                f"Requests: {s.requests}\n",
            )
        )
        if compact:
            lines.append(opts.paint(_Color.WHITE, f" * Reqs: {s.string_by_n()}"))
            if s.first_byte is not None:
                lines.append(
                    opts.paint(
                        _Color.WHITE,
                        f", TTFB: {s.first_byte.string_by_n(s.merged_entries)}\n",
                    )
                )
            else:
                lines.append("\n")
        else:
            lines.append(opts.paint(_Color.WHITE, f" * Reqs: {s.string_by_n()} \n"))
            if s.first_byte is not None:
                lines.append(
                    opts.paint(
                        _Color.WHITE,
                        f" * TTFB: {s.first_byte.string_by_n(s.merged_entries)}\n",
                    )
                )
    return lines


def report_aggregate(aggregate: LiveAggregate, op: str, options: ReportOptions) -> str:
    """Describe one aggregate as a multi-line report."""
    out: list[str] = []
    paint = options.paint
    details = options.details
    data = aggregate
    segmented = data.throughput.segmented

    if segmented is None or len(segmented.segments) < 2:
        out.append(
            paint(
                _Color.HI_YELLOW,
                f"Skipping {op} too few samples. Longer benchmark run required "
                "for reliable results.\n\n",
            )
        )
        if data.total_errors > 0:
            out.append(paint(_Color.HI_RED, f"Errors: {data.total_errors}\n"))
            if details:
                out.append(paint(_Color.WHITE, "- First Errors:\n"))
                out.extend(paint(_Color.WHITE, f" * {err}\n") for err in data.first_errors)
            out.append("\n")
        return "".join(out)

    op_col = paint(_Color.HI_YELLOW, op)
    if details:
        hosts_string = ""
        if len(data.hosts) > 1:
            hosts_string = f" Hosts: {len(data.hosts)}."
        if len(data.clients) > 1:
            hosts_string = f"{hosts_string} Warp Instances: {len(data.clients)}."
        size = ""
        if data.total_bytes > 0:
            size = f"Size: {data.total_bytes // data.total_objects} bytes. "
        out.append(
            paint(
                _Color.WHITE,
                f"Report: {op_col} ({data.total_requests} reqs). "
                f"Ran {data.throughput.string_duration()}\n",
            )
        )
        out.append(
            paint(
                _Color.WHITE,
                f" * Objects per request: {data.total_objects // data.total_requests}. "
                f"{size}Concurrency: {data.concurrency}.{hosts_string}\n",
            )
        )
    else:
        ran = format_duration(timedelta(milliseconds=data.throughput.measure_duration_millis))
        out.append(
            paint(
                _Color.HI_WHITE,
                f"Report: {op_col}. Concurrency: {data.concurrency}. Ran: {ran}\n",
            )
        )
    average = paint(_Color.WHITE, data.throughput.string_details(details))
    out.append(paint(_Color.WHITE, f" * Average: {average}\n"))
    if data.total_errors > 0:
        out.append(paint(_Color.HI_RED, f" * Errors: {data.total_errors}\n"))
        if details:
            out.append(paint(_Color.WHITE, " - First Errors:\n"))
            out.extend(paint(_Color.WHITE, f"   * {err}\n") for err in data.first_errors)

    if not options.skip_reqs:
        ss, ms = merge_requests(data.requests)
        if ss.merged_entries > 0:
            out.append(paint(_Color.WHITE, f" * Reqs: {ss.string_by_n()}\n"))
            if ss.first_byte is not None:
                out.append(
                    paint(
                        _Color.WHITE,
                        f" * TTFB: {ss.first_byte.string_by_n(ss.merged_entries)}\n",
                    )
                )
        if ms.merged_entries > 0:
            out.extend(_size_requests_lines(ms, options, compact=False))
    out.append("\n")

    if len(data.hosts) > 1:
        by_host = data.throughput_by_host or {}
        out.append(paint(_Color.HI_WHITE, "Throughput by host:\n"))
        for ep in data.hosts.slice():
            tp = by_host.get(ep, Throughput())
            out.append(paint(_Color.WHITE, f" * {ep}:"))
            out.append(paint(_Color.HI_WHITE, f" Avg: {tp.string_details(details)}"))
            if tp.errors > 0:
                out.append(paint(_Color.HI_RED, f" - Errors: {data.total_errors}"))
            out.append("\n")
        out.append("\n")

    if len(data.clients) > 1:
        by_client = data.throughput_by_client or {}
        out.append(paint(_Color.HI_WHITE, "Throughput by client:\n"))
        for number, client in enumerate(data.clients.slice(), start=1):
            tp = by_client.get(client, Throughput())
            out.append(paint(_Color.WHITE, f"Client {number} throughput: "))
            out.append(paint(_Color.HI_WHITE, f"{tp.string_details(details)}\n"))
            if options.skip_reqs or not details:
                continue
            ss = SingleSizedRequests()
            ms = MultiSizedRequests()
            for seg in data.requests.get(client, []):
                if seg.single is not None:
                    ss.add(seg.single)
                if seg.multi is not None:
                    ms.add(seg.multi)
            if ss.merged_entries > 0:
                out.append(paint(_Color.WHITE, f" * Reqs: {ss.string_by_n()}"))
                if ss.first_byte is not None:
                    out.append(
                        paint(
                            _Color.WHITE,
                            f"\n * TTFB: {ss.first_byte.string_by_n(ss.merged_entries)}\n",
                        )
                    )
                else:
                    out.append("\n")
            if ms.merged_entries > 0:
                out.extend(_size_requests_lines(ms, options, compact=True))
            out.append("\n")
        out.append("\n")

    dur = timedelta(milliseconds=segmented.segment_duration_millis)
    fastest = SegmentSmall(
        start=segmented.fastest_start, bps=segmented.fastest_bps, ops=segmented.fastest_ops
    )
    median = SegmentSmall(
        start=segmented.median_start, bps=segmented.median_bps, ops=segmented.median_ops
    )
    slowest = SegmentSmall(
        start=segmented.slowest_start, bps=segmented.slowest_bps, ops=segmented.slowest_ops
    )
    out.append(
        paint(_Color.HI_WHITE, f"Throughput, split into {len(segmented.segments)} x 1s:\n")
    )
    out.append(paint(_Color.WHITE, f" * Fastest: {fastest.string_long(dur, details)}\n"))
    out.append(paint(_Color.WHITE, f" * 50% Median: {median.string_long(dur, details)}\n"))
    out.append(paint(_Color.WHITE, f" * Slowest: {slowest.string_long(dur, details)}\n"))
    return "".join(out)


def report_realtime(realtime: Realtime, options: ReportOptions) -> str:
    """Describe every operation type of a run, followed by a total when useful."""
    out: list[str] = []
    wrote_ops = 0
    all_ops = string_keys_sorted(realtime.by_op_type)
    for op in all_ops:
        if options.only_ops and op.upper() not in options.only_ops:
            continue
        if wrote_ops > 0:
            out.append(options.paint(_Color.HI_BLUE, _SEPARATOR))
        out.append(report_aggregate(realtime.by_op_type[op], op, options))
        wrote_ops += 1
    out.append("\n")
    if len(all_ops) > 1 and not realtime.overlapping_ops():
        if wrote_ops > 0:
            out.append(options.paint(_Color.HI_BLUE, _SEPARATOR))
        out.append(report_aggregate(realtime.total, "Total", replace(options, skip_reqs=True)))
    return "".join(out)


def stability_message(
    realtime: Realtime,
    op: str,
    threshold: float,
    want_samples: int,
    min_dur: timedelta,
) -> str | None:
    """Return a termination message if throughput has become stable, else None.

    The last ``want_samples`` segments of the operation type ``op`` (or of the
    total when ``op`` is empty) must all lie within ``threshold`` (a fraction)
    of the last segment, and the run must be longer than ``min_dur``.
    """
    if want_samples < 1:
        raise ValueError("want_samples must be at least 1")
    data = realtime.total if op == "" else realtime.by_op_type.get(op)
    if data is None or data.throughput.segmented is None:
        return None
    if data.start_time is None or data.end_time is None:
        return None
    if data.end_time - data.start_time <= min_dur:
        return None
    segmented = data.throughput.segmented
    segs = list(segmented.segments)
    if len(segs) < want_samples:
        return None
    last = segs[-1]
    mb, objs = last.bps, last.ops
    compared = segs[len(segs) - want_samples : len(segs) - 1]
    for seg in compared:
        if mb > 0:
            if abs(mb - seg.bps) > threshold * mb:
                return None
            continue
        if abs(objs - seg.ops) > threshold * objs:
            return None
    span = format_duration(
        timedelta(milliseconds=segmented.segment_duration_millis * (len(compared) + 1))
    )
    if mb > 0:
        return (
            f"Throughput {mb:.1f}MiB/s within {threshold * 100:f}% for {span}. "
            "Assuming stability. Terminating benchmark."
        )
    return (
        f"Throughput {objs:.1f} objects/s within {threshold * 100:f}% for {span}. "
        "Assuming stability. Terminating benchmark."
    )