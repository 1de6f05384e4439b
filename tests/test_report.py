from datetime import datetime, timedelta, timezone

import pytest

from warpagg.live import LiveAggregate, live
from warpagg.ops import Operation
from warpagg.report import (
    ReportOptions,
    report_aggregate,
    report_realtime,
    stability_message,
    strip_color,
)

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_ops(
    count=10,
    op_type="GET",
    first_second=0,
    offset_ms=250,
    dur_ms=500,
    size=lambda i: 1024,
    endpoint=lambda i: "host-a",
    client=lambda i: "",
    err=lambda i: "",
):
    ops = []
    for i in range(count):
        start = BASE + timedelta(seconds=first_second + i, milliseconds=offset_ms)
        ops.append(
            Operation(
                op_type=op_type,
                start=start,
                end=start + timedelta(milliseconds=dur_ms),
                size=size(i),
                thread=i % 2,
                endpoint=endpoint(i),
                client_id=client(i),
                err=err(i),
            )
        )
    return ops


def test_skipped_report_for_empty_aggregate():
    text = report_aggregate(LiveAggregate(), "GET", ReportOptions())
    assert text.startswith("Skipping GET too few samples.")
    assert "Errors" not in text


def test_skipped_report_lists_errors_with_details():
    agg = LiveAggregate()
    for op in make_ops(count=2, err=lambda i: "boom"):
        agg.add(op)
    agg.finalize()
    text = report_aggregate(agg, "GET", ReportOptions(details=True))
    assert f"Errors: {agg.total_errors}\n" in text
    assert "- First Errors:\n" in text
    assert text.count(" * boom\n") == agg.total_errors


def test_full_report_plain():
    rt = live(make_ops())
    agg = rt.by_op_type["GET"]
    text = report_aggregate(agg, "GET", ReportOptions())
    assert text.startswith(f"Report: GET. Concurrency: {agg.concurrency}. Ran: ")
    segs = agg.throughput.segmented.segments
    assert f"Throughput, split into {len(segs)} x 1s:\n" in text
    assert " * Fastest: " in text
    assert " * 50% Median: " in text
    assert " * Slowest: " in text
    assert "\x1b" not in text


def test_full_report_details_has_request_stats():
    rt = live(make_ops())
    agg = rt.by_op_type["GET"]
    text = report_aggregate(agg, "GET", ReportOptions(details=True))
    assert f"Report: GET ({agg.total_requests} reqs). Ran Duration: " in text
    assert f"Size: {agg.total_bytes // agg.total_objects} bytes. " in text
    assert " * Reqs: Avg: " in text


def test_skip_reqs_omits_request_stats():
    rt = live(make_ops())
    text = report_aggregate(rt.by_op_type["GET"], "GET", ReportOptions(details=True, skip_reqs=True))
    assert " * Reqs:" not in text


def test_color_only_adds_escape_sequences():
    rt = live(make_ops(err=lambda i: "boom" if i == 3 else ""))
    agg = rt.by_op_type["GET"]
    plain = report_aggregate(agg, "GET", ReportOptions(details=True))
    colored = report_aggregate(agg, "GET", ReportOptions(details=True, color=True))
    assert "\x1b[" in colored
    assert strip_color(colored) == plain


def test_hosts_section():
    rt = live(make_ops(endpoint=lambda i: "host-a" if i % 2 else "host-b"))
    text = report_aggregate(rt.by_op_type["GET"], "GET", ReportOptions(details=True))
    assert "Throughput by host:\n" in text
    assert " * host-a: Avg: " in text
    assert " * host-b: Avg: " in text
    assert " Hosts: 2." in text


def test_clients_section():
    rt = live(make_ops(client=lambda i: "c1" if i % 2 else "c2"))
    text = report_aggregate(rt.by_op_type["GET"], "GET", ReportOptions(details=True))
    assert "Throughput by client:\n" in text
    assert "Client 1 throughput: " in text
    assert "Client 2 throughput: " in text
    assert "Warp Instances: 2." in text


def test_realtime_with_concurrent_ops_includes_total():
    ops = make_ops() + make_ops(op_type="PUT", offset_ms=500, dur_ms=300)
    ops.sort(key=lambda o: o.start)
    text = report_realtime(live(ops), ReportOptions())
    assert "Report: GET." in text
    assert "Report: PUT." in text
    assert "Report: Total." in text
    assert text.index("Report: GET.") < text.index("Report: PUT.") < text.index("Report: Total.")
    assert text.count("──────────────────────────────────") == 2


def test_realtime_with_disjoint_ops_has_no_total():
    ops = make_ops() + make_ops(op_type="PUT", first_second=30)
    text = report_realtime(live(ops), ReportOptions())
    assert "Report: GET." in text
    assert "Report: PUT." in text
    assert "Total" not in text


def test_realtime_only_ops_filter():
    ops = make_ops() + make_ops(op_type="PUT", first_second=30)
    text = report_realtime(live(ops), ReportOptions(only_ops=frozenset({"GET"})))
    assert "Report: GET." in text
    assert "PUT" not in text


def test_stability_message_for_steady_bytes():
    rt = live(make_ops())
    msg = stability_message(rt, "GET", 0.1, 3, timedelta(seconds=1))
    assert msg is not None
    assert msg.startswith("Throughput ")
    assert "MiB/s" in msg
    assert msg.endswith("Assuming stability. Terminating benchmark.")


def test_stability_message_for_steady_objects():
    rt = live(make_ops(size=lambda i: 0))
    msg = stability_message(rt, "", 0.1, 3, timedelta(seconds=1))
    assert msg is not None
    assert "objects/s" in msg


def test_stability_rejects_varying_throughput():
    rt = live(make_ops(size=lambda i: 1024 * (i + 1)))
    assert stability_message(rt, "GET", 0.0, 3, timedelta(seconds=1)) is None


@pytest.mark.parametrize(
    "op, samples, min_dur",
    [
        ("DELETE", 3, timedelta(seconds=1)),
        ("GET", 100, timedelta(seconds=1)),
        ("GET", 3, timedelta(hours=1)),
    ],
)
def test_stability_not_reached(op, samples, min_dur):
    rt = live(make_ops())
    assert stability_message(rt, op, 0.1, samples, min_dur) is None


def test_stability_requires_samples():
    rt = live(make_ops())
    with pytest.raises(ValueError):
        stability_message(rt, "GET", 0.1, 0, timedelta(seconds=1))