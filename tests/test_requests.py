from datetime import datetime, timedelta, timezone

import pytest

from warpagg.mapasslice import MapAsSlice
from warpagg.ops import Operation
from warpagg.requests import (
    MultiSizedRequests,
    RequestSizeRange,
    RequestSizeRanges,
    SingleSizedRequests,
)
from warpagg.ttfb import TTFB

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_op(start_ms, dur_ms, size=100, ttfb_ms=None, endpoint="host1"):
    start = BASE + timedelta(milliseconds=start_ms)
    first_byte = None
    if ttfb_ms is not None:
        first_byte = start + timedelta(milliseconds=ttfb_ms)
    return Operation(
        op_type="GET",
        start=start,
        end=start + timedelta(milliseconds=dur_ms),
        size=size,
        endpoint=endpoint,
        first_byte=first_byte,
    )


def test_single_string_by_n_empty_without_requests():
    assert SingleSizedRequests().string_by_n() == ""
    assert SingleSizedRequests(requests=3, merged_entries=0).string_by_n() == ""


def test_single_string_by_n_single_entry():
    r = SingleSizedRequests(
        requests=4,
        merged_entries=1,
        dur_avg_millis=12.5,
        fastest_millis=3.0,
        slowest_millis=40.0,
    )
    text = r.string_by_n()
    assert text.startswith("Avg: 12.5ms, 50%: 0.0ms")
    assert "Fastest: 3.0ms" in text
    assert "Slowest: 40.0ms" in text
    assert text.endswith("StdDev: 0.0ms")


def test_single_string_by_n_averages_over_entries():
    one = SingleSizedRequests(requests=1, merged_entries=1, dur_avg_millis=12.5)
    two = SingleSizedRequests(requests=2, merged_entries=2, dur_avg_millis=25.0)
    assert one.string_by_n().split(",")[0] == two.string_by_n().split(",")[0]


def test_single_add_accumulates_and_keeps_extremes():
    a = SingleSizedRequests(
        requests=2, fastest_millis=5.0, slowest_millis=10.0, merged_entries=1,
        dur_avg_millis=7.0, host_names=MapAsSlice({"a"}),
    )
    b = SingleSizedRequests(
        requests=3, fastest_millis=3.0, slowest_millis=20.0, merged_entries=1,
        dur_avg_millis=9.0, host_names=MapAsSlice({"b"}),
    )
    a.add(b)
    assert a.requests == 5
    assert a.fastest_millis == 3.0
    assert a.slowest_millis == 20.0
    assert a.merged_entries == 2
    assert a.dur_avg_millis == 7.0 + 9.0
    assert a.host_names.slice() == ["a", "b"]


def test_single_add_into_empty_takes_fastest():
    a = SingleSizedRequests()
    a.add(SingleSizedRequests(requests=1, fastest_millis=8.0, merged_entries=1))
    assert a.fastest_millis == 8.0
    assert a.dur_pct == [0.0] * 101


def test_single_add_ignores_skipped():
    a = SingleSizedRequests(requests=1, merged_entries=1)
    a.add(SingleSizedRequests(requests=50, merged_entries=1, skipped=True))
    assert a.requests == 1
    assert a.merged_entries == 1


def test_single_add_sums_percentiles_and_nested():
    a = SingleSizedRequests(dur_pct=[1.0] * 101)
    b = SingleSizedRequests(
        dur_pct=[2.0] * 101,
        merged_entries=1,
        by_host={"h": SingleSizedRequests(requests=4, merged_entries=1)},
        first_byte=TTFB(average_millis=6.0, fastest_millis=2.0),
        first_access=SingleSizedRequests(requests=7, merged_entries=1),
    )
    a.add(b)
    assert a.dur_pct == [3.0] * 101
    assert a.by_host["h"].requests == 4
    assert a.first_byte.average_millis == 6.0
    assert a.first_byte.fastest_millis == 2.0
    assert a.first_access.requests == 7
    assert a.last_access is None


def test_single_fill_statistics():
    ops = [make_op(0, 30), make_op(5, 10), make_op(10, 40), make_op(15, 20)]
    r = SingleSizedRequests()
    r.fill(ops)
    assert r.requests == 4
    assert r.merged_entries == 1
    assert r.fastest_millis == 10.0
    assert r.slowest_millis == 40.0
    assert r.dur_avg_millis == 25.0
    assert r.fastest_millis <= r.dur_median_millis <= r.slowest_millis
    assert r.dur_pct[0] == r.fastest_millis
    assert r.dur_pct[100] == r.slowest_millis
    assert r.dur_pct == sorted(r.dur_pct)
    assert r.obj_size == 100
    assert r.first_byte is None
    assert r.std_dev > 0


def test_single_fill_does_not_reorder_input():
    ops = [make_op(0, 30), make_op(5, 10)]
    before = list(ops)
    SingleSizedRequests().fill(ops)
    assert ops == before


def test_single_fill_with_first_byte():
    ops = [make_op(0, 30, ttfb_ms=5), make_op(5, 10, ttfb_ms=2), make_op(9, 20, ttfb_ms=8)]
    r = SingleSizedRequests()
    r.fill(ops)
    fb = r.first_byte
    assert fb is not None
    assert fb.fastest_millis == 2.0
    assert fb.slowest_millis == 8.0
    assert fb.fastest_millis <= fb.average_millis <= fb.slowest_millis
    assert len(fb.percentiles_millis) == 101


def test_size_range_strings():
    empty = RequestSizeRange(bps_average=1000.0)
    assert str(empty) == ""
    assert empty.string_by_n() == ""
    r = RequestSizeRange(requests=2, merged_entries=1, bps_average=1000.0, bps_median=500.0)
    assert r.string_by_n() == str(r).replace("Average:", "Avg:", 1)
    assert str(r).startswith("Average: ")


def test_size_range_string_by_n_divides():
    one = RequestSizeRange(requests=1, merged_entries=1, bps_average=1000.0)
    two = RequestSizeRange(requests=2, merged_entries=2, bps_average=2000.0)
    assert one.string_by_n() == two.string_by_n()


def test_size_range_add():
    a = RequestSizeRange(min_size=1, max_size=10, requests=1, merged_entries=1, bps_average=5.0)
    b = RequestSizeRange(
        min_size=2, max_size=3, requests=2, merged_entries=1, bps_average=7.0,
        bps_pct=[1.0] * 101, first_byte=TTFB(average_millis=4.0),
    )
    a.add(b)
    assert a.requests == 3
    assert a.merged_entries == 2
    assert a.bps_average == 12.0
    assert a.min_size == 1 and a.max_size == 10
    assert a.bps_pct == [1.0] * 101
    assert a.first_byte.average_millis == 4.0


def test_ranges_sort_by_size():
    ranges = RequestSizeRanges(
        [RequestSizeRange(min_size=100), RequestSizeRange(min_size=1), RequestSizeRange(min_size=50)]
    )
    ranges.sort_by_size()
    assert [r.min_size for r in ranges] == [1, 50, 100]


def test_ranges_find_matching():
    existing = RequestSizeRange(min_size=10, max_size=100)
    ranges = RequestSizeRanges([existing])
    found, ok = ranges.find_matching(RequestSizeRange(min_size=20, max_size=50))
    assert ok is True
    assert found is existing

    want = RequestSizeRange(min_size=200, max_size=300, min_size_string="a", max_size_string="b")
    new, ok = ranges.find_matching(want)
    assert ok is False
    assert (new.min_size, new.max_size) == (200, 300)
    assert (new.min_size_string, new.max_size_string) == ("a", "b")
    assert len(ranges) == 1


def test_multi_add_appends_and_merges():
    a = MultiSizedRequests(
        by_size=[RequestSizeRange(min_size=10, max_size=100, requests=1, merged_entries=1)],
        requests=1, merged_entries=1,
    )
    b = MultiSizedRequests(
        by_size=[
            RequestSizeRange(min_size=20, max_size=50, requests=2, merged_entries=1),
            RequestSizeRange(min_size=1, max_size=5, requests=3, merged_entries=1),
        ],
        by_host={"h": RequestSizeRange(requests=5, merged_entries=1)},
        requests=5, merged_entries=1,
    )
    a.add(b)
    assert a.requests == 6
    assert a.merged_entries == 2
    assert [r.min_size for r in a.by_size] == [1, 10]
    assert a.by_size[1].requests == 3
    assert a.by_size[0].requests == 3
    assert a.by_host["h"].requests == 5


def test_multi_add_ignores_skipped():
    a = MultiSizedRequests(requests=1)
    a.add(MultiSizedRequests(requests=9, skipped=True))
    assert a.requests == 1
    assert a.by_host is None


@pytest.mark.parametrize("entries", [1, 2, 5])
def test_single_merge_count_matches_adds(entries):
    total = SingleSizedRequests()
    for _ in range(entries):
        total.add(SingleSizedRequests(requests=1, merged_entries=1, fastest_millis=1.0))
    assert total.merged_entries == entries
    assert total.requests == entries