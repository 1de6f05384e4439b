from datetime import timedelta

import pytest

from warpagg.units import (
    dur_to_millis,
    dur_to_millis_f,
    format_duration,
    format_throughput,
)


def test_dur_to_millis_exact():
    assert dur_to_millis(timedelta(milliseconds=7)) == 7


def test_dur_to_millis_rounds_half_up():
    assert dur_to_millis(timedelta(microseconds=1500)) == 2


@pytest.mark.parametrize("micros", [0, 1, 499, 500, 999, 123_456, 7_654_321])
def test_dur_to_millis_close_to_float(micros):
    d = timedelta(microseconds=micros)
    assert abs(dur_to_millis(d) - dur_to_millis_f(d)) <= 0.5


def test_dur_to_millis_negative_is_symmetric():
    d = timedelta(microseconds=2500)
    assert dur_to_millis(-d) == -dur_to_millis(d)


def test_dur_to_millis_f():
    assert dur_to_millis_f(timedelta(milliseconds=250)) == 250.0


def test_format_duration_zero():
    assert format_duration(timedelta(0)) == "0s"


def test_format_duration_hours_minutes_seconds():
    assert format_duration(timedelta(hours=1, minutes=2, seconds=3)) == "1h2m3s"


def test_format_duration_sub_second_units():
    assert format_duration(timedelta(microseconds=250)).endswith("µs")
    assert format_duration(timedelta(milliseconds=250)).endswith("ms")


def test_format_duration_negative_prefix():
    d = timedelta(seconds=90, milliseconds=5)
    assert format_duration(-d) == "-" + format_duration(d)


@pytest.mark.parametrize("bps", [0.0, 100.0, 5 << 10, 5 << 20, 50 << 30, 50 << 40])
def test_format_throughput_has_rate_suffix(bps):
    assert format_throughput(bps).endswith("/s")


def test_format_throughput_mebibytes():
    assert "MiB/s" in format_throughput(float(5 << 20))