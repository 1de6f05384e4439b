# warpagg

`warpagg` turns a stream of benchmark operations into statistics. An
operation is a PUT, GET, STAT, DELETE or similar request with a start time, an
end time, a size and an optional error. The statistics cover throughput per
second, request latency percentiles, time to first byte, and breakdowns by
operation type, host, object size, client and category. The package can also
render these results as human-readable text reports.

The package has no runtime dependencies.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Recording operations

`warpagg.ops.Operation` is a dataclass describing one request:

- `op_type`, `start` and `end` are required.
- `size`, `obj_per_op` (default 1), `thread`, `endpoint`, `client_id`, `err`,
  `first_byte`, `categories` (a bit mask) and `file` are optional.

`duration()` returns `end - start`. `ttfb()` returns `first_byte - start`, or
zero when `first_byte` was not recorded. `ops_have_multiple_sizes(ops)` tells
whether the operations differ in size.

## Aggregating

`warpagg.live.live(ops, client_id="")` consumes an iterable of operations and
returns a finalized `Realtime`. When `client_id` is given, it replaces the
client id of every operation.

A `Realtime` holds the following aggregates, each a `LiveAggregate`:

- `total`
- `by_op_type`
- `by_host`
- `by_obj_log2_size`
- `by_client`
- `by_category`

`Realtime.merge(other)` combines the results of several clients.
`Realtime.finalize()` finalizes every aggregate. `Realtime.overlapping_ops()`
returns true when some pair of operation types ran in disjoint time ranges.
`new_realtime()` returns an empty `Realtime`.

A `LiveAggregate` keeps the following:

- request, object, error and byte totals
- the first ten errors
- the hosts and clients seen
- per-host and per-client `Throughput`
- request statistics per client, in ten-second `RequestSegment` windows

Its methods are:

- `add(op)` counts one operation.
- `merge(other)` combines two aggregates.
- `update()` returns an independent interim snapshot.
- `finalize()` computes the final throughput, concurrency and request
  segments.

Throughput is spread over one-second buckets. The first two and last two
buckets are dropped as warm-up and wind-down.

`merge_requests(data)` merges the request segments of all clients into one
`SingleSizedRequests` and one `MultiSizedRequests`. `string_keys_sorted(m)`
returns a mapping's keys as sorted strings.

## Statistics types

- `warpagg.throughput.Throughput` holds totals over a period. Its methods are
  `add`, `merge`, `bytes_ps`, `objects_ps`, `string_details` and
  `string_duration`.
- `warpagg.throughput.ThroughputSegmented` holds per-segment results
  (`SegmentsSmall` of `SegmentSmall`) together with the fastest, median and
  slowest segment. `bps_or_ops(bps, ops)` formats whichever figure applies.
- `warpagg.requests.SingleSizedRequests` holds latency statistics for
  requests of equal size. Its methods are `fill(ops)`, `add` and
  `string_by_n`.
- `warpagg.requests.RequestSizeRange`, `RequestSizeRanges` and
  `MultiSizedRequests` hold throughput statistics per size range.
- `warpagg.ttfb.TTFB` holds time-to-first-byte statistics in milliseconds.
  `ttfb_from_stats(...)` builds one from durations, and returns `None` when
  the average is not positive.
- `warpagg.mapasslice.MapAsSlice` is a set of strings. `to_json()` writes it
  as a sorted, HTML-safe JSON array, and `MapAsSlice.from_json(data)` reads
  one back.

## Reporting

```python
from warpagg.live import live
from warpagg.report import ReportOptions, report_realtime

result = live(operations)
print(report_realtime(result, ReportOptions(details=True)))
```

`ReportOptions` takes the following options:

- `details`
- `color` (ANSI colours)
- `skip_reqs`
- `only_ops` (a set of upper-case operation names)

`report_aggregate(aggregate, op, options)` renders a single aggregate.
`report_realtime` renders every operation type. When there is more than one
type and `overlapping_ops()` is false, it adds a total.
`strip_color(text)` removes ANSI colour sequences.

`stability_message(realtime, op, threshold, want_samples, min_dur)` checks
whether throughput has settled. It looks at operation type `op`, or at the
total when `op` is empty. It returns a termination message when:

- the run is longer than `min_dur`, and
- the last `want_samples` one-second segments are within `threshold` (a
  fraction) of the last segment.

Otherwise it returns `None`. It raises `ValueError` if `want_samples` is below
1.

## Formatting helpers

`warpagg.units` holds the following helpers:

- `format_duration` renders a duration such as `1m2.5s` or `12.5ms`.
- `format_throughput` renders a rate such as `1.50 MiB/s`.
- `dur_to_millis` converts a duration to rounded milliseconds.
- `dur_to_millis_f` converts a duration to fractional milliseconds.

## What this package does not do

`warpagg` only aggregates and reports operations that you supply. It does not
do any of the following:

- run benchmarks or talk to an S3 server
- provide a command-line tool
- serve live updates to a running benchmark
- stop a benchmark by itself
- save or load whole results as JSON; only `MapAsSlice` has JSON helpers