# dipgauge

A small metrics library for applications and libraries. Metrics of a given
kind (`InputKind.MARKER`, `COUNTER`, `GAUGE`, `LEVEL`, `TIMER`, from
`dipgauge.stats`) are defined in a scope with `new_metric(name, kind)`, and
values are written with `metric.write(value, labels)`, where `labels` is an
optional dict of strings.

## Outputs

Each output is an input object whose `metrics()` method opens a scope.

- `dipgauge.stream.Stream` – text lines to any writable (binary or text);
  `write_to`, `write_to_file` (append), `write_to_new_file(path, clobber)`,
  `write_to_stdout`, `write_to_stderr`. Line layout comes from a
  `LineFormat`; the default `SimpleFormat` prints `dotted.name value`.
  `formatting(...)` swaps the format.
- `dipgauge.textlog.Log` – the same lines as `logging` records;
  `Log.to_log()` logs at INFO, `level(...)` and `target(logger_name)` change that.
- `dipgauge.map.StatsMap` – keeps the latest value per dotted metric name;
  `StatsMapScope.into_map()` returns a copy sorted by key.
- `dipgauge.graphite.Graphite` (TCP, reconnecting with backoff through
  `dipgauge.retry_socket.RetrySocket`) and `GraphiteUdp` – graphite plaintext
  lines `name value timestamp`.
- `dipgauge.statsd.Statsd` – statsd lines over UDP, packed into datagrams of
  at most 576 bytes. With `sampled(rate)` only a random fraction of values is
  sent and the line carries `|@rate`.
- `dipgauge.prometheus.Prometheus` – `Prometheus.push_to(url)` POSTs text
  lines (`name{label="value"} value`) to a push gateway.
- `dipgauge.void.Void` – discards everything.

Timer values are taken as microseconds; graphite, statsd and prometheus
outputs divide them by 1000 to send milliseconds.

Scopes are unbuffered by default: each write is sent at once. Call
`buffered(True)` (or a positive size) on an input or scope to hold writes
until `flush()`. Scopes are also context managers that flush on exit, and
`on_flush(listener)` registers a callable run on every flush.

`named(prefix)` returns a copy of an input or scope whose metric names get
that prefix. Names are built from `NameParts` and `MetricName` in
`dipgauge.name`, and joined with `.` (or `_` for prometheus) when written.

## Proxies, queues and scheduling

- `dipgauge.proxy.Proxy` – define metrics before any output exists, then
  point them at a scope with `target(scope)`; `unset_target()` falls back to
  the nearest enclosing namespace's target. Copies made with `named(...)`
  share one tree, so targets can be set per namespace. `ROOT_PROXY` is a
  shared root; `Proxy.default_target(scope)` targets it.
- `dipgauge.queueing.InputQueue(input, length)` and
  `InputQueueScope.wrap(scope, length)` – writes and flushes are handed to a
  background thread through a bounded queue; writers block when it is full.
- `dipgauge.scheduler.Scheduler` runs periodic tasks on a background thread;
  `schedule(period, operation)` returns a `CancelHandle`. `flush_every(scope,
  period)` flushes a scope periodically on a shared scheduler.
  `handle.into_guard()` gives a `CancelGuard` that cancels on leaving a `with`
  block unless `disarm()`ed.

`dipgauge.stats` also provides export strategies (`stats_all`,
`stats_average`, `stats_summary`) that turn a `Score` into a stat to report.

## What it does not do

There is no aggregating output that computes scores from written values,
so the export strategies have to be fed `Score` objects by the caller.
There is no command-line tool and no server that receives metrics.

## Installing

```
pip install dipgauge
```

The package has no dependencies outside the standard library.

## Example

```python
from dipgauge.map import StatsMap
from dipgauge.stats import InputKind

scope = StatsMap().metrics()
requests = scope.new_metric("requests", InputKind.COUNTER)
requests.write(3, {})
print(scope.into_map())   # {'requests': 3}
```

Buffered lines on stdout, flushed every ten seconds:

```python
from dipgauge.stream import Stream
from dipgauge.scheduler import flush_every

scope = Stream.write_to_stdout().buffered(True).metrics()
handle = flush_every(scope, 10.0)
...
handle.cancel()
```

## Running the tests

```
pip install -e .[test]
pytest
```