# packetrelay

Building blocks for a UDP packet relay: a map whose entries expire, dynamic
metadata values, protobuf struct conversions, in-process metrics and a few
socket helpers.

## Modules

- `packetrelay.ttl_map`: `TtlMap`, a thread-safe map whose entries expire
  after a time-to-live. The TTL is reset whenever an entry is inserted or read
  through `get`, `try_get`, `get_mut` or an entry view. A background thread
  calls `prune` every `poll_interval` seconds (pass `poll_interval=None` to
  prune only by hand); `close()` or leaving a `with` block stops it.
  `TtlMap.entry` returns an `OccupiedEntry` or a `VacantEntry`. `try_get`
  raises `MapLocked` instead of waiting for the lock. A custom `Clock` can be
  passed to drive time, e.g. in tests.
- `packetrelay.metadata`: `Value`, a metadata value holding a bool, an
  unsigned 64-bit number, a string, bytes or a list of values, with
  conversions to and from JSON data and protobuf `Value` messages; and
  `MetadataView`, which keeps the known metadata stored under the key
  `packetrelay.dev` apart from user entries.
- `packetrelay.symbol`: `Key`, `Reference` (written `$key`) and `Symbol`, a
  literal `Value` or a reference that `resolve`s against a metadata dict.
  `resolve_to_bytes` returns bytes as they are, numbers as eight big-endian
  bytes and strings decoded from base64.
- `packetrelay.prost`: `encode`, `from_json`, `struct_from_json`,
  `value_from_kind` and `mapping_from_kind` for protobuf `Struct`/`Value`
  messages. Numbers read back from protobuf are truncated to integers.
- `packetrelay.metrics`: `IntCounter`, `IntGauge`, `Histogram`, `MetricVec`
  and `Registry`. `registry()` returns the shared registry, whose metric names
  are prefixed with `packetrelay`. Packet metrics by `Direction`:
  `processing_time`, `bytes_total`, `errors_total`, `packets_total` and
  `packets_dropped_total`.
- `packetrelay.xds_metrics`: discovery-service counters and gauges
  (`discovery_requests`, `discovery_responses`, `acks`, `nacks`,
  `active_xds_clients`) and `StreamConnectionMetrics`, which counts an active
  client for a node until closed.
- `packetrelay.session_metrics`: `active_sessions`, `total_sessions` and
  `duration_secs`.
- `packetrelay.maxmind`: `parse_source` reads a string as a `UrlSource` or a
  `FileSource`; `source_from_json` / `source_to_json` handle the
  `{"kind": ...}` form; `IpNetEntry.from_mapping` builds an entry from a
  database record.
- `packetrelay.utils`: `bytes_to_string` renders packet contents as base64;
  `socket_with_reuse` returns a non-blocking UDP socket bound with port reuse.

## Installation

```
pip install .
```

## Examples

```python
from packetrelay.ttl_map import TtlMap, VacantEntry

with TtlMap(ttl=60, poll_interval=1) as sessions:
    sessions.insert(("127.0.0.1", 7000), "session-a")
    assert ("127.0.0.1", 7000) in sessions

    entry = sessions.entry(("127.0.0.1", 7001))
    if isinstance(entry, VacantEntry):
        entry.insert("session-b")

    print(len(sessions))  # 2
```

```python
from packetrelay.metadata import Value
from packetrelay.symbol import Key, Symbol

metadata = {Key("token"): Value(b"abc")}
print(Symbol.from_json("$token").resolve(metadata))  # YWJj
```

```python
from packetrelay import metrics

metrics.packets_total(metrics.Direction.READ).inc()
for family in metrics.registry().gather():
    print(family.name, [sample.value for sample in family.samples])
```

## What it does not do

The package holds the parts listed above and nothing more. It does not run a
proxy: there are no sessions, filters, packet forwarding or command-line
program. It has no discovery-service client or server, only their metrics.
It does not open, download or query an IP network database; `packetrelay.maxmind`
only describes where a database lives and what its records hold. Metrics are
kept in memory and are not served over HTTP.

## Tests

```
pip install .[test]
pytest
```