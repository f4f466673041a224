# httpscaler

Building blocks for scaling HTTP workloads on how much traffic they receive.
The package tracks pending requests and requests per second per host, routes
incoming requests to the scaling target that owns them, and provides small
helpers for environment configuration, retrying TCP dials and serving a WSGI
application until told to stop. It uses only the standard library.

## Installation

```
pip install httpscaler
```

To run the test suite:

```
pip install "httpscaler[test]"
pytest
```

## Overview

| Module | What it provides |
| --- | --- |
| `httpscaler.bucketing` | `RequestsBuckets`, a ring of per-granularity counts over a sliding window, with `record`, `window_average`, `is_empty` and `iter_buckets`; `round_to_n_digits` |
| `httpscaler.queue` | `Count`, `Counts` (with `aggregate`, `to_json`, `from_json`), the `CountReader` and `Counter` interfaces, `Memory` (in-memory concurrency and RPS counter), `FakeCounter`, `FakeCountReader`, `HostAndCount` |
| `httpscaler.queue_rpc` | `make_counts_app`, a WSGI app serving counts as JSON at `/queue`, and `get_counts`, its client |
| `httpscaler.key` | `RouteTarget`, `new_key`, `new_key_from_url`, `new_key_from_request`, `new_keys_from_target` |
| `httpscaler.tablememory` | `TableMemory`, an immutable longest-prefix routing snapshot with `remember`, `recall`, `forget`, `route` |
| `httpscaler.table` | `Table`, kept up to date through `on_add` / `on_update` / `on_delete` and rebuilt by `refresh_memory`; `StaticTable`, routing by exact Host |
| `httpscaler.k8s` | `Endpoints`, `EndpointSubset`, `EndpointAddress`, `EndpointPort`, `NamespacedName`, `endpoints_for_service`, `fake_endpoints_for_url`, `fake_endpoints_for_urls`, `namespaced_name_from_object`, `namespaced_name_from_scaled_object_ref`, `object_kind` |
| `httpscaler.endpoints_cache` | the `EndpointsCache` interface, `FakeEndpointsCache`, `FakeWatcher`, `WatchEvent` |
| `httpscaler.scaledobject` | `new_scaled_object`, building a scaled-object manifest as a dict, and `ScaleTargetRef` |
| `httpscaler.net` | `Backoff`, `NetDialer`, `dial_with_retry`, `min_total_backoff_duration` (durations in seconds) |
| `httpscaler.server` | `serve_context`, serving a WSGI app, optionally over TLS, until a `threading.Event` is set |
| `httpscaler.env` | `get`, `get_or`, `get_int32_or`, `get_int_or`, `MissingEnvError` |
| `httpscaler.util` | `Signaler`, `AtomicValue`, `Stopwatch`, `HealthChecker`, `Cancelled`, `with_timeout`, `ignoring_error`, `is_ignored_err`, `parse_bool`, `parse_duration`, `resolve_os_env_bool`, `resolve_os_env_int`, `resolve_os_env_duration` |

Time windows for `RequestsBuckets` and `Counter` keys are `datetime.timedelta`
values; times passed to `RequestsBuckets` are `datetime` values, naive ones
taken as UTC.

## Examples

Counting requests per host:

```python
from datetime import timedelta
from httpscaler.queue import Memory

counter = Memory()
counter.ensure_key("default/app", timedelta(minutes=1), timedelta(seconds=1))
counter.increase("default/app", 1)
print(counter.current().aggregate())
```

Routing a request to its target:

```python
from httpscaler.key import RouteTarget, new_key_from_request
from httpscaler.tablememory import TableMemory

memory = TableMemory().remember(
    RouteTarget(namespace="default", name="app", hosts=["example.com"])
)
target = memory.route(new_key_from_request("http://example.com/api"))
print(target.name)  # app
```

Request-rate averages:

```python
from datetime import datetime, timedelta, timezone
from httpscaler.bucketing import RequestsBuckets

buckets = RequestsBuckets(timedelta(seconds=5), timedelta(seconds=1))
now = datetime(2024, 6, 26, 12, tzinfo=timezone.utc)
buckets.record(now, 3)
print(buckets.window_average(now))  # 3.0
```

Serving queue counts until stopped:

```python
import threading
from httpscaler.queue import FakeCountReader
from httpscaler.queue_rpc import make_counts_app
from httpscaler.server import serve_context

stop = threading.Event()
app = make_counts_app(FakeCountReader(concurrency=2, rps=1.5))
threading.Thread(target=serve_context, args=(stop, "localhost:8080", app)).start()
# ... later
stop.set()
```

## What this package does not do

- It does not talk to a cluster. There is no client for a cluster API, no
  informer and no live endpoints cache: `EndpointsCache` is an interface and
  `FakeEndpointsCache` is the only implementation, kept in memory and fed by
  hand. `Table` learns about targets only through calls to `on_add`,
  `on_update` and `on_delete`.
- `new_scaled_object` builds a manifest as a plain dict; nothing here applies
  it anywhere.
- It installs no command-line program and runs no proxy, operator or scaler
  of its own; it supplies the parts such programs are built from.