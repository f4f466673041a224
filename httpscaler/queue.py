"""Per-host pending-request counts and request rates."""

from __future__ import annotations

import abc
import json
import queue as _stdqueue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Union

from httpscaler.bucketing import RequestsBuckets


@dataclass
class Count:
    """Pending-request count and requests per second for one host."""

    concurrency: int = 0
    rps: float = 0.0


def _format_float(value: float) -> str:
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def _json_number(value: float) -> Union[int, float]:
    value = float(value)
    if value.is_integer() and abs(value) < 1e21:
        return int(value)
    return value


@dataclass
class Counts:
    """Snapshot of :class:`Count` values keyed by host."""

    counts: Dict[str, Count] = field(default_factory=dict)

    def aggregate(self) -> Count:
        """Total across all hosts."""
        total = Count()
        for count in self.counts.values():
            total.concurrency += count.concurrency
            total.rps += count.rps
        return total

    def to_json(self) -> str:
        return json.dumps(
            {
                host: {"Concurrency": c.concurrency, "RPS": _json_number(c.rps)}
                for host, c in self.counts.items()
            },
            separators=(",", ":"),
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "Counts":
        """Parse the form written by :meth:`to_json`; field names match case-insensitively."""
        raw = json.loads(data)
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ValueError("queue counts must be a JSON object")
        counts: Dict[str, Count] = {}
        for host, entry in raw.items():
            if not isinstance(entry, dict):
                raise ValueError(f"count for {host!r} must be a JSON object")
            fields = {key.lower(): value for key, value in entry.items()}
            concurrency = fields.get("concurrency", 0)
            rps = fields.get("rps", 0.0)
            if isinstance(concurrency, bool) or not isinstance(concurrency, int):
                raise ValueError(f"invalid concurrency for {host!r}: {concurrency!r}")
            if isinstance(rps, bool) or not isinstance(rps, (int, float)):
                raise ValueError(f"invalid rps for {host!r}: {rps!r}")
            counts[host] = Count(concurrency=concurrency, rps=float(rps))
        return cls(counts)

    def __str__(self) -> str:
        items = " ".join(
            f"{host}:{{{c.concurrency} {_format_float(c.rps)}}}"
            for host, c in sorted(self.counts.items())
        )
        return f"map[{items}]"


class CountReader(abc.ABC):
    """Reads the current size of a possibly distributed HTTP queue."""

    @abc.abstractmethod
    def current(self) -> Counts:
        """Current counts per host."""


class Counter(CountReader):
    """A queue whose per-host size can be changed as well as read."""

    @abc.abstractmethod
    def increase(self, host: str, delta: int) -> None:
        """Grow the queue for ``host`` by ``delta``."""

    @abc.abstractmethod
    def decrease(self, host: str, delta: int) -> None:
        """Shrink the queue for ``host`` by ``delta``."""

    @abc.abstractmethod
    def ensure_key(self, host: str, window: timedelta, granularity: timedelta) -> None:
        """Make sure ``host`` is tracked."""

    @abc.abstractmethod
    def update_buckets(self, host: str, window: timedelta, granularity: timedelta) -> None:
        """Replace the rate buckets of ``host`` if their settings changed."""

    @abc.abstractmethod
    def remove_key(self, host: str) -> bool:
        """Stop tracking ``host``; True if it was tracked."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Memory(Counter):
    """In-memory :class:`Counter`."""

    def __init__(self) -> None:
        self._concurrent: Dict[str, int] = {}
        self._rps: Dict[str, RequestsBuckets] = {}
        self._lock = threading.Lock()

    def increase(self, host: str, delta: int) -> None:
        with self._lock:
            buckets = self._rps.get(host)
            if buckets is None:
                raise KeyError(f"host {host!r} is not tracked")
            self._concurrent[host] = self._concurrent.get(host, 0) + delta
            buckets.record(_utcnow(), delta)

    def decrease(self, host: str, delta: int) -> None:
        with self._lock:
            self._concurrent[host] = self._concurrent.get(host, 0) - delta

    def ensure_key(self, host: str, window: timedelta, granularity: timedelta) -> None:
        with self._lock:
            self._concurrent.setdefault(host, 0)
            if host not in self._rps:
                self._rps[host] = RequestsBuckets(window, granularity)

    def update_buckets(self, host: str, window: timedelta, granularity: timedelta) -> None:
        self.ensure_key(host, window, granularity)
        with self._lock:
            buckets = self._rps.get(host)
            if buckets is not None and (
                buckets.window != window or buckets.granularity != granularity
            ):
                self._rps[host] = RequestsBuckets(window, granularity)

    def remove_key(self, host: str) -> bool:
        with self._lock:
            had_concurrent = self._concurrent.pop(host, None) is not None
            had_rps = self._rps.pop(host, None) is not None
            return had_concurrent and had_rps

    def current(self) -> Counts:
        with self._lock:
            now = _utcnow()
            counts = Counts()
            for host, concurrency in self._concurrent.items():
                buckets = self._rps.get(host)
                if buckets is None:
                    raise KeyError(f"rps map doesn't contain the key '{host}'")
                counts.counts[host] = Count(concurrency, buckets.window_average(now))
            return counts


@dataclass(frozen=True)
class HostAndCount:
    host: str
    count: int


class FakeCounter(Counter):
    """Test :class:`Counter` that reports every resize on :attr:`resized`.

    :attr:`resized` holds one pending report; a resize raises
    :class:`TimeoutError` if the previous report is not taken within
    :attr:`resize_timeout` seconds.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.ret_map: Dict[str, Count] = {}
        self.resized: "_stdqueue.Queue[HostAndCount]" = _stdqueue.Queue(maxsize=1)
        self.resize_timeout = 1.0

    def _report(self, host: str, delta: int, action: str) -> None:
        try:
            self.resized.put(HostAndCount(host, delta), timeout=self.resize_timeout)
        except _stdqueue.Full:
            raise TimeoutError(
                f"FakeCounter.{action} timeout after {self.resize_timeout}s"
            ) from None

    def increase(self, host: str, delta: int) -> None:
        with self._lock:
            count = self.ret_map.get(host, Count())
            self.ret_map[host] = Count(count.concurrency + delta, count.rps + delta)
        self._report(host, delta, "Increase")

    def decrease(self, host: str, delta: int) -> None:
        with self._lock:
            count = self.ret_map.get(host, Count())
            self.ret_map[host] = Count(count.concurrency - delta, count.rps)
        self._report(host, delta, "Decrease")

    def ensure_key(self, host: str, window: timedelta, granularity: timedelta) -> None:
        with self._lock:
            self.ret_map[host] = Count(concurrency=0)

    def update_buckets(self, host: str, window: timedelta, granularity: timedelta) -> None:
        """Does nothing: the fake keeps no rate buckets."""

    def remove_key(self, host: str) -> bool:
        with self._lock:
            return self.ret_map.pop(host, None) is not None

    def current(self) -> Counts:
        with self._lock:
            return Counts(dict(self.ret_map))


@dataclass
class FakeCountReader(CountReader):
    """Reports a single fixed count for ``sample.com``, or raises ``err``."""

    concurrency: int = 0
    rps: float = 0.0
    err: Optional[Exception] = None

    def current(self) -> Counts:
        if self.err is not None:
            raise self.err
        return Counts({"sample.com": Count(self.concurrency, self.rps)})