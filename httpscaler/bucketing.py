"""Time-bucketed request counts over a sliding window."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Iterator, Tuple

PRECISION = 3

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROS_PER_SECOND = 1_000_000


def _to_micros(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - _EPOCH
    return (delta.days * 86400 + delta.seconds) * _MICROS_PER_SECOND + delta.microseconds


def _delta_micros(value: timedelta) -> int:
    return (value.days * 86400 + value.seconds) * _MICROS_PER_SECOND + value.microseconds


def _from_micros(micros: int) -> datetime:
    return _EPOCH + timedelta(microseconds=micros)


def _div_trunc(a: int, b: int) -> int:
    """Integer division rounding toward zero."""
    quotient = abs(a) // abs(b)
    return -quotient if (a < 0) != (b < 0) else quotient


# The zero instant (1 January of year 1, UTC) marks "never written".
_ZERO = _to_micros(datetime(1, 1, 1, tzinfo=timezone.utc))


def round_to_n_digits(n: int, f: float) -> float:
    """Round ``f`` down to ``n`` decimal digits."""
    p = float(10**n)
    return float(int((f * p) // 1)) / p if abs(f * p) < 2**62 else (f * p // 1) / p


class RequestsBuckets:
    """A ring of per-granularity counters covering a sliding time window.

    Times are :class:`datetime` values; naive ones are taken as UTC.
    """

    def __init__(self, window: timedelta, granularity: timedelta) -> None:
        window_us = _delta_micros(window)
        granularity_us = _delta_micros(granularity)
        if granularity_us <= 0:
            raise ValueError("granularity must be positive")
        self.window = window
        self.granularity = granularity
        self._window = window_us
        self._granularity = granularity_us
        self._buckets = [0] * max(0, -(-window_us // granularity_us))
        self._first_write = _ZERO
        self._last_write = _ZERO
        self._window_total = 0
        self._lock = threading.Lock()

    def _truncate(self, micros: int) -> int:
        return micros - (micros - _ZERO) % self._granularity

    def _time_to_index(self, micros: int) -> int:
        return (micros // _MICROS_PER_SECOND) // (self._granularity // _MICROS_PER_SECOND)

    def _valid_bucket_count(self) -> float:
        span = _div_trunc(self._last_write - self._first_write, self._granularity)
        return float(min(span + 1, len(self._buckets)))

    def is_empty(self, now: datetime) -> bool:
        """True if nothing was recorded within the last window."""
        current = self._truncate(_to_micros(now))
        with self._lock:
            return current - self._last_write > self._window

    def window_average(self, now: datetime) -> float:
        """Average bucket value over the valid part of the window ending at ``now``."""
        current = self._truncate(_to_micros(now))
        with self._lock:
            gap = current - self._last_write
            if gap <= 0:
                return round_to_n_digits(
                    PRECISION, self._window_total / self._valid_bucket_count()
                )
            if gap < self._window:
                start = self._time_to_index(self._last_write)
                end = self._time_to_index(current)
                size = len(self._buckets)
                remaining = self._window_total - sum(
                    self._buckets[i % size] for i in range(start + 1, end + 1)
                )
                return round_to_n_digits(PRECISION, remaining / self._valid_bucket_count())
            return 0.0

    def record(self, now: datetime, value: int) -> None:
        """Add ``value`` to the bucket for ``now``, zeroing any skipped buckets.

        Values older than a window before the last write are ignored.
        """
        micros = _to_micros(now)
        bucket_time = self._truncate(micros)
        with self._lock:
            write_idx = self._time_to_index(micros)
            size = len(self._buckets)
            if self._last_write != bucket_time:
                if bucket_time + self._window <= self._last_write:
                    return
                if self._first_write == _ZERO or self._first_write > bucket_time:
                    self._first_write = bucket_time
                if bucket_time > self._last_write:
                    if bucket_time - self._last_write >= self._window:
                        self._first_write = bucket_time
                        self._buckets = [0] * size
                        self._window_total = 0
                    else:
                        for i in range(self._time_to_index(self._last_write) + 1, write_idx + 1):
                            idx = i % size
                            self._window_total -= self._buckets[idx]
                            self._buckets[idx] = 0
                    self._last_write = bucket_time
            self._buckets[write_idx % size] += value
            self._window_total += value

    def iter_buckets(self, now: datetime) -> Iterator[Tuple[datetime, int]]:
        """Yield ``(bucket_time, value)`` pairs still in the window, newest first."""
        current = self._truncate(_to_micros(now))
        with self._lock:
            size = len(self._buckets)
            count = size - _div_trunc(current - self._last_write, self._granularity)
            bucket_time = self._last_write
            index = self._time_to_index(bucket_time)
            snapshot = []
            for _ in range(max(0, count)):
                snapshot.append((bucket_time, self._buckets[index % size]))
                index -= 1
                bucket_time -= self._granularity
        for micros, value in snapshot:
            yield _from_micros(micros), value