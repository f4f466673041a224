import socket
import threading
import time

import pytest

from httpscaler.net import (
    Backoff,
    NetDialer,
    dial_with_retry,
    min_total_backoff_duration,
)
from httpscaler.util import Cancelled


def _closed_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def test_dial_with_retry_waits_at_least_min_total():
    conn_timeout = 0.01
    keep_alive = 0.01
    backoff = Backoff(duration=conn_timeout, factor=2, jitter=0.5, steps=5)
    dialer = NetDialer(conn_timeout, keep_alive)
    d_retry = dial_with_retry(dialer, backoff)
    min_total = min_total_backoff_duration(backoff)

    start = time.monotonic()
    with pytest.raises(OSError):
        d_retry("127.0.0.1", _closed_port())
    elapsed = time.monotonic() - start
    assert elapsed >= min_total
    # the caller's backoff is untouched
    assert backoff.steps == 5


def test_min_total_backoff_duration():
    backoff = Backoff(duration=0.01, factor=2, jitter=0.5, steps=5)
    assert min_total_backoff_duration(backoff) == pytest.approx(0.15)


def test_backoff_step_sequence():
    backoff = Backoff(duration=0.01, factor=2, steps=3)
    assert [backoff.step() for _ in range(3)] == pytest.approx([0.01, 0.02, 0.04])
    assert backoff.steps == 0
    assert backoff.step() == pytest.approx(0.08)


def test_backoff_cap_stops_growth():
    backoff = Backoff(duration=1.0, factor=3, steps=10, cap=2.0)
    assert backoff.step() == 1.0
    assert backoff.duration == 2.0
    assert backoff.steps == 0


def test_backoff_jitter_bounds():
    backoff = Backoff(duration=1.0, factor=1, jitter=0.5, steps=100)
    for _ in range(50):
        value = backoff.step()
        assert 1.0 <= value <= 1.5


def test_dial_succeeds_against_listener():
    server = socket.socket()
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    port = server.getsockname()[1]
    try:
        dial = dial_with_retry(NetDialer(1.0, 1.0), Backoff(duration=0.01, steps=3))
        conn = dial("127.0.0.1", port)
        try:
            assert conn.getpeername()[1] == port
        finally:
            conn.close()
    finally:
        server.close()


def test_dial_cancelled_by_stop():
    stop = threading.Event()
    stop.set()
    dial = dial_with_retry(NetDialer(0.5, 0), Backoff(duration=5, steps=3))
    start = time.monotonic()
    with pytest.raises(Cancelled):
        dial("127.0.0.1", _closed_port(), stop)
    assert time.monotonic() - start < 2