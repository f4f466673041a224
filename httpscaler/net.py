"""Exponential backoff and retrying TCP dials."""

from __future__ import annotations

import dataclasses
import random
import socket
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from httpscaler.util import Cancelled


def _jitter(duration: float, max_factor: float) -> float:
    if max_factor <= 0:
        max_factor = 1.0
    return duration + random.random() * max_factor * duration


@dataclass
class Backoff:
    """Backoff parameters; durations are in seconds. :meth:`step` mutates it."""

    duration: float
    factor: float = 1.0
    jitter: float = 0.0
    steps: int = 1
    cap: float = 0.0

    def step(self) -> float:
        """Return the next wait and advance the backoff by one step."""
        if self.steps < 1:
            if self.jitter > 0:
                return _jitter(self.duration, self.jitter)
            return self.duration
        self.steps -= 1
        current = self.duration
        if self.factor != 0:
            self.duration = self.duration * self.factor
            if self.cap > 0 and self.duration > self.cap:
                self.duration = self.cap
                self.steps = 0
        if self.jitter > 0:
            current = _jitter(current, self.jitter)
        return current


def min_total_backoff_duration(backoff: Backoff) -> float:
    """Minimum total wait in seconds over all steps, ignoring jitter."""
    initial_ms = int(round(backoff.duration * 1_000_000)) // 1000
    total_ms = initial_ms + sum(initial_ms * i for i in range(2, backoff.steps + 1))
    return total_ms / 1000


@dataclass
class NetDialer:
    """Opens TCP connections with a connect timeout and keep-alive period (seconds)."""

    connect_timeout: float
    keep_alive: float

    def dial(self, host: str, port: int) -> socket.socket:
        sock = socket.create_connection((host, port), timeout=self.connect_timeout or None)
        if self.keep_alive > 0:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            idle = max(1, int(self.keep_alive))
            if hasattr(socket, "TCP_KEEPIDLE"):
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, idle)
            if hasattr(socket, "TCP_KEEPINTVL"):
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, idle)
        return sock


def dial_with_retry(
    dialer: NetDialer, backoff: Backoff
) -> Callable[..., socket.socket]:
    """Return ``dial(host, port, stop=None)`` that retries with ``backoff``.

    Each call gets a fresh copy of the backoff. Setting ``stop`` while
    sleeping between attempts raises :class:`Cancelled`; after the last
    attempt the last connection error is raised.
    """
    attempts = backoff.steps

    def dial(host: str, port: int, stop: Optional[threading.Event] = None) -> socket.socket:
        local = dataclasses.replace(backoff)
        last_error: Optional[OSError] = None
        for _ in range(attempts):
            try:
                return dialer.dial(host, port)
            except OSError as exc:
                last_error = exc
            pause = local.step()
            if stop is not None:
                if stop.wait(pause):
                    raise Cancelled("context timed out") from last_error
            else:
                threading.Event().wait(pause)
        if last_error is None:
            raise ConnectionError(f"no dial attempts made to {host}:{port}")
        raise last_error

    return dial