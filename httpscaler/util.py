"""Small concurrency, environment and error helpers shared across the package."""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from fractions import Fraction
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")
R = TypeVar("R")

_POLL_INTERVAL = 0.02


class Cancelled(Exception):
    """Raised when a wait is abandoned because its stop event was set."""


def with_timeout(seconds: float, func: Callable[[], R]) -> R:
    """Run ``func`` in a worker thread and return its result.

    Raises :class:`TimeoutError` if it does not finish within ``seconds``;
    an exception raised by ``func`` is re-raised here.
    """
    outcome: dict = {}
    done = threading.Event()

    def runner() -> None:
        try:
            outcome["value"] = func()
        except BaseException as exc:  # re-raised in the caller's thread
            outcome["error"] = exc
        finally:
            done.set()

    threading.Thread(target=runner, daemon=True).start()
    if not done.wait(seconds):
        raise TimeoutError(f"timed out after {seconds}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]


def ignoring_error(func: Callable[[], object]) -> None:
    """Call ``func`` and discard any exception it raises."""
    try:
        func()
    except Exception:
        logger.debug("ignored error", exc_info=True)


class AtomicValue(Generic[V]):
    """A value that can be read and replaced safely from several threads."""

    def __init__(self, value: Optional[V] = None) -> None:
        self._lock = threading.Lock()
        self._value = value

    def get(self) -> Optional[V]:
        with self._lock:
            return self._value

    def set(self, value: V) -> None:
        with self._lock:
            self._value = value


class Signaler:
    """A one-slot wake-up flag: repeated signals collapse into one."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._pending = False

    def signal(self) -> None:
        """Mark the signaler as pending; never blocks."""
        with self._cond:
            self._pending = True
            self._cond.notify()

    def wait(self, stop: Optional[threading.Event] = None) -> None:
        """Block until signalled; raise :class:`Cancelled` once ``stop`` is set."""
        with self._cond:
            while not self._pending:
                if stop is not None and stop.is_set():
                    raise Cancelled("context canceled")
                self._cond.wait(_POLL_INTERVAL if stop is not None else None)
            self._pending = False


@dataclass
class Stopwatch:
    """Records a start and stop wall-clock time in seconds since the epoch."""

    start_time: float = 0.0
    stop_time: float = 0.0

    def start(self) -> None:
        self.start_time = time.time()

    def stop(self) -> None:
        self.stop_time = time.time()

    def elapsed_time(self) -> float:
        """Seconds between start and stop."""
        return self.stop_time - self.start_time


class HealthChecker:
    """Something whose health can be checked; raises when unhealthy.

    The base class delegates to an optional callable; subclasses override
    :meth:`health_check`.
    """

    def __init__(self, check: Optional[Callable[[], object]] = None) -> None:
        self._check = check

    def health_check(self) -> None:
        if self._check is not None:
            self._check()


def is_ignored_err(err: Optional[BaseException]) -> bool:
    """True for no error or a cancellation, including one found among the causes."""
    if err is None:
        return True
    seen = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, Cancelled):
            return True
        seen.add(id(err))
        err = err.__cause__
    return False


_TRUE_WORDS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_WORDS = {"0", "f", "F", "FALSE", "false", "False"}


def parse_bool(text: str) -> bool:
    """Parse a boolean the way the strict textual formats expect."""
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise ValueError(f"invalid boolean {text!r}")


_UNIT_NANOS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_PART = re.compile(r"([0-9]*)(?:\.([0-9]*))?(ns|us|\u00b5s|\u03bcs|ms|s|m|h)?")
_MAX_NANOS = 2**63 - 1


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"300ms"``, ``"-1.5h"`` or ``"2h45m"``."""
    rest = text
    negative = False
    if rest[:1] in ("+", "-"):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f"invalid duration {text!r}")

    total = Fraction(0)
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        whole, frac, unit = match.group(1), match.group(2), match.group(3)
        if not whole and not frac:
            raise ValueError(f"invalid duration {text!r}")
        if unit is None:
            raise ValueError(f"missing unit in duration {text!r}")
        value = Fraction(int(whole or "0"))
        if frac:
            value += Fraction(int(frac), 10 ** len(frac))
        total += value * _UNIT_NANOS[unit]
        if total > _MAX_NANOS:
            raise ValueError(f"invalid duration {text!r}")
        pos = match.end()

    micros = float(total / 1000)
    return timedelta(microseconds=-micros if negative else micros)


_INT_PATTERN = re.compile(r"[+-]?[0-9]+")


def _parse_int(text: str) -> int:
    if not _INT_PATTERN.fullmatch(text):
        raise ValueError(f"invalid integer {text!r}")
    return int(text)


def resolve_os_env_bool(env_name: str, default_value: bool) -> bool:
    """Boolean from the environment, or ``default_value`` when unset or empty."""
    value = os.environ.get(env_name, "")
    if value:
        return parse_bool(value)
    return default_value


def resolve_os_env_int(env_name: str, default_value: int) -> int:
    """Integer from the environment, or ``default_value`` when unset or empty."""
    value = os.environ.get(env_name, "")
    if value:
        return _parse_int(value)
    return default_value


def resolve_os_env_duration(env_name: str) -> Optional[timedelta]:
    """Duration from the environment, or ``None`` when unset or empty."""
    value = os.environ.get(env_name, "")
    if value:
        return parse_duration(value)
    return None