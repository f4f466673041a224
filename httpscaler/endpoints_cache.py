"""Endpoints caches with change watchers, and an in-memory fake."""

from __future__ import annotations

import abc
import collections
import copy
import enum
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional

from httpscaler.k8s import EndpointAddress, Endpoints, EndpointSubset

_WATCH_BUFFER = 100


class EndpointsCache(abc.ABC):
    """Fast local access to endpoints and to changes of them."""

    @abc.abstractmethod
    def get(self, namespace: str, name: str) -> Endpoints:
        """Endpoints ``name`` in ``namespace``; raises :class:`KeyError` if absent."""

    @abc.abstractmethod
    def watch(self, namespace: str, name: str) -> "FakeWatcher":
        """A stream of changes to the named endpoints."""

    @abc.abstractmethod
    def to_json(self) -> str:
        """JSON summary of the cache contents."""


class EventType(enum.Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class WatchEvent:
    type: EventType
    object: Any


class FakeWatcher:
    """A buffered event stream fed by hand; sends after :meth:`stop` are dropped."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._events: Deque[WatchEvent] = collections.deque()
        self._stopped = False

    def _send(self, event: WatchEvent) -> None:
        with self._cond:
            if self._stopped:
                return
            if len(self._events) >= _WATCH_BUFFER:
                raise OverflowError("channel full")
            self._events.append(event)
            self._cond.notify_all()

    def add(self, obj: Any) -> None:
        self._send(WatchEvent(EventType.ADDED, obj))

    def modify(self, obj: Any) -> None:
        self._send(WatchEvent(EventType.MODIFIED, obj))

    def delete(self, obj: Any) -> None:
        self._send(WatchEvent(EventType.DELETED, obj))

    def stop(self) -> None:
        with self._cond:
            self._stopped = True
            self._cond.notify_all()

    def next_event(self, timeout: Optional[float] = None) -> Optional[WatchEvent]:
        """Next buffered event; None once stopped and drained.

        Raises :class:`TimeoutError` if nothing arrives within ``timeout`` seconds.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._events:
                if self._stopped:
                    return None
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    raise TimeoutError("no watch event received")
                self._cond.wait(remaining)
            return self._events.popleft()


def _key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}"


class FakeEndpointsCache(EndpointsCache):
    """In-memory :class:`EndpointsCache` for tests, without any cluster access."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._current: Dict[str, Endpoints] = {}
        self._watchers: Dict[str, FakeWatcher] = {}

    def get_watcher(self, namespace: str, name: str) -> Optional[FakeWatcher]:
        """The watcher registered for the endpoints, or None."""
        with self._lock:
            return self._watchers.get(_key(namespace, name))

    def to_json(self) -> str:
        """JSON object mapping ``namespace/name`` to the number of addresses."""
        with self._lock:
            totals = {
                key: sum(len(subset.addresses) for subset in endpoints.subsets)
                for key, endpoints in self._current.items()
            }
        return json.dumps(totals, sort_keys=True, separators=(",", ":"))

    def get(self, namespace: str, name: str) -> Endpoints:
        with self._lock:
            endpoints = self._current.get(_key(namespace, name))
            if endpoints is None:
                raise KeyError(f"no endpoints {name} found")
            return copy.deepcopy(endpoints)

    def set(self, endpoints: Endpoints) -> None:
        """Store ``endpoints`` without notifying any watcher."""
        with self._lock:
            self._current[_key(endpoints.namespace, endpoints.name)] = endpoints

    def watch(self, namespace: str, name: str) -> FakeWatcher:
        with self._lock:
            return self._watchers.setdefault(_key(namespace, name), FakeWatcher())

    def set_watcher(self, namespace: str, name: str) -> FakeWatcher:
        """Register a fresh watcher that later :meth:`watch` calls will return."""
        with self._lock:
            watcher = FakeWatcher()
            self._watchers[_key(namespace, name)] = watcher
            return watcher

    def set_subsets(self, namespace: str, name: str, num: int) -> None:
        """Replace the subsets with ``num`` single-address subsets."""
        with self._lock:
            endpoints = self.get(namespace, name)
            endpoints.subsets = [
                EndpointSubset(addresses=[EndpointAddress(ip="1.2.3.4")])
                for _ in range(num)
            ]
            self.set(endpoints)