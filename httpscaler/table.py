"""Live routing table kept up to date from target add, update and delete events."""

from __future__ import annotations

import threading
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlsplit

from httpscaler.k8s import NamespacedName, namespaced_name_from_object
from httpscaler.key import RouteTarget, new_key_from_request
from httpscaler.queue import Counter
from httpscaler.tablememory import TableMemory
from httpscaler.util import AtomicValue, HealthChecker, Signaler

_DEFAULT_WINDOW = timedelta(minutes=1)
_DEFAULT_GRANULARITY = timedelta(seconds=1)


def _rate_settings(target: RouteTarget) -> Tuple[timedelta, timedelta]:
    if target.rate_window is not None and target.rate_granularity is not None:
        return target.rate_window, target.rate_granularity
    return _DEFAULT_WINDOW, _DEFAULT_GRANULARITY


class Table(HealthChecker):
    """Routes requests to targets; rebuilt in the background after each change."""

    def __init__(self, queue_counter: Counter) -> None:
        super().__init__()
        self._counter = queue_counter
        self._targets: Dict[NamespacedName, RouteTarget] = {}
        self._lock = threading.Lock()
        self._memory: AtomicValue[TableMemory] = AtomicValue()
        self._signaler = Signaler()

    def on_add(self, obj: Any) -> None:
        """Track a newly added target; anything else is ignored."""
        if not isinstance(obj, RouteTarget):
            return
        key = namespaced_name_from_object(obj)
        window, granularity = _rate_settings(obj)
        self._counter.ensure_key(str(key), window, granularity)
        try:
            with self._lock:
                self._targets[key] = obj
        finally:
            self._signaler.signal()

    def on_update(self, old_obj: Any, new_obj: Any) -> None:
        """Replace a target; a renamed target's old entry is dropped."""
        if not isinstance(old_obj, RouteTarget) or not isinstance(new_obj, RouteTarget):
            return
        old_key = namespaced_name_from_object(old_obj)
        new_key = namespaced_name_from_object(new_obj)
        window, granularity = _rate_settings(new_obj)
        self._counter.update_buckets(str(new_key), window, granularity)
        try:
            with self._lock:
                self._targets[new_key] = new_obj
                if old_key != new_key:
                    self._targets.pop(old_key, None)
                    self._counter.remove_key(str(old_key))
        finally:
            self._signaler.signal()

    def on_delete(self, obj: Any) -> None:
        """Stop tracking a deleted target."""
        if not isinstance(obj, RouteTarget):
            return
        key = namespaced_name_from_object(obj)
        try:
            with self._lock:
                self._targets.pop(key, None)
                self._counter.remove_key(str(key))
        finally:
            self._signaler.signal()

    def new_memory(self) -> TableMemory:
        """A routing snapshot of every tracked target."""
        with self._lock:
            targets = list(self._targets.values())
        memory = TableMemory()
        for target in targets:
            memory = memory.remember(target)
        return memory

    def refresh_memory(self, stop: threading.Event) -> None:
        """Rebuild the routing snapshot after every change until ``stop`` is set.

        Raises :class:`~httpscaler.util.Cancelled` when stopped.
        """
        while True:
            self._memory.set(self.new_memory())
            self._signaler.wait(stop)

    def route(self, url: Optional[str], host: str = "") -> Optional[RouteTarget]:
        """The target for a request to ``url`` with the given Host header, or None."""
        if url is None:
            return None
        memory = self._memory.get()
        if memory is None:
            return None
        return memory.route(new_key_from_request(url, host))

    def has_synced(self) -> bool:
        """True once a routing snapshot has been built."""
        return self._memory.get() is not None

    def health_check(self) -> None:
        if not self.has_synced():
            raise RuntimeError("table has not synced")


class StaticTable(HealthChecker):
    """A table that routes by exact Host from a fixed mapping; always synced."""

    def __init__(self, memory: Optional[Dict[str, RouteTarget]] = None) -> None:
        super().__init__()
        self.memory: Dict[str, RouteTarget] = dict(memory or {})

    def route(self, url: Optional[str], host: str = "") -> Optional[RouteTarget]:
        if not host and url is not None:
            host = urlsplit(url).netloc.rpartition("@")[2]
        return self.memory.get(host)

    def has_synced(self) -> bool:
        return True

    def health_check(self) -> None:
        return None