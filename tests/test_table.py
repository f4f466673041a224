import threading
import time
from datetime import timedelta

import pytest

from httpscaler.k8s import NamespacedName
from httpscaler.key import RouteTarget
from httpscaler.queue import Count, FakeCounter, Memory
from httpscaler.table import StaticTable, Table
from httpscaler.util import Cancelled, with_timeout

NAMESPACE = "default"


def targets():
    return [
        RouteTarget(namespace=NAMESPACE, name="keda-sh", hosts=["keda.sh"]),
        RouteTarget(
            namespace=NAMESPACE,
            name="kubernetes-io",
            hosts=["kubernetes.io"],
            target_pending_requests=1,
        ),
        RouteTarget(namespace=NAMESPACE, name="github-com", hosts=["github.com"], min_replicas=3),
    ]


def wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class Refresher:
    def __init__(self, table):
        self.stop = threading.Event()
        self.errors = []
        self.thread = threading.Thread(target=self._run, args=(table,), daemon=True)

    def _run(self, table):
        try:
            table.refresh_memory(self.stop)
        except Cancelled as exc:
            self.errors.append(exc)

    def __enter__(self):
        self.thread.start()
        return self

    def __exit__(self, *exc):
        self.stop.set()
        self.thread.join(2)


def test_new_table_not_synced():
    table = Table(FakeCounter())
    assert table.has_synced() is False
    assert table.route("http://keda.sh/") is None
    with pytest.raises(RuntimeError, match="not synced"):
        table.health_check()


def test_on_add_ensures_counter_key():
    counter = FakeCounter()
    table = Table(counter)
    table.on_add(targets()[0])
    assert counter.current().counts == {"default/keda-sh": Count(0, 0.0)}


def test_on_add_ignores_other_objects():
    counter = FakeCounter()
    table = Table(counter)
    table.on_add("not a target")
    assert counter.current().counts == {}
    assert table.new_memory().recall(NamespacedName(NAMESPACE, "keda-sh")) is None


def test_on_add_uses_rate_settings():
    counter = Memory()
    table = Table(counter)
    target = RouteTarget(
        namespace=NAMESPACE,
        name="rated",
        hosts=["rated.example.com"],
        rate_window=timedelta(seconds=10),
        rate_granularity=timedelta(seconds=2),
    )
    table.on_add(target)
    counter.increase("default/rated", 4)
    counts = counter.current().counts
    assert counts["default/rated"].concurrency == 4
    assert counts["default/rated"].rps == 4.0


def test_on_update_rename_removes_old_key():
    counter = FakeCounter()
    table = Table(counter)
    old = targets()[0]
    table.on_add(old)
    new = RouteTarget(namespace=NAMESPACE, name="keda-sh-2", hosts=["keda.sh"])
    table.on_update(old, new)
    assert "default/keda-sh" not in counter.current().counts
    memory = table.new_memory()
    assert memory.recall(NamespacedName(NAMESPACE, "keda-sh")) is None
    assert memory.recall(NamespacedName(NAMESPACE, "keda-sh-2")) == new


def test_on_delete_removes_target_and_key():
    counter = FakeCounter()
    table = Table(counter)
    first = targets()[0]
    table.on_add(first)
    table.on_delete(first)
    assert counter.current().counts == {}
    assert table.new_memory().recall(NamespacedName(NAMESPACE, "keda-sh")) is None


def test_new_memory_from_targets():
    table = Table(FakeCounter())
    for target in targets():
        table.on_add(target)
    memory = table.new_memory()
    for target in targets():
        assert memory.recall(NamespacedName(NAMESPACE, target.name)) == target


def test_refresh_memory_first_iteration():
    table = Table(FakeCounter())
    for target in targets():
        table.on_add(target)
    with Refresher(table):
        assert wait_for(table.has_synced)
        table.health_check()
        assert table.route("http://keda.sh/") == targets()[0]
        assert table.route("http://other.example.com/abc", "kubernetes.io:80") == targets()[1]


def test_refresh_memory_after_signal():
    table = Table(FakeCounter())
    for target in targets():
        table.on_add(target)
    azure = RouteTarget(namespace=NAMESPACE, name="azure-com", hosts=["azure.com"], min_replicas=3)
    with Refresher(table):
        assert wait_for(table.has_synced)
        table.on_add(azure)
        table.on_delete(targets()[0])
        assert wait_for(lambda: table.route("http://azure.com/") == azure)
        assert wait_for(lambda: table.route("http://keda.sh/") is None)
        assert table.route("http://github.com/") == targets()[2]


def test_refresh_memory_stops_with_cancelled():
    table = Table(FakeCounter())
    refresher = Refresher(table)
    with refresher:
        assert wait_for(table.has_synced)
    assert len(refresher.errors) == 1
    assert isinstance(refresher.errors[0], Cancelled)


def test_refresh_memory_returns_when_already_stopped():
    table = Table(FakeCounter())
    stop = threading.Event()
    stop.set()
    with pytest.raises(Cancelled):
        with_timeout(1.0, lambda: table.refresh_memory(stop))


def test_static_table_routes_by_host():
    target = targets()[0]
    table = StaticTable({"keda.sh": target})
    assert table.route("http://keda.sh/path") == target
    assert table.route("http://other.example.com/", "keda.sh") == target
    assert table.route("http://unknown.example.com/") is None
    assert table.has_synced() is True
    assert table.health_check() is None