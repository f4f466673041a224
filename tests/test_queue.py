from datetime import timedelta

import pytest

from httpscaler.queue import (
    Count,
    Counts,
    FakeCounter,
    FakeCountReader,
    HostAndCount,
    Memory,
)

MINUTE = timedelta(minutes=1)
SECOND = timedelta(seconds=1)


def test_current():
    memory = Memory()
    host = "host1"
    memory.ensure_key(host, MINUTE, SECOND)
    memory.increase(host, 1)
    first = memory.current()
    assert first.counts[host].concurrency == 1
    assert first.counts[host].rps == 1.0

    memory.increase(host, 1)
    memory.increase(host, 1)
    second = memory.current()
    assert second.counts[host].concurrency == 3
    assert second.counts[host].rps > first.counts[host].rps


def test_aggregate():
    counts = Counts(
        {
            "host1": Count(123, 123),
            "host2": Count(234, 234),
            "host3": Count(345, 345),
            "host4": Count(456, 456),
        }
    )
    agg = counts.aggregate()
    assert agg.concurrency == 1158
    assert agg.rps == 1158.0


def test_memory_increase_untracked_host():
    memory = Memory()
    with pytest.raises(KeyError):
        memory.increase("nowhere", 1)


def test_memory_decrease_and_remove():
    memory = Memory()
    memory.ensure_key("h", MINUTE, SECOND)
    memory.increase("h", 2)
    memory.decrease("h", 1)
    assert memory.current().counts["h"].concurrency == 1
    assert memory.remove_key("h") is True
    assert memory.remove_key("h") is False
    assert memory.current().counts == {}


def test_memory_update_buckets_resets_rate_on_change():
    memory = Memory()
    memory.ensure_key("h", MINUTE, SECOND)
    memory.increase("h", 4)
    memory.update_buckets("h", MINUTE, SECOND)
    assert memory.current().counts["h"].rps == 4.0
    memory.update_buckets("h", 2 * MINUTE, SECOND)
    snapshot = memory.current().counts["h"]
    assert snapshot == Count(4, 0.0)


def test_counts_json_round_trip():
    counts = Counts({"b": Count(1, 2.5), "a": Count(3, 100.0)})
    text = counts.to_json()
    assert text == '{"a":{"Concurrency":3,"RPS":100},"b":{"Concurrency":1,"RPS":2.5}}'
    assert Counts.from_json(text) == counts


def test_counts_from_json_case_insensitive_and_null():
    parsed = Counts.from_json('{"h":{"concurrency":7,"rps":1.5}}')
    assert parsed.counts == {"h": Count(7, 1.5)}
    assert Counts.from_json("null").counts == {}


def test_counts_from_json_rejects_bad_values():
    with pytest.raises(ValueError):
        Counts.from_json('{"h":{"Concurrency":"x"}}')
    with pytest.raises(ValueError):
        Counts.from_json("[1, 2]")


def test_counts_str():
    counts = Counts({"b": Count(1, 2.5), "a": Count(3, 100.0)})
    assert str(counts) == "map[a:{3 100} b:{1 2.5}]"


def test_fake_counter_reports_resizes():
    counter = FakeCounter()
    counter.increase("h", 2)
    assert counter.resized.get_nowait() == HostAndCount("h", 2)
    counter.decrease("h", 1)
    assert counter.resized.get_nowait() == HostAndCount("h", 1)
    assert counter.current().counts["h"] == Count(1, 2.0)


def test_fake_counter_times_out_when_unread():
    counter = FakeCounter()
    counter.resize_timeout = 0.05
    counter.increase("h", 1)
    with pytest.raises(TimeoutError):
        counter.increase("h", 1)


def test_fake_counter_keys():
    counter = FakeCounter()
    counter.ensure_key("h", MINUTE, SECOND)
    counter.update_buckets("h", MINUTE, SECOND)
    assert counter.current().counts == {"h": Count(0, 0.0)}
    assert counter.remove_key("h") is True
    assert counter.remove_key("h") is False


def test_fake_count_reader():
    reader = FakeCountReader(concurrency=5, rps=2.0)
    assert reader.current().counts == {"sample.com": Count(5, 2.0)}
    reader.err = RuntimeError("test error")
    with pytest.raises(RuntimeError):
        reader.current()