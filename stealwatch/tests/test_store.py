import datetime

import pytest

from stealwatch.core.exceptions import StorageError
from stealwatch.models.metric import MetricSample, MetricType, utcnow
from stealwatch.models.payloads import RandomIOPayload, decode_payload, to_extra


def test_save_and_query_round_trip(store, window):
    start, end = window
    payload = RandomIOPayload(write_latency_ms=1.5, read_latency_ms=0.4, direct_io=False)
    store.save(MetricSample(timestamp=start, type=MetricType.RANDOM_IO, value=1.5, extra=to_extra(payload)))

    samples = store.query(MetricType.RANDOM_IO, start, end)
    assert len(samples) == 1
    assert samples[0].value == 1.5
    assert samples[0].type == MetricType.RANDOM_IO
    assert decode_payload(samples[0]) == payload


def test_query_bounds_are_inclusive_and_ascending(store, window):
    start, end = window
    for ts in (end, start, start + datetime.timedelta(hours=6), end + datetime.timedelta(seconds=1)):
        store.save(MetricSample(timestamp=ts, type=MetricType.CPU_STEAL, value=1.0))

    samples = store.query(MetricType.CPU_STEAL, start, end)
    assert [s.timestamp for s in samples] == [start, start + datetime.timedelta(hours=6), end]


def test_query_filters_by_type(store, window):
    start, end = window
    store.save(MetricSample(timestamp=start, type=MetricType.CPU_STEAL, value=1.0))
    store.save(MetricSample(timestamp=start, type=MetricType.CPU_IOWAIT, value=2.0))

    assert [s.value for s in store.query(MetricType.CPU_IOWAIT, start, end)] == [2.0]
    assert store.query(MetricType.MEMORY, start, end) == []


def test_equal_timestamps_keep_insertion_order(store, window):
    start, end = window
    for value in (3.0, 1.0, 2.0):
        store.save(MetricSample(timestamp=start, type=MetricType.CPU_BENCH, value=value))

    assert [s.value for s in store.query(MetricType.CPU_BENCH, start, end)] == [3.0, 1.0, 2.0]


def test_timestamps_stored_at_second_resolution(store, window):
    start, end = window
    store.save(MetricSample(timestamp=start.replace(microsecond=750000), type=MetricType.CPU_STEAL, value=1.0))
    assert store.query(MetricType.CPU_STEAL, start, end)[0].timestamp == start


def test_latest(store, window):
    start, _ = window
    assert store.latest(MetricType.MEMORY) is None

    store.save(MetricSample(timestamp=start + datetime.timedelta(hours=2), type=MetricType.MEMORY, value=40.0))
    store.save(MetricSample(timestamp=start, type=MetricType.MEMORY, value=10.0))

    assert store.latest(MetricType.MEMORY).value == 40.0


def test_cleanup_removes_old_rows_once(store):
    now = utcnow()
    store.save(MetricSample(timestamp=now - datetime.timedelta(days=40), type=MetricType.CPU_STEAL, value=1.0))
    store.save(MetricSample(timestamp=now - datetime.timedelta(days=31), type=MetricType.CPU_STEAL, value=2.0))
    store.save(MetricSample(timestamp=now - datetime.timedelta(days=1), type=MetricType.CPU_STEAL, value=3.0))

    assert store.cleanup(30) == 2
    assert store.cleanup(30) == 0

    remaining = store.query(MetricType.CPU_STEAL, now - datetime.timedelta(days=365), now)
    assert [s.value for s in remaining] == [3.0]


def test_unserialisable_extra_raises(store, window):
    start, _ = window
    with pytest.raises(StorageError):
        store.save(MetricSample(timestamp=start, type=MetricType.MEMORY, value=1.0, extra={'x': object()}))


def test_unknown_metric_type_rejected(store, window):
    start, end = window
    with pytest.raises(ValueError):
        store.query('not_a_metric', start, end)
