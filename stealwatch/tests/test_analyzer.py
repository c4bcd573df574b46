import datetime

import pandas as pd
import pytest

from stealwatch.collectors.disk import DiskLatencyProbe
from stealwatch.models.metric import MetricSample, MetricType
from stealwatch.models.payloads import DiskStatsPayload, MemoryPayload, RandomIOPayload, to_extra
from stealwatch.models.stats import RiskLevel, StorageType
from stealwatch.services.analyzer import RiskAnalyzer, samples_frame
from .helpers import fill


def baseline_start(start):
    return start - datetime.timedelta(days=7)


def test_quiet_host_with_stable_baseline(store, window):
    start, end = window
    fill(store, MetricType.CPU_STEAL, start, 100, 2.0)
    fill(store, MetricType.CPU_STEAL, baseline_start(start), 100, 2.0)

    stats = RiskAnalyzer(store, storage_type=StorageType.SSD).analyze_period('daily', start, end)

    assert stats.cpu_steal_avg == pytest.approx(2.0)
    assert stats.dimension_scores['cpu_steal'] == 100
    assert stats.dimension_scores['cpu_steal'] * 0.35 == pytest.approx(35.0)
    assert stats.baseline_deviation == 0.0
    assert stats.baseline_status == 'stable'
    assert stats.confidence_boost == 1.0


def test_steal_on_idle_host_is_boosted(store, window):
    start, end = window
    fill(store, MetricType.CPU_STEAL, start, 100, 10.0)
    fill(store, MetricType.CPU_LOAD, start, 100, 0.3)
    fill(store, MetricType.CPU_STEAL, baseline_start(start), 100, 2.0)

    stats = RiskAnalyzer(store, storage_type=StorageType.SSD).analyze_period('daily', start, end)

    assert stats.confidence_boost == pytest.approx(1.12)
    assert stats.dimension_scores['cpu_steal'] == pytest.approx(40 / 1.12)
    assert stats.dimension_scores['cpu_steal'] * 0.35 == pytest.approx(12.5)
    # A perfect iowait score is not sharpened
    assert stats.dimension_scores['cpu_iowait'] == 100
    assert stats.baseline_deviation == pytest.approx(400.0)
    assert stats.baseline_status == 'degrading'
    assert stats.dimension_scores['baseline'] == 20


def test_thin_baseline_counts_as_stable(store, window):
    start, end = window
    fill(store, MetricType.CPU_STEAL, start, 20, 12.0)
    fill(store, MetricType.CPU_STEAL, baseline_start(start), 5, 1.0)
    fill(store, MetricType.IO_LATENCY, baseline_start(start), 9, 1.0)

    stats = RiskAnalyzer(store, storage_type=StorageType.SSD).analyze_period('daily', start, end)

    assert (stats.baseline_deviation, stats.baseline_status) == (0.0, 'stable')
    assert stats.dimension_scores['baseline'] == 100


def test_baseline_from_io_latency_alone(store, window):
    start, end = window
    fill(store, MetricType.IO_LATENCY, start, 10, 20.0)
    fill(store, MetricType.IO_LATENCY, baseline_start(start), 10, 10.0)

    stats = RiskAnalyzer(store, storage_type=StorageType.SSD).analyze_period('daily', start, end)

    assert stats.baseline_deviation == pytest.approx(100.0)
    assert stats.baseline_status == 'degrading'


def test_improving_trend(store, window):
    start, end = window
    fill(store, MetricType.CPU_STEAL, start, 20, 1.0)
    fill(store, MetricType.CPU_STEAL, baseline_start(start), 20, 4.0)

    stats = RiskAnalyzer(store, storage_type=StorageType.SSD).analyze_period('daily', start, end)

    assert stats.baseline_deviation == pytest.approx(75.0)
    assert stats.baseline_status == 'improving'


def test_empty_window_uses_defaults(store, window):
    start, end = window
    stats = RiskAnalyzer(store, storage_type=StorageType.SSD).analyze_period('daily', start, end)

    assert stats.cpu_steal_avg == 0.0
    assert stats.cpu_steal_max_time is None
    assert stats.hourly_breakdown == []
    assert stats.memory_available_percent == 0.0
    assert stats.dimension_scores['memory'] == 50
    assert stats.dimension_scores['cpu_steal'] == 100
    # Everything perfect except memory: 100 - 0.10 * 50
    assert stats.total_score == pytest.approx(95.0)
    assert stats.risk_level == RiskLevel.EXCELLENT


def test_aggregates_and_peak_time(store, window):
    start, end = window
    peak_at = start + datetime.timedelta(hours=3, minutes=20)
    fill(store, MetricType.CPU_STEAL, start, 30, 1.0)
    store.save(MetricSample(timestamp=peak_at, type=MetricType.CPU_STEAL, value=9.0))
    fill(store, MetricType.CPU_BENCH, start, 4, 100.0)

    stats = RiskAnalyzer(store, storage_type=StorageType.SSD).analyze_period('daily', start, end)

    assert stats.cpu_steal_max == 9.0
    assert stats.cpu_steal_max_time == peak_at
    assert stats.cpu_bench_avg == 100.0
    assert stats.cpu_bench_cv == 0.0
    assert stats.dimension_scores['cpu_stability'] == 100


def test_io_latency_scored_against_storage_type(store, window):
    start, end = window
    fill(store, MetricType.IO_LATENCY, start, 20, 40.0)

    ssd = RiskAnalyzer(store, storage_type=StorageType.SSD).analyze_period('daily', start, end)
    hdd = RiskAnalyzer(store, storage_type=StorageType.HDD).analyze_period('daily', start, end)

    assert ssd.io_latency_p95 == 40.0
    assert ssd.dimension_scores['io_latency'] == 70
    assert hdd.dimension_scores['io_latency'] == 100


def test_random_io_uses_payload_latencies(store, window):
    start, end = window
    for write, read in ((10.0, 1.0), (20.0, 3.0)):
        store.save(MetricSample(timestamp=start, type=MetricType.RANDOM_IO, value=write,
                                extra=to_extra(RandomIOPayload(write, read))))

    stats = RiskAnalyzer(store, storage_type=StorageType.SSD).analyze_period('daily', start, end)

    assert stats.random_io_write_avg == pytest.approx(15.0)
    assert stats.random_io_read_avg == pytest.approx(2.0)
    assert stats.random_io_p95 == 20.0
    assert stats.dimension_scores['random_io'] == 100


def test_disk_busy_needs_two_samples(store, window):
    start, end = window

    def save_busy(ts, busy):
        payload = DiskStatsPayload(0, 0, 0, 0, 0, 0, busy)
        store.save(MetricSample(timestamp=ts, type=MetricType.DISK_STATS, value=busy, extra=to_extra(payload)))

    save_busy(start, 90.0)
    analyzer = RiskAnalyzer(store, storage_type=StorageType.SSD)
    assert analyzer.analyze_period('daily', start, end).disk_busy_percent == 0.0

    save_busy(start + datetime.timedelta(minutes=15), 30.0)
    stats = analyzer.analyze_period('daily', start, end)
    assert stats.disk_busy_percent == pytest.approx(60.0)
    assert stats.disk_busy_p95 == 90.0
    assert stats.dimension_scores['disk_busy'] == 40


def test_memory_prefers_latest_payload(store, window):
    start, end = window
    store.save(MetricSample(timestamp=start, type=MetricType.MEMORY, value=90.0,
                            extra=to_extra(MemoryPayload(1000, 100, 10.0, 0.0))))
    store.save(MetricSample(timestamp=start + datetime.timedelta(hours=1), type=MetricType.MEMORY, value=5.0,
                            extra=to_extra(MemoryPayload(1000, 950, 95.0, 0.0))))

    stats = RiskAnalyzer(store, storage_type=StorageType.SSD).analyze_period('daily', start, end)

    assert stats.memory_available_percent == 95.0
    assert stats.dimension_scores['memory'] == 100


def test_memory_without_payload_falls_back_to_usage(store, window):
    start, end = window
    store.save(MetricSample(timestamp=start, type=MetricType.MEMORY, value=15.0))

    stats = RiskAnalyzer(store, storage_type=StorageType.SSD).analyze_period('daily', start, end)

    assert stats.memory_available_percent == pytest.approx(85.0)
    assert stats.dimension_scores['memory'] == 80


def test_heavy_contention_is_severe(store, window):
    start, end = window
    fill(store, MetricType.CPU_STEAL, start, 50, 25.0)
    fill(store, MetricType.CPU_IOWAIT, start, 50, 35.0)
    fill(store, MetricType.IO_LATENCY, start, 50, 250.0)
    fill(store, MetricType.CPU_BENCH, start, 50, 100.0)
    fill(store, MetricType.CPU_BENCH, start, 50, 300.0)

    stats = RiskAnalyzer(store, storage_type=StorageType.SSD).analyze_period('daily', start, end)

    assert stats.dimension_scores['cpu_steal'] == 0
    assert stats.dimension_scores['cpu_iowait'] == 0
    assert stats.dimension_scores['io_latency'] == 0
    assert stats.dimension_scores['cpu_stability'] == 30
    assert stats.risk_level == RiskLevel.SEVERE
    assert stats.risk_details['cpu_steal'].startswith("🔴")


def test_hourly_breakdown():
    day = datetime.datetime(2026, 3, 10)
    steal = samples_frame([
        MetricSample(day.replace(hour=2), MetricType.CPU_STEAL, 4.0),
        MetricSample(day.replace(hour=2, minute=30), MetricType.CPU_STEAL, 2.0),
        MetricSample(day.replace(hour=14), MetricType.CPU_STEAL, 1.0),
    ])
    iowait = samples_frame([MetricSample(day.replace(hour=5), MetricType.CPU_IOWAIT, 7.0)])

    hours = RiskAnalyzer.hourly_breakdown(steal, iowait)

    assert [h.hour for h in hours] == [2, 5, 14]
    assert hours[0].cpu_steal_avg == pytest.approx(3.0)
    assert hours[1].cpu_steal_avg == 0.0
    assert hours[1].cpu_iowait_avg == 7.0


def test_samples_frame_empty():
    df = samples_frame([])
    assert isinstance(df, pd.DataFrame)
    assert list(df.columns) == ['ds', 'y']
    assert df.empty


def test_storage_type_detected_when_not_given(store, tmp_path):
    queue = tmp_path / 'block' / 'sda' / 'queue'
    queue.mkdir(parents=True)
    (queue / 'rotational').write_text("1\n")

    probe = DiskLatencyProbe(test_dir=str(tmp_path), sys_block_path=str(tmp_path / 'block'))

    assert RiskAnalyzer(store, probe=probe).storage_type == StorageType.HDD
