import datetime
import logging
from typing import List, Optional, Tuple

import pandas as pd

from stealwatch.collectors.disk import DiskLatencyProbe
from stealwatch.models.metric import MetricSample, MetricType
from stealwatch.models.payloads import decode_payload, DiskStatsPayload, MemoryPayload, RandomIOPayload
from stealwatch.models.stats import HourlyStats, PeriodStats, StorageType
from stealwatch.services import scoring


def samples_frame(samples: List[MetricSample]) -> pd.DataFrame:
    """Samples as a ds/y frame in store order."""
    if not samples:
        return pd.DataFrame(columns=['ds', 'y'])
    return pd.DataFrame({
        'ds': pd.to_datetime([s.timestamp for s in samples]),
        'y': [float(s.value) for s in samples],
    })


def _values(samples: List[MetricSample]) -> List[float]:
    return [float(s.value) for s in samples]


def _peak_time(df: pd.DataFrame) -> Optional[datetime.datetime]:
    if df.empty:
        return None
    return df.loc[df['y'].idxmax(), 'ds'].to_pydatetime()


class RiskAnalyzer:
    """Turns stored samples for a window into a weighted oversell-risk score.

    Stateless apart from the storage type, which is detected once here and
    selects the latency thresholds. Store errors propagate to the caller.
    """

    def __init__(self, store, storage_type: Optional[StorageType] = None, probe: Optional[DiskLatencyProbe] = None):
        self.store = store
        if storage_type is None:
            probe = probe or DiskLatencyProbe(test_size_mb=1)
            storage_type = probe.detect_storage_type()
        self.storage_type = storage_type
        logging.info(f"Risk analyzer using storage type {self.storage_type.value}")

    def __repr__(self):
        return f"<RiskAnalyzer storage_type={self.storage_type.value}>"

    def analyze_period(self, period: str, start: datetime.datetime, end: datetime.datetime) -> PeriodStats:
        stats = PeriodStats(period=period, start=start, end=end, storage_type=self.storage_type)

        steal = self.store.query(MetricType.CPU_STEAL, start, end)
        iowait = self.store.query(MetricType.CPU_IOWAIT, start, end)
        bench = self.store.query(MetricType.CPU_BENCH, start, end)
        io_latency = self.store.query(MetricType.IO_LATENCY, start, end)
        random_io = self.store.query(MetricType.RANDOM_IO, start, end)
        disk_stats = self.store.query(MetricType.DISK_STATS, start, end)
        memory = self.store.query(MetricType.MEMORY, start, end)
        cpu_load = self.store.query(MetricType.CPU_LOAD, start, end)

        df_steal = samples_frame(steal)
        df_iowait = samples_frame(iowait)

        if steal:
            values = _values(steal)
            stats.cpu_steal_avg = scoring.mean(values)
            stats.cpu_steal_max = scoring.maximum(values)
            stats.cpu_steal_p95 = scoring.percentile(values, 95)
            stats.cpu_steal_max_time = _peak_time(df_steal)

        if iowait:
            values = _values(iowait)
            stats.cpu_iowait_avg = scoring.mean(values)
            stats.cpu_iowait_max = scoring.maximum(values)
            stats.cpu_iowait_p95 = scoring.percentile(values, 95)
            stats.cpu_iowait_max_time = _peak_time(df_iowait)

        if bench:
            values = _values(bench)
            stats.cpu_bench_avg = scoring.mean(values)
            stats.cpu_bench_cv = scoring.coefficient_of_variation(values)

        if io_latency:
            values = _values(io_latency)
            stats.io_latency_avg = scoring.mean(values)
            stats.io_latency_p95 = scoring.percentile(values, 95)
            stats.io_latency_p99 = scoring.percentile(values, 99)

        if random_io:
            payloads = [p for p in map(decode_payload, random_io) if isinstance(p, RandomIOPayload)]
            writes = [p.write_latency_ms for p in payloads]
            reads = [p.read_latency_ms for p in payloads]
            stats.random_io_write_avg = scoring.mean(writes)
            stats.random_io_read_avg = scoring.mean(reads)
            # Write latency shows contention more clearly than reads
            stats.random_io_p95 = scoring.percentile(writes, 95)

        if len(disk_stats) >= 2:
            busy = [p.busy_percent for p in map(decode_payload, disk_stats) if isinstance(p, DiskStatsPayload)]
            stats.disk_busy_percent = scoring.mean(busy)
            stats.disk_busy_p95 = scoring.percentile(busy, 95)

        if memory:
            latest = memory[-1]
            payload = decode_payload(latest)
            if isinstance(payload, MemoryPayload):
                stats.memory_available_percent = payload.available_percent
            if stats.memory_available_percent == 0:
                stats.memory_available_percent = 100 - latest.value

        if cpu_load:
            values = _values(cpu_load)
            stats.cpu_load_avg = scoring.mean(values)
            stats.cpu_load_max = scoring.maximum(values)

        stats.hourly_breakdown = self.hourly_breakdown(df_steal, df_iowait)
        stats.baseline_deviation, stats.baseline_status = self.calculate_baseline_deviation(stats)
        self.calculate_score(stats)

        logging.info(f"Analyzed {period} window {start:%Y-%m-%d %H:%M} - {end:%Y-%m-%d %H:%M}: "
                     f"score={stats.total_score:.1f} level={stats.risk_level.value}")
        return stats

    @staticmethod
    def hourly_breakdown(df_steal: pd.DataFrame, df_iowait: pd.DataFrame) -> List[HourlyStats]:
        """Mean steal and iowait per hour of day, for hours with any samples."""
        if df_steal.empty and df_iowait.empty:
            return []
        steal_by_hour = df_steal.groupby(df_steal['ds'].dt.hour)['y'].mean() if not df_steal.empty else pd.Series(dtype=float)
        iowait_by_hour = df_iowait.groupby(df_iowait['ds'].dt.hour)['y'].mean() if not df_iowait.empty else pd.Series(dtype=float)
        hours = sorted(set(steal_by_hour.index) | set(iowait_by_hour.index))
        return [
            HourlyStats(
                hour=int(h),
                cpu_steal_avg=float(steal_by_hour.get(h, 0.0)),
                cpu_iowait_avg=float(iowait_by_hour.get(h, 0.0)),
            )
            for h in hours
        ]

    def calculate_baseline_deviation(self, stats: PeriodStats) -> Tuple[float, str]:
        """Compare the window against the trailing week that ends at its start.

        Returns the absolute mean percentage deviation and a trend label.
        With fewer than 10 baseline samples of both steal and sequential
        latency there is nothing to compare against: (0, 'stable').
        """
        baseline_end = stats.start
        baseline_start = baseline_end - datetime.timedelta(days=scoring.BASELINE_DAYS)

        baseline_steal = self.store.query(MetricType.CPU_STEAL, baseline_start, baseline_end)
        baseline_io = self.store.query(MetricType.IO_LATENCY, baseline_start, baseline_end)
        baseline_load = self.store.query(MetricType.CPU_LOAD, baseline_start, baseline_end)

        if len(baseline_steal) < scoring.BASELINE_MIN_SAMPLES and len(baseline_io) < scoring.BASELINE_MIN_SAMPLES:
            return 0.0, 'stable'

        deviations = []
        for samples, current in ((baseline_steal, stats.cpu_steal_avg),
                                 (baseline_io, stats.io_latency_avg),
                                 (baseline_load, stats.cpu_load_avg)):
            if not samples:
                continue
            baseline_avg = scoring.mean(_values(samples))
            if baseline_avg > 0:
                deviations.append((current - baseline_avg) / baseline_avg * 100)

        avg_deviation = scoring.mean(deviations)
        return abs(avg_deviation), scoring.classify_trend(avg_deviation)

    def calculate_score(self, stats: PeriodStats) -> None:
        boost = scoring.confidence_boost(stats.cpu_load_avg, stats.cpu_steal_avg, stats.cpu_iowait_avg)
        stats.confidence_boost = boost

        scores = {
            'cpu_steal': scoring.apply_boost(scoring.CPU_STEAL_LADDER.score(stats.cpu_steal_avg), boost),
            'cpu_iowait': scoring.apply_boost(scoring.CPU_IOWAIT_LADDER.score(stats.cpu_iowait_avg), boost),
            'cpu_stability': scoring.CPU_STABILITY_LADDER.score(stats.cpu_bench_cv),
            'io_latency': scoring.io_latency_ladder(stats.storage_type).score(stats.io_latency_p95),
            'random_io': scoring.random_io_ladder(stats.storage_type).score(stats.random_io_p95),
            'disk_busy': scoring.DISK_BUSY_LADDER.score(stats.disk_busy_percent),
            'memory': scoring.MEMORY_LADDER.score(stats.memory_available_percent),
            'baseline': scoring.BASELINE_LADDER.score(stats.baseline_deviation),
        }
        stats.dimension_scores = scores

        stats.risk_details = {
            'cpu_steal': scoring.describe_cpu_steal(stats.cpu_steal_avg),
            'cpu_iowait': scoring.describe_cpu_iowait(stats.cpu_iowait_avg),
            'cpu_stability': scoring.describe_cpu_stability(stats.cpu_bench_cv),
            'io_latency': scoring.describe_io_latency(stats.io_latency_p95, stats.storage_type),
            'random_io': scoring.describe_random_io(stats.random_io_write_avg, stats.random_io_read_avg,
                                                    stats.storage_type),
            'disk_busy': scoring.describe_disk_busy(stats.disk_busy_percent),
            'memory': scoring.describe_memory(stats.memory_available_percent),
            'cpu_load': scoring.describe_cpu_load(stats.cpu_load_avg),
            'baseline': scoring.describe_baseline(stats.baseline_deviation, stats.baseline_status),
        }

        stats.total_score = scoring.weighted_total(scores)
        stats.risk_level = scoring.risk_level(stats.total_score)
