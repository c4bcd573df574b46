import logging
import os
import time
from typing import Optional

from stealwatch.collectors.cpu import CPUSampler
from stealwatch.collectors.disk import DiskLatencyProbe, DiskStats, disk_busy_percent
from stealwatch.collectors.load import read_load_average
from stealwatch.collectors.memory import read_memory_stats
from stealwatch.core.exceptions import CollectError
from stealwatch.models.metric import MetricSample, MetricType, utcnow
from stealwatch.models.payloads import (
    CPULoadPayload, DiskStatsPayload, MemoryPayload, RandomIOPayload, SequentialIOPayload, to_extra,
)


class Collector:
    """Runs the samplers for one cadence and saves what they read.

    A probe that fails is logged and skipped for this tick; the next tick is
    the retry. Storage failures are not caught here.
    """

    def __init__(self, store, cpu: CPUSampler, disk: DiskLatencyProbe,
                 loadavg_path='/proc/loadavg', meminfo_path='/proc/meminfo', num_cpu=None,
                 clock=time.monotonic):
        self.store = store
        self.cpu = cpu
        self.disk = disk
        self.loadavg_path = loadavg_path
        self.meminfo_path = meminfo_path
        self.num_cpu = num_cpu or os.cpu_count() or 1
        self.clock = clock
        self._last_disk: Optional[DiskStats] = None
        self._last_disk_at: Optional[float] = None

    def _save(self, metric_type, value, payload=None, now=None):
        self.store.save(MetricSample(
            timestamp=now or utcnow(),
            type=metric_type,
            value=value,
            extra=to_extra(payload) if payload is not None else None,
        ))

    def collect_cpu(self):
        now = utcnow()
        try:
            usage = self.cpu.sample()
            self._save(MetricType.CPU_STEAL, usage.steal_percent, now=now)
            self._save(MetricType.CPU_IOWAIT, usage.iowait_percent, now=now)
            logging.info(f"CPU steal: {usage.steal_percent:.2f}%, iowait: {usage.iowait_percent:.2f}%")
        except CollectError as e:
            logging.error(f"CPU usage collection failed: {e}")

        try:
            load = read_load_average(self.loadavg_path)
            normalized = load.normalized(self.num_cpu)
            self._save(MetricType.CPU_LOAD, normalized,
                       CPULoadPayload(load.load1, load.load5, load.load15, self.num_cpu), now=now)
            logging.info(f"CPU load: {load.load1:.2f} (normalized: {normalized:.2f})")
        except CollectError as e:
            logging.error(f"Load average collection failed: {e}")

    def collect_benchmark(self):
        duration = self.cpu.benchmark()
        self._save(MetricType.CPU_BENCH, duration)
        logging.info(f"CPU bench: {duration:.2f}ms")

    def collect_io(self):
        now = utcnow()
        try:
            result = self.disk.test_write_latency()
            self._save(MetricType.IO_LATENCY, result.total_latency_ms,
                       SequentialIOPayload(result.write_latency_ms, result.sync_latency_ms), now=now)
            logging.info(f"I/O latency: {result.total_latency_ms:.2f}ms "
                         f"(write {result.write_latency_ms:.2f}ms, sync {result.sync_latency_ms:.2f}ms)")
        except CollectError as e:
            logging.error(f"Sequential I/O test failed: {e}")

        try:
            result = self.disk.test_random_io()
            self._save(MetricType.RANDOM_IO, result.write_latency_ms,
                       RandomIOPayload(result.write_latency_ms, result.read_latency_ms, result.used_direct_io),
                       now=now)
            logging.info(f"Random I/O: write={result.write_latency_ms:.2f}ms, read={result.read_latency_ms:.2f}ms, "
                         f"direct={result.used_direct_io}")
        except CollectError as e:
            logging.error(f"Random I/O test failed: {e}")

        try:
            mem = read_memory_stats(self.meminfo_path)
            self._save(MetricType.MEMORY, mem.usage_percent,
                       MemoryPayload(mem.total_kb, mem.available_kb, mem.available_percent, mem.swap_usage_percent),
                       now=now)
            logging.info(f"Memory usage: {mem.usage_percent:.1f}%, available: {mem.available_percent:.1f}%")
        except CollectError as e:
            logging.error(f"Memory collection failed: {e}")

        self.collect_disk_stats(now)

    def collect_disk_stats(self, now=None):
        """Save device busy-ness since the previous counter snapshot.

        The first call only records the snapshot.
        """
        try:
            counters = self.disk.read_disk_stats()
        except CollectError as e:
            logging.error(f"Disk stats collection failed: {e}")
            return
        taken_at = self.clock()

        prev, prev_at = self._last_disk, self._last_disk_at
        self._last_disk, self._last_disk_at = counters, taken_at
        if prev is None:
            return

        busy = disk_busy_percent(prev, counters, taken_at - prev_at)
        payload = DiskStatsPayload(
            read_ops=counters.read_ops,
            write_ops=counters.write_ops,
            read_bytes=counters.read_bytes,
            write_bytes=counters.write_bytes,
            io_time_ms=counters.io_time_ms,
            weighted_io_ms=counters.weighted_io_ms,
            busy_percent=busy,
        )
        self._save(MetricType.DISK_STATS, busy, payload, now=now)
        logging.info(f"Disk busy: {busy:.1f}%")

    def collect_all(self):
        self.collect_cpu()
        self.collect_benchmark()
        self.collect_io()
