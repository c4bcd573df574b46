import math
import time
from dataclasses import dataclass
from typing import Optional

from stealwatch.core.exceptions import CollectError


BOOTSTRAP_DELAY = 0.1
BENCHMARK_PRIME_COUNT = 10000
CPU_FIELDS = ('user', 'nice', 'system', 'idle', 'iowait', 'irq', 'softirq', 'steal', 'guest', 'guest_nice')


@dataclass(frozen=True)
class CPUTimes:
    user: int
    nice: int
    system: int
    idle: int
    iowait: int
    irq: int
    softirq: int
    steal: int
    guest: int
    guest_nice: int

    @property
    def total(self) -> int:
        return (self.user + self.nice + self.system + self.idle + self.iowait
                + self.irq + self.softirq + self.steal + self.guest + self.guest_nice)


@dataclass(frozen=True)
class CPUUsage:
    steal_percent: float
    iowait_percent: float


def read_cpu_times(path='/proc/stat') -> CPUTimes:
    """Parse the aggregate ``cpu`` line of /proc/stat."""
    try:
        with open(path) as f:
            lines = f.read().splitlines()
    except OSError as e:
        raise CollectError(f"cannot read {path}: {e}") from e

    for line in lines:
        if not line.startswith('cpu '):
            continue
        parts = line.split()
        if len(parts) < len(CPU_FIELDS) + 1:
            raise CollectError(f"cpu line has too few fields: {line}")
        try:
            values = [int(v) for v in parts[1:len(CPU_FIELDS) + 1]]
        except ValueError as e:
            raise CollectError(f"cannot parse cpu counters: {e}") from e
        return CPUTimes(*values)

    raise CollectError(f"no aggregate cpu line in {path}")


def is_prime(n: int) -> bool:
    if n < 2:
        return False
    if n == 2:
        return True
    if n % 2 == 0:
        return False
    limit = math.isqrt(n)
    for i in range(3, limit + 1, 2):
        if n % i == 0:
            return False
    return True


class CPUSampler:
    """Steal/iowait percentages from successive /proc/stat snapshots.

    The sampler keeps the last snapshot it read, so each ``sample()`` call
    reports the share of CPU time spent in steal and iowait since the
    previous call. One instance belongs to one scheduler task and must not
    be shared between concurrent callers.
    """

    def __init__(self, stat_path='/proc/stat'):
        self.stat_path = stat_path
        self._last: Optional[CPUTimes] = None

    def sample(self) -> CPUUsage:
        current = read_cpu_times(self.stat_path)

        if self._last is None:
            # No baseline yet: wait briefly so the delta is not empty
            self._last = current
            time.sleep(BOOTSTRAP_DELAY)
            current = read_cpu_times(self.stat_path)

        total_delta = current.total - self._last.total
        steal_delta = current.steal - self._last.steal
        iowait_delta = current.iowait - self._last.iowait
        self._last = current

        if total_delta == 0:
            return CPUUsage(0.0, 0.0)

        return CPUUsage(
            steal_percent=steal_delta / total_delta * 100,
            iowait_percent=iowait_delta / total_delta * 100,
        )

    def benchmark(self, target=BENCHMARK_PRIME_COUNT) -> float:
        """Count ``target`` primes by trial division; return elapsed ms."""
        start = time.perf_counter()
        count = 0
        n = 2
        while count < target:
            if is_prime(n):
                count += 1
            n += 1
        elapsed = time.perf_counter() - start
        return round(elapsed * 1000, 3)
