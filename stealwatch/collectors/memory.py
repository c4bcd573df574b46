from dataclasses import dataclass

from stealwatch.core.exceptions import CollectError


_MEMINFO_KEYS = {
    'MemTotal': 'total_kb',
    'MemFree': 'free_kb',
    'MemAvailable': 'available_kb',
    'Buffers': 'buffers_kb',
    'Cached': 'cached_kb',
    'SwapTotal': 'swap_total_kb',
    'SwapFree': 'swap_free_kb',
}


@dataclass(frozen=True)
class MemoryStats:
    total_kb: int = 0
    free_kb: int = 0
    available_kb: int = 0
    buffers_kb: int = 0
    cached_kb: int = 0
    swap_total_kb: int = 0
    swap_free_kb: int = 0

    @property
    def usage_percent(self) -> float:
        if self.total_kb == 0:
            return 0.0
        return (self.total_kb - self.available_kb) / self.total_kb * 100

    @property
    def available_percent(self) -> float:
        if self.total_kb == 0:
            return 0.0
        return self.available_kb / self.total_kb * 100

    @property
    def swap_usage_percent(self) -> float:
        if self.swap_total_kb == 0:
            return 0.0
        return (self.swap_total_kb - self.swap_free_kb) / self.swap_total_kb * 100


def read_memory_stats(path='/proc/meminfo') -> MemoryStats:
    try:
        with open(path) as f:
            lines = f.read().splitlines()
    except OSError as e:
        raise CollectError(f"cannot read {path}: {e}") from e

    values = {}
    for line in lines:
        parts = line.split()
        if len(parts) < 2:
            continue
        name = _MEMINFO_KEYS.get(parts[0].rstrip(':'))
        if name is None:
            continue
        try:
            values[name] = int(parts[1])
        except ValueError:
            continue

    # Kernels before 3.14 have no MemAvailable
    if not values.get('available_kb'):
        values['available_kb'] = (values.get('free_kb', 0) + values.get('buffers_kb', 0)
                                  + values.get('cached_kb', 0))

    return MemoryStats(**values)
