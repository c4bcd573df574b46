from .cpu import CPUSampler, CPUUsage
from .disk import DiskLatencyProbe, DiskStats, RandomIOResult, SequentialIOResult
from .load import LoadAverage, read_load_average
from .memory import MemoryStats, read_memory_stats
