import datetime
import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional


class StorageType(str, enum.Enum):
    SSD = 'SSD'
    HDD = 'HDD'
    UNKNOWN = 'Unknown'


class RiskLevel(str, enum.Enum):
    EXCELLENT = 'excellent'   # 90-100
    GOOD = 'good'             # 70-89
    MEDIUM = 'medium'         # 50-69
    SEVERE = 'severe'         # 0-49


@dataclass
class HourlyStats:
    hour: int
    cpu_steal_avg: float
    cpu_iowait_avg: float


@dataclass
class PeriodStats:
    """Aggregates for one report window. Recomputed on every request."""
    period: str
    start: datetime.datetime
    end: datetime.datetime
    storage_type: StorageType = StorageType.UNKNOWN

    cpu_steal_avg: float = 0.0
    cpu_steal_max: float = 0.0
    cpu_steal_p95: float = 0.0
    cpu_steal_max_time: Optional[datetime.datetime] = None

    cpu_iowait_avg: float = 0.0
    cpu_iowait_max: float = 0.0
    cpu_iowait_p95: float = 0.0
    cpu_iowait_max_time: Optional[datetime.datetime] = None

    cpu_bench_avg: float = 0.0
    cpu_bench_cv: float = 0.0

    io_latency_avg: float = 0.0
    io_latency_p95: float = 0.0
    io_latency_p99: float = 0.0

    random_io_write_avg: float = 0.0
    random_io_read_avg: float = 0.0
    random_io_p95: float = 0.0

    disk_busy_percent: float = 0.0
    disk_busy_p95: float = 0.0

    memory_available_percent: float = 0.0

    cpu_load_avg: float = 0.0
    cpu_load_max: float = 0.0

    baseline_deviation: float = 0.0
    baseline_status: str = 'stable'

    confidence_boost: float = 1.0
    dimension_scores: Dict[str, float] = field(default_factory=dict)
    risk_details: Dict[str, str] = field(default_factory=dict)
    hourly_breakdown: List[HourlyStats] = field(default_factory=list)

    total_score: float = 0.0
    risk_level: RiskLevel = RiskLevel.SEVERE
