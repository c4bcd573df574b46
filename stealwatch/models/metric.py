import datetime
import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, Index
from .base import Base


class MetricType(str, enum.Enum):
    CPU_STEAL = 'cpu_steal'
    CPU_IOWAIT = 'cpu_iowait'
    CPU_BENCH = 'cpu_bench'
    IO_LATENCY = 'io_latency'     # sequential write + fsync
    RANDOM_IO = 'random_io'
    DISK_STATS = 'disk_stats'     # cumulative device counters
    MEMORY = 'memory'
    CPU_LOAD = 'cpu_load'


class MetricRecord(Base):
    __tablename__ = 'metrics'
    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    metric_type = Column(String(32), nullable=False)
    value = Column(Float, nullable=False)
    extra = Column(Text, nullable=True)

    # Composite index for per-type range queries
    __table_args__ = (
        Index('idx_metrics_type', 'metric_type', 'timestamp'),
    )


def utcnow() -> datetime.datetime:
    """Current naive UTC time at whole-second resolution."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None, microsecond=0)


@dataclass(frozen=True)
class MetricSample:
    timestamp: datetime.datetime
    type: MetricType
    value: float
    extra: Optional[Dict[str, Any]] = None
    id: Optional[int] = None
