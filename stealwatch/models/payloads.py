"""Typed side payloads, one shape per metric type that carries one.

The store persists ``MetricSample.extra`` as an opaque JSON mapping; the
analyzer turns it back into the variant matching the row's type with
``decode_payload``.
"""
from dataclasses import asdict, dataclass, fields
from typing import Optional, Union

from .metric import MetricSample, MetricType


@dataclass(frozen=True)
class SequentialIOPayload:
    write_latency_ms: float
    sync_latency_ms: float


@dataclass(frozen=True)
class RandomIOPayload:
    write_latency_ms: float
    read_latency_ms: float
    direct_io: bool = True


@dataclass(frozen=True)
class DiskStatsPayload:
    read_ops: int
    write_ops: int
    read_bytes: int
    write_bytes: int
    io_time_ms: int
    weighted_io_ms: int
    busy_percent: float


@dataclass(frozen=True)
class MemoryPayload:
    total_kb: int
    available_kb: int
    available_percent: float
    swap_usage: float


@dataclass(frozen=True)
class CPULoadPayload:
    load1: float
    load5: float
    load15: float
    num_cpu: int


Payload = Union[SequentialIOPayload, RandomIOPayload, DiskStatsPayload, MemoryPayload, CPULoadPayload]

PAYLOAD_TYPES = {
    MetricType.IO_LATENCY: SequentialIOPayload,
    MetricType.RANDOM_IO: RandomIOPayload,
    MetricType.DISK_STATS: DiskStatsPayload,
    MetricType.MEMORY: MemoryPayload,
    MetricType.CPU_LOAD: CPULoadPayload,
}


def to_extra(payload: Payload) -> dict:
    return asdict(payload)


def decode_payload(sample: MetricSample) -> Optional[Payload]:
    """Return the payload variant for ``sample`` or None when it has none.

    Keys the variant does not know are ignored and missing keys fall back to
    the field default, so rows written with a partial payload still decode
    when the missing fields have defaults. A payload lacking a required field
    returns None rather than a half-filled object.
    """
    cls = PAYLOAD_TYPES.get(MetricType(sample.type))
    if cls is None or not sample.extra:
        return None
    known = {f.name for f in fields(cls)}
    try:
        return cls(**{k: v for k, v in sample.extra.items() if k in known})
    except TypeError:
        return None
