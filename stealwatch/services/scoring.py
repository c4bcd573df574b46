"""Statistics helpers and the per-dimension scoring tables.

Each dimension maps one statistic to a discrete score through a ``Ladder``:
an ordered table of ``(bound, score)`` rows evaluated first-match-wins.
"""
import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from stealwatch.models.stats import RiskLevel, StorageType


WEIGHTS = {
    'cpu_steal': 0.35,
    'cpu_iowait': 0.10,
    'cpu_stability': 0.10,
    'io_latency': 0.15,
    'random_io': 0.10,
    'disk_busy': 0.05,
    'memory': 0.10,
    'baseline': 0.05,
}

LOAD_BOOST_CEILING = 0.7
STEAL_BOOST_TRIGGER = 3.0
IOWAIT_BOOST_TRIGGER = 5.0
MAX_CONFIDENCE_BOOST = 1.2
BASELINE_DAYS = 7
BASELINE_MIN_SAMPLES = 10
TREND_THRESHOLD = 10.0


def mean(values: Sequence[float]) -> float:
    return float(np.mean(values)) if len(values) else 0.0


def maximum(values: Sequence[float]) -> float:
    return float(np.max(values)) if len(values) else 0.0


def percentile(values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile: index ceil(p/100*n)-1, clamped to the data."""
    if not len(values):
        return 0.0
    ordered = np.sort(np.asarray(values, dtype=float))
    index = int(math.ceil(p / 100 * len(ordered))) - 1
    index = min(max(index, 0), len(ordered) - 1)
    return float(ordered[index])


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Population stddev over mean; 0 for fewer than 2 samples or zero mean."""
    if len(values) < 2:
        return 0.0
    arr = np.asarray(values, dtype=float)
    avg = arr.mean()
    if avg == 0:
        return 0.0
    return float(arr.std(ddof=0) / avg)


@dataclass(frozen=True)
class Ladder:
    steps: Tuple[Tuple[float, float], ...]
    default: float
    higher_is_better: bool = False

    def score(self, value: float) -> float:
        for bound, score in self.steps:
            if (value > bound) if self.higher_is_better else (value < bound):
                return score
        return self.default


CPU_STEAL_LADDER = Ladder(((3, 100), (8, 70), (15, 40)), default=0)
CPU_IOWAIT_LADDER = Ladder(((5, 100), (15, 70), (30, 40)), default=0)
CPU_STABILITY_LADDER = Ladder(((0.05, 100), (0.15, 70)), default=30)
DISK_BUSY_LADDER = Ladder(((30, 100), (60, 70), (85, 40)), default=0)
MEMORY_LADDER = Ladder(((90, 100), (80, 80)), default=50, higher_is_better=True)
BASELINE_LADDER = Ladder(((10, 100), (25, 70), (50, 40)), default=20)

IO_LATENCY_LADDERS = {
    StorageType.HDD: Ladder(((50, 100), (100, 70), (200, 40)), default=0),
    StorageType.SSD: Ladder(((20, 100), (50, 70), (100, 40)), default=0),
}
RANDOM_IO_LADDERS = {
    StorageType.HDD: Ladder(((100, 100), (200, 70), (500, 40)), default=0),
    StorageType.SSD: Ladder(((30, 100), (80, 70), (150, 40)), default=0),
}


def io_latency_ladder(storage_type: StorageType) -> Ladder:
    # Unknown storage is scored against the SSD thresholds
    return IO_LATENCY_LADDERS.get(storage_type, IO_LATENCY_LADDERS[StorageType.SSD])


def random_io_ladder(storage_type: StorageType) -> Ladder:
    return RANDOM_IO_LADDERS.get(storage_type, RANDOM_IO_LADDERS[StorageType.SSD])


def confidence_boost(load_avg: float, steal_avg: float, iowait_avg: float) -> float:
    """How much more credible steal/iowait are when local load is low.

    1.0 whenever normalised load is at or above 0.7 or neither steal nor
    iowait is elevated; otherwise grows linearly as load falls, capped at 1.2.
    """
    if load_avg >= LOAD_BOOST_CEILING:
        return 1.0
    if steal_avg > STEAL_BOOST_TRIGGER or iowait_avg > IOWAIT_BOOST_TRIGGER:
        return min(1.0 + (LOAD_BOOST_CEILING - load_avg) * 0.3, MAX_CONFIDENCE_BOOST)
    return 1.0


def apply_boost(score: float, boost: float) -> float:
    """Sharpen a penalised score; a perfect score is never touched."""
    if boost > 1.0 and score < 100:
        return score / boost
    return score


def classify_trend(avg_deviation: float) -> str:
    if avg_deviation > TREND_THRESHOLD:
        return 'degrading'
    if avg_deviation < -TREND_THRESHOLD:
        return 'improving'
    return 'stable'


def risk_level(score: float) -> RiskLevel:
    if score >= 90:
        return RiskLevel.EXCELLENT
    if score >= 70:
        return RiskLevel.GOOD
    if score >= 50:
        return RiskLevel.MEDIUM
    return RiskLevel.SEVERE


def weighted_total(scores: dict) -> float:
    return sum(scores[name] * weight for name, weight in WEIGHTS.items())


# Presentation-only descriptions. Thresholds can differ from the ladders.

def describe_cpu_steal(avg: float) -> str:
    if avg < 3:
        return "✅ Low"
    if avg < 8:
        return "⚠️ Moderate"
    return "🔴 Severe"


def describe_cpu_iowait(avg: float) -> str:
    if avg < 5:
        return "✅ Low"
    if avg < 15:
        return "⚠️ Moderate"
    return "🔴 Severe"


def describe_cpu_stability(cv: float) -> str:
    if cv < 0.05:
        return "✅ Stable"
    if cv < 0.15:
        return "⚠️ Minor fluctuation"
    return "🔴 Unstable"


def describe_io_latency(p95: float, storage_type: StorageType) -> str:
    threshold = 50.0 if storage_type == StorageType.HDD else 20.0
    if p95 < threshold:
        return "✅ Low"
    if p95 < threshold * 2.5:
        return "⚠️ Moderate"
    return "🔴 Severe"


def describe_random_io(write_avg: float, read_avg: float, storage_type: StorageType) -> str:
    threshold = 100.0 if storage_type == StorageType.HDD else 30.0
    detail = f"(write {write_avg:.1f}ms, read {read_avg:.1f}ms)"
    if write_avg < threshold:
        return f"✅ Low {detail}"
    if write_avg < threshold * 2.5:
        return f"⚠️ Moderate {detail}"
    return f"🔴 Severe {detail}"


def describe_disk_busy(busy_percent: float) -> str:
    if busy_percent < 30:
        return f"✅ Low ({busy_percent:.1f}%)"
    if busy_percent < 60:
        return f"⚠️ Moderate ({busy_percent:.1f}%)"
    return f"🔴 High ({busy_percent:.1f}%)"


def describe_memory(available_percent: float) -> str:
    if available_percent > 80:
        return "✅ Normal"
    if available_percent > 50:
        return "⚠️ Low"
    return "🔴 Insufficient"


def describe_cpu_load(avg: float) -> str:
    if avg < 0.7:
        status = "idle"
    elif avg < 1.0:
        status = "normal"
    elif avg < 2.0:
        status = "busy"
    else:
        status = "overloaded"
    return f"📊 {avg:.2f} ({status}) [reference only]"


def describe_baseline(deviation: float, status: str) -> str:
    if status == 'improving':
        return "📈 Improving"
    if status == 'degrading':
        return "🔴 Clearly degrading" if deviation > 25 else "⚠️ Slightly degrading"
    return "✅ Stable"
