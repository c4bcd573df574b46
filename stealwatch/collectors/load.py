from dataclasses import dataclass

from stealwatch.core.exceptions import CollectError


@dataclass(frozen=True)
class LoadAverage:
    load1: float
    load5: float
    load15: float

    def normalized(self, cores: int) -> float:
        """load1 per core."""
        return self.load1 / cores if cores else self.load1


def read_load_average(path='/proc/loadavg') -> LoadAverage:
    try:
        with open(path) as f:
            line = f.readline()
    except OSError as e:
        raise CollectError(f"cannot read {path}: {e}") from e

    parts = line.split()
    if len(parts) < 3:
        raise CollectError(f"malformed loadavg line: {line!r}")
    try:
        return LoadAverage(float(parts[0]), float(parts[1]), float(parts[2]))
    except ValueError as e:
        raise CollectError(f"cannot parse loadavg: {e}") from e
