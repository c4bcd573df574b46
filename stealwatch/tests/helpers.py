import datetime

from stealwatch.models.metric import MetricSample, MetricType


def fill(store, metric_type: MetricType, start, count, value, step_minutes=10, extra=None):
    """Save ``count`` samples of ``value`` from ``start`` every ``step_minutes``."""
    for i in range(count):
        store.save(MetricSample(
            timestamp=start + datetime.timedelta(minutes=step_minutes * i),
            type=metric_type,
            value=value,
            extra=extra,
        ))
