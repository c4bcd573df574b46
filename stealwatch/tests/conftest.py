import datetime

import pytest

from stealwatch.core.database import create_db_engine
from stealwatch.services.store import MetricStore


@pytest.fixture
def store(tmp_path):
    s = MetricStore(create_db_engine(f"sqlite:///{tmp_path / 'metrics.db'}"))
    s.init_db()
    yield s
    s.close()


@pytest.fixture
def window():
    start = datetime.datetime(2026, 3, 10, 0, 0, 0)
    return start, start + datetime.timedelta(days=1)
