import datetime
import json
import logging
import threading
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from stealwatch.core.database import make_session_factory
from stealwatch.core.exceptions import StorageError
from stealwatch.models.base import Base
from stealwatch.models.metric import MetricRecord, MetricSample, MetricType, utcnow


class MetricStore:
    """Append-only time series of metric samples.

    Writers are serialised with a lock; every read runs in its own session so
    it sees a consistent snapshot. Range queries include both bounds and come
    back in ascending time, ties broken by insertion order.
    """

    def __init__(self, engine):
        self.engine = engine
        self.SessionLocal = make_session_factory(engine)
        self._write_lock = threading.Lock()

    def init_db(self):
        Base.metadata.create_all(bind=self.engine)

    def close(self):
        self.engine.dispose()

    def save(self, sample: MetricSample) -> None:
        metric_type = MetricType(sample.type)
        extra = None
        if sample.extra is not None:
            try:
                extra = json.dumps(sample.extra)
            except (TypeError, ValueError) as e:
                raise StorageError(f"cannot serialise extra for {metric_type.value}: {e}") from e

        record = MetricRecord(
            timestamp=sample.timestamp.replace(microsecond=0),
            metric_type=metric_type.value,
            value=float(sample.value),
            extra=extra,
        )
        with self._write_lock:
            session = self.SessionLocal()
            try:
                session.add(record)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise StorageError(f"failed to save {metric_type.value} sample: {e}") from e
            finally:
                session.close()

    def query(self, metric_type: MetricType, start: datetime.datetime, end: datetime.datetime) -> List[MetricSample]:
        metric_type = MetricType(metric_type)
        session = self.SessionLocal()
        try:
            rows = (
                session.query(MetricRecord)
                .filter(MetricRecord.metric_type == metric_type.value)
                .filter(MetricRecord.timestamp >= start, MetricRecord.timestamp <= end)
                .order_by(MetricRecord.timestamp.asc(), MetricRecord.id.asc())
                .all()
            )
            return [self._to_sample(r) for r in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"failed to query {metric_type.value}: {e}") from e
        finally:
            session.close()

    def latest(self, metric_type: MetricType) -> Optional[MetricSample]:
        metric_type = MetricType(metric_type)
        session = self.SessionLocal()
        try:
            row = (
                session.query(MetricRecord)
                .filter(MetricRecord.metric_type == metric_type.value)
                .order_by(MetricRecord.timestamp.desc(), MetricRecord.id.desc())
                .first()
            )
            return self._to_sample(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"failed to read latest {metric_type.value}: {e}") from e
        finally:
            session.close()

    def cleanup(self, retention_days: int) -> int:
        """Delete rows older than ``retention_days``; return how many went."""
        cutoff = utcnow() - datetime.timedelta(days=retention_days)
        with self._write_lock:
            session = self.SessionLocal()
            try:
                result = session.execute(delete(MetricRecord).where(MetricRecord.timestamp < cutoff))
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise StorageError(f"retention cleanup failed: {e}") from e
            finally:
                session.close()
        deleted = result.rowcount or 0
        if deleted:
            logging.info(f"Pruned {deleted} samples older than {retention_days} days")
        return deleted

    @staticmethod
    def _to_sample(row: MetricRecord) -> MetricSample:
        extra = None
        if row.extra:
            try:
                extra = json.loads(row.extra)
            except ValueError as e:
                raise StorageError(f"corrupt extra payload on row {row.id}: {e}") from e
        return MetricSample(
            timestamp=row.timestamp,
            type=MetricType(row.metric_type),
            value=row.value,
            extra=extra,
            id=row.id,
        )
