"""
Persistence of forecast batches.

A batch is stored one row per point. ``replace`` supersedes whatever the key
already holds inside the batch's date span: delete and insert share a single
transaction, so readers never observe a half-written batch and a failed write
leaves the previous rows intact.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from healthcast.exceptions import PersistenceReadError, PersistenceWriteError
from healthcast.models.forecast_results import ForecastResults, area_scope
from healthcast.schemas.forecast import (
    ForecastPoint,
    Granularity,
    ModelAccuracy,
    PersistedForecastBatch,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ForecastKey:
    subject_id: int
    area_id: Optional[int]
    granularity: Granularity

    @property
    def scope(self) -> str:
        return area_scope(self.area_id)


class ForecastStore:
    def __init__(self, db: Session):
        self.db = db

    def _key_filter(self, stmt, key: ForecastKey, start: Optional[date], end: Optional[date]):
        stmt = stmt.where(
            ForecastResults.subject_id == key.subject_id,
            ForecastResults.area_scope == key.scope,
            ForecastResults.granularity == Granularity(key.granularity).value,
        )
        if start is not None:
            stmt = stmt.where(ForecastResults.target_date >= start)
        if end is not None:
            stmt = stmt.where(ForecastResults.target_date <= end)
        return stmt

    # -- primitive operations ------------------------------------------------

    def query(self, key: ForecastKey, start: Optional[date] = None, end: Optional[date] = None) -> List[ForecastResults]:
        stmt = self._key_filter(select(ForecastResults), key, start, end).order_by(ForecastResults.target_date)
        return list(self.db.execute(stmt).scalars())

    def delete(self, key: ForecastKey, start: date, end: date) -> int:
        """Delete the key's rows in [start, end]. Does not commit."""
        result = self.db.execute(self._key_filter(delete(ForecastResults), key, start, end))
        return int(result.rowcount or 0)

    def insert(self, rows: Sequence[ForecastResults]) -> int:
        """Stage rows for insert. Does not commit."""
        self.db.add_all(rows)
        self.db.flush()
        return len(rows)

    # -- batch operations -----------------------------------------------------

    @staticmethod
    def to_rows(key: ForecastKey, batch: PersistedForecastBatch) -> List[ForecastResults]:
        extra: Dict[str, Any] = {
            "accuracy": batch.accuracy.model_dump() if batch.accuracy else None,
            "data_quality": batch.data_quality,
        }
        generated_at = batch.generated_at or datetime.now(timezone.utc)
        confidence = batch.accuracy.confidence_level if batch.accuracy else None
        return [
            ForecastResults(
                subject_id=key.subject_id,
                area_id=key.area_id,
                area_scope=key.scope,
                granularity=Granularity(key.granularity).value,
                target_date=p.date,
                yhat=p.predicted_value,
                yhat_lower=p.lower_bound,
                yhat_upper=p.upper_bound,
                confidence_level=confidence,
                model_version=batch.model_version,
                prediction_data=extra,
                generated_by=batch.generated_by,
                generated_at=generated_at,
            )
            for p in batch.points
        ]

    def replace(self, key: ForecastKey, batch: PersistedForecastBatch, *, extra: Optional[Dict[str, Any]] = None) -> int:
        """Atomically supersede the key's rows within the batch's date span.

        Raises PersistenceWriteError after rolling back on any database error.
        """
        if not batch.points:
            return 0
        rows = self.to_rows(key, batch)
        if extra:
            for row in rows:
                row.prediction_data = {**row.prediction_data, **extra}
        try:
            removed = self.delete(key, batch.start_date, batch.end_date)
            inserted = self.insert(rows)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning(
                "forecast_store.replace_failed",
                subject_id=key.subject_id,
                area_scope=key.scope,
                granularity=Granularity(key.granularity).value,
                error=str(exc),
            )
            raise PersistenceWriteError(f"Could not persist forecast batch: {exc.__class__.__name__}") from exc

        logger.info(
            "forecast_store.replaced",
            subject_id=key.subject_id,
            area_scope=key.scope,
            granularity=Granularity(key.granularity).value,
            removed=removed,
            inserted=inserted,
        )
        return inserted

    def read_batch(self, key: ForecastKey, start: Optional[date] = None, end: Optional[date] = None) -> Optional[PersistedForecastBatch]:
        """Persisted points of ``key`` overlapping [start, end], or None when nothing is stored."""
        try:
            rows = self.query(key, start, end)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceReadError(f"Could not read stored forecasts: {exc.__class__.__name__}") from exc
        if not rows:
            return None

        newest = max(rows, key=lambda r: r.generated_at)
        data = newest.prediction_data or {}
        accuracy = ModelAccuracy(**data["accuracy"]) if data.get("accuracy") else None
        return PersistedForecastBatch(
            subject_id=key.subject_id,
            area_id=key.area_id,
            granularity=Granularity(key.granularity),
            start_date=rows[0].target_date,
            end_date=rows[-1].target_date,
            model_version=newest.model_version,
            points=[
                ForecastPoint(
                    date=r.target_date,
                    predicted_value=r.yhat,
                    lower_bound=r.yhat_lower,
                    upper_bound=r.yhat_upper,
                )
                for r in rows
            ],
            accuracy=accuracy,
            data_quality=data.get("data_quality"),
            generated_by=newest.generated_by,
            generated_at=newest.generated_at,
        )
