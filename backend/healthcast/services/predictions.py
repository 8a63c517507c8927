# healthcast/services/predictions.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from healthcast.config import Settings, get_settings
from healthcast.core.access import AccessGate, Caller, RoleAccessGate, require_access
from healthcast.exceptions import PersistenceReadError, PersistenceWriteError, UnknownSubjectError
from healthcast.models.subject import Subject
from healthcast.observability.instrument import log_job
from healthcast.observability.metrics import (
    FORECAST_CACHE_LOOKUPS,
    FORECAST_FIT_SECONDS,
    FORECAST_GENERATIONS,
)
from healthcast.schemas.forecast import (
    DataSources,
    FetchRequest,
    FetchResult,
    ForecastPoint,
    GenerateRequest,
    GenerateResult,
    Granularity,
    ModelAccuracy,
    PersistedForecastBatch,
)
from healthcast.services.accuracy import evaluate_fit, holdout_backtest
from healthcast.services.area_cache import AreaNameCache
from healthcast.services.forecast import data_quality_tier, forecast, shift_period
from healthcast.services.forecast_store import ForecastKey, ForecastStore
from healthcast.services.history import HistoryMerger

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PredictionService:
    """Request-scoped orchestration of merge -> fit -> evaluate -> persist."""

    def __init__(
        self,
        db: Session,
        *,
        gate: Optional[AccessGate] = None,
        merger: Optional[HistoryMerger] = None,
        store: Optional[ForecastStore] = None,
        area_cache: Optional[AreaNameCache] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.db = db
        self.gate = gate or RoleAccessGate()
        self.merger = merger or HistoryMerger.from_session(db)
        self.store = store or ForecastStore(db)
        self.area_cache = area_cache
        self.settings = settings or get_settings()
        self.clock = clock

    def _ensure_subject(self, subject_id: int) -> Subject:
        subject = self.db.get(Subject, subject_id)
        if subject is None:
            raise UnknownSubjectError(subject_id)
        return subject

    @log_job("forecast.generate")
    def generate(self, caller: Caller, req: GenerateRequest) -> GenerateResult:
        require_access(self.gate, caller, req.subject_id)
        self._ensure_subject(req.subject_id)
        granularity = Granularity(req.granularity)

        history = self.merger.build(req.subject_id, req.area_id, granularity)
        with FORECAST_FIT_SECONDS.labels(granularity=granularity.value).time():
            result = forecast(history.points, req.horizon, granularity, settings=self.settings)
        accuracy = evaluate_fit(result.observed, result.fitted)
        backtest = holdout_backtest(history.points, granularity, settings=self.settings)
        generated_at = self.clock()

        saved, saved_count, save_error = False, 0, None
        if req.auto_save:
            key = ForecastKey(req.subject_id, req.area_id, granularity)
            batch = PersistedForecastBatch(
                subject_id=req.subject_id,
                area_id=req.area_id,
                granularity=granularity,
                start_date=result.points[0].date,
                end_date=result.points[-1].date,
                model_version=result.model_version,
                points=result.points,
                accuracy=accuracy,
                data_quality=result.data_quality,
                generated_by=getattr(caller, "id", None),
                generated_at=generated_at,
            )
            try:
                saved_count = self.store.replace(
                    key,
                    batch,
                    extra={
                        "seasonality_detected": result.seasonality_detected,
                        "trend": result.trend,
                        "historical_point_count": len(history),
                    },
                )
                saved = True
            except PersistenceWriteError as exc:
                save_error = exc.message

        FORECAST_GENERATIONS.labels(granularity=granularity.value, saved=str(saved).lower()).inc()
        return GenerateResult(
            subject_id=req.subject_id,
            area_id=req.area_id,
            granularity=granularity,
            points=result.points,
            accuracy=accuracy,
            backtest=backtest,
            data_quality=result.data_quality,
            seasonality_detected=result.seasonality_detected,
            seasonal_strength=result.seasonal_strength,
            trend=result.trend,
            model_version=result.model_version,
            historical_point_count=len(history),
            data_sources=DataSources(events=history.event_count, imports=history.import_count),
            saved=saved,
            saved_count=saved_count,
            save_error=save_error,
            generated_at=generated_at,
        )

    def chart_window(self, req: FetchRequest, today: Optional[date] = None) -> Tuple[date, date]:
        granularity = Granularity(req.granularity)
        end = req.end_date or today or self.clock().date()
        if req.start_date is not None:
            return req.start_date, end
        return shift_period(end, -(req.periods_back - 1), granularity), end

    def _read_cached(self, key: ForecastKey, start: date, end: date) -> Optional[PersistedForecastBatch]:
        try:
            cached = self.store.read_batch(key, start, end)
        except PersistenceReadError as exc:
            logger.warning("forecast.cache_read_failed", subject_id=key.subject_id, error=exc.message)
            FORECAST_CACHE_LOOKUPS.labels(result="error").inc()
            return None
        FORECAST_CACHE_LOOKUPS.labels(result="hit" if cached else "miss").inc()
        return cached

    @log_job("forecast.fetch")
    def fetch(self, caller: Caller, req: FetchRequest, today: Optional[date] = None) -> FetchResult:
        require_access(self.gate, caller, req.subject_id)
        self._ensure_subject(req.subject_id)
        granularity = Granularity(req.granularity)

        window_start, window_end = self.chart_window(req, today)
        chart = self.merger.build(req.subject_id, req.area_id, granularity, window_start, window_end)

        key = ForecastKey(req.subject_id, req.area_id, granularity)
        horizon_end = shift_period(window_end, req.periods_forecast, granularity)
        cached = self._read_cached(key, window_start, horizon_end)

        predictions: List[ForecastPoint] = []
        accuracy: Optional[ModelAccuracy] = None
        model_version: Optional[str] = None
        if cached is not None:
            predictions = cached.points
            accuracy = cached.accuracy
            model_version = cached.model_version
            data_quality = cached.data_quality or data_quality_tier(len(chart), self.settings)
        else:
            # computed on the fly; only generate() writes to the store
            model_history = self.merger.build(req.subject_id, req.area_id, granularity)
            data_quality = data_quality_tier(len(model_history), self.settings)
            if data_quality != "insufficient":
                result = forecast(
                    model_history.points,
                    max(req.periods_forecast, 1),
                    granularity,
                    settings=self.settings,
                )
                predictions = result.points[: req.periods_forecast]
                accuracy = evaluate_fit(result.observed, result.fitted)
                model_version = result.model_version

        actual = {p.date: p.value for p in chart.points}
        predicted = {p.date: p for p in predictions}
        dates = sorted(set(actual) | set(predicted))

        area_name = None
        if self.area_cache is not None:
            area_name = self.area_cache.name_for(self.db, req.area_id)

        return FetchResult(
            subject_id=req.subject_id,
            area_id=req.area_id,
            area_name=area_name,
            granularity=granularity,
            dates=dates,
            actual_values=[actual.get(d) for d in dates],
            predicted_values=[predicted[d].predicted_value if d in predicted else None for d in dates],
            lower_bound=[predicted[d].lower_bound if d in predicted else None for d in dates],
            upper_bound=[predicted[d].upper_bound if d in predicted else None for d in dates],
            used_cache=cached is not None,
            data_quality=data_quality,
            model_accuracy=accuracy,
            model_version=model_version,
            historical_point_count=len(chart),
            prediction_point_count=len(predictions),
            total_count=len(dates),
        )
