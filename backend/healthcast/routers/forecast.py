# healthcast/routers/forecast.py
from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import ValidationError
from sqlalchemy.orm import Session

from healthcast.core.security import get_current_user
from healthcast.db.session import get_db
from healthcast.exceptions import ForecastingError
from healthcast.models.user import User
from healthcast.schemas.common import fail, meta_now, ok
from healthcast.schemas.forecast import FetchRequest, GenerateRequest, Granularity
from healthcast.services.area_cache import AreaNameCache, get_area_cache
from healthcast.services.predictions import PredictionService

router = APIRouter(prefix="/api/forecast", tags=["forecast"])


def domain_failure(exc: ForecastingError, **meta):
    return fail(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        meta=meta_now(**meta),
    )


def invalid_request(exc: ValidationError, **meta):
    first = exc.errors()[0]
    return fail(
        code="INVALID_REQUEST",
        message=first.get("msg", "Invalid request"),
        status_code=422,
        details={"field": ".".join(str(p) for p in first.get("loc", ()))},
        meta=meta_now(**meta),
    )


@router.post("/generate")
def generate_forecast(
    payload: Dict[str, Any] = Body(...),
    caller: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Refit the model on the full merged history and return `horizon` future points.
    With `auto_save`, the batch replaces stored rows for the same key and dates.
    """
    try:
        body = GenerateRequest.model_validate(payload)
    except ValidationError as exc:
        return invalid_request(exc)
    meta = dict(subject_id=body.subject_id, area_id=body.area_id, granularity=body.granularity.value, horizon=body.horizon)
    service = PredictionService(db)
    try:
        result = service.generate(caller, body)
    except ForecastingError as exc:
        return domain_failure(exc, **meta)
    return ok(data=result.model_dump(), meta=meta_now(**meta))


@router.get("")
def fetch_forecast(
    subject_id: int = Query(..., description="Service or disease subject id"),
    area_id: Optional[int] = Query(None, description="Geographic filter; omit for system-wide"),
    granularity: Optional[Granularity] = Query(None),
    periods_back: int = Query(12, ge=1, description="History periods shown on the chart"),
    periods_forecast: int = Query(6, ge=0, description="Future periods shown on the chart"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    caller: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    area_cache: AreaNameCache = Depends(get_area_cache),
):
    """
    Chart data for a subject: stored forecasts when any overlap the window,
    otherwise a forecast computed on the fly (never persisted).
    """
    meta = dict(subject_id=subject_id, area_id=area_id, periods_back=periods_back, periods_forecast=periods_forecast)
    params = dict(
        subject_id=subject_id,
        area_id=area_id,
        periods_back=periods_back,
        periods_forecast=periods_forecast,
        start_date=start_date,
        end_date=end_date,
    )
    if granularity is not None:
        params["granularity"] = granularity
    try:
        req = FetchRequest(**params)
    except ValidationError as exc:
        return invalid_request(exc, **meta)

    service = PredictionService(db, area_cache=area_cache)
    try:
        result = service.fetch(caller, req)
    except ForecastingError as exc:
        return domain_failure(exc, **meta)
    return ok(data=result.model_dump(), meta=meta_now(granularity=req.granularity.value, **meta))
