# healthcast/schemas/forecast.py
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from healthcast.config import get_settings

DataQuality = Literal["insufficient", "moderate", "high"]
Interpretation = Literal["excellent", "good", "fair", "poor"]
TrendDirection = Literal["increasing", "decreasing", "stable"]


class Granularity(str, Enum):
    daily = "daily"
    monthly = "monthly"


class HistoricalPoint(BaseModel):
    date: date
    value: int = Field(..., ge=0)


class ForecastPoint(BaseModel):
    date: date
    predicted_value: float = Field(..., ge=0)
    lower_bound: float = Field(..., ge=0)
    upper_bound: float = Field(..., ge=0)


class ModelAccuracy(BaseModel):
    mse: float
    rmse: float
    mae: float
    r_squared: float
    mape: Optional[float] = Field(None, description="Percent error over non-zero actuals")
    confidence_level: float = Field(..., ge=0, le=1)
    interpretation: Interpretation
    # set when the observed series is constant and R² had to be defined by policy
    zero_variance: bool = False


class DataSources(BaseModel):
    events: int = 0
    imports: int = 0


class GenerateRequest(BaseModel):
    subject_id: int
    area_id: Optional[int] = Field(None, description="Geographic filter; omit for system-wide")
    horizon: Optional[int] = Field(None, ge=1, description="Future periods to forecast")
    granularity: Granularity = Field(default_factory=lambda: Granularity(get_settings().FORECAST_DEFAULT_GRANULARITY))
    auto_save: bool = True

    @model_validator(mode="after")
    def _apply_horizon_limits(self):
        settings = get_settings()
        if self.horizon is None:
            self.horizon = settings.FORECAST_DEFAULT_HORIZON
        if self.horizon > settings.FORECAST_MAX_HORIZON:
            raise ValueError(f"horizon must be <= {settings.FORECAST_MAX_HORIZON}")
        return self


class GenerateResult(BaseModel):
    subject_id: int
    area_id: Optional[int] = None
    granularity: Granularity
    points: List[ForecastPoint]
    accuracy: ModelAccuracy
    backtest: Optional[ModelAccuracy] = None
    data_quality: DataQuality
    seasonality_detected: bool
    seasonal_strength: float
    trend: TrendDirection
    model_version: str
    historical_point_count: int
    data_sources: DataSources
    saved: bool = False
    saved_count: int = 0
    save_error: Optional[str] = None
    generated_at: datetime


class FetchRequest(BaseModel):
    subject_id: int
    area_id: Optional[int] = None
    granularity: Granularity = Field(default_factory=lambda: Granularity(get_settings().FORECAST_DEFAULT_GRANULARITY))
    periods_back: int = Field(12, ge=1)
    periods_forecast: int = Field(6, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_window(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        if self.periods_forecast > get_settings().FORECAST_MAX_HORIZON:
            raise ValueError("periods_forecast exceeds the maximum horizon")
        return self


class FetchResult(BaseModel):
    """Chart-ready parallel arrays: history first, then forecast dates."""

    subject_id: int
    area_id: Optional[int] = None
    area_name: Optional[str] = None
    granularity: Granularity
    dates: List[date]
    actual_values: List[Optional[int]]
    predicted_values: List[Optional[float]]
    lower_bound: List[Optional[float]]
    upper_bound: List[Optional[float]]
    used_cache: bool
    data_quality: DataQuality
    model_accuracy: Optional[ModelAccuracy] = None
    model_version: Optional[str] = None
    historical_point_count: int
    prediction_point_count: int
    total_count: int


class PersistedForecastBatch(BaseModel):
    subject_id: int
    area_id: Optional[int] = None
    granularity: Granularity
    start_date: date
    end_date: date
    model_version: Optional[str] = None
    points: List[ForecastPoint]
    accuracy: Optional[ModelAccuracy] = None
    data_quality: Optional[DataQuality] = None
    generated_by: Optional[int] = None
    generated_at: datetime
