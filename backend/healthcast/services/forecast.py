# healthcast/services/forecast.py
"""
Fixed-structure seasonal forecaster.

The series is decomposed into a trend (OLS over the time index, or a
moving-average level when there is less than two seasons of history) and a
seasonal profile indexed by ``t mod period``. Forecasts extend both
components forward; bounds widen with sqrt(1 + h / period).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, List, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm

from healthcast.config import Settings, get_settings
from healthcast.exceptions import InsufficientDataError
from healthcast.schemas.forecast import ForecastPoint, Granularity, HistoricalPoint

SEASONAL_PERIODS = {Granularity.daily: 7, Granularity.monthly: 12}
TREND_CHANGE_THRESHOLD = 0.10


@dataclass
class ForecastResult:
    granularity: Granularity
    points: List[ForecastPoint]
    observed: List[float]
    fitted: List[float]
    residual_std: float
    seasonality_detected: bool
    seasonal_strength: float
    data_quality: str
    trend: str
    model_version: str

    def __len__(self) -> int:
        return len(self.points)


def seasonal_period(granularity: Granularity | str) -> int:
    return SEASONAL_PERIODS[Granularity(granularity)]


def model_version(granularity: Granularity | str) -> str:
    return f"seasonal-decomposition-{Granularity(granularity).value}-v1"


def data_quality_tier(n: int, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    if n < settings.FORECAST_MIN_POINTS:
        return "insufficient"
    if n < settings.FORECAST_HIGH_QUALITY_POINTS:
        return "moderate"
    return "high"


def trend_direction(values: Sequence[float]) -> str:
    """Compare the mean of the second half of the series against the first half."""
    y = np.asarray(values, dtype=float)
    half = len(y) // 2
    if half == 0:
        return "stable"
    first, second = float(y[:half].mean()), float(y[half:].mean())
    if first == 0.0:
        return "increasing" if second > 0.0 else "stable"
    change = (second - first) / first
    if change > TREND_CHANGE_THRESHOLD:
        return "increasing"
    if change < -TREND_CHANGE_THRESHOLD:
        return "decreasing"
    return "stable"


def _fit_trend(y: np.ndarray, period: int) -> Callable[[np.ndarray], np.ndarray]:
    n = len(y)
    if n >= 2 * period:
        X = sm.add_constant(np.arange(n, dtype=float), has_constant="add")
        intercept, slope = sm.OLS(y, X).fit().params
        return lambda t: intercept + slope * np.asarray(t, dtype=float)

    level = float(y[-min(period, n):].mean())
    return lambda t: np.full(np.shape(t), level, dtype=float)


def _seasonal_profile(detrended: np.ndarray, period: int) -> tuple[np.ndarray, bool]:
    """Mean deviation from trend per position in the cycle, centered on zero."""
    if len(detrended) < 2 * period:
        return np.zeros(period), False
    positions = np.arange(len(detrended)) % period
    profile = (
        pd.Series(detrended)
        .groupby(positions)
        .mean()
        .reindex(range(period), fill_value=0.0)
        .to_numpy(dtype=float)
    )
    return profile - profile.mean(), True


def shift_period(last: date, h: int, granularity: Granularity | str) -> date:
    """Move ``h`` periods from ``last``; monthly results land on the first of the month."""
    if Granularity(granularity) == Granularity.daily:
        return last + timedelta(days=h)
    return (pd.Timestamp(last.replace(day=1)) + pd.DateOffset(months=h)).date()


def forecast(
    series: Sequence[HistoricalPoint],
    horizon: int,
    granularity: Granularity | str,
    *,
    settings: Settings | None = None,
) -> ForecastResult:
    """Fit the seasonal model to ``series`` and project ``horizon`` periods past its last date.

    Raises InsufficientDataError when the series is shorter than the configured minimum.
    """
    settings = settings or get_settings()
    granularity = Granularity(granularity)
    n = len(series)
    if n < settings.FORECAST_MIN_POINTS:
        raise InsufficientDataError(observed=n, required=settings.FORECAST_MIN_POINTS)
    if horizon < 1:
        raise ValueError("horizon must be a positive number of periods")

    period = seasonal_period(granularity)
    y = np.asarray([p.value for p in series], dtype=float)
    t = np.arange(n)

    trend = _fit_trend(y, period)
    trend_in = trend(t)
    profile, estimated = _seasonal_profile(y - trend_in, period)
    fitted = np.maximum(trend_in + profile[t % period], 0.0)

    sigma = float(np.std(y - fitted, ddof=1))
    y_var = float(np.var(y))
    strength = float(np.var(profile[t % period]) / y_var) if y_var > 0 else 0.0
    detected = estimated and strength > settings.FORECAST_SEASONALITY_THRESHOLD

    cap = settings.FORECAST_GROWTH_CAP * float(y.max())
    z = settings.FORECAST_CONFIDENCE_Z
    last = series[-1].date

    steps = np.arange(1, horizon + 1)
    future_t = n - 1 + steps
    raw = trend(future_t) + profile[future_t % period]
    predicted = np.clip(raw, 0.0, cap)
    widths = z * sigma * np.sqrt(1.0 + steps / period)

    points = [
        ForecastPoint(
            date=shift_period(last, int(h), granularity),
            predicted_value=float(pred),
            lower_bound=float(max(0.0, pred - w)),
            upper_bound=float(pred + w),
        )
        for h, pred, w in zip(steps, predicted, widths)
    ]

    return ForecastResult(
        granularity=granularity,
        points=points,
        observed=y.tolist(),
        fitted=fitted.tolist(),
        residual_std=sigma,
        seasonality_detected=bool(detected),
        seasonal_strength=round(strength, 4),
        data_quality=data_quality_tier(n, settings),
        trend=trend_direction(y),
        model_version=model_version(granularity),
    )
