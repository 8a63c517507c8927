# healthcast/services/accuracy.py
from __future__ import annotations

from typing import Iterable, Optional, Sequence

import numpy as np

from healthcast.config import Settings, get_settings
from healthcast.schemas.forecast import Granularity, HistoricalPoint, ModelAccuracy
from healthcast.services.forecast import forecast

# (lower bound on R², label), checked in order
_BANDS = ((0.9, "excellent"), (0.7, "good"), (0.5, "fair"))
_HOLDOUT_MIN_SERIES = 10
_HOLDOUT_MIN_STEPS = 5


def interpret(r_squared: float) -> str:
    for floor, label in _BANDS:
        if r_squared >= floor:
            return label
    return "poor"


def _mape(a: np.ndarray, p: np.ndarray) -> Optional[float]:
    nonzero = a != 0
    if not nonzero.any():
        return None
    return float(np.mean(np.abs((a[nonzero] - p[nonzero]) / a[nonzero])) * 100.0)


def evaluate_fit(observed: Iterable[float], fitted: Iterable[float]) -> ModelAccuracy:
    """
    In-sample error metrics of a fit.

    A constant observed series has no variance to explain. R² is then 1.0 when
    the fit reproduces it exactly and 0.0 otherwise, and ``zero_variance`` is set.
    """
    a = np.asarray(list(observed), dtype=float)
    p = np.asarray(list(fitted), dtype=float)
    if a.size == 0 or a.shape != p.shape:
        raise ValueError("observed and fitted must be non-empty and equally long")

    resid = a - p
    mse = float(np.mean(resid ** 2))
    ss_res = float(np.sum(resid ** 2))
    ss_tot = float(np.sum((a - a.mean()) ** 2))

    zero_variance = bool(np.isclose(ss_tot, 0.0))
    if zero_variance:
        r2 = 1.0 if np.isclose(ss_res, 0.0) else 0.0
    else:
        r2 = 1.0 - ss_res / ss_tot

    return ModelAccuracy(
        mse=mse,
        rmse=float(np.sqrt(mse)),
        mae=float(np.mean(np.abs(resid))),
        r_squared=r2,
        mape=_mape(a, p),
        confidence_level=min(max(r2, 0.0), 1.0),
        interpretation=interpret(r2),
        zero_variance=zero_variance,
    )


def holdout_backtest(
    series: Sequence[HistoricalPoint],
    granularity: Granularity | str,
    *,
    settings: Settings | None = None,
) -> Optional[ModelAccuracy]:
    """Refit on all but the last k points and score the model against them.

    Returns None when the series is too short to hold anything out.
    """
    settings = settings or get_settings()
    n = len(series)
    if n < _HOLDOUT_MIN_SERIES:
        return None
    k = max(_HOLDOUT_MIN_STEPS, n // 5)
    train, test = series[: n - k], series[n - k:]
    if len(train) < settings.FORECAST_MIN_POINTS:
        return None

    result = forecast(train, horizon=k, granularity=granularity, settings=settings)
    return evaluate_fit([p.value for p in test], [p.predicted_value for p in result.points])
