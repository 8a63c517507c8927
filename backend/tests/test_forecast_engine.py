from datetime import date, timedelta

import pytest

from _helpers import daily_series, monthly_series, weekday_pattern
from healthcast.exceptions import InsufficientDataError
from healthcast.services.forecast import (
    data_quality_tier,
    forecast,
    model_version,
    seasonal_period,
    shift_period,
    trend_direction,
)


def test_flat_daily_series_forecasts_the_level():
    series = daily_series([5] * 10)
    res = forecast(series, horizon=7, granularity="daily")

    assert len(res.points) == 7
    assert res.seasonality_detected is False
    assert res.data_quality == "moderate"
    for p in res.points:
        assert p.predicted_value == pytest.approx(5.0)
        assert p.predicted_value - p.lower_bound == pytest.approx(p.upper_bound - p.predicted_value)


def test_weekly_pattern_is_detected_and_repeated():
    values = weekday_pattern(30)
    series = daily_series(values)
    res = forecast(series, horizon=14, granularity="daily")

    assert res.seasonality_detected is True
    assert res.seasonal_strength > 0.5
    weekday = [p.predicted_value for p in res.points if p.date.weekday() < 5]
    weekend = [p.predicted_value for p in res.points if p.date.weekday() >= 5]
    assert min(weekday) > max(weekend) + 5


@pytest.mark.parametrize("n", [0, 1, 6])
def test_short_series_is_rejected_with_observed_count(n):
    with pytest.raises(InsufficientDataError) as exc:
        forecast(daily_series([3] * n), horizon=5, granularity="daily")
    assert exc.value.observed == n
    assert exc.value.required == 7
    assert exc.value.details == {"observed": n, "required": 7}


def test_daily_dates_step_one_day_from_last_history_date():
    series = daily_series([4, 6, 5, 7, 6, 8, 7, 9])
    res = forecast(series, horizon=5, granularity="daily")
    last = series[-1].date
    assert [p.date for p in res.points] == [last + timedelta(days=h) for h in range(1, 6)]


def test_monthly_dates_land_on_first_of_month():
    series = monthly_series([20, 22, 19, 25, 30, 28, 26, 31])
    res = forecast(series, horizon=6, granularity="monthly")
    assert [p.date for p in res.points] == [
        date(2022, 9, 1),
        date(2022, 10, 1),
        date(2022, 11, 1),
        date(2022, 12, 1),
        date(2023, 1, 1),
        date(2023, 2, 1),
    ]


def test_bounds_are_ordered_non_negative_and_widen():
    values = [0, 3, 1, 9, 2, 0, 14, 1, 0, 7, 3, 12, 0, 5, 2, 8, 1, 0, 11, 4]
    res = forecast(daily_series(values), horizon=30, granularity="daily")

    widths = []
    for p in res.points:
        assert 0 <= p.lower_bound <= p.predicted_value <= p.upper_bound
        widths.append(p.upper_bound - p.predicted_value)
    assert all(b >= a - 1e-9 for a, b in zip(widths, widths[1:]))
    assert widths[-1] > widths[0]


def test_forecast_is_deterministic():
    series = daily_series(weekday_pattern(40, weekday=12, weekend=3))
    first = forecast(series, horizon=10, granularity="daily")
    second = forecast(series, horizon=10, granularity="daily")
    assert [p.model_dump() for p in first.points] == [p.model_dump() for p in second.points]


def test_predictions_are_capped_by_growth_multiple_of_history_max():
    # steep ramp: OLS extrapolation would overshoot 5x the max over a long horizon
    values = list(range(1, 29))
    res = forecast(daily_series(values), horizon=366, granularity="daily")
    assert max(p.predicted_value for p in res.points) <= 5 * max(values) + 1e-9


def test_declining_series_never_goes_negative():
    values = [40, 36, 33, 30, 27, 24, 20, 17, 14, 12, 9, 7, 5, 3]
    res = forecast(daily_series(values), horizon=20, granularity="daily")
    assert all(p.predicted_value >= 0 and p.lower_bound >= 0 for p in res.points)
    assert res.trend == "decreasing"


def test_short_series_has_no_seasonal_component():
    # 13 points < 2 * 7: seasonal profile must stay zero even with a visible pattern
    values = weekday_pattern(13)
    res = forecast(daily_series(values), horizon=3, granularity="daily")
    assert res.seasonality_detected is False
    assert res.seasonal_strength == 0.0


def test_metadata_helpers():
    assert seasonal_period("daily") == 7
    assert seasonal_period("monthly") == 12
    assert model_version("monthly") == "seasonal-decomposition-monthly-v1"
    assert data_quality_tier(6) == "insufficient"
    assert data_quality_tier(7) == "moderate"
    assert data_quality_tier(29) == "moderate"
    assert data_quality_tier(30) == "high"
    assert trend_direction([10, 10, 20, 20]) == "increasing"
    assert trend_direction([10, 10, 10.5, 10]) == "stable"
    assert trend_direction([0, 0, 0, 0]) == "stable"
    assert shift_period(date(2024, 1, 31), 1, "monthly") == date(2024, 2, 1)
    assert shift_period(date(2024, 3, 15), -2, "monthly") == date(2024, 1, 1)


def test_zero_horizon_is_rejected():
    with pytest.raises(ValueError):
        forecast(daily_series([1] * 8), horizon=0, granularity="daily")
