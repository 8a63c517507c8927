from datetime import date, timedelta

import pandas as pd

from healthcast.models.user import ROLE_SUPER_ADMIN, User
from healthcast.schemas.forecast import HistoricalPoint

PYTEST_EMAIL = "pytest@example.com"
ANCHOR = date(2024, 1, 1)  # a Monday


def unwrap(j):
    """Return API data payload regardless of envelope/legacy shape."""
    if isinstance(j, dict) and "ok" in j and "data" in j:
        return j["data"]
    return j


def is_enveloped(j) -> bool:
    return isinstance(j, dict) and "ok" in j and "data" in j


def make_caller(role=ROLE_SUPER_ADMIN, assigned_subject_id=None, user_id=1):
    return User(
        id=user_id,
        email=PYTEST_EMAIL,
        password_hash="",
        role=role,
        assigned_subject_id=assigned_subject_id,
        is_active=True,
    )


def daily_series(values, start=ANCHOR):
    return [HistoricalPoint(date=start + timedelta(days=i), value=int(v)) for i, v in enumerate(values)]


def monthly_series(values, start=date(2022, 1, 1)):
    return [
        HistoricalPoint(date=(pd.Timestamp(start) + pd.DateOffset(months=i)).date(), value=int(v))
        for i, v in enumerate(values)
    ]


def weekday_pattern(n, weekday=10, weekend=0, start=ANCHOR):
    """Values for n consecutive days from `start`: `weekday` Mon-Fri, `weekend` Sat-Sun."""
    return [weekend if (start + timedelta(days=i)).weekday() >= 5 else weekday for i in range(n)]
