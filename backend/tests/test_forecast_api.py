from datetime import timedelta

from sqlalchemy import func, select

from _helpers import ANCHOR, is_enveloped, unwrap, weekday_pattern
from healthcast.models.forecast_results import ForecastResults


def _stored(db):
    return db.execute(select(func.count()).select_from(ForecastResults)).scalar_one()


def test_generate_returns_enveloped_forecast(client, db, subject, seed_daily):
    seed_daily(subject.id, ANCHOR, weekday_pattern(30))
    r = client.post(
        "/api/forecast/generate",
        json={"subject_id": subject.id, "horizon": 7, "granularity": "daily", "auto_save": True},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert is_enveloped(body) and body["ok"] is True
    data = unwrap(body)
    assert len(data["points"]) == 7
    assert data["points"][0]["date"] == (ANCHOR + timedelta(days=30)).isoformat()
    assert data["saved"] is True and data["saved_count"] == 7
    assert data["model_version"] == "seasonal-decomposition-daily-v1"
    assert data["data_quality"] == "high"
    assert set(data["accuracy"]) >= {"mse", "rmse", "mae", "r_squared", "confidence_level", "interpretation"}
    assert body["meta"]["subject_id"] == subject.id
    assert _stored(db) == 7


def test_generate_insufficient_data_is_422_and_writes_nothing(client, db, subject, seed_daily):
    seed_daily(subject.id, ANCHOR, [1, 2, 3, 4, 5, 6])
    r = client.post(
        "/api/forecast/generate",
        json={"subject_id": subject.id, "horizon": 3, "granularity": "daily", "auto_save": True},
    )
    assert r.status_code == 422
    body = r.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "INSUFFICIENT_DATA"
    assert body["error"]["details"] == {"observed": 6, "required": 7}
    assert _stored(db) == 0


def test_generate_unknown_subject_is_404(client, db):
    r = client.post("/api/forecast/generate", json={"subject_id": 999, "horizon": 3, "granularity": "daily"})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "UNKNOWN_SUBJECT"


def test_generate_forbidden_for_other_subject(client, db, subject, as_caller):
    as_caller("healthcare_admin", assigned_subject_id=subject.id + 1)
    r = client.post("/api/forecast/generate", json={"subject_id": subject.id, "horizon": 3, "granularity": "daily"})
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "FORBIDDEN"


def test_scoped_admin_may_generate_for_assigned_subject(client, db, subject, seed_daily, as_caller):
    as_caller("healthcare_admin", assigned_subject_id=subject.id)
    seed_daily(subject.id, ANCHOR, [4] * 9)
    r = client.post("/api/forecast/generate", json={"subject_id": subject.id, "horizon": 2, "granularity": "daily"})
    assert r.status_code == 200, r.text


def test_generate_rejects_horizon_over_limit(client, db, subject):
    r = client.post("/api/forecast/generate", json={"subject_id": subject.id, "horizon": 10_000, "granularity": "daily"})
    assert r.status_code == 422
    body = r.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "INVALID_REQUEST"
    assert "horizon" in body["error"]["message"]


def test_generate_without_subject_is_enveloped_invalid_request(client, db):
    r = client.post("/api/forecast/generate", json={"horizon": 3})
    assert r.status_code == 422
    body = r.json()
    assert body["error"]["code"] == "INVALID_REQUEST"
    assert body["error"]["details"] == {"field": "subject_id"}


def test_generate_defaults_to_monthly_with_default_horizon(client, db, subject, seed_daily):
    # ~ one year of daily tallies -> 12 monthly buckets
    seed_daily(subject.id, ANCHOR, [3] * 366)
    r = client.post("/api/forecast/generate", json={"subject_id": subject.id, "auto_save": False})
    assert r.status_code == 200, r.text
    data = unwrap(r.json())
    assert data["granularity"] == "monthly"
    assert len(data["points"]) == 12
    assert data["points"][0]["date"] == "2025-01-01"


def test_fetch_without_stored_batch_computes_on_the_fly(client, db, subject, seed_daily):
    seed_daily(subject.id, ANCHOR, [6, 7, 5, 8, 6, 7, 9, 8])
    r = client.get(
        "/api/forecast",
        params={
            "subject_id": subject.id,
            "granularity": "daily",
            "periods_back": 8,
            "periods_forecast": 4,
            "end_date": (ANCHOR + timedelta(days=7)).isoformat(),
        },
    )
    assert r.status_code == 200, r.text
    data = unwrap(r.json())
    assert data["used_cache"] is False
    assert data["historical_point_count"] == 8
    assert data["prediction_point_count"] == 4
    assert len(data["dates"]) == len(data["actual_values"]) == len(data["predicted_values"]) == 12
    assert _stored(db) == 0


def test_fetch_after_generate_uses_cache(client, db, subject, seed_daily):
    seed_daily(subject.id, ANCHOR, weekday_pattern(21))
    gen = client.post("/api/forecast/generate", json={"subject_id": subject.id, "horizon": 5, "granularity": "daily"})
    assert gen.status_code == 200, gen.text

    r = client.get(
        "/api/forecast",
        params={
            "subject_id": subject.id,
            "granularity": "daily",
            "periods_back": 7,
            "periods_forecast": 5,
            "end_date": (ANCHOR + timedelta(days=20)).isoformat(),
        },
    )
    data = unwrap(r.json())
    assert data["used_cache"] is True
    assert data["prediction_point_count"] == 5
    assert [v for v in data["predicted_values"] if v is not None] == [
        p["predicted_value"] for p in unwrap(gen.json())["points"]
    ]


def test_fetch_reports_area_name(client, db, subject, area, seed_daily):
    seed_daily(subject.id, ANCHOR, [2] * 8, area_id=area.id)
    r = client.get(
        "/api/forecast",
        params={
            "subject_id": subject.id,
            "area_id": area.id,
            "granularity": "daily",
            "periods_back": 8,
            "end_date": (ANCHOR + timedelta(days=7)).isoformat(),
        },
    )
    assert unwrap(r.json())["area_name"] == "San Isidro"


def test_fetch_rejects_inverted_window(client, db, subject):
    r = client.get(
        "/api/forecast",
        params={"subject_id": subject.id, "start_date": "2024-02-01", "end_date": "2024-01-01"},
    )
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "INVALID_REQUEST"


def test_fetch_forbidden_for_staff(client, db, subject, as_caller):
    as_caller("staff")
    r = client.get("/api/forecast", params={"subject_id": subject.id})
    assert r.status_code == 403
