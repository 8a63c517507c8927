from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from healthcast.config import Settings
import healthcast.db.session as db_session


def test_select_database_url_prefers_test_setting(monkeypatch):
    monkeypatch.setenv("PYTEST_CURRENT_TEST", "")
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(
        db_session,
        "settings",
        Settings(ENV="test", TEST_DATABASE_URL="sqlite:///tmp-test.db", DATABASE_URL=None),
        raising=False,
    )
    assert db_session._select_database_url() == "sqlite:///tmp-test.db"


def test_select_database_url_env_fallback(monkeypatch):
    monkeypatch.setenv("PYTEST_CURRENT_TEST", "")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///runtime.db")
    monkeypatch.setattr(
        db_session,
        "settings",
        Settings(ENV="prod", JWT_SECRET="x", TEST_DATABASE_URL=None, DATABASE_URL=None),
        raising=False,
    )
    assert db_session._select_database_url() == "sqlite:///runtime.db"


def test_select_database_url_defaults(monkeypatch):
    monkeypatch.setenv("PYTEST_CURRENT_TEST", "")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    monkeypatch.setattr(
        db_session,
        "settings",
        Settings(ENV="prod", JWT_SECRET="x", TEST_DATABASE_URL=None, DATABASE_URL=None),
        raising=False,
    )
    assert db_session._select_database_url().endswith("/healthcast")


def test_ssl_and_role_enforcement(monkeypatch):
    monkeypatch.setattr(
        db_session,
        "settings",
        Settings(ENV="test", DB_REQUIRE_SSL=True, DB_APP_ROLE="healthcast_app"),
        raising=False,
    )
    url = db_session._enforce_ssl_requirements("postgresql+psycopg2://healthcast_app:pw@db:5432/healthcast")
    assert "sslmode=require" in url
    with pytest.raises(RuntimeError):
        db_session._enforce_ssl_requirements("postgresql+psycopg2://postgres:pw@db:5432/healthcast")


def test_non_dev_settings_require_jwt_secret():
    with pytest.raises(ValueError):
        Settings(ENV="prod", JWT_SECRET=None)


def test_unknown_default_granularity_is_rejected():
    with pytest.raises(ValueError):
        Settings(ENV="test", FORECAST_DEFAULT_GRANULARITY="weekly")


def test_build_engine_variants(tmp_path):
    memory_engine = db_session._build_engine("sqlite:///:memory:")
    try:
        with memory_engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    finally:
        memory_engine.dispose()

    file_engine = db_session._build_engine(f"sqlite:///{tmp_path/'db.sqlite'}")
    try:
        with file_engine.begin() as conn:
            conn.execute(text("SELECT 1"))
    finally:
        file_engine.dispose()


def test_get_db_closes_sessions(monkeypatch):
    created = []

    class DummySession:
        def __init__(self):
            self.closed = False

        def close(self):
            self.closed = True

    def factory():
        sess = DummySession()
        created.append(sess)
        return sess

    monkeypatch.setattr(db_session, "SessionLocal", factory, raising=False)

    gen = db_session.get_db()
    assert next(gen) is created[0]
    with pytest.raises(StopIteration):
        next(gen)
    assert created[0].closed


def test_init_db_creates_forecasting_tables(monkeypatch):
    engine = db_session._build_engine("sqlite:///:memory:")
    monkeypatch.setattr(db_session, "get_engine", lambda: engine)
    db_session.init_db()
    with engine.connect() as conn:
        names = set(conn.execute(text("SELECT name FROM sqlite_master WHERE type='table'")).scalars())
    assert {"subjects", "areas", "users", "raw_events", "imported_statistics", "forecast_results"} <= names
    engine.dispose()
