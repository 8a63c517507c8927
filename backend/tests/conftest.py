import os
import sys
from datetime import timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure backend/ is importable even when pytest runs from the repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Test/sqlite mode must be in place *before* any healthcast module is imported
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test_secret")
os.environ.setdefault("JWT_ALG", "HS256")
os.environ.setdefault("JWT_ACCESS_MIN", "30")
os.environ.setdefault("JWT_REFRESH_DAYS", "7")

import healthcast.db.session as db_session_module  # noqa: E402

# --- One in-memory SQLite DB shared by tests and app code ---
ENGINE = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)
SessionTesting = sessionmaker(bind=ENGINE, autocommit=False, autoflush=False, future=True)

db_session_module.ENGINE = ENGINE
db_session_module.SessionLocal = SessionTesting
db_session_module.get_engine = lambda: ENGINE  # type: ignore
db_session_module.get_sessionmaker = lambda: SessionTesting  # type: ignore

from healthcast.core.security import create_access, get_current_user, hash_password  # noqa: E402
from healthcast.db.base import Base  # noqa: E402
from healthcast.db.session import get_db  # noqa: E402
from healthcast.main import app  # noqa: E402
from healthcast.models import Area, ImportedStatistic, RawEvent, Subject, User  # noqa: E402
from _helpers import PYTEST_EMAIL, make_caller  # noqa: E402

Base.metadata.create_all(bind=ENGINE)


@pytest.fixture(autouse=True)
def _toggle_auth_override(request):
    """Bypass JWT for most API tests while allowing auth-specific suites to exercise it."""
    test_path = str(getattr(request.node, "fspath", ""))
    if "test_auth_api.py" in test_path:
        app.dependency_overrides.pop(get_current_user, None)
        yield
        app.dependency_overrides.pop(get_current_user, None)
    else:
        app.dependency_overrides[get_current_user] = lambda: make_caller()
        try:
            yield
        finally:
            app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture
def as_caller():
    """Swap the injected caller, e.g. as_caller("healthcare_admin", assigned_subject_id=2)."""

    def _set(role, assigned_subject_id=None):
        caller = make_caller(role, assigned_subject_id)
        app.dependency_overrides[get_current_user] = lambda: caller
        return caller

    return _set


@pytest.fixture(scope="function")
def reset_db():
    Base.metadata.drop_all(bind=ENGINE)
    Base.metadata.create_all(bind=ENGINE)
    yield
    Base.metadata.drop_all(bind=ENGINE)
    Base.metadata.create_all(bind=ENGINE)


@pytest.fixture(scope="function")
def db(reset_db):
    session = SessionTesting()

    def _override_get_db():
        yield session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture(scope="function")
def client(db):
    app.state.area_cache.invalidate()
    token = create_access(PYTEST_EMAIL)
    with TestClient(app, headers={"Authorization": f"Bearer {token}"}) as c:
        yield c


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def subject(db):
    s = Subject(id=1, kind="service", code="CONSULT", name="General consultation")
    db.add(s)
    db.commit()
    return s


@pytest.fixture
def area(db):
    a = Area(id=1, name="San Isidro")
    db.add(a)
    db.commit()
    return a


@pytest.fixture
def seed_daily(db):
    """Insert imported daily tallies: seed_daily(subject_id, start, [values...], area_id=None)."""

    def _seed(subject_id, start, values, area_id=None):
        for i, v in enumerate(values):
            db.add(
                ImportedStatistic(
                    subject_id=subject_id,
                    area_id=area_id,
                    record_date=start + timedelta(days=i),
                    count=int(v),
                    provenance="pytest",
                )
            )
        db.commit()

    return _seed


@pytest.fixture
def seed_events(db):
    """Insert `n` raw events on `day` with the given status."""

    def _seed(subject_id, day, n=1, status="completed", area_id=None):
        for _ in range(n):
            db.add(RawEvent(subject_id=subject_id, area_id=area_id, status=status, occurred_on=day))
        db.commit()

    return _seed


@pytest.fixture
def demo_user(db):
    u = User(
        email="demo@example.com",
        password_hash=hash_password("demo123"),
        role="super_admin",
        is_active=True,
    )
    db.add(u)
    db.commit()
    return u
