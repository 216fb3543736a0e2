"""Shared test fixtures for API and persistence tests."""
import os

# Must be set before seatime.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.pop("SEATIME_API_KEY", None)
os.environ.pop("MYSHIPTRACKING_API_KEY", None)

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from seatime.main import app
from seatime.database import get_db, init_db, make_engine
from seatime.models import Base  # noqa: F401 -- registers all models
from seatime.models.position_check import PositionCheck
from seatime.models.vessel import Vessel


@pytest.fixture
def mock_db():
    """MagicMock database session: returns None for all queries by default."""
    session = MagicMock()
    # Default: query().filter().first() returns None (not found)
    session.query.return_value.filter.return_value.first.return_value = None
    session.query.return_value.filter.return_value.all.return_value = []
    session.query.return_value.filter.return_value.order_by.return_value.all.return_value = []
    session.query.return_value.order_by.return_value.all.return_value = []
    return session


@pytest.fixture
def api_client(mock_db):
    """TestClient with DB dependency overridden to use a MagicMock session."""
    def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


# ── In-memory SQLite ─────────────────────────────────────────────────────────

@pytest.fixture
def engine():
    """One in-memory SQLite database shared by every session of a test."""
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    """Create an in-memory SQLite database with all tables for each test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def vessel(db):
    """An active vessel owned by user-1."""
    v = Vessel(user_id="user-1", mmsi="235009802", vessel_name="NORTHERN STAR", is_active=True)
    db.add(v)
    db.commit()
    db.refresh(v)
    return v


@pytest.fixture
def sqlite_client(db):
    """TestClient whose get_db yields the in-memory SQLite session."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def add_check(db, vessel, check_time: datetime, lat, lon, is_moving=True, speed=10.0) -> PositionCheck:
    """Insert one position check row directly."""
    check = PositionCheck(
        user_id=vessel.user_id,
        vessel_id=vessel.vessel_id,
        check_time=check_time,
        is_moving=is_moving,
        speed_knots=speed,
        latitude=lat,
        longitude=lon,
        api_source="myshiptracking",
    )
    db.add(check)
    db.commit()
    db.refresh(check)
    return check
