import os

# Settings are read at import time; point them at throwaway SQLite before the app loads.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DEPOT_TIMEZONE", "UTC")
os.environ.setdefault("ENV", "test")
os.environ.pop("PUSH_WEBHOOK_URL", None)

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from service_scheduler.core.db import Base
from service_scheduler.domains.booking import models as booking_models  # noqa: F401
from service_scheduler.domains.fleet import models as fleet_models  # noqa: F401
from service_scheduler.domains.fleet.service import DEFAULT_RATE_PERIODS, DEFAULT_THRESHOLDS, seed_reference_data
from service_scheduler.domains.threshold_engine.engine import ThresholdEngine
from service_scheduler.domains.threshold_engine.types import RatePeriod, Threshold, VehicleState


# Wednesday 12:00 depot time: shoulder_am rate, outside quiet hours.
FIXED_NOW = datetime(2025, 3, 12, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def thresholds() -> list[Threshold]:
    return [Threshold(**t) for t in DEFAULT_THRESHOLDS]


@pytest.fixture
def rate_periods() -> list[RatePeriod]:
    return [RatePeriod(**p) for p in DEFAULT_RATE_PERIODS]


@pytest.fixture
def engine(thresholds, rate_periods) -> ThresholdEngine:
    return ThresholdEngine(thresholds, rate_periods)


@pytest.fixture
def make_vehicle(now):
    """Vehicle factory: healthy by default, override what the test is about."""

    def _make(vehicle_id: str = "veh-1", **overrides) -> VehicleState:
        fields = {
            "id": vehicle_id,
            "battery_capacity_kwh": 80.0,
            "current_soc_percent": 100.0,
            "current_range_miles": 300.0,
            "odometer_miles": 0.0,
            "avg_daily_miles": 40.0,
            "make": "Tesla",
            "model": "Model 3",
            "owner_id": "member-1",
            "last_charge_at": now - timedelta(hours=6),
            "last_detail_at": now - timedelta(days=1),
            "last_tire_rotation_at": now - timedelta(days=1),
            "last_battery_check_at": now - timedelta(days=1),
        }
        fields.update(overrides)
        return VehicleState(**fields)

    return _make


def _sqlite_engine(url: str, **kw):
    eng = create_engine(url, connect_args={"check_same_thread": False}, **kw)
    Base.metadata.create_all(bind=eng)
    return eng


@pytest.fixture
def db():
    eng = _sqlite_engine("sqlite://", poolclass=StaticPool)
    Session = sessionmaker(bind=eng, autoflush=False, expire_on_commit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        eng.dispose()


@pytest.fixture
def seeded_db(db):
    seed_reference_data(db)
    return db


@pytest.fixture
def file_session_factory(tmp_path):
    """Sessions on a file-backed SQLite database, for tests that need real concurrent connections."""
    eng = _sqlite_engine(f"sqlite:///{tmp_path / 'scheduler.db'}")
    yield sessionmaker(bind=eng, autoflush=False, expire_on_commit=False)
    eng.dispose()
