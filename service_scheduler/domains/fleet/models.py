import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Enum, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from service_scheduler.core.db import Base
from service_scheduler.domains.threshold_engine.types import ServiceType, ThresholdUnit, VehicleStatus


class Vehicle(Base):
    __tablename__ = "vehicles"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    depot_id: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    make: Mapped[str | None] = mapped_column(String, nullable=True)
    model: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[VehicleStatus] = mapped_column(Enum(VehicleStatus), default=VehicleStatus.ACTIVE)

    battery_capacity_kwh: Mapped[float] = mapped_column(Float, default=75.0)
    current_soc_percent: Mapped[float] = mapped_column(Float, default=100.0)
    current_range_miles: Mapped[float] = mapped_column(Float, default=0.0)
    odometer_miles: Mapped[float] = mapped_column(Float, default=0.0)
    avg_daily_miles: Mapped[float] = mapped_column(Float, default=0.0)

    last_charge_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_detail_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_tire_rotation_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_battery_check_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_full_service_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class ServiceThreshold(Base):
    __tablename__ = "service_thresholds"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    service_type: Mapped[ServiceType] = mapped_column(Enum(ServiceType), unique=True, index=True)
    trigger_condition: Mapped[str] = mapped_column(String, default="")
    threshold_value: Mapped[float] = mapped_column(Float)
    threshold_unit: Mapped[ThresholdUnit] = mapped_column(Enum(ThresholdUnit))
    priority_weight: Mapped[float] = mapped_column(Float, default=5.0)
    estimated_duration_minutes: Mapped[int] = mapped_column(Integer, default=30)


class EnergyPricing(Base):
    __tablename__ = "energy_pricing"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    depot_id: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    period_name: Mapped[str] = mapped_column(String)
    start_hour: Mapped[int] = mapped_column(Integer)
    end_hour: Mapped[int] = mapped_column(Integer)
    rate_per_kwh: Mapped[float] = mapped_column(Float)


class MemberPreferences(Base):
    __tablename__ = "member_preferences"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    member_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    auto_accept_charges: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_accept_cleans: Mapped[bool] = mapped_column(Boolean, default=False)
    notification_lead_time_hours: Mapped[float] = mapped_column(Float, default=24.0)
    # e.g. ["monday", "friday"]
    preferred_days: Mapped[list] = mapped_column(JSON, default=list)
    # e.g. [{"start": "07:00", "end": "09:00"}]
    preferred_charge_times: Mapped[list] = mapped_column(JSON, default=list)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
