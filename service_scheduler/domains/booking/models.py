import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from service_scheduler.core.db import Base
from service_scheduler.domains.threshold_engine.types import ServiceType


class ResourceType(str, enum.Enum):
    CHARGE_STANDARD = "charge_standard"
    CHARGE_FAST = "charge_fast"
    CLEAN_DETAIL = "clean_detail"
    SERVICE_BAY = "service_bay"
    STAGING = "staging"


class ResourceStatus(str, enum.Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    OCCUPIED = "occupied"
    OUT_OF_SERVICE = "out_of_service"


class BookingStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Resource(Base):
    __tablename__ = "depot_resources"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    depot_id: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    number: Mapped[int] = mapped_column(Integer)
    resource_type: Mapped[ResourceType] = mapped_column(Enum(ResourceType), index=True)
    status: Mapped[ResourceStatus] = mapped_column(Enum(ResourceStatus), default=ResourceStatus.AVAILABLE, index=True)
    charger_power_kw: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Occupant fields are set together on claim and cleared together on release.
    current_vehicle_id: Mapped[str | None] = mapped_column(String, nullable=True)
    session_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_completion: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "depot_id": self.depot_id,
            "number": self.number,
            "resource_type": self.resource_type.value,
            "status": self.status.value,
            "charger_power_kw": self.charger_power_kw,
            "current_vehicle_id": self.current_vehicle_id,
            "session_start": self.session_start.isoformat() if self.session_start else None,
            "estimated_completion": self.estimated_completion.isoformat() if self.estimated_completion else None,
        }


class ScheduledService(Base):
    __tablename__ = "scheduled_services"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    vehicle_id: Mapped[str] = mapped_column(String, index=True)
    resource_id: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    service_type: Mapped[ServiceType] = mapped_column(Enum(ServiceType))
    status: Mapped[BookingStatus] = mapped_column(Enum(BookingStatus), default=BookingStatus.SCHEDULED, index=True)

    predicted_need_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    scheduled_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scheduled_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    priority_score: Mapped[float] = mapped_column(Float, default=0.0)
    trigger_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    notification_id: Mapped[str | None] = mapped_column(String, nullable=True)
    user_response_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "vehicle_id": self.vehicle_id,
            "resource_id": self.resource_id,
            "service_type": self.service_type.value,
            "status": self.status.value,
            "predicted_need_date": self.predicted_need_date.isoformat(),
            "scheduled_start": self.scheduled_start.isoformat() if self.scheduled_start else None,
            "scheduled_end": self.scheduled_end.isoformat() if self.scheduled_end else None,
            "priority_score": self.priority_score,
            "trigger_reason": self.trigger_reason,
            "user_response_at": self.user_response_at.isoformat() if self.user_response_at else None,
        }
