from datetime import datetime

from pydantic import BaseModel, Field

from service_scheduler.domains.booking.models import BookingStatus, ResourceStatus, ResourceType
from service_scheduler.domains.notifications.schemas import TimeSlotIO
from service_scheduler.domains.threshold_engine.types import ServiceType


class BookingResultOut(BaseModel):
    success: bool
    message: str
    service_id: str | None = None
    error_code: str | None = None


class NotificationRefIn(BaseModel):
    """The notification being answered, as the member's client received it."""

    notification_id: str | None = None
    vehicle_id: str = Field(min_length=1, max_length=64)
    service_type: ServiceType
    urgency_score: float = Field(default=0.0, ge=0, le=100)
    reason: str = Field(default="", max_length=500)
    predicted_need_date: datetime | None = None


class AcceptIn(BaseModel):
    notification: NotificationRefIn
    slot: TimeSlotIO


class DeclineIn(BaseModel):
    notification: NotificationRefIn
    reason: str | None = Field(default=None, max_length=500)


class RescheduleIn(BaseModel):
    new_slot: TimeSlotIO
    original_slot: TimeSlotIO | None = None


class ScheduledServiceOut(BaseModel):
    id: str
    vehicle_id: str
    resource_id: str | None = None
    service_type: ServiceType
    status: BookingStatus
    predicted_need_date: str
    scheduled_start: str | None = None
    scheduled_end: str | None = None
    priority_score: float
    trigger_reason: str | None = None
    user_response_at: str | None = None


class ResourceOut(BaseModel):
    id: str
    depot_id: str | None = None
    number: int
    resource_type: ResourceType
    status: ResourceStatus
    charger_power_kw: float | None = None
    current_vehicle_id: str | None = None
    session_start: str | None = None
    estimated_completion: str | None = None
