from datetime import datetime

from pydantic import BaseModel, Field

from service_scheduler.domains.notifications.types import BundledServiceSuggestion, ServiceNotification, TimeSlot
from service_scheduler.domains.threshold_engine.types import ServiceType


class TimeSlotIO(BaseModel):
    start: datetime
    end: datetime
    resource_id: str | None = None
    resource_number: int | None = None
    resource_type: str = Field(default="charge_standard", max_length=32)
    is_off_peak: bool = False
    cost_dollars: float | None = None
    savings_vs_peak: float | None = None

    @classmethod
    def from_slot(cls, s: TimeSlot) -> "TimeSlotIO":
        return cls(
            start=s.start,
            end=s.end,
            resource_id=s.resource_id,
            resource_number=s.resource_number,
            resource_type=s.resource_type,
            is_off_peak=s.is_off_peak,
            cost_dollars=s.cost_dollars,
            savings_vs_peak=s.savings_vs_peak,
        )

    def to_slot(self) -> TimeSlot:
        return TimeSlot(
            start=self.start,
            end=self.end,
            resource_id=self.resource_id,
            resource_number=self.resource_number,
            resource_type=self.resource_type,
            is_off_peak=self.is_off_peak,
            cost_dollars=self.cost_dollars,
            savings_vs_peak=self.savings_vs_peak,
        )


class BundledServiceSuggestionOut(BaseModel):
    service_type: ServiceType
    reason: str
    additional_minutes: int
    additional_cost: float | None = None

    @classmethod
    def from_suggestion(cls, b: BundledServiceSuggestion) -> "BundledServiceSuggestionOut":
        return cls(
            service_type=b.service_type,
            reason=b.reason,
            additional_minutes=b.additional_minutes,
            additional_cost=b.additional_cost,
        )


class ServiceNotificationOut(BaseModel):
    id: str
    vehicle_id: str
    service_type: ServiceType
    headline: str
    reason: str
    recommended_slot: TimeSlotIO
    alternative_slots: list[TimeSlotIO]
    estimated_duration_minutes: int
    estimated_cost_dollars: float | None = None
    savings_note: str | None = None
    bundled_services: list[BundledServiceSuggestionOut]
    urgency_score: float
    severity: str
    created_at: datetime
    predicted_need_date: datetime
    auto_accept: bool
    status: str
    # Set when the member's auto-accept preference already booked the recommended slot.
    auto_booked_service_id: str | None = None

    @classmethod
    def from_notification(cls, n: ServiceNotification, *, auto_booked_service_id: str | None = None) -> "ServiceNotificationOut":
        return cls(
            id=n.id,
            vehicle_id=n.vehicle_id,
            service_type=n.service_type,
            headline=n.headline,
            reason=n.reason,
            recommended_slot=TimeSlotIO.from_slot(n.recommended_slot),
            alternative_slots=[TimeSlotIO.from_slot(s) for s in n.alternative_slots],
            estimated_duration_minutes=n.estimated_duration_minutes,
            estimated_cost_dollars=n.estimated_cost_dollars,
            savings_note=n.savings_note,
            bundled_services=[BundledServiceSuggestionOut.from_suggestion(b) for b in n.bundled_services],
            urgency_score=n.urgency_score,
            severity=n.severity,
            created_at=n.created_at,
            predicted_need_date=n.predicted_need_date,
            auto_accept=n.auto_accept,
            status=n.status,
            auto_booked_service_id=auto_booked_service_id,
        )


class MemberFeedOut(BaseModel):
    member_id: str
    generated_at: datetime
    notifications: list[ServiceNotificationOut]
    pushed: int = 0


class PreferredWindowIO(BaseModel):
    start: str = Field(pattern=r"^\d{1,2}:\d{2}$")
    end: str = Field(pattern=r"^\d{1,2}:\d{2}$")


class MemberPreferencesIn(BaseModel):
    auto_accept_charges: bool | None = None
    auto_accept_cleans: bool | None = None
    notification_lead_time_hours: float | None = Field(default=None, ge=0, le=24 * 14)
    preferred_days: list[str] | None = None
    preferred_charge_times: list[PreferredWindowIO] | None = None


class MemberPreferencesOut(BaseModel):
    member_id: str
    auto_accept_charges: bool
    auto_accept_cleans: bool
    notification_lead_time_hours: float
    preferred_days: list[str]
    preferred_charge_times: list[PreferredWindowIO]
