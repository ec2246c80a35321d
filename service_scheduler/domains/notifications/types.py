from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from service_scheduler.domains.threshold_engine.types import ServiceType

Severity = Literal["routine", "warning", "critical"]
NotificationStatus = Literal["pending", "accepted", "declined", "expired"]


@dataclass(frozen=True)
class PreferredWindow:
    start: str  # "HH:MM", depot wall-clock
    end: str


@dataclass(frozen=True)
class MemberPrefs:
    member_id: str
    notification_lead_time_hours: float = 24.0
    preferred_days: tuple[str, ...] = ()
    preferred_charge_times: tuple[PreferredWindow, ...] = ()
    auto_accept_charges: bool = False
    auto_accept_cleans: bool = False


@dataclass(frozen=True)
class ResourceRef:
    id: str
    number: int
    resource_type: str


@dataclass(frozen=True)
class TimeSlot:
    start: datetime
    end: datetime
    resource_id: str | None
    resource_number: int | None
    resource_type: str
    is_off_peak: bool
    cost_dollars: float | None = None
    savings_vs_peak: float | None = None


@dataclass(frozen=True)
class BundledServiceSuggestion:
    service_type: ServiceType
    reason: str
    additional_minutes: int
    additional_cost: float | None = None


@dataclass
class ServiceNotification:
    id: str
    vehicle_id: str
    service_type: ServiceType
    headline: str
    reason: str
    recommended_slot: TimeSlot
    alternative_slots: list[TimeSlot]
    estimated_duration_minutes: int
    estimated_cost_dollars: float | None
    savings_note: str | None
    bundled_services: list[BundledServiceSuggestion]
    urgency_score: float
    severity: Severity
    created_at: datetime
    predicted_need_date: datetime
    auto_accept: bool = False
    status: NotificationStatus = "pending"

    @property
    def slots(self) -> list[TimeSlot]:
        return [self.recommended_slot, *self.alternative_slots]
