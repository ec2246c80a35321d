"""
Value types for the threshold engine.

Everything here is derived or reference data handed to the engine by the fleet
domain; none of it is persisted. Records are frozen so a snapshot cannot drift
from the inputs it was computed from.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal


class ServiceType(str, enum.Enum):
    CHARGE = "charge"
    DETAIL_CLEAN = "detail_clean"
    TIRE_ROTATION = "tire_rotation"
    BATTERY_HEALTH_CHECK = "battery_health_check"
    FULL_SERVICE = "full_service"


class ThresholdUnit(str, enum.Enum):
    PERCENT = "percent"
    DAYS = "days"
    MILES = "miles"


class VehicleStatus(str, enum.Enum):
    ACTIVE = "active"
    IN_SERVICE = "in_service"
    CHARGING = "charging"
    STAGED = "staged"
    OFFLINE = "offline"


ChargerType = Literal["fast", "standard"]
RiskLevel = Literal["low", "medium", "high"]


@dataclass(frozen=True)
class VehicleState:
    id: str
    battery_capacity_kwh: float
    current_soc_percent: float
    current_range_miles: float
    odometer_miles: float
    avg_daily_miles: float
    status: VehicleStatus = VehicleStatus.ACTIVE
    make: str | None = None
    model: str | None = None
    owner_id: str | None = None
    last_charge_at: datetime | None = None
    last_detail_at: datetime | None = None
    last_tire_rotation_at: datetime | None = None
    last_battery_check_at: datetime | None = None
    last_full_service_at: datetime | None = None

    @property
    def make_model(self) -> str:
        return f"{self.make or ''} {self.model or ''}".strip()


@dataclass(frozen=True)
class Threshold:
    service_type: ServiceType
    threshold_value: float
    threshold_unit: ThresholdUnit
    priority_weight: float
    estimated_duration_minutes: int
    trigger_condition: str = ""


@dataclass(frozen=True)
class RatePeriod:
    period_name: str
    start_hour: int
    end_hour: int
    rate_per_kwh: float

    def contains_hour(self, hour: int) -> bool:
        if self.start_hour < self.end_hour:
            return self.start_hour <= hour < self.end_hour
        # wraps midnight
        return hour >= self.start_hour or hour < self.end_hour


@dataclass(frozen=True)
class ServiceUrgency:
    service_type: ServiceType
    urgency_score: float
    is_overdue: bool
    trigger_reason: str
    current_value: float
    threshold_value: float
    days_since_last: float | None = None
    miles_since_last: float | None = None


@dataclass(frozen=True)
class VehicleHealthSnapshot:
    vehicle_id: str
    current_soc_percent: float
    days_since_last_charge: int | None
    days_since_last_detail: int | None
    days_since_last_tire_rotation: int | None
    days_since_last_battery_check: int | None
    miles_since_last_detail: int | None
    miles_since_last_tire_rotation: int | None
    urgencies: tuple[ServiceUrgency, ...] = field(default_factory=tuple)
    overall_urgency_score: int = 0


@dataclass(frozen=True)
class PredictedServiceNeed:
    vehicle_id: str
    vehicle_make_model: str
    service_type: ServiceType
    urgency_score: float
    composite_score: float
    predicted_need_date: datetime
    trigger_reason: str
    current_value: float
    threshold_value: float
    threshold_unit: ThresholdUnit
    is_overdue: bool = False

    @property
    def ratio(self) -> float:
        """How far along the interval this need is; charge reads its SoC drop toward the threshold."""
        if self.service_type == ServiceType.CHARGE and self.threshold_unit == ThresholdUnit.PERCENT:
            if self.current_value <= 0:
                return float("inf")
            return self.threshold_value / self.current_value
        if self.threshold_value <= 0:
            return 0.0
        return self.current_value / self.threshold_value


@dataclass(frozen=True)
class BundledServiceRecommendation:
    vehicle_id: str
    vehicle_make_model: str
    primary_service: ServiceType
    bundled_services: tuple[ServiceType, ...]
    combined_duration_minutes: int
    separate_visits_duration_minutes: int
    time_savings_minutes: int
    reasons: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ChargeRecommendation:
    vehicle_id: str
    recommended_start_time: datetime
    estimated_cost_dollars: float
    savings_vs_now_dollars: float
    charge_duration_minutes: int
    recommended_charger_type: ChargerType
    current_soc: float
    target_soc: float
    energy_needed_kwh: float
    risk_level: RiskLevel
    charge_now: bool
