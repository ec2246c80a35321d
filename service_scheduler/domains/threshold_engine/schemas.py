from datetime import datetime

from pydantic import BaseModel, ConfigDict

from service_scheduler.domains.threshold_engine.types import ServiceType, ThresholdUnit


class _FromAttrs(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ServiceUrgencyOut(_FromAttrs):
    service_type: ServiceType
    urgency_score: float
    is_overdue: bool
    trigger_reason: str
    current_value: float
    threshold_value: float
    days_since_last: float | None = None
    miles_since_last: float | None = None


class VehicleHealthOut(_FromAttrs):
    vehicle_id: str
    current_soc_percent: float
    days_since_last_charge: int | None = None
    days_since_last_detail: int | None = None
    days_since_last_tire_rotation: int | None = None
    days_since_last_battery_check: int | None = None
    miles_since_last_detail: int | None = None
    miles_since_last_tire_rotation: int | None = None
    urgencies: list[ServiceUrgencyOut]
    overall_urgency_score: int


class PredictedNeedOut(_FromAttrs):
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
    is_overdue: bool


class BundleOut(_FromAttrs):
    vehicle_id: str
    vehicle_make_model: str
    primary_service: ServiceType
    bundled_services: list[ServiceType]
    combined_duration_minutes: int
    separate_visits_duration_minutes: int
    time_savings_minutes: int
    reasons: list[str]


class ChargeRecommendationOut(_FromAttrs):
    vehicle_id: str
    recommended_start_time: datetime
    estimated_cost_dollars: float
    savings_vs_now_dollars: float
    charge_duration_minutes: int
    recommended_charger_type: str
    current_soc: float
    target_soc: float
    energy_needed_kwh: float
    risk_level: str
    charge_now: bool


class EngineAlertOut(_FromAttrs):
    id: str
    vehicle_id: str
    vehicle_make_model: str
    service_type: str
    urgency_score: float
    message: str
    severity: str
    timestamp: datetime


class EngineScanOut(_FromAttrs):
    queue: list[PredictedNeedOut]
    pending: list[PredictedNeedOut]
    bundles: list[BundleOut]
    charge_recommendations: list[ChargeRecommendationOut]
    new_alerts: list[EngineAlertOut]
    recent_alerts: list[EngineAlertOut]
    vehicles_monitored: int
    active_predictions: int
    predicted_today: int
    depot_utilization_pct: int
    current_energy_tier: str
    scanned_at: datetime
