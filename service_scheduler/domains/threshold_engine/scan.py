import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from service_scheduler.core.clock import as_utc, to_depot, utcnow
from service_scheduler.domains.threshold_engine.engine import ThresholdEngine
from service_scheduler.domains.threshold_engine.types import (
    BundledServiceRecommendation,
    ChargeRecommendation,
    PredictedServiceNeed,
    VehicleState,
)

logger = logging.getLogger(__name__)

QUEUE_SNAPSHOT_SIZE = 50
CHARGE_REC_SOC_BELOW = 50.0
PENDING_URGENCY_MIN = 60.0
ALERT_URGENCY_MIN = 70.0
CRITICAL_URGENCY_MIN = 90.0
MAX_RECENT_ALERTS = 50


@dataclass(frozen=True)
class EngineAlert:
    id: str
    vehicle_id: str
    vehicle_make_model: str
    service_type: str
    urgency_score: float
    message: str
    severity: str
    timestamp: datetime


@dataclass
class EngineScanResult:
    queue: list[PredictedServiceNeed]
    pending: list[PredictedServiceNeed]
    bundles: list[BundledServiceRecommendation]
    charge_recommendations: list[ChargeRecommendation]
    new_alerts: list[EngineAlert]
    recent_alerts: list[EngineAlert]
    vehicles_monitored: int
    active_predictions: int
    predicted_today: int
    depot_utilization_pct: int
    current_energy_tier: str
    scanned_at: datetime = field(default_factory=utcnow)


class ScanTracker:
    """Remembers the previous scan's urgency per (vehicle, service) so crossings alert once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._previous: dict[str, float] = {}
        self._alerts: list[EngineAlert] = []

    def diff(self, queue: list[PredictedServiceNeed], now: datetime) -> tuple[list[EngineAlert], list[EngineAlert]]:
        with self._lock:
            current: dict[str, float] = {}
            new_alerts: list[EngineAlert] = []
            for need in queue:
                key = f"{need.vehicle_id}:{need.service_type.value}"
                current[key] = need.urgency_score
                prev = self._previous.get(key)
                if need.urgency_score >= ALERT_URGENCY_MIN and (prev is None or prev < ALERT_URGENCY_MIN):
                    critical = need.urgency_score >= CRITICAL_URGENCY_MIN
                    label = need.vehicle_make_model or need.vehicle_id
                    new_alerts.append(
                        EngineAlert(
                            id=str(uuid.uuid4()),
                            vehicle_id=need.vehicle_id,
                            vehicle_make_model=need.vehicle_make_model,
                            service_type=need.service_type.value,
                            urgency_score=need.urgency_score,
                            message=(
                                f"OVERDUE: {label}: {need.service_type.value}"
                                if critical
                                else f"Approaching threshold: {label}: {need.service_type.value}"
                            ),
                            severity="critical" if critical else "warning",
                            timestamp=now,
                        )
                    )
            self._previous = current
            self._alerts = (new_alerts + self._alerts)[:MAX_RECENT_ALERTS]
            return new_alerts, list(self._alerts)

    def reset(self) -> None:
        with self._lock:
            self._previous = {}
            self._alerts = []


def run_engine_scan(
    engine: ThresholdEngine,
    vehicles: list[VehicleState],
    *,
    resource_statuses: list[str],
    tracker: ScanTracker,
    now: datetime | None = None,
) -> EngineScanResult:
    now = as_utc(now or utcnow())
    queue = engine.generate_priority_queue(vehicles, now)
    bundles = engine.generate_bundles(vehicles, queue)
    charge_recs = [
        engine.get_charge_recommendation(v, now) for v in vehicles if v.current_soc_percent < CHARGE_REC_SOC_BELOW
    ]
    new_alerts, recent_alerts = tracker.diff(queue, now)

    total = len(resource_statuses) or 1
    occupied = sum(1 for s in resource_statuses if s == "occupied")

    today = to_depot(now).date()
    tier = engine.rates.rate_at(now)

    logger.info(
        "engine scan: vehicles=%d needs=%d bundles=%d new_alerts=%d",
        len(vehicles),
        len(queue),
        len(bundles),
        len(new_alerts),
    )
    return EngineScanResult(
        queue=queue[:QUEUE_SNAPSHOT_SIZE],
        pending=[n for n in queue if n.urgency_score >= PENDING_URGENCY_MIN],
        bundles=bundles,
        charge_recommendations=charge_recs,
        new_alerts=new_alerts,
        recent_alerts=recent_alerts,
        vehicles_monitored=len(vehicles),
        active_predictions=len(queue),
        predicted_today=sum(1 for n in queue if to_depot(n.predicted_need_date).date() == today),
        depot_utilization_pct=int(round(occupied / total * 100)),
        current_energy_tier=tier.period_name if tier else "unknown",
        scanned_at=now,
    )
