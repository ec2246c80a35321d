import logging
import random
from datetime import datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from service_scheduler.core.clock import utcnow
from service_scheduler.domains.booking.models import Resource, ResourceStatus, ResourceType
from service_scheduler.domains.fleet.models import EnergyPricing, MemberPreferences, ServiceThreshold, Vehicle
from service_scheduler.domains.notifications.types import MemberPrefs, PreferredWindow, ResourceRef
from service_scheduler.domains.threshold_engine.engine import LAST_PERFORMED_FIELD, ThresholdEngine
from service_scheduler.domains.threshold_engine.types import (
    RatePeriod,
    ServiceType,
    Threshold,
    ThresholdUnit,
    VehicleState,
    VehicleStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_DEPOT_ID = "depot-1"

DEFAULT_THRESHOLDS: list[dict] = [
    {
        "service_type": ServiceType.CHARGE,
        "trigger_condition": "State of charge at or below threshold",
        "threshold_value": 30.0,
        "threshold_unit": ThresholdUnit.PERCENT,
        "priority_weight": 8.0,
        "estimated_duration_minutes": 45,
    },
    {
        "service_type": ServiceType.DETAIL_CLEAN,
        "trigger_condition": "Days since last detail",
        "threshold_value": 7.0,
        "threshold_unit": ThresholdUnit.DAYS,
        "priority_weight": 5.0,
        "estimated_duration_minutes": 30,
    },
    {
        "service_type": ServiceType.TIRE_ROTATION,
        "trigger_condition": "Miles since last rotation",
        "threshold_value": 7500.0,
        "threshold_unit": ThresholdUnit.MILES,
        "priority_weight": 4.0,
        "estimated_duration_minutes": 45,
    },
    {
        "service_type": ServiceType.BATTERY_HEALTH_CHECK,
        "trigger_condition": "Days since last battery diagnostic",
        "threshold_value": 90.0,
        "threshold_unit": ThresholdUnit.DAYS,
        "priority_weight": 6.0,
        "estimated_duration_minutes": 60,
    },
    {
        "service_type": ServiceType.FULL_SERVICE,
        "trigger_condition": "Miles since last full service",
        "threshold_value": 15000.0,
        "threshold_unit": ThresholdUnit.MILES,
        "priority_weight": 7.0,
        "estimated_duration_minutes": 120,
    },
]

DEFAULT_RATE_PERIODS: list[dict] = [
    {"period_name": "off_peak", "start_hour": 22, "end_hour": 6, "rate_per_kwh": 0.06},
    {"period_name": "shoulder_am", "start_hour": 6, "end_hour": 14, "rate_per_kwh": 0.09},
    {"period_name": "peak", "start_hour": 14, "end_hour": 20, "rate_per_kwh": 0.14},
    {"period_name": "shoulder_pm", "start_hour": 20, "end_hour": 22, "rate_per_kwh": 0.09},
]

# (type, count, power kW, first N occupied)
DEFAULT_RESOURCE_LAYOUT: list[tuple[ResourceType, int, float | None, int]] = [
    (ResourceType.CHARGE_FAST, 10, 250.0, 3),
    (ResourceType.CHARGE_STANDARD, 30, 50.0, 8),
    (ResourceType.CLEAN_DETAIL, 10, None, 3),
    (ResourceType.SERVICE_BAY, 1, None, 0),
    (ResourceType.STAGING, 10, None, 4),
]

DEMO_CATALOG: list[tuple[str, str, float, float]] = [
    ("Tesla", "Model 3", 82, 358),
    ("Tesla", "Model Y", 75, 330),
    ("BMW", "iX xDrive50", 111, 324),
    ("Mercedes", "EQE 350+", 91, 305),
    ("Porsche", "Taycan 4S", 94, 277),
    ("Audi", "Q8 e-tron", 114, 285),
    ("Rivian", "R1S", 135, 321),
    ("Lucid", "Air Grand Touring", 118, 516),
    ("Ford", "Mustang Mach-E", 91, 312),
    ("Hyundai", "Ioniq 6", 77, 361),
    ("Kia", "EV6 GT-Line", 77, 310),
    ("Polestar", "2 Long Range", 82, 320),
]


# ── Loaders (ORM rows → engine value types) ─────────────────────
def to_vehicle_state(v: Vehicle) -> VehicleState:
    return VehicleState(
        id=v.id,
        battery_capacity_kwh=float(v.battery_capacity_kwh or 0.0),
        current_soc_percent=float(v.current_soc_percent or 0.0),
        current_range_miles=float(v.current_range_miles or 0.0),
        odometer_miles=float(v.odometer_miles or 0.0),
        avg_daily_miles=float(v.avg_daily_miles or 0.0),
        status=v.status,
        make=v.make,
        model=v.model,
        owner_id=v.owner_id,
        last_charge_at=v.last_charge_at,
        last_detail_at=v.last_detail_at,
        last_tire_rotation_at=v.last_tire_rotation_at,
        last_battery_check_at=v.last_battery_check_at,
        last_full_service_at=v.last_full_service_at,
    )


def load_thresholds(db: Session) -> list[Threshold]:
    rows: list[ServiceThreshold] = db.query(ServiceThreshold).all()
    return [
        Threshold(
            service_type=r.service_type,
            threshold_value=float(r.threshold_value),
            threshold_unit=r.threshold_unit,
            priority_weight=float(r.priority_weight),
            estimated_duration_minutes=int(r.estimated_duration_minutes),
            trigger_condition=r.trigger_condition or "",
        )
        for r in rows
    ]


def load_rate_periods(db: Session, *, depot_id: str | None = None) -> list[RatePeriod]:
    q = db.query(EnergyPricing)
    if depot_id:
        q = q.filter(EnergyPricing.depot_id == depot_id)
    return [
        RatePeriod(
            period_name=r.period_name,
            start_hour=int(r.start_hour),
            end_hour=int(r.end_hour),
            rate_per_kwh=float(r.rate_per_kwh),
        )
        for r in q.order_by(EnergyPricing.start_hour).all()
    ]


def load_member_prefs(db: Session, member_id: str) -> MemberPrefs | None:
    row: MemberPreferences | None = db.query(MemberPreferences).filter(MemberPreferences.member_id == member_id).one_or_none()
    if not row:
        return None
    windows = tuple(
        PreferredWindow(start=str(w.get("start", "")), end=str(w.get("end", "")))
        for w in (row.preferred_charge_times or [])
        if isinstance(w, dict)
    )
    return MemberPrefs(
        member_id=row.member_id,
        notification_lead_time_hours=24.0 if row.notification_lead_time_hours is None else float(row.notification_lead_time_hours),
        preferred_days=tuple(str(d).strip().lower() for d in (row.preferred_days or [])),
        preferred_charge_times=windows,
        auto_accept_charges=bool(row.auto_accept_charges),
        auto_accept_cleans=bool(row.auto_accept_cleans),
    )


def load_available_resources(db: Session, *, depot_id: str | None = None) -> list[ResourceRef]:
    q = db.query(Resource).filter(Resource.status == ResourceStatus.AVAILABLE)
    if depot_id:
        q = q.filter(Resource.depot_id == depot_id)
    return [
        ResourceRef(id=r.id, number=r.number, resource_type=r.resource_type.value)
        for r in q.order_by(Resource.number).all()
    ]


def build_engine(db: Session, *, depot_id: str | None = None) -> ThresholdEngine:
    return ThresholdEngine(load_thresholds(db), load_rate_periods(db, depot_id=depot_id))


# ── Vehicle lookups ──────────────────────────────────────────────
def get_vehicle_or_404(db: Session, vehicle_id: str) -> Vehicle:
    v = db.query(Vehicle).filter(Vehicle.id == vehicle_id).one_or_none()
    if not v:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")
    return v


def list_active_vehicles(db: Session) -> list[VehicleState]:
    rows = db.query(Vehicle).filter(Vehicle.status != VehicleStatus.OFFLINE).order_by(Vehicle.id).all()
    return [to_vehicle_state(v) for v in rows]


def list_member_vehicles(db: Session, member_id: str) -> list[VehicleState]:
    rows = db.query(Vehicle).filter(Vehicle.owner_id == member_id).order_by(Vehicle.id).all()
    return [to_vehicle_state(v) for v in rows]


def mark_service_performed(db: Session, *, vehicle_id: str, service_type: ServiceType, at: datetime) -> Vehicle | None:
    """
    Stamp the vehicle's last-performed timestamp for a completed service.
    Caller owns the transaction.
    """
    v = db.query(Vehicle).filter(Vehicle.id == vehicle_id).one_or_none()
    if not v:
        logger.warning("completed service for unknown vehicle_id=%s", vehicle_id)
        return None
    setattr(v, LAST_PERFORMED_FIELD[service_type], at)
    v.updated_at = at
    return v


# ── Seeding ──────────────────────────────────────────────────────
def seed_reference_data(db: Session, *, depot_id: str = DEFAULT_DEPOT_ID) -> dict:
    """Idempotent: thresholds upsert by service type, rate periods and resources are replaced per depot."""
    thresholds = 0
    for t in DEFAULT_THRESHOLDS:
        row = db.query(ServiceThreshold).filter(ServiceThreshold.service_type == t["service_type"]).one_or_none()
        if row is None:
            row = ServiceThreshold(service_type=t["service_type"])
            db.add(row)
        for k, v in t.items():
            setattr(row, k, v)
        thresholds += 1

    db.query(EnergyPricing).filter(EnergyPricing.depot_id == depot_id).delete(synchronize_session=False)
    for p in DEFAULT_RATE_PERIODS:
        db.add(EnergyPricing(depot_id=depot_id, **p))

    db.query(Resource).filter(Resource.depot_id == depot_id).delete(synchronize_session=False)
    number = 0
    for rtype, count, power, occupied in DEFAULT_RESOURCE_LAYOUT:
        for i in range(count):
            number += 1
            db.add(
                Resource(
                    depot_id=depot_id,
                    number=number,
                    resource_type=rtype,
                    status=ResourceStatus.OCCUPIED if i < occupied else ResourceStatus.AVAILABLE,
                    charger_power_kw=power,
                )
            )
    db.commit()
    logger.info("seeded reference data depot_id=%s thresholds=%d resources=%d", depot_id, thresholds, number)
    return {"thresholds": thresholds, "rate_periods": len(DEFAULT_RATE_PERIODS), "resources": number}


def seed_demo_fleet(
    db: Session,
    *,
    vehicles: int = 12,
    members: int = 4,
    depot_id: str = DEFAULT_DEPOT_ID,
    seed: int | None = None,
    now: datetime | None = None,
) -> dict:
    rng = random.Random(seed)
    now = now or utcnow()
    vehicles = int(max(1, min(250, vehicles)))
    members = int(max(1, members))

    def days_ago(lo: int, hi: int) -> datetime:
        return now - timedelta(days=rng.randint(lo, hi))

    for i in range(vehicles):
        make, model, battery, full_range = DEMO_CATALOG[i % len(DEMO_CATALOG)]
        soc = float(rng.randint(12, 95))
        db.add(
            Vehicle(
                owner_id=f"member-{(i % members) + 1}",
                depot_id=depot_id,
                make=make,
                model=model,
                status=VehicleStatus.CHARGING if soc < 20 else VehicleStatus.ACTIVE,
                battery_capacity_kwh=battery,
                current_soc_percent=soc,
                current_range_miles=round(soc / 100 * full_range),
                odometer_miles=float(rng.randint(1200, 42000)),
                avg_daily_miles=float(rng.randint(15, 65)),
                last_charge_at=days_ago(0, 5),
                last_detail_at=days_ago(1, 14),
                last_tire_rotation_at=days_ago(10, 120),
                last_battery_check_at=days_ago(15, 100),
            )
        )
    for m in range(members):
        member_id = f"member-{m + 1}"
        if db.query(MemberPreferences).filter(MemberPreferences.member_id == member_id).one_or_none() is None:
            db.add(
                MemberPreferences(
                    member_id=member_id,
                    auto_accept_charges=m % 2 == 0,
                    preferred_charge_times=[{"start": "22:00", "end": "06:00"}],
                )
            )
    db.commit()
    logger.info("seeded demo fleet vehicles=%d members=%d", vehicles, members)
    return {"ok": True, "vehicles_created": vehicles, "members": members}
