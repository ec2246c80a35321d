from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from service_scheduler.core.deps import get_db
from service_scheduler.domains.booking.models import Resource
from service_scheduler.domains.fleet.service import build_engine, get_vehicle_or_404, list_active_vehicles, to_vehicle_state
from service_scheduler.domains.threshold_engine.scan import ScanTracker, run_engine_scan
from service_scheduler.domains.threshold_engine.schemas import (
    BundleOut,
    ChargeRecommendationOut,
    EngineScanOut,
    PredictedNeedOut,
    VehicleHealthOut,
)


router = APIRouter(prefix="/engine")

# Previous-scan scores for threshold-crossing alerts; process-local.
scan_tracker = ScanTracker()


@router.get("/vehicles/{vehicle_id}/health", response_model=VehicleHealthOut)
def vehicle_health(vehicle_id: str, db: Session = Depends(get_db)) -> VehicleHealthOut:
    v = get_vehicle_or_404(db, vehicle_id)
    snapshot = build_engine(db).compute_health_snapshot(to_vehicle_state(v))
    return VehicleHealthOut.model_validate(snapshot)


@router.get("/queue", response_model=list[PredictedNeedOut])
def priority_queue(
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[PredictedNeedOut]:
    queue = build_engine(db).generate_priority_queue(list_active_vehicles(db))
    return [PredictedNeedOut.model_validate(n) for n in queue[:limit]]


@router.get("/bundles", response_model=list[BundleOut])
def bundles(db: Session = Depends(get_db)) -> list[BundleOut]:
    engine = build_engine(db)
    vehicles = list_active_vehicles(db)
    queue = engine.generate_priority_queue(vehicles)
    return [BundleOut.model_validate(b) for b in engine.generate_bundles(vehicles, queue)]


@router.get("/vehicles/{vehicle_id}/charge-recommendation", response_model=ChargeRecommendationOut)
def charge_recommendation(vehicle_id: str, db: Session = Depends(get_db)) -> ChargeRecommendationOut:
    v = get_vehicle_or_404(db, vehicle_id)
    rec = build_engine(db).get_charge_recommendation(to_vehicle_state(v))
    return ChargeRecommendationOut.model_validate(rec)


@router.post("/scan", response_model=EngineScanOut)
def scan(db: Session = Depends(get_db)) -> EngineScanOut:
    statuses = [s.value for (s,) in db.query(Resource.status).all()]
    result = run_engine_scan(
        build_engine(db),
        list_active_vehicles(db),
        resource_statuses=statuses,
        tracker=scan_tracker,
    )
    return EngineScanOut.model_validate(result)
