from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from service_scheduler.core.deps import get_db
from service_scheduler.domains.fleet.service import DEFAULT_DEPOT_ID, seed_demo_fleet, seed_reference_data


router = APIRouter(prefix="/admin")


@router.post("/seed-demo", response_model=dict)
def seed_demo(
    vehicles: int = Query(default=12, ge=1, le=250),
    members: int = Query(default=4, ge=1, le=50),
    seed: int | None = Query(default=None),
    depot_id: str = Query(default=DEFAULT_DEPOT_ID, max_length=64),
    db: Session = Depends(get_db),
) -> dict:
    reference = seed_reference_data(db, depot_id=depot_id)
    fleet = seed_demo_fleet(db, vehicles=vehicles, members=members, depot_id=depot_id, seed=seed)
    return {**fleet, **reference}
