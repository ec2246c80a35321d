from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from service_scheduler.core.deps import get_db
from service_scheduler.domains.booking.models import BookingStatus, ResourceStatus, ResourceType
from service_scheduler.domains.booking.schemas import (
    AcceptIn,
    BookingResultOut,
    DeclineIn,
    NotificationRefIn,
    RescheduleIn,
    ResourceOut,
    ScheduledServiceOut,
)
from service_scheduler.domains.booking.service import (
    BookingIntent,
    BookingResult,
    accept_service,
    cancel_service,
    complete_service,
    decline_service,
    list_resources,
    list_vehicle_bookings,
    reschedule_service,
)


router = APIRouter()

_ERROR_STATUS = {
    "STALE_RESOURCE": status.HTTP_409_CONFLICT,
    "CANCELLATION_WINDOW": status.HTTP_409_CONFLICT,
    "INVALID_TRANSITION": status.HTTP_409_CONFLICT,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "PERSISTENCE_FAILURE": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _respond(result: BookingResult) -> JSONResponse:
    body = BookingResultOut(
        success=result.success,
        message=result.message,
        service_id=result.service_id,
        error_code=result.error_code,
    ).model_dump()
    if result.success:
        return JSONResponse(status_code=status.HTTP_200_OK, content=body)
    return JSONResponse(status_code=_ERROR_STATUS.get(result.error_code or "", status.HTTP_400_BAD_REQUEST), content=body)


def _intent(ref: NotificationRefIn) -> BookingIntent:
    return BookingIntent(
        vehicle_id=ref.vehicle_id,
        service_type=ref.service_type,
        urgency_score=ref.urgency_score,
        reason=ref.reason,
        predicted_need_date=ref.predicted_need_date,
        notification_id=ref.notification_id,
    )


@router.post("/bookings/accept", response_model=BookingResultOut)
def accept(payload: AcceptIn, db: Session = Depends(get_db)) -> JSONResponse:
    return _respond(accept_service(db, notification=_intent(payload.notification), slot=payload.slot.to_slot()))


@router.post("/bookings/decline", response_model=BookingResultOut)
def decline(payload: DeclineIn, db: Session = Depends(get_db)) -> JSONResponse:
    return _respond(decline_service(db, notification=_intent(payload.notification), reason=payload.reason))


@router.post("/bookings/{service_id}/reschedule", response_model=BookingResultOut)
def reschedule(service_id: str, payload: RescheduleIn, db: Session = Depends(get_db)) -> JSONResponse:
    return _respond(
        reschedule_service(
            db,
            service_id=service_id,
            new_slot=payload.new_slot.to_slot(),
            original_slot=payload.original_slot.to_slot() if payload.original_slot else None,
        )
    )


@router.post("/bookings/{service_id}/cancel", response_model=BookingResultOut)
def cancel(service_id: str, db: Session = Depends(get_db)) -> JSONResponse:
    return _respond(cancel_service(db, service_id=service_id))


@router.post("/bookings/{service_id}/complete", response_model=BookingResultOut)
def complete(service_id: str, db: Session = Depends(get_db)) -> JSONResponse:
    return _respond(complete_service(db, service_id=service_id))


@router.get("/bookings/vehicles/{vehicle_id}", response_model=list[ScheduledServiceOut])
def vehicle_bookings(
    vehicle_id: str,
    booking_status: BookingStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> list[ScheduledServiceOut]:
    rows = list_vehicle_bookings(db, vehicle_id=vehicle_id, status=booking_status)
    return [ScheduledServiceOut(**r.to_public_dict()) for r in rows]


@router.get("/resources", response_model=list[ResourceOut])
def resources(
    resource_type: ResourceType | None = Query(default=None),
    depot_id: str | None = Query(default=None),
    resource_status: ResourceStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> list[ResourceOut]:
    rows = list_resources(db, resource_type=resource_type, depot_id=depot_id, status=resource_status)
    return [ResourceOut(**r.to_public_dict()) for r in rows]
