"""
Booking transactions: accept, decline, reschedule, cancel and complete.

Every public function returns a BookingResult and never raises for business
or persistence failures. Taxonomy errors are raised internally and converted
at the function boundary after rolling the session back, so a failed call
leaves no partial writes behind.

Resource claims are a single conditional UPDATE (status must still be
``available``); zero rows affected means someone else got there first.
"""
import contextlib
import logging
import threading
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from service_scheduler.core.clock import as_utc, utcnow
from service_scheduler.core.config import settings
from service_scheduler.domains.booking.errors import (
    BookingError,
    BookingNotFound,
    CancellationWindowViolation,
    InvalidBookingTransition,
    PersistenceFailure,
    StaleResourceError,
)
from service_scheduler.domains.booking.models import (
    BookingStatus,
    Resource,
    ResourceStatus,
    ResourceType,
    ScheduledService,
)
from service_scheduler.domains.fleet.service import mark_service_performed
from service_scheduler.domains.notifications.types import ServiceNotification, TimeSlot
from service_scheduler.domains.threshold_engine.types import ServiceType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingResult:
    success: bool
    message: str
    service_id: str | None = None
    error_code: str | None = None


@dataclass(frozen=True)
class BookingIntent:
    """The parts of a notification a booking needs; lets callers book without a full notification."""

    vehicle_id: str
    service_type: ServiceType
    urgency_score: float
    reason: str
    predicted_need_date: datetime | None = None
    notification_id: str | None = None

    @classmethod
    def from_notification(cls, n: ServiceNotification) -> "BookingIntent":
        return cls(
            vehicle_id=n.vehicle_id,
            service_type=n.service_type,
            urgency_score=n.urgency_score,
            reason=n.reason,
            predicted_need_date=n.predicted_need_date,
            notification_id=n.id,
        )


# ── Per-resource claim locks ─────────────────────────────────────
_locks_guard = threading.Lock()
_resource_locks: dict[str, threading.Lock] = {}


def _lock_for(resource_id: str) -> threading.Lock:
    with _locks_guard:
        lock = _resource_locks.get(resource_id)
        if lock is None:
            lock = _resource_locks[resource_id] = threading.Lock()
        return lock


@contextlib.contextmanager
def _hold_resource_locks(*resource_ids: str | None):
    # Sorted acquisition so a reschedule A→B and B→A cannot deadlock.
    ids = sorted({r for r in resource_ids if r})
    with contextlib.ExitStack() as stack:
        for rid in ids:
            stack.enter_context(_lock_for(rid))
        yield


# ── Resource writes (caller owns the transaction) ────────────────
def _claim_resource(db: Session, *, resource_id: str, vehicle_id: str, slot: TimeSlot, now: datetime, stale_message: str | None = None) -> None:
    res = db.execute(
        update(Resource)
        .where(Resource.id == resource_id, Resource.status == ResourceStatus.AVAILABLE)
        .values(
            status=ResourceStatus.RESERVED,
            current_vehicle_id=vehicle_id,
            session_start=slot.start,
            estimated_completion=slot.end,
            updated_at=now,
        )
    )
    if res.rowcount == 0:
        if stale_message:
            raise StaleResourceError(resource_id, stale_message)
        raise StaleResourceError(resource_id)


def _release_resource(db: Session, *, resource_id: str, vehicle_id: str, now: datetime) -> None:
    # Only the occupant's own booking may free a resource.
    db.execute(
        update(Resource)
        .where(Resource.id == resource_id, Resource.current_vehicle_id == vehicle_id)
        .values(
            status=ResourceStatus.AVAILABLE,
            current_vehicle_id=None,
            session_start=None,
            estimated_completion=None,
            updated_at=now,
        )
    )


def _get_booking(db: Session, service_id: str) -> ScheduledService:
    rec = db.query(ScheduledService).filter(ScheduledService.id == service_id).one_or_none()
    if not rec:
        raise BookingNotFound(f"Booking {service_id} not found.")
    return rec


def _require_scheduled(rec: ScheduledService, action: str) -> None:
    if rec.status != BookingStatus.SCHEDULED:
        raise InvalidBookingTransition(f"Cannot {action} a booking that is {rec.status.value}.")


def _require_own_resource(rec: ScheduledService, resource_id: str | None, action: str) -> None:
    if resource_id is not None and resource_id != rec.resource_id:
        raise InvalidBookingTransition(f"Cannot {action}: resource {resource_id} is not held by booking {rec.id}.")


def _failed(db: Session, exc: BookingError, *, op: str, service_id: str | None = None) -> BookingResult:
    db.rollback()
    if isinstance(exc, StaleResourceError):
        logger.warning("%s: resource %s no longer available", op, exc.resource_id)
    else:
        logger.info("%s refused code=%s service_id=%s: %s", op, exc.code, service_id, exc.message)
    return BookingResult(success=False, message=exc.message, service_id=service_id, error_code=exc.code)


def _persistence_failed(db: Session, exc: SQLAlchemyError, *, op: str, service_id: str | None = None) -> BookingResult:
    db.rollback()
    logger.exception("%s failed to persist service_id=%s", op, service_id)
    err = PersistenceFailure(str(getattr(exc, "orig", None) or exc))
    return BookingResult(success=False, message=err.message, service_id=service_id, error_code=err.code)


# ── Operations ───────────────────────────────────────────────────
def accept_service(
    db: Session,
    *,
    notification: ServiceNotification | BookingIntent,
    slot: TimeSlot,
    now: datetime | None = None,
) -> BookingResult:
    now = as_utc(now or utcnow())
    intent = notification if isinstance(notification, BookingIntent) else BookingIntent.from_notification(notification)

    with _hold_resource_locks(slot.resource_id):
        try:
            if slot.resource_id:
                _claim_resource(db, resource_id=slot.resource_id, vehicle_id=intent.vehicle_id, slot=slot, now=now)
            rec = ScheduledService(
                vehicle_id=intent.vehicle_id,
                resource_id=slot.resource_id,
                service_type=intent.service_type,
                status=BookingStatus.SCHEDULED,
                predicted_need_date=intent.predicted_need_date or now,
                scheduled_start=slot.start,
                scheduled_end=slot.end,
                priority_score=intent.urgency_score,
                trigger_reason=intent.reason,
                notification_id=intent.notification_id,
                user_response_at=now,
                created_at=now,
                updated_at=now,
            )
            db.add(rec)
            db.commit()
        except BookingError as e:
            return _failed(db, e, op="accept")
        except SQLAlchemyError as e:
            return _persistence_failed(db, e, op="accept")

    if isinstance(notification, ServiceNotification):
        notification.status = "accepted"
    logger.info(
        "booking accepted service_id=%s vehicle_id=%s service_type=%s resource_id=%s",
        rec.id,
        rec.vehicle_id,
        rec.service_type.value,
        rec.resource_id,
    )
    return BookingResult(success=True, message="Booking confirmed! We'll have everything ready for you.", service_id=rec.id)


def decline_service(
    db: Session,
    *,
    notification: ServiceNotification | BookingIntent,
    reason: str | None = None,
    now: datetime | None = None,
) -> BookingResult:
    now = as_utc(now or utcnow())
    intent = notification if isinstance(notification, BookingIntent) else BookingIntent.from_notification(notification)
    try:
        rec = ScheduledService(
            vehicle_id=intent.vehicle_id,
            service_type=intent.service_type,
            status=BookingStatus.DECLINED,
            predicted_need_date=intent.predicted_need_date or now,
            priority_score=intent.urgency_score,
            trigger_reason=reason or "Member declined",
            notification_id=intent.notification_id,
            user_response_at=now,
            created_at=now,
            updated_at=now,
        )
        db.add(rec)
        db.commit()
    except SQLAlchemyError as e:
        return _persistence_failed(db, e, op="decline")

    if isinstance(notification, ServiceNotification):
        notification.status = "declined"
    logger.info("notification declined vehicle_id=%s service_type=%s", rec.vehicle_id, rec.service_type.value)
    return BookingResult(success=True, message="Noted. We'll adjust future recommendations.", service_id=rec.id)


def reschedule_service(
    db: Session,
    *,
    service_id: str,
    new_slot: TimeSlot,
    original_slot: TimeSlot | None = None,
    now: datetime | None = None,
) -> BookingResult:
    """
    Move a scheduled booking to ``new_slot``: release the booking's own
    resource and claim the new one in one transaction. If the claim fails the
    rollback puts the original resource and record back exactly as they were.

    ``original_slot`` is only a consistency check; a resource the booking does
    not hold is refused rather than released.
    """
    now = as_utc(now or utcnow())
    try:
        rec = _get_booking(db, service_id)
        _require_scheduled(rec, "reschedule")
        if original_slot is not None:
            _require_own_resource(rec, original_slot.resource_id, "reschedule")
    except BookingError as e:
        return _failed(db, e, op="reschedule", service_id=service_id)

    original_resource_id = rec.resource_id

    with _hold_resource_locks(original_resource_id, new_slot.resource_id):
        try:
            if original_resource_id:
                _release_resource(db, resource_id=original_resource_id, vehicle_id=rec.vehicle_id, now=now)
            if new_slot.resource_id:
                _claim_resource(
                    db,
                    resource_id=new_slot.resource_id,
                    vehicle_id=rec.vehicle_id,
                    slot=new_slot,
                    now=now,
                    stale_message="New slot unavailable. Please try another time.",
                )
            rec.resource_id = new_slot.resource_id
            rec.scheduled_start = new_slot.start
            rec.scheduled_end = new_slot.end
            rec.updated_at = now
            db.commit()
        except BookingError as e:
            return _failed(db, e, op="reschedule", service_id=service_id)
        except SQLAlchemyError as e:
            return _persistence_failed(db, e, op="reschedule", service_id=service_id)

    logger.info(
        "booking rescheduled service_id=%s resource %s -> %s",
        service_id,
        original_resource_id,
        new_slot.resource_id,
    )
    return BookingResult(success=True, message="Rescheduled successfully.", service_id=service_id)


def cancel_service(
    db: Session,
    *,
    service_id: str,
    resource_id: str | None = None,
    scheduled_start: datetime | None = None,
    window_hours: float | None = None,
    now: datetime | None = None,
) -> BookingResult:
    """
    Cancel a scheduled booking unless it starts within the cancellation window.

    The stored start wins over ``scheduled_start``; ``resource_id`` must match
    the booking's own resource. ``window_hours`` is for server-side callers and
    defaults to ``settings.cancellation_window_hours``.
    """
    now = as_utc(now or utcnow())
    window = settings.cancellation_window_hours if window_hours is None else float(window_hours)

    try:
        rec = _get_booking(db, service_id)
        _require_scheduled(rec, "cancel")
        _require_own_resource(rec, resource_id, "cancel")
        start = rec.scheduled_start if rec.scheduled_start is not None else scheduled_start
        if start is not None:
            hours_until = (as_utc(start) - now).total_seconds() / 3600.0
            if hours_until < window:
                raise CancellationWindowViolation(window, hours_until)

        rid = rec.resource_id
        with _hold_resource_locks(rid):
            if rid:
                _release_resource(db, resource_id=rid, vehicle_id=rec.vehicle_id, now=now)
            rec.status = BookingStatus.CANCELLED
            rec.cancelled_at = now
            rec.updated_at = now
            db.commit()
    except BookingError as e:
        return _failed(db, e, op="cancel", service_id=service_id)
    except SQLAlchemyError as e:
        return _persistence_failed(db, e, op="cancel", service_id=service_id)

    logger.info("booking cancelled service_id=%s", service_id)
    return BookingResult(success=True, message="Booking cancelled.", service_id=service_id)


def complete_service(db: Session, *, service_id: str, now: datetime | None = None) -> BookingResult:
    now = as_utc(now or utcnow())
    try:
        rec = _get_booking(db, service_id)
        _require_scheduled(rec, "complete")
        with _hold_resource_locks(rec.resource_id):
            if rec.resource_id:
                _release_resource(db, resource_id=rec.resource_id, vehicle_id=rec.vehicle_id, now=now)
            rec.status = BookingStatus.COMPLETED
            rec.completed_at = now
            rec.updated_at = now
            mark_service_performed(db, vehicle_id=rec.vehicle_id, service_type=rec.service_type, at=now)
            db.commit()
    except BookingError as e:
        return _failed(db, e, op="complete", service_id=service_id)
    except SQLAlchemyError as e:
        return _persistence_failed(db, e, op="complete", service_id=service_id)

    logger.info("booking completed service_id=%s service_type=%s", service_id, rec.service_type.value)
    return BookingResult(success=True, message="Service completed.", service_id=service_id)


# ── Reads ────────────────────────────────────────────────────────
def get_booking(db: Session, service_id: str) -> ScheduledService | None:
    return db.query(ScheduledService).filter(ScheduledService.id == service_id).one_or_none()


def list_vehicle_bookings(db: Session, *, vehicle_id: str, status: BookingStatus | None = None) -> list[ScheduledService]:
    q = db.query(ScheduledService).filter(ScheduledService.vehicle_id == vehicle_id)
    if status is not None:
        q = q.filter(ScheduledService.status == status)
    return q.order_by(ScheduledService.created_at.desc()).all()


def scheduled_needs(db: Session, *, vehicle_ids: list[str]) -> set[tuple[str, ServiceType]]:
    """(vehicle_id, service_type) pairs that already hold a scheduled booking."""
    if not vehicle_ids:
        return set()
    rows = (
        db.query(ScheduledService.vehicle_id, ScheduledService.service_type)
        .filter(
            ScheduledService.vehicle_id.in_(vehicle_ids),
            ScheduledService.status == BookingStatus.SCHEDULED,
        )
        .all()
    )
    return {(vid, st) for vid, st in rows}


def list_resources(
    db: Session,
    *,
    resource_type: ResourceType | None = None,
    depot_id: str | None = None,
    status: ResourceStatus | None = None,
) -> list[Resource]:
    q = db.query(Resource)
    if resource_type is not None:
        q = q.filter(Resource.resource_type == resource_type)
    if depot_id:
        q = q.filter(Resource.depot_id == depot_id)
    if status is not None:
        q = q.filter(Resource.status == status)
    return q.order_by(Resource.number).all()
