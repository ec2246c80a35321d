from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from service_scheduler.core.deps import get_db
from service_scheduler.domains.notifications.schemas import (
    MemberFeedOut,
    MemberPreferencesIn,
    MemberPreferencesOut,
    ServiceNotificationOut,
)
from service_scheduler.domains.notifications.service import MemberFeed, build_member_feed, upsert_member_preferences


router = APIRouter(prefix="/notifications")


def _feed_out(feed: MemberFeed) -> MemberFeedOut:
    return MemberFeedOut(
        member_id=feed.member_id,
        generated_at=feed.generated_at,
        notifications=[
            ServiceNotificationOut.from_notification(n, auto_booked_service_id=feed.auto_booked.get(n.id))
            for n in feed.notifications
        ],
        pushed=feed.pushed,
    )


@router.get("/members/{member_id}", response_model=MemberFeedOut)
def member_feed(member_id: str, db: Session = Depends(get_db)) -> MemberFeedOut:
    return _feed_out(build_member_feed(db, member_id=member_id))


@router.post("/members/{member_id}/dispatch", response_model=MemberFeedOut)
def dispatch_member_feed(member_id: str, db: Session = Depends(get_db)) -> MemberFeedOut:
    """Auto-books opted-in recommendations and pushes the rest. Safe to repeat."""
    return _feed_out(build_member_feed(db, member_id=member_id, dispatch=True))


@router.put("/members/{member_id}/preferences", response_model=MemberPreferencesOut)
def update_preferences(
    member_id: str,
    payload: MemberPreferencesIn,
    db: Session = Depends(get_db),
) -> MemberPreferencesOut:
    updates = payload.model_dump(exclude_none=True)
    if "preferred_days" in updates:
        updates["preferred_days"] = [d.strip().lower() for d in updates["preferred_days"] if d.strip()]
    row = upsert_member_preferences(db, member_id=member_id, updates=updates)
    return MemberPreferencesOut(
        member_id=row.member_id,
        auto_accept_charges=row.auto_accept_charges,
        auto_accept_cleans=row.auto_accept_cleans,
        notification_lead_time_hours=row.notification_lead_time_hours,
        preferred_days=list(row.preferred_days or []),
        preferred_charge_times=list(row.preferred_charge_times or []),
    )
