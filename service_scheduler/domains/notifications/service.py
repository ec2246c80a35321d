import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from service_scheduler.core.clock import as_utc, utcnow
from service_scheduler.core.config import settings
from service_scheduler.domains.booking.service import accept_service, scheduled_needs
from service_scheduler.domains.fleet.models import MemberPreferences
from service_scheduler.domains.fleet.service import (
    build_engine,
    list_member_vehicles,
    load_available_resources,
    load_member_prefs,
)
from service_scheduler.domains.notifications.generator import NotificationGenerator
from service_scheduler.domains.notifications.schemas import ServiceNotificationOut
from service_scheduler.domains.notifications.types import ServiceNotification
from service_scheduler.domains.threshold_engine.scan import CHARGE_REC_SOC_BELOW
from service_scheduler.utils.push import push_configured, send_push_notification

logger = logging.getLogger(__name__)


@dataclass
class MemberFeed:
    member_id: str
    generated_at: datetime
    notifications: list[ServiceNotification] = field(default_factory=list)
    # notification id -> booking id for auto-accepted recommendations
    auto_booked: dict[str, str] = field(default_factory=dict)
    pushed: int = 0


def build_member_feed(db: Session, *, member_id: str, now: datetime | None = None, dispatch: bool = False) -> MemberFeed:
    """
    Notifications for one member's vehicles:
    - rank the member's needs and keep the top `feed_queue_limit`
    - skip needs that already hold a scheduled booking
    - drop the ones that should wait (quiet hours, outside lead time)
    - with `dispatch`: auto-book routine charges / cleans when the member
      opted in, then push what is still pending, best effort

    Without `dispatch` the feed is read-only.
    """
    now = as_utc(now or utcnow())
    feed = MemberFeed(member_id=member_id, generated_at=now)

    vehicles = list_member_vehicles(db, member_id)
    if not vehicles:
        return feed

    engine = build_engine(db)
    generator = NotificationGenerator(list(engine.rates.periods))
    prefs = load_member_prefs(db, member_id)
    resources = load_available_resources(db)
    booked = scheduled_needs(db, vehicle_ids=[v.id for v in vehicles])

    queue = engine.generate_priority_queue(vehicles, now)[: settings.feed_queue_limit]
    bundles = {b.vehicle_id: b for b in engine.generate_bundles(vehicles, queue)}
    by_id = {v.id: v for v in vehicles}
    charge_recs = {}

    for need in queue:
        if (need.vehicle_id, need.service_type) in booked:
            continue
        if not generator.should_notify_now(need, prefs, now):
            continue
        v = by_id[need.vehicle_id]
        if v.id not in charge_recs and v.current_soc_percent < CHARGE_REC_SOC_BELOW:
            charge_recs[v.id] = engine.get_charge_recommendation(v, now)
        n = generator.generate_notification(need, bundles.get(v.id), charge_recs.get(v.id), prefs, resources, now)
        feed.notifications.append(n)

        if dispatch and n.auto_accept:
            result = accept_service(db, notification=n, slot=n.recommended_slot, now=now)
            if result.success and result.service_id:
                feed.auto_booked[n.id] = result.service_id
                booked.add((need.vehicle_id, need.service_type))
                # The claimed resource is gone for the rest of this feed.
                resources = [r for r in resources if r.id != n.recommended_slot.resource_id]
            else:
                logger.warning("auto-accept failed notification_id=%s code=%s", n.id, result.error_code)

    if dispatch and push_configured():
        for n in feed.notifications:
            if n.status != "pending":
                continue
            payload = ServiceNotificationOut.from_notification(n).model_dump(mode="json")
            payload["member_id"] = member_id
            if send_push_notification(payload):
                feed.pushed += 1

    logger.info(
        "member feed member_id=%s notifications=%d auto_booked=%d pushed=%d",
        member_id,
        len(feed.notifications),
        len(feed.auto_booked),
        feed.pushed,
    )
    return feed


def upsert_member_preferences(db: Session, *, member_id: str, updates: dict) -> MemberPreferences:
    row = db.query(MemberPreferences).filter(MemberPreferences.member_id == member_id).one_or_none()
    if row is None:
        row = MemberPreferences(member_id=member_id)
        db.add(row)
    for k, v in updates.items():
        setattr(row, k, v)
    row.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(row)
    return row
