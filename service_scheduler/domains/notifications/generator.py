"""
Member-facing service recommendations.

Turns one ranked need (plus its optional bundle and charge recommendation)
into a notification with template text and up to three bookable slots, and
decides whether the member should be told now.
"""
import logging
import uuid
from datetime import datetime, timedelta

from service_scheduler.core.clock import as_utc, to_depot, utcnow
from service_scheduler.core.config import settings
from service_scheduler.domains.notifications.types import (
    BundledServiceSuggestion,
    MemberPrefs,
    ResourceRef,
    ServiceNotification,
    TimeSlot,
)
from service_scheduler.domains.threshold_engine.constants import (
    DEFAULT_BUFFER_MINUTES,
    RESOURCE_BUFFER_MINUTES,
    SERVICE_DURATION_MINUTES,
    SERVICE_LABELS,
    SERVICE_RESOURCE_TYPE,
)
from service_scheduler.domains.threshold_engine.pricing import RateCalendar
from service_scheduler.domains.threshold_engine.types import (
    BundledServiceRecommendation,
    ChargeRecommendation,
    PredictedServiceNeed,
    RatePeriod,
    ServiceType,
)

logger = logging.getLogger(__name__)

CRITICAL_URGENCY = 90.0
WARNING_URGENCY = 60.0
FORCE_NOTIFY_CHARGE_SOC = 25.0
MAX_SLOTS = 3
CANDIDATE_DAYS = 3
MIN_RATE_CANDIDATES = 5
BUNDLE_PLACEHOLDER_MINUTES = 30
DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def severity_for(urgency: float) -> str:
    if urgency >= CRITICAL_URGENCY:
        return "critical"
    if urgency >= WARNING_URGENCY:
        return "warning"
    return "routine"


def _fmt_time(dt: datetime) -> str:
    h12 = dt.hour % 12 or 12
    return f"{h12}:{dt.minute:02d} {'AM' if dt.hour < 12 else 'PM'}"


def _parse_hhmm(raw: str) -> tuple[int, int] | None:
    try:
        parts = raw.strip().split(":")
        h = int(parts[0])
        m = int(parts[1]) if len(parts) > 1 and parts[1] else 0
    except (ValueError, AttributeError, IndexError):
        return None
    if not (0 <= h <= 23 and 0 <= m <= 59):
        return None
    return h, m


def _in_quiet_hours(hour: int) -> bool:
    start, end = settings.quiet_hours_start, settings.quiet_hours_end
    if start == end:
        return False
    if start > end:
        return hour >= start or hour < end
    return start <= hour < end


class NotificationGenerator:
    def __init__(self, pricing: list[RatePeriod]) -> None:
        self.rates = RateCalendar(pricing)

    # ── Timing ───────────────────────────────────────────────────
    def should_notify_now(
        self, need: PredictedServiceNeed, preferences: MemberPrefs | None, now: datetime | None = None
    ) -> bool:
        now = as_utc(now or utcnow())

        if need.urgency_score >= CRITICAL_URGENCY:
            return True
        if need.service_type == ServiceType.CHARGE and need.current_value <= FORCE_NOTIFY_CHARGE_SOC:
            return True

        if _in_quiet_hours(to_depot(now).hour):
            return False

        if preferences is not None:
            hours_until = (as_utc(need.predicted_need_date) - now).total_seconds() / 3600.0
            if hours_until > preferences.notification_lead_time_hours:
                return False

        return True

    # ── Notification ─────────────────────────────────────────────
    def generate_notification(
        self,
        need: PredictedServiceNeed,
        bundle: BundledServiceRecommendation | None,
        charge_rec: ChargeRecommendation | None,
        preferences: MemberPrefs | None,
        available_resources: list[ResourceRef],
        now: datetime | None = None,
    ) -> ServiceNotification:
        now = as_utc(now or utcnow())
        severity = severity_for(need.urgency_score)
        duration = self.duration_for(need.service_type, charge_rec)

        slots = self.select_slots(need, preferences, available_resources, charge_rec, now)

        cost = None
        savings_note = None
        if need.service_type == ServiceType.CHARGE and charge_rec is not None:
            cost = charge_rec.estimated_cost_dollars
            if charge_rec.savings_vs_now_dollars > 0:
                savings_note = f"Save ${charge_rec.savings_vs_now_dollars:.2f} by charging at off-peak rates"

        bundled: list[BundledServiceSuggestion] = []
        if bundle is not None and bundle.vehicle_id == need.vehicle_id:
            for st in bundle.bundled_services:
                if st == need.service_type:
                    continue
                bundled.append(
                    BundledServiceSuggestion(
                        service_type=st,
                        reason=f"Within threshold: bundling saves {bundle.time_savings_minutes} min total",
                        additional_minutes=BUNDLE_PLACEHOLDER_MINUTES,
                    )
                )

        auto_accept = severity != "critical" and preferences is not None and (
            (need.service_type == ServiceType.CHARGE and preferences.auto_accept_charges)
            or (need.service_type == ServiceType.DETAIL_CLEAN and preferences.auto_accept_cleans)
        )

        return ServiceNotification(
            id=f"notif-{uuid.uuid4()}",
            vehicle_id=need.vehicle_id,
            service_type=need.service_type,
            headline=self._headline(need, charge_rec),
            reason=self._reason(need),
            recommended_slot=slots[0],
            alternative_slots=slots[1:MAX_SLOTS],
            estimated_duration_minutes=duration,
            estimated_cost_dollars=cost,
            savings_note=savings_note,
            bundled_services=bundled,
            urgency_score=need.urgency_score,
            severity=severity,
            created_at=now,
            predicted_need_date=need.predicted_need_date,
            auto_accept=auto_accept,
        )

    @staticmethod
    def duration_for(service_type: ServiceType, charge_rec: ChargeRecommendation | None) -> int:
        if service_type == ServiceType.CHARGE and charge_rec is not None:
            return charge_rec.charge_duration_minutes
        return SERVICE_DURATION_MINUTES.get(service_type, 60)

    # ── Slots ────────────────────────────────────────────────────
    def select_slots(
        self,
        need: PredictedServiceNeed,
        preferences: MemberPrefs | None,
        resources: list[ResourceRef],
        charge_rec: ChargeRecommendation | None,
        now: datetime,
    ) -> list[TimeSlot]:
        resource_type = self._resource_type(need.service_type, charge_rec)
        matching = self._matching_resources(need.service_type, resource_type, resources)
        if matching:
            resource_type = matching[0].resource_type
        duration = self.duration_for(need.service_type, charge_rec)
        buffer = RESOURCE_BUFFER_MINUTES.get(resource_type, DEFAULT_BUFFER_MINUTES)

        slots: list[TimeSlot] = []
        for start in self._candidate_starts(preferences, charge_rec, now):
            if len(slots) >= MAX_SLOTS:
                break
            resource = matching[len(slots) % len(matching)] if matching else None
            rate = self.rates.rate_at(start)
            cost, savings = self._slot_pricing(need, charge_rec, rate)
            slots.append(
                TimeSlot(
                    start=start,
                    end=start + timedelta(minutes=duration + buffer),
                    resource_id=resource.id if resource else None,
                    resource_number=resource.number if resource else None,
                    resource_type=resource.resource_type if resource else resource_type,
                    is_off_peak=self.rates.is_off_peak(start),
                    cost_dollars=cost,
                    savings_vs_peak=savings,
                )
            )
        return slots

    def _candidate_starts(
        self, prefs: MemberPrefs | None, charge_rec: ChargeRecommendation | None, now: datetime
    ) -> list[datetime]:
        candidates: list[datetime] = []

        def add(ts: datetime) -> None:
            ts = as_utc(ts)
            if ts not in candidates:
                candidates.append(ts)

        if charge_rec is not None:
            add(charge_rec.recommended_start_time)

        local_now = to_depot(now)
        midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)

        if prefs is not None and prefs.preferred_charge_times:
            for window in prefs.preferred_charge_times:
                hm = _parse_hhmm(window.start)
                if hm is None:
                    logger.debug("skipping malformed preferred window start=%r", window.start)
                    continue
                for offset in range(CANDIDATE_DAYS):
                    d = (midnight + timedelta(days=offset)).replace(hour=hm[0], minute=hm[1])
                    if d <= local_now:
                        continue
                    if prefs.preferred_days and DAY_NAMES[d.weekday()] not in prefs.preferred_days:
                        continue
                    add(d)

        off_peak = self.rates.off_peak()
        shoulder = self.rates.morning_shoulder()
        for offset in range(CANDIDATE_DAYS):
            if len(candidates) >= MIN_RATE_CANDIDATES:
                break
            day = midnight + timedelta(days=offset)
            for period in (off_peak, shoulder):
                if period is None:
                    continue
                d = day.replace(hour=period.start_hour)
                if d > local_now:
                    add(d)

        if not candidates:
            for h in range(1, 4):
                add(now + timedelta(hours=h))

        return candidates

    @staticmethod
    def _resource_type(service_type: ServiceType, charge_rec: ChargeRecommendation | None) -> str:
        if service_type == ServiceType.CHARGE and charge_rec is not None and charge_rec.recommended_charger_type == "fast":
            return "charge_fast"
        return SERVICE_RESOURCE_TYPE.get(service_type, "charge_standard")

    @staticmethod
    def _matching_resources(
        service_type: ServiceType, resource_type: str, resources: list[ResourceRef]
    ) -> list[ResourceRef]:
        matching = sorted((r for r in resources if r.resource_type == resource_type), key=lambda r: r.number)
        if not matching and service_type == ServiceType.CHARGE:
            # Any charger beats none; a standard stall still charges a fast-eligible vehicle.
            matching = sorted((r for r in resources if r.resource_type.startswith("charge_")), key=lambda r: r.number)
        return matching

    def _slot_pricing(
        self, need: PredictedServiceNeed, charge_rec: ChargeRecommendation | None, rate: RatePeriod | None
    ) -> tuple[float | None, float | None]:
        if need.service_type != ServiceType.CHARGE or charge_rec is None or rate is None:
            return None, None
        energy = charge_rec.energy_needed_kwh
        cost = round(energy * rate.rate_per_kwh, 2)
        peak = self.rates.highest()
        savings = round(energy * (peak.rate_per_kwh - rate.rate_per_kwh), 2) if peak else None
        return cost, savings

    # ── Text ─────────────────────────────────────────────────────
    @staticmethod
    def _headline(need: PredictedServiceNeed, charge_rec: ChargeRecommendation | None) -> str:
        label = SERVICE_LABELS.get(need.service_type, need.service_type.value)
        local = to_depot(need.predicted_need_date)
        if need.urgency_score >= CRITICAL_URGENCY:
            return f"{label} Needed Now"
        if charge_rec is not None and need.service_type == ServiceType.CHARGE:
            return f"{label} Recommended: {local.strftime('%A')} {_fmt_time(local)}"
        return f"{label} Due: {local.strftime('%A')}"

    @staticmethod
    def _reason(need: PredictedServiceNeed) -> str:
        current = round(need.current_value)
        threshold = need.threshold_value
        weekday = to_depot(need.predicted_need_date).strftime("%A")
        if need.service_type == ServiceType.CHARGE:
            return (
                f"Battery at {current}%. Based on your driving pattern, "
                f"you'll reach {threshold:g}% by {weekday} morning."
            )
        if need.service_type == ServiceType.DETAIL_CLEAN:
            return (
                f"Last detail was {current} {need.threshold_unit.value} ago. "
                "A fresh detail keeps your vehicle in premium condition."
            )
        if need.service_type == ServiceType.TIRE_ROTATION:
            return (
                f"{current:,} miles since last rotation. "
                f"Recommended every {threshold:,.0f} miles for even wear."
            )
        if need.service_type == ServiceType.BATTERY_HEALTH_CHECK:
            return f"{current} days since last battery diagnostic. Regular checks protect your battery longevity."
        if need.service_type == ServiceType.FULL_SERVICE:
            return f"Vehicle approaching {threshold:,.0f}-mile full service interval."
        return need.trigger_reason
