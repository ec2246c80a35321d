"""
Threshold engine: vehicle health scanning, fleet-wide priority ranking,
visit bundling and charge timing.

All methods are pure functions of (thresholds, rate periods, vehicle state,
now). Nothing here touches the database, so an engine can be rebuilt per
request and shared across workers.
"""
from datetime import datetime, timedelta

from service_scheduler.core.clock import as_utc, utcnow
from service_scheduler.domains.threshold_engine.constants import (
    BUNDLE_RATIO,
    BUNDLE_URGENCY_MIN,
    CHARGE_NOW_SOC_BELOW,
    CHARGE_SAFETY_MARGIN_PERCENT,
    CHARGER_POWER_KW,
    COMPOSITE_WEIGHTS,
    DEFAULT_BUNDLE_RATIO,
    DEFAULT_CURRENT_RATE,
    DEFAULT_OFF_PEAK_RATE,
    DEFAULT_SERVICE_DURATION_MINUTES,
    DEFAULT_TIME_SENSITIVITY,
    FAST_CHARGER_SOC_BELOW,
    OFF_PEAK_ENERGY_BONUS,
    OFF_PEAK_RATE_TOLERANCE,
    RISK_HIGH_SOC_BELOW,
    RISK_MEDIUM_SOC_BELOW,
    TARGET_SOC_PERCENT,
    TIME_SENSITIVITY,
    URGENCY_EXPONENT,
    URGENCY_NOISE_FLOOR,
    VISIT_OVERHEAD_MINUTES,
)
from service_scheduler.domains.threshold_engine.pricing import RateCalendar
from service_scheduler.domains.threshold_engine.types import (
    BundledServiceRecommendation,
    ChargeRecommendation,
    PredictedServiceNeed,
    RatePeriod,
    ServiceType,
    ServiceUrgency,
    Threshold,
    ThresholdUnit,
    VehicleHealthSnapshot,
    VehicleState,
    VehicleStatus,
)

_DAY_S = 86_400.0

# Which "last performed" timestamp each service reads.
LAST_PERFORMED_FIELD: dict[ServiceType, str] = {
    ServiceType.CHARGE: "last_charge_at",
    ServiceType.DETAIL_CLEAN: "last_detail_at",
    ServiceType.TIRE_ROTATION: "last_tire_rotation_at",
    ServiceType.BATTERY_HEALTH_CHECK: "last_battery_check_at",
    ServiceType.FULL_SERVICE: "last_full_service_at",
}


def urgency_from_ratio(ratio: float) -> float:
    urgency = max(0.0, ratio) ** URGENCY_EXPONENT * 100.0
    return round(max(0.0, min(100.0, urgency)), 1)


def _days_since(ts: datetime | None, now: datetime) -> float | None:
    if ts is None:
        return None
    return max(0.0, (now - as_utc(ts)).total_seconds() / _DAY_S)


def _miles_since(ts: datetime | None, now: datetime, avg_daily_miles: float) -> float | None:
    days = _days_since(ts, now)
    if days is None:
        return None
    return float(round(days * avg_daily_miles))


def _round_or_none(v: float | None) -> int | None:
    return int(round(v)) if v is not None else None


class ThresholdEngine:
    def __init__(self, thresholds: list[Threshold], pricing: list[RatePeriod]) -> None:
        self.thresholds = list(thresholds)
        self.rates = RateCalendar(pricing)
        self._by_type = {t.service_type: t for t in self.thresholds}

    def threshold_for(self, service_type: ServiceType) -> Threshold | None:
        return self._by_type.get(service_type)

    def duration_for(self, service_type: ServiceType) -> int:
        t = self._by_type.get(service_type)
        return t.estimated_duration_minutes if t else DEFAULT_SERVICE_DURATION_MINUTES

    # ── 1. Vehicle health ────────────────────────────────────────
    def compute_health_snapshot(self, vehicle: VehicleState, now: datetime | None = None) -> VehicleHealthSnapshot:
        now = as_utc(now or utcnow())

        urgencies: list[ServiceUrgency] = []
        for t in self.thresholds:
            u = self._compute_urgency(vehicle, t, now)
            if u is not None:
                urgencies.append(u)

        overall = max((u.urgency_score for u in urgencies), default=0.0)
        avg = vehicle.avg_daily_miles
        return VehicleHealthSnapshot(
            vehicle_id=vehicle.id,
            current_soc_percent=vehicle.current_soc_percent,
            days_since_last_charge=_round_or_none(_days_since(vehicle.last_charge_at, now)),
            days_since_last_detail=_round_or_none(_days_since(vehicle.last_detail_at, now)),
            days_since_last_tire_rotation=_round_or_none(_days_since(vehicle.last_tire_rotation_at, now)),
            days_since_last_battery_check=_round_or_none(_days_since(vehicle.last_battery_check_at, now)),
            miles_since_last_detail=_round_or_none(_miles_since(vehicle.last_detail_at, now, avg)),
            miles_since_last_tire_rotation=_round_or_none(_miles_since(vehicle.last_tire_rotation_at, now, avg)),
            urgencies=tuple(urgencies),
            overall_urgency_score=int(round(overall)),
        )

    def _current_value(self, v: VehicleState, t: Threshold, now: datetime) -> float | None:
        """Elapsed usage for a threshold, or None when the vehicle has no history for it."""
        if t.service_type == ServiceType.CHARGE:
            if t.threshold_unit == ThresholdUnit.PERCENT:
                return float(v.current_soc_percent)
            return None

        last = getattr(v, LAST_PERFORMED_FIELD[t.service_type])
        if t.threshold_unit == ThresholdUnit.DAYS:
            return _days_since(last, now)
        if t.threshold_unit == ThresholdUnit.MILES:
            if t.service_type == ServiceType.FULL_SERVICE and last is None:
                # No recorded full service: distance into the current odometer interval.
                return float(v.odometer_miles % t.threshold_value)
            return _miles_since(last, now, v.avg_daily_miles)
        return None

    def _compute_urgency(self, v: VehicleState, t: Threshold, now: datetime) -> ServiceUrgency | None:
        if t.threshold_value <= 0:
            return None
        current = self._current_value(v, t, now)
        if current is None:
            return None

        threshold = float(t.threshold_value)
        inverted = t.service_type == ServiceType.CHARGE
        if inverted:
            # 100% SoC is zero urgency; urgency climbs as SoC falls toward threshold + margin.
            span = threshold + CHARGE_SAFETY_MARGIN_PERCENT
            ratio = max(0.0, (span - current) / span)
            is_overdue = current <= threshold
            reason = f"SOC at {round(current)}% (threshold: {threshold:g}%)"
        else:
            ratio = current / threshold
            is_overdue = current >= threshold
            unit = t.threshold_unit.value
            reason = f"{round(current)} {unit} since last service (threshold: {threshold:g} {unit})"

        return ServiceUrgency(
            service_type=t.service_type,
            urgency_score=urgency_from_ratio(ratio),
            is_overdue=is_overdue,
            trigger_reason=reason,
            current_value=current,
            threshold_value=threshold,
            days_since_last=current if (not inverted and t.threshold_unit == ThresholdUnit.DAYS) else None,
            miles_since_last=current if (not inverted and t.threshold_unit == ThresholdUnit.MILES) else None,
        )

    # ── 2. Priority queue ────────────────────────────────────────
    def generate_priority_queue(
        self, vehicles: list[VehicleState], now: datetime | None = None
    ) -> list[PredictedServiceNeed]:
        now = as_utc(now or utcnow())
        charge_bonus = OFF_PEAK_ENERGY_BONUS if self._currently_cheapest(now) else 0.0

        needs: list[PredictedServiceNeed] = []
        for v in vehicles:
            if v.status == VehicleStatus.OFFLINE:
                continue
            snapshot = self.compute_health_snapshot(v, now)
            for u in snapshot.urgencies:
                if u.urgency_score < URGENCY_NOISE_FLOOR:
                    continue
                t = self._by_type.get(u.service_type)
                if t is None:
                    continue

                normalized_priority = (t.priority_weight / 10.0) * 100.0
                time_sensitivity = TIME_SENSITIVITY.get(u.service_type, DEFAULT_TIME_SENSITIVITY)
                energy_bonus = charge_bonus if u.service_type == ServiceType.CHARGE else 0.0

                composite = (
                    u.urgency_score * COMPOSITE_WEIGHTS["urgency"]
                    + normalized_priority * COMPOSITE_WEIGHTS["priority"]
                    + time_sensitivity * COMPOSITE_WEIGHTS["time_sensitivity"]
                    + energy_bonus * COMPOSITE_WEIGHTS["energy"]
                )

                needs.append(
                    PredictedServiceNeed(
                        vehicle_id=v.id,
                        vehicle_make_model=v.make_model,
                        service_type=u.service_type,
                        urgency_score=u.urgency_score,
                        composite_score=round(composite, 1),
                        predicted_need_date=self._predict_need_date(v, u, t, now),
                        trigger_reason=u.trigger_reason,
                        current_value=u.current_value,
                        threshold_value=t.threshold_value,
                        threshold_unit=t.threshold_unit,
                        is_overdue=u.is_overdue,
                    )
                )

        # Tie-breaks keep the ordering reproducible across runs.
        needs.sort(key=lambda n: (-n.composite_score, -n.urgency_score, n.vehicle_id, n.service_type.value))
        return needs

    def _currently_cheapest(self, now: datetime) -> bool:
        current = self.rates.rate_at(now)
        lowest = self.rates.lowest()
        if current is None or lowest is None:
            return False
        return current.rate_per_kwh <= lowest.rate_per_kwh * OFF_PEAK_RATE_TOLERANCE

    def _predict_need_date(self, v: VehicleState, u: ServiceUrgency, t: Threshold, now: datetime) -> datetime:
        if u.is_overdue:
            return now

        if t.service_type == ServiceType.CHARGE:
            if v.avg_daily_miles <= 0 or v.current_range_miles <= 0 or v.current_soc_percent <= 0:
                return now + timedelta(days=1)
            # range left before SoC reaches the threshold, assuming range scales with SoC
            miles_above = v.current_range_miles * (1.0 - t.threshold_value / v.current_soc_percent)
            days_left = max(0.5, miles_above / v.avg_daily_miles)
            return now + timedelta(days=days_left)

        if t.threshold_unit == ThresholdUnit.DAYS:
            remaining = max(0.5, t.threshold_value - (u.days_since_last or 0.0))
            return now + timedelta(days=remaining)

        if t.threshold_unit == ThresholdUnit.MILES:
            remaining = max(1.0, t.threshold_value - (u.miles_since_last or 0.0))
            days_left = remaining / v.avg_daily_miles if v.avg_daily_miles > 0 else 30.0
            return now + timedelta(days=days_left)

        return now + timedelta(days=7)

    # ── 3. Bundling ──────────────────────────────────────────────
    def generate_bundles(
        self, vehicles: list[VehicleState], queue: list[PredictedServiceNeed]
    ) -> list[BundledServiceRecommendation]:
        by_id = {v.id: v for v in vehicles}
        grouped: dict[str, list[PredictedServiceNeed]] = {}
        for need in queue:
            grouped.setdefault(need.vehicle_id, []).append(need)

        bundles: list[BundledServiceRecommendation] = []
        for vehicle_id, needs in grouped.items():
            if len(needs) < 2:
                continue
            vehicle = by_id.get(vehicle_id)
            if vehicle is None:
                continue

            needs = sorted(needs, key=lambda n: -n.composite_score)
            primary = needs[0]
            candidates: list[ServiceType] = []
            reasons: list[str] = []
            for need in needs[1:]:
                bundle_ratio = BUNDLE_RATIO.get(need.service_type, DEFAULT_BUNDLE_RATIO)
                if need.ratio >= bundle_ratio or need.urgency_score >= BUNDLE_URGENCY_MIN:
                    candidates.append(need.service_type)
                    reasons.append(
                        f"{need.service_type.value} at {round(need.urgency_score)}% urgency: "
                        "bundling saves a separate visit"
                    )

            if not candidates:
                continue

            services = [primary.service_type, *candidates]
            combined = VISIT_OVERHEAD_MINUTES + sum(self.duration_for(st) for st in services)
            separate = sum(self.duration_for(st) + VISIT_OVERHEAD_MINUTES for st in services)
            bundles.append(
                BundledServiceRecommendation(
                    vehicle_id=vehicle_id,
                    vehicle_make_model=vehicle.make_model,
                    primary_service=primary.service_type,
                    bundled_services=tuple(candidates),
                    combined_duration_minutes=combined,
                    separate_visits_duration_minutes=separate,
                    time_savings_minutes=separate - combined,
                    reasons=tuple(reasons),
                )
            )
        return bundles

    # ── 4. Charge timing ─────────────────────────────────────────
    def get_charge_recommendation(self, vehicle: VehicleState, now: datetime | None = None) -> ChargeRecommendation:
        now = as_utc(now or utcnow())
        soc = float(vehicle.current_soc_percent)
        current_rate = self.rates.rate_at(now)
        lowest_rate = self.rates.lowest()

        soc_deficit = max(0.0, TARGET_SOC_PERCENT - soc)
        kwh_needed = (soc_deficit / 100.0) * vehicle.battery_capacity_kwh

        charger_type = "fast" if soc < FAST_CHARGER_SOC_BELOW else "standard"
        duration_min = int(round(kwh_needed / CHARGER_POWER_KW[charger_type] * 60.0))

        now_cost = kwh_needed * (current_rate.rate_per_kwh if current_rate else DEFAULT_CURRENT_RATE)
        off_peak_cost = kwh_needed * (lowest_rate.rate_per_kwh if lowest_rate else DEFAULT_OFF_PEAK_RATE)
        savings = max(0.0, now_cost - off_peak_cost)

        # Will the vehicle run critically low before the cheap window opens?
        hours = self.rates.hours_until_off_peak(now)
        miles_until = (hours / 24.0) * vehicle.avg_daily_miles
        if vehicle.current_range_miles > 0:
            soc_after = soc - (miles_until / vehicle.current_range_miles) * soc
        else:
            soc_after = 0.0 if miles_until > 0 else soc

        risk = "low"
        if soc_after < RISK_HIGH_SOC_BELOW:
            risk = "high"
        elif soc_after < RISK_MEDIUM_SOC_BELOW:
            risk = "medium"

        # Safety before cost.
        charge_now = risk == "high" or soc < CHARGE_NOW_SOC_BELOW
        start = now if charge_now else self.rates.next_off_peak_start(now)

        return ChargeRecommendation(
            vehicle_id=vehicle.id,
            recommended_start_time=start,
            estimated_cost_dollars=round(now_cost if charge_now else off_peak_cost, 2),
            savings_vs_now_dollars=round(savings, 2),
            charge_duration_minutes=duration_min,
            recommended_charger_type=charger_type,
            current_soc=soc,
            target_soc=TARGET_SOC_PERCENT,
            energy_needed_kwh=round(kwh_needed, 2),
            risk_level=risk,
            charge_now=charge_now,
        )
