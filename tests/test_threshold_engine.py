from datetime import timedelta

import pytest

from service_scheduler.domains.threshold_engine.constants import VISIT_OVERHEAD_MINUTES
from service_scheduler.domains.threshold_engine.engine import urgency_from_ratio
from service_scheduler.domains.threshold_engine.types import (
    PredictedServiceNeed,
    ServiceType,
    ThresholdUnit,
    VehicleStatus,
)


def _urgency(snapshot, service_type):
    return next((u for u in snapshot.urgencies if u.service_type == service_type), None)


def _need(now, service_type, urgency, composite, current, threshold, unit, vehicle_id="veh-1"):
    return PredictedServiceNeed(
        vehicle_id=vehicle_id,
        vehicle_make_model="Tesla Model 3",
        service_type=service_type,
        urgency_score=urgency,
        composite_score=composite,
        predicted_need_date=now,
        trigger_reason="test",
        current_value=current,
        threshold_value=threshold,
        threshold_unit=unit,
    )


def test_urgency_curve_is_monotonic():
    scores = [urgency_from_ratio(r / 20) for r in range(0, 31)]
    assert scores == sorted(scores)
    assert scores[0] == 0.0
    assert scores[-1] == 100.0


def test_curve_floor_and_full_ratio():
    assert urgency_from_ratio(0.5) < 46.0
    assert urgency_from_ratio(0.6) <= 46.5
    assert urgency_from_ratio(1.0) == 100.0


def test_detail_urgency_never_drops_as_days_pass(engine, make_vehicle, now):
    """More elapsed days since the last detail never lowers its urgency."""
    previous = -1.0
    for days in range(0, 12):
        v = make_vehicle(last_detail_at=now - timedelta(days=days, hours=3))
        u = _urgency(engine.compute_health_snapshot(v, now), ServiceType.DETAIL_CLEAN)
        assert u.urgency_score >= previous
        previous = u.urgency_score


def test_detail_at_threshold_is_overdue(engine, make_vehicle, now):
    v = make_vehicle(last_detail_at=now - timedelta(days=7))
    u = _urgency(engine.compute_health_snapshot(v, now), ServiceType.DETAIL_CLEAN)
    assert u.urgency_score == 100.0
    assert u.is_overdue


def test_charge_urgency_is_inverted(engine, make_vehicle, now):
    full = _urgency(engine.compute_health_snapshot(make_vehicle(current_soc_percent=100.0), now), ServiceType.CHARGE)
    assert full.urgency_score == 0.0
    assert not full.is_overdue

    at_threshold = _urgency(engine.compute_health_snapshot(make_vehicle(current_soc_percent=30.0), now), ServiceType.CHARGE)
    below = _urgency(engine.compute_health_snapshot(make_vehicle(current_soc_percent=22.0), now), ServiceType.CHARGE)
    assert at_threshold.is_overdue
    assert below.is_overdue
    assert below.urgency_score > at_threshold.urgency_score > full.urgency_score


def test_missing_history_produces_no_entry(engine, make_vehicle, now):
    v = make_vehicle(last_detail_at=None, last_battery_check_at=None)
    types = {u.service_type for u in engine.compute_health_snapshot(v, now).urgencies}
    assert ServiceType.DETAIL_CLEAN not in types
    assert ServiceType.BATTERY_HEALTH_CHECK not in types
    assert ServiceType.CHARGE in types


def test_healthy_vehicle_has_no_queued_needs(engine, make_vehicle, now):
    assert engine.generate_priority_queue([make_vehicle()], now) == []


def test_queue_is_sorted_and_reproducible(engine, make_vehicle, now):
    fleet = [
        make_vehicle("veh-a", current_soc_percent=25.0, current_range_miles=80.0),
        make_vehicle("veh-b", last_detail_at=now - timedelta(days=9)),
        make_vehicle("veh-c", last_tire_rotation_at=now - timedelta(days=150)),
        make_vehicle("veh-d", current_soc_percent=40.0, last_battery_check_at=now - timedelta(days=85)),
        make_vehicle("veh-e", last_detail_at=now - timedelta(days=5)),
    ]
    first = engine.generate_priority_queue(fleet, now)
    second = engine.generate_priority_queue(list(fleet), now)

    assert first
    composites = [n.composite_score for n in first]
    assert composites == sorted(composites, reverse=True)
    assert [(n.vehicle_id, n.service_type) for n in first] == [(n.vehicle_id, n.service_type) for n in second]


def test_offline_vehicles_are_skipped(engine, make_vehicle, now):
    v = make_vehicle(current_soc_percent=10.0, status=VehicleStatus.OFFLINE)
    assert engine.generate_priority_queue([v], now) == []


def test_overdue_need_is_predicted_for_now(engine, make_vehicle, now):
    v = make_vehicle(last_detail_at=now - timedelta(days=10))
    need = next(n for n in engine.generate_priority_queue([v], now) if n.service_type == ServiceType.DETAIL_CLEAN)
    assert need.is_overdue
    assert need.predicted_need_date == now


def test_charge_gets_energy_bonus_when_cheapest(engine, make_vehicle, now):
    v = make_vehicle(current_soc_percent=25.0, current_range_miles=80.0)
    midday = engine.generate_priority_queue([v], now)[0]
    late = engine.generate_priority_queue([v], now.replace(hour=23))[0]
    assert midday.service_type == late.service_type == ServiceType.CHARGE
    assert late.composite_score == pytest.approx(midday.composite_score + 10.0)


@pytest.mark.parametrize("urgency,expected", [(41.0, True), (39.0, False)])
def test_bundle_urgency_rule(engine, make_vehicle, now, urgency, expected):
    primary = _need(now, ServiceType.CHARGE, 90.0, 80.0, 20.0, 30.0, ThresholdUnit.PERCENT)
    tire = _need(now, ServiceType.TIRE_ROTATION, urgency, 30.0, 3000.0, 7500.0, ThresholdUnit.MILES)

    bundles = engine.generate_bundles([make_vehicle()], [primary, tire])

    if expected:
        assert len(bundles) == 1
        assert bundles[0].primary_service == ServiceType.CHARGE
        assert bundles[0].bundled_services == (ServiceType.TIRE_ROTATION,)
    else:
        assert bundles == []


def test_bundle_ratio_rule_overrides_low_urgency(engine, make_vehicle, now):
    primary = _need(now, ServiceType.CHARGE, 90.0, 80.0, 20.0, 30.0, ThresholdUnit.PERCENT)
    tire = _need(now, ServiceType.TIRE_ROTATION, 39.0, 30.0, 6600.0, 7500.0, ThresholdUnit.MILES)
    bundles = engine.generate_bundles([make_vehicle()], [primary, tire])
    assert [b.bundled_services for b in bundles] == [(ServiceType.TIRE_ROTATION,)]


def test_single_need_is_never_bundled(engine, make_vehicle, now):
    primary = _need(now, ServiceType.CHARGE, 90.0, 80.0, 20.0, 30.0, ThresholdUnit.PERCENT)
    assert engine.generate_bundles([make_vehicle()], [primary]) == []


def test_low_soc_scenario(engine, make_vehicle, now):
    """18% SoC against a 30% threshold: overdue, fast charger, at least medium risk."""
    v = make_vehicle(current_soc_percent=18.0, current_range_miles=60.0, avg_daily_miles=40.0)

    charge = _urgency(engine.compute_health_snapshot(v, now), ServiceType.CHARGE)
    assert charge.is_overdue

    for at in (now, now.replace(hour=23)):
        rec = engine.get_charge_recommendation(v, at)
        assert rec.recommended_charger_type == "fast"
        assert rec.risk_level in ("medium", "high")
        assert rec.charge_now
        assert rec.recommended_start_time == at


def test_detail_and_tire_bundle_scenario(engine, make_vehicle, now):
    """Detail at 85% of its interval and tire rotation around 41 urgency fold into one visit."""
    v = make_vehicle(
        last_detail_at=now - timedelta(days=7 * 0.85),
        last_tire_rotation_at=now - timedelta(days=105),
        avg_daily_miles=40.0,
    )
    queue = engine.generate_priority_queue([v], now)
    tire = next(n for n in queue if n.service_type == ServiceType.TIRE_ROTATION)
    assert 40.0 <= tire.urgency_score < 45.0

    bundles = engine.generate_bundles([v], queue)
    assert len(bundles) == 1
    b = bundles[0]
    assert ServiceType.TIRE_ROTATION in (b.primary_service, *b.bundled_services)
    assert {b.primary_service, *b.bundled_services} == {ServiceType.DETAIL_CLEAN, ServiceType.TIRE_ROTATION}
    assert b.time_savings_minutes == VISIT_OVERHEAD_MINUTES * len(b.bundled_services)


def test_charge_recommendation_waits_for_off_peak(engine, make_vehicle, now):
    v = make_vehicle(current_soc_percent=45.0, current_range_miles=150.0, battery_capacity_kwh=80.0)
    rec = engine.get_charge_recommendation(v, now)

    assert not rec.charge_now
    assert rec.risk_level == "low"
    assert rec.recommended_charger_type == "standard"
    assert rec.recommended_start_time == now.replace(hour=22)
    assert rec.energy_needed_kwh == pytest.approx(36.0)
    assert rec.estimated_cost_dollars == pytest.approx(2.16)
    assert rec.savings_vs_now_dollars == pytest.approx(1.08)
    assert rec.charge_duration_minutes == 43


def test_charge_recommendation_inside_off_peak_starts_now(engine, make_vehicle, now):
    at = now.replace(hour=23, minute=30)
    rec = engine.get_charge_recommendation(make_vehicle(current_soc_percent=45.0, current_range_miles=150.0), at)
    assert rec.recommended_start_time == at
    assert rec.savings_vs_now_dollars == 0.0
