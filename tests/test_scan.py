from datetime import timedelta

from service_scheduler.domains.threshold_engine.scan import ScanTracker, run_engine_scan
from service_scheduler.domains.threshold_engine.types import ServiceType


def test_scan_alerts_once_per_threshold_crossing(engine, make_vehicle, now):
    tracker = ScanTracker()
    fleet = [
        make_vehicle("veh-overdue", last_detail_at=now - timedelta(days=9)),
        make_vehicle("veh-low", current_soc_percent=40.0, current_range_miles=120.0),
        make_vehicle("veh-ok"),
    ]
    statuses = ["occupied", "available", "available", "reserved"]

    first = run_engine_scan(engine, fleet, resource_statuses=statuses, tracker=tracker, now=now)

    assert [(a.vehicle_id, a.severity) for a in first.new_alerts] == [("veh-overdue", "critical")]
    assert first.new_alerts[0].message.startswith("OVERDUE")
    assert first.vehicles_monitored == 3
    assert first.depot_utilization_pct == 25
    assert first.current_energy_tier == "shoulder_am"
    assert [r.vehicle_id for r in first.charge_recommendations] == ["veh-low"]
    assert [n.service_type for n in first.pending] == [ServiceType.DETAIL_CLEAN]
    assert first.predicted_today >= 1

    second = run_engine_scan(engine, fleet, resource_statuses=statuses, tracker=tracker, now=now + timedelta(minutes=5))
    assert second.new_alerts == []
    assert len(second.recent_alerts) == 1


def test_scan_alerts_again_after_need_drops_below_alert_level(engine, make_vehicle, now):
    tracker = ScanTracker()
    overdue = make_vehicle("veh-1", last_detail_at=now - timedelta(days=9))
    fresh = make_vehicle("veh-1", last_detail_at=now)

    run_engine_scan(engine, [overdue], resource_statuses=[], tracker=tracker, now=now)
    run_engine_scan(engine, [fresh], resource_statuses=[], tracker=tracker, now=now)
    third = run_engine_scan(engine, [overdue], resource_statuses=[], tracker=tracker, now=now)

    assert len(third.new_alerts) == 1
    assert len(third.recent_alerts) == 2
