from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from service_scheduler.core.deps import get_db
from service_scheduler.main import app


@pytest.fixture
def client(db):
    def _override():
        yield db

    app.dependency_overrides[get_db] = _override
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def seeded_client(client):
    resp = client.post("/admin/seed-demo", params={"vehicles": 8, "members": 2, "seed": 7})
    assert resp.status_code == 200
    return client


def _first_available(client, resource_type="clean_detail") -> dict:
    resp = client.get("/resources", params={"resource_type": resource_type, "status": "available"})
    assert resp.status_code == 200
    return resp.json()[0]


def _accept_body(resource: dict, start: datetime, vehicle_id: str = "veh-api") -> dict:
    return {
        "notification": {
            "notification_id": "notif-api",
            "vehicle_id": vehicle_id,
            "service_type": "detail_clean",
            "urgency_score": 72.0,
            "reason": "Detail due",
        },
        "slot": {
            "start": start.isoformat(),
            "end": (start + timedelta(minutes=75)).isoformat(),
            "resource_id": resource["id"],
            "resource_number": resource["number"],
            "resource_type": resource["resource_type"],
            "is_off_peak": False,
        },
    }


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["push_configured"] is False


def test_seed_demo_populates_reference_data(seeded_client):
    resources = seeded_client.get("/resources").json()
    assert len(resources) == 61
    fast = seeded_client.get("/resources", params={"resource_type": "charge_fast"}).json()
    assert len(fast) == 10
    assert all(r["charger_power_kw"] == 250.0 for r in fast)


def test_engine_endpoints(seeded_client):
    queue = seeded_client.get("/engine/queue", params={"limit": 5}).json()
    assert len(queue) <= 5
    composites = [n["composite_score"] for n in queue]
    assert composites == sorted(composites, reverse=True)

    bundles = seeded_client.get("/engine/bundles")
    assert bundles.status_code == 200

    vehicle_id = queue[0]["vehicle_id"]
    health = seeded_client.get(f"/engine/vehicles/{vehicle_id}/health").json()
    assert health["vehicle_id"] == vehicle_id
    assert health["urgencies"]

    rec = seeded_client.get(f"/engine/vehicles/{vehicle_id}/charge-recommendation").json()
    assert rec["recommended_charger_type"] in ("fast", "standard")
    assert rec["target_soc"] == 90.0


def test_unknown_vehicle_is_404(seeded_client):
    assert seeded_client.get("/engine/vehicles/nope/health").status_code == 404
    assert seeded_client.get("/engine/vehicles/nope/charge-recommendation").status_code == 404


def test_engine_scan_summary(seeded_client):
    body = seeded_client.post("/engine/scan").json()
    assert body["vehicles_monitored"] == 8
    assert body["active_predictions"] >= len(body["pending"])
    assert 0 <= body["depot_utilization_pct"] <= 100
    assert body["current_energy_tier"] in ("off_peak", "shoulder_am", "peak", "shoulder_pm")


def test_member_feed(seeded_client):
    resp = seeded_client.get("/notifications/members/member-1")
    assert resp.status_code == 200
    body = resp.json()
    assert body["member_id"] == "member-1"
    for n in body["notifications"]:
        assert n["severity"] in ("routine", "warning", "critical")
        assert len(n["alternative_slots"]) <= 2
        assert n["auto_booked_service_id"] is None


def test_feed_reads_and_repeated_dispatch_hold_no_extra_resources(seeded_client):
    def reserved() -> int:
        return len(seeded_client.get("/resources", params={"status": "reserved"}).json())

    before = reserved()
    for _ in range(3):
        assert seeded_client.get("/notifications/members/member-2").status_code == 200
    assert reserved() == before

    first = seeded_client.post("/notifications/members/member-2/dispatch")
    assert first.status_code == 200
    after_first = reserved()

    second = seeded_client.post("/notifications/members/member-2/dispatch").json()
    assert all(n["auto_booked_service_id"] is None for n in second["notifications"])
    assert reserved() == after_first


def test_update_preferences(client):
    resp = client.put(
        "/notifications/members/member-9/preferences",
        json={"auto_accept_cleans": True, "preferred_days": ["Monday"], "preferred_charge_times": [{"start": "07:00", "end": "09:00"}]},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["auto_accept_cleans"] is True
    assert body["preferred_days"] == ["monday"]
    assert body["notification_lead_time_hours"] == 24.0


def test_accept_conflict_and_cancel_flow(seeded_client):
    stall = _first_available(seeded_client)
    start = datetime.now(timezone.utc) + timedelta(hours=6)

    ok = seeded_client.post("/bookings/accept", json=_accept_body(stall, start))
    assert ok.status_code == 200
    service_id = ok.json()["service_id"]

    clash = seeded_client.post("/bookings/accept", json=_accept_body(stall, start, vehicle_id="veh-other"))
    assert clash.status_code == 409
    assert clash.json()["error_code"] == "STALE_RESOURCE"

    cancelled = seeded_client.post(f"/bookings/{service_id}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["success"] is True

    bookings = seeded_client.get("/bookings/vehicles/veh-api").json()
    assert [b["status"] for b in bookings] == ["cancelled"]


def test_cancel_window_cannot_be_lowered_by_the_client(seeded_client):
    stall = _first_available(seeded_client)
    soon = datetime.now(timezone.utc) + timedelta(minutes=30)
    service_id = seeded_client.post("/bookings/accept", json=_accept_body(stall, soon)).json()["service_id"]

    refused = seeded_client.post(f"/bookings/{service_id}/cancel", json={"window_hours": 0})

    assert refused.status_code == 409
    assert refused.json()["error_code"] == "CANCELLATION_WINDOW"


def test_reschedule_and_complete(seeded_client):
    first = _first_available(seeded_client)
    start = datetime.now(timezone.utc) + timedelta(hours=6)
    service_id = seeded_client.post("/bookings/accept", json=_accept_body(first, start)).json()["service_id"]

    second = _first_available(seeded_client)
    assert second["id"] != first["id"]
    new_start = start + timedelta(days=1)
    moved = seeded_client.post(
        f"/bookings/{service_id}/reschedule",
        json={"new_slot": _accept_body(second, new_start)["slot"]},
    )
    assert moved.status_code == 200

    done = seeded_client.post(f"/bookings/{service_id}/complete")
    assert done.status_code == 200
    again = seeded_client.post(f"/bookings/{service_id}/complete")
    assert again.status_code == 409


def test_unknown_booking_is_404(seeded_client):
    resp = seeded_client.post("/bookings/missing/complete")
    assert resp.status_code == 404
    assert resp.json()["error_code"] == "NOT_FOUND"


def test_decline(seeded_client):
    body = _accept_body(_first_available(seeded_client), datetime.now(timezone.utc))
    resp = seeded_client.post("/bookings/decline", json={"notification": body["notification"], "reason": "Busy"})
    assert resp.status_code == 200
    assert seeded_client.get("/bookings/vehicles/veh-api", params={"status": "declined"}).json()[0]["trigger_reason"] == "Busy"
