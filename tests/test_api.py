"""
Integration tests for the REST API endpoints.

Uses a file-backed SQLite database (aiosqlite) through the real SQL
repositories.  The session factory and the external emergency
collaborators are overridden so the routes never reach PostgreSQL or
a third-party dispatch API.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from saferide.api.auth import create_access_token
from tests.conftest import FakeDispatcher, RecordingNotifier

RIDER = "rider-1"
DRIVER = "driver-1"


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


RIDE_BODY = {
    "pickup_address": "Student Union, 101 College Ave",
    "pickup_latitude": 33.7756,
    "pickup_longitude": -84.3963,
    "destination_address": "Midtown Station, 41 10th St",
    "destination_latitude": 33.7810,
    "destination_longitude": -84.3860,
    "ride_type": "volunteer",
}


# ── Fixture ───────────────────────────────────────────────────────────


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest_asyncio.fixture
async def client(session_factory, dispatcher):
    """AsyncClient backed by SQLite and fake emergency collaborators."""
    with (
        patch(
            "saferide.workers.escalation.start_escalation_loop",
            new_callable=AsyncMock,
        ),
        patch(
            "saferide.workers.escalation.stop_escalation_loop",
            new_callable=AsyncMock,
        ),
    ):
        from saferide.api.app import create_app
        from saferide.api.dependencies import (
            get_contact_notifier,
            get_emergency_dispatcher,
            get_session_factory,
        )
        from saferide.api.middleware import limiter
        from saferide.services.notifications import InMemoryNotificationBus

        app = create_app(notification_bus=InMemoryNotificationBus())
        app.dependency_overrides[get_session_factory] = lambda: session_factory
        app.dependency_overrides[get_emergency_dispatcher] = lambda: dispatcher
        app.dependency_overrides[get_contact_notifier] = lambda: RecordingNotifier()

        was_enabled = limiter.enabled
        limiter.enabled = False
        try:
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                yield ac
        finally:
            limiter.enabled = was_enabled


async def _create_ride(client: AsyncClient, **overrides) -> dict:
    resp = await client.post(
        "/api/v1/rides", json={**RIDE_BODY, **overrides}, headers=auth(RIDER)
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _claimed_ride(client: AsyncClient, **overrides) -> dict:
    ride = await _create_ride(client, **overrides)
    resp = await client.post(
        "/api/v1/dispatch/claim",
        json={"ride_id": ride["id"], "driver_id": DRIVER},
        headers=auth(DRIVER),
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


# ── Health & auth ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_missing_token_is_401(client: AsyncClient):
    resp = await client.post("/api/v1/rides", json=RIDE_BODY)
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_invalid_token_is_401(client: AsyncClient):
    resp = await client.get(
        "/api/v1/rides/mine", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired token"


# ── Rides ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_ride_returns_201(client: AsyncClient):
    data = await _create_ride(client)
    assert data["status"] == "requested"
    assert data["rider_id"] == RIDER
    assert data["driver_id"] is None
    assert data["fare_amount"] is None
    assert data["payment_status"] is None


@pytest.mark.asyncio
async def test_paid_ride_is_priced(client: AsyncClient):
    data = await _create_ride(client, ride_type="weekday")
    assert data["fare_amount"] > 5.0
    assert data["payment_status"] == "pending"


@pytest.mark.asyncio
async def test_invalid_body_is_400_with_fields(client: AsyncClient):
    resp = await client.post(
        "/api/v1/rides",
        json={**RIDE_BODY, "pickup_latitude": 123.0, "ride_type": "limo"},
        headers=auth(RIDER),
    )
    assert resp.status_code == 400
    assert set(resp.json()["fields"]) == {"pickup_latitude", "ride_type"}


@pytest.mark.asyncio
async def test_get_ride(client: AsyncClient):
    ride = await _create_ride(client)
    resp = await client.get(f"/api/v1/rides/{ride['id']}", headers=auth(RIDER))
    assert resp.status_code == 200
    assert resp.json()["id"] == ride["id"]


@pytest.mark.asyncio
async def test_get_ride_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/rides/no-such-ride", headers=auth(RIDER))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_my_rides_newest_first(client: AsyncClient):
    first = await _create_ride(client)
    second = await _create_ride(client)
    resp = await client.get("/api/v1/rides/mine", headers=auth(RIDER))
    assert [r["id"] for r in resp.json()] == [second["id"], first["id"]]


# ── Dispatch ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_available_then_claim(client: AsyncClient):
    ride = await _create_ride(client)
    resp = await client.get("/api/v1/rides/available", headers=auth(DRIVER))
    assert [r["id"] for r in resp.json()] == [ride["id"]]

    resp = await client.post(
        "/api/v1/dispatch/claim",
        json={"ride_id": ride["id"], "driver_id": DRIVER},
        headers=auth(DRIVER),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "accepted"
    assert resp.json()["driver_id"] == DRIVER

    resp = await client.get("/api/v1/rides/available", headers=auth(DRIVER))
    assert resp.json() == []


@pytest.mark.asyncio
async def test_second_claim_is_409_with_reason(client: AsyncClient):
    ride = await _claimed_ride(client)
    resp = await client.post(
        "/api/v1/dispatch/claim",
        json={"ride_id": ride["id"], "driver_id": "driver-2"},
        headers=auth("driver-2"),
    )
    assert resp.status_code == 409
    assert resp.json()["reason"] == "already_claimed"


@pytest.mark.asyncio
async def test_claim_missing_ride_is_409(client: AsyncClient):
    resp = await client.post(
        "/api/v1/dispatch/claim",
        json={"ride_id": "no-such-ride", "driver_id": DRIVER},
        headers=auth(DRIVER),
    )
    assert resp.status_code == 409
    assert resp.json()["reason"] == "not_found"


@pytest.mark.asyncio
async def test_claim_for_someone_else_is_403(client: AsyncClient):
    ride = await _create_ride(client)
    resp = await client.post(
        "/api/v1/dispatch/claim",
        json={"ride_id": ride["id"], "driver_id": "driver-2"},
        headers=auth(DRIVER),
    )
    assert resp.status_code == 403


# ── Lifecycle ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_start_and_complete(client: AsyncClient):
    ride = await _claimed_ride(client)

    resp = await client.post(f"/api/v1/rides/{ride['id']}/start", headers=auth(DRIVER))
    assert resp.status_code == 200
    assert resp.json()["status"] == "in_progress"
    assert resp.json()["started_at"] is not None

    resp = await client.post(f"/api/v1/rides/{ride['id']}/complete", headers=auth(DRIVER))
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"


@pytest.mark.asyncio
async def test_rider_cannot_start(client: AsyncClient):
    ride = await _claimed_ride(client)
    resp = await client.post(f"/api/v1/rides/{ride['id']}/start", headers=auth(RIDER))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_cancel_requested_ride(client: AsyncClient):
    ride = await _create_ride(client)
    resp = await client.post(f"/api/v1/rides/{ride['id']}/cancel", headers=auth(RIDER))
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"


@pytest.mark.asyncio
async def test_cancel_twice_is_409(client: AsyncClient):
    ride = await _create_ride(client)
    await client.post(f"/api/v1/rides/{ride['id']}/cancel", headers=auth(RIDER))
    resp = await client.post(f"/api/v1/rides/{ride['id']}/cancel", headers=auth(RIDER))
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_completion_counts_towards_driver_totals(client: AsyncClient):
    resp = await client.post("/api/v1/drivers", json={}, headers=auth(DRIVER))
    assert resp.status_code == 201
    ride = await _claimed_ride(client, ride_type="drive_back")
    await client.post(f"/api/v1/rides/{ride['id']}/start", headers=auth(DRIVER))
    await client.post(f"/api/v1/rides/{ride['id']}/complete", headers=auth(DRIVER))

    resp = await client.get("/api/v1/drivers/me", headers=auth(DRIVER))
    assert resp.json()["total_rides"] == 1
    assert resp.json()["total_earnings"] == pytest.approx(ride["fare_amount"])


# ── Payment & locations ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_record_payment(client: AsyncClient):
    ride = await _create_ride(client, ride_type="weekday")
    resp = await client.post(
        f"/api/v1/rides/{ride['id']}/payment",
        json={"status": "paid"},
        headers=auth(RIDER),
    )
    assert resp.status_code == 200
    assert resp.json()["payment_status"] == "paid"

    resp = await client.post(
        f"/api/v1/rides/{ride['id']}/payment",
        json={"status": "failed"},
        headers=auth(RIDER),
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_volunteer_payment_is_400(client: AsyncClient):
    ride = await _create_ride(client)
    resp = await client.post(
        f"/api/v1/rides/{ride['id']}/payment",
        json={"status": "paid"},
        headers=auth(RIDER),
    )
    assert resp.status_code == 400
    assert resp.json()["fields"] == ["payment_status"]


@pytest.mark.asyncio
async def test_location_trail(client: AsyncClient):
    ride = await _claimed_ride(client)
    await client.post(f"/api/v1/rides/{ride['id']}/start", headers=auth(DRIVER))

    for lat in (33.776, 33.778):
        resp = await client.post(
            f"/api/v1/rides/{ride['id']}/locations",
            json={"latitude": lat, "longitude": -84.39},
            headers=auth(DRIVER),
        )
        assert resp.status_code == 201

    resp = await client.get(f"/api/v1/rides/{ride['id']}/locations", headers=auth(RIDER))
    assert resp.status_code == 200
    assert [p["latitude"] for p in resp.json()] == [33.776, 33.778]


@pytest.mark.asyncio
async def test_location_before_start_is_409(client: AsyncClient):
    ride = await _claimed_ride(client)
    resp = await client.post(
        f"/api/v1/rides/{ride['id']}/locations",
        json={"latitude": 33.776, "longitude": -84.39},
        headers=auth(DRIVER),
    )
    assert resp.status_code == 409


# ── Emergency ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_sos_returns_202_and_escalates(client: AsyncClient, dispatcher):
    await client.post(
        "/api/v1/contacts",
        json={"name": "Priya", "phone": "+1-404-555-0101", "relationship": "sister"},
        headers=auth(RIDER),
    )
    ride = await _claimed_ride(client)
    await client.post(f"/api/v1/rides/{ride['id']}/start", headers=auth(DRIVER))

    resp = await client.post(
        "/api/v1/emergency/sos",
        json={"ride_id": ride["id"], "latitude": 33.77, "longitude": -84.39},
        headers=auth(RIDER),
    )
    assert resp.status_code == 202
    data = resp.json()
    assert data["dispatched"] is True
    assert data["ride"]["status"] == "emergency"
    assert data["alert"]["status"] == "dispatched"
    assert [c["name"] for c in data["contacts_notified"]] == ["Priya"]
    assert len(dispatcher.calls) == 1


@pytest.mark.asyncio
async def test_sos_half_a_coordinate_is_400(client: AsyncClient):
    resp = await client.post(
        "/api/v1/emergency/sos", json={"latitude": 33.77}, headers=auth(RIDER)
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_failed_dispatch_shows_in_pending_alerts(client: AsyncClient, dispatcher):
    dispatcher.failures = 1
    resp = await client.post("/api/v1/emergency/sos", json={}, headers=auth(RIDER))
    assert resp.status_code == 202
    assert resp.json()["dispatched"] is False

    resp = await client.get("/api/v1/admin/pending-alerts")
    assert resp.status_code == 200
    [alert] = resp.json()
    assert alert["status"] == "pending"
    assert alert["attempts"] == 1
    assert "503" in alert["last_error"]


# ── Contacts ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_contacts_crud(client: AsyncClient):
    resp = await client.post(
        "/api/v1/contacts",
        json={"name": "Omar", "phone": "+1-404-555-0102", "relationship": "father"},
        headers=auth(RIDER),
    )
    assert resp.status_code == 201
    contact = resp.json()
    assert contact["priority"] == 1

    resp = await client.patch(
        f"/api/v1/contacts/{contact['id']}",
        json={"priority": 2},
        headers=auth(RIDER),
    )
    assert resp.status_code == 200
    assert resp.json()["priority"] == 2
    assert resp.json()["name"] == "Omar"

    resp = await client.get("/api/v1/contacts", headers=auth("rider-2"))
    assert resp.json() == []
    resp = await client.delete(f"/api/v1/contacts/{contact['id']}", headers=auth("rider-2"))
    assert resp.status_code == 403

    resp = await client.delete(f"/api/v1/contacts/{contact['id']}", headers=auth(RIDER))
    assert resp.status_code == 204
    resp = await client.get("/api/v1/contacts", headers=auth(RIDER))
    assert resp.json() == []


# ── Drivers ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_driver_registration_and_availability(client: AsyncClient):
    resp = await client.get("/api/v1/drivers/me", headers=auth(DRIVER))
    assert resp.status_code == 404

    resp = await client.post(
        "/api/v1/drivers",
        json={"vehicle_make": "Honda", "license_plate": "SRD1002"},
        headers=auth(DRIVER),
    )
    assert resp.status_code == 201
    assert resp.json()["verification_status"] == "pending"

    resp = await client.post("/api/v1/drivers", json={}, headers=auth(DRIVER))
    assert resp.status_code == 409

    resp = await client.patch(
        "/api/v1/drivers/me/availability",
        json={"is_available": True},
        headers=auth(DRIVER),
    )
    assert resp.status_code == 200
    assert resp.json()["is_available"] is True
    assert resp.json()["availability_weekday"] is False
