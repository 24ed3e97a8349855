#!/usr/bin/env python3
"""
API Testing for Room Inventory API
Exercises the FastAPI routes end to end, including the error mapping.
"""

import pytest
from fastapi.testclient import TestClient
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

from main import app, get_reservation_service, get_inventory_service
from infrastructure import config
from domain.exceptions import ConcurrentModification, InventoryInUse


BASE_DATE = date.today() + timedelta(days=60)


def day(offset: int) -> str:
    return (BASE_DATE + timedelta(days=offset)).isoformat()


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def client():
    """FastAPI test client"""
    return TestClient(app)


@pytest.fixture
def auth_headers(client):
    """Get authentication headers with valid token"""
    response = client.post(
        "/token", data={"username": config.ADMIN_USERNAME, "password": config.ADMIN_PASSWORD}
    )
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def room_type(client, auth_headers):
    """A fresh two-unit room type; the app's repositories are shared between tests"""
    payload = {
        "room_type_id": f"DLX-{uuid4().hex[:8]}",
        "name": "Deluxe",
        "qty": 2,
        "price_per_night": "500000",
        "max_people": 2
    }
    response = client.post("/api/room-types", json=payload, headers=auth_headers)
    assert response.status_code == 201
    return response.json()


def _book(client, auth_headers, room_type_id, start, end, **extra):
    payload = {"room_type_id": room_type_id, "check_in": day(start), "check_out": day(end)}
    payload.update(extra)
    return client.post("/api/reservations", json=payload, headers=auth_headers)


# ============================================================================
# HEALTH & AUTH
# ============================================================================

class TestHealthAndAuth:
    """Test public endpoints and authentication"""

    @pytest.mark.api
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.api
    def test_enum_reference(self, client):
        response = client.get("/api/enums/room-change-reason")
        assert response.status_code == 200
        assert "GUEST_PREFERENCE" in response.json()["values"]

    @pytest.mark.api
    def test_login_failure_wrong_password(self, client):
        response = client.post("/token", data={"username": config.ADMIN_USERNAME, "password": "wrong"})
        assert response.status_code == 401

    @pytest.mark.api
    def test_protected_endpoint_without_token(self, client):
        response = client.get("/api/room-types")
        assert response.status_code == 401

    @pytest.mark.api
    def test_protected_endpoint_with_invalid_token(self, client):
        response = client.get("/api/room-types", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    @pytest.mark.api
    def test_users_me(self, client, auth_headers):
        response = client.get("/users/me", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["username"] == config.ADMIN_USERNAME


# ============================================================================
# ROOM TYPES
# ============================================================================

class TestRoomTypeAPI:
    """Test room type endpoints"""

    @pytest.mark.api
    def test_create_get_and_units(self, client, auth_headers, room_type):
        room_type_id = room_type["room_type_id"]
        assert room_type["qty"] == 2

        response = client.get(f"/api/room-types/{room_type_id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["name"] == "Deluxe"

        units = client.get(f"/api/room-types/{room_type_id}/units", headers=auth_headers).json()
        assert [u["key"] for u in units] == [f"{room_type_id}#0", f"{room_type_id}#1"]

        listed = client.get("/api/room-types", headers=auth_headers).json()
        assert room_type_id in [rt["room_type_id"] for rt in listed]

    @pytest.mark.api
    def test_create_invalid_qty(self, client, auth_headers):
        payload = {"name": "Too big", "qty": 100, "price_per_night": "100"}
        response = client.post("/api/room-types", json=payload, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.api
    def test_get_unknown(self, client, auth_headers):
        response = client.get("/api/room-types/NOPE", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.api
    def test_shrink_in_use(self, client, auth_headers, room_type):
        room_type_id = room_type["room_type_id"]
        booked = _book(client, auth_headers, room_type_id, 1, 3, explicit_unit_index=1).json()

        response = client.put(f"/api/room-types/{room_type_id}", json={"qty": 1}, headers=auth_headers)
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "inventory_in_use"
        assert booked["reservation_id"] in body["details"]["reservation_ids"]

        response = client.put(f"/api/room-types/{room_type_id}", json={"qty": 3}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["qty"] == 3

    @pytest.mark.api
    def test_delete(self, client, auth_headers, room_type):
        room_type_id = room_type["room_type_id"]
        booked = _book(client, auth_headers, room_type_id, 1, 2).json()

        response = client.delete(f"/api/room-types/{room_type_id}", headers=auth_headers)
        assert response.status_code == 409

        client.post(f"/api/reservations/{booked['reservation_id']}/cancel", json={}, headers=auth_headers)
        response = client.delete(f"/api/room-types/{room_type_id}", headers=auth_headers)
        assert response.status_code == 204
        assert client.get(f"/api/room-types/{room_type_id}", headers=auth_headers).status_code == 404


# ============================================================================
# AVAILABILITY
# ============================================================================

class TestAvailabilityAPI:
    """Test availability endpoints"""

    @pytest.mark.api
    def test_check_availability(self, client, auth_headers, room_type):
        room_type_id = room_type["room_type_id"]
        _book(client, auth_headers, room_type_id, 1, 3)

        payload = {"room_type_id": room_type_id, "check_in": day(2), "check_out": day(4)}
        response = client.post("/api/availability/check", json=payload, headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["free_units"] == 1
        assert body["total_units"] == 2
        assert body["available"] is True

    @pytest.mark.api
    def test_check_availability_invalid_range(self, client, auth_headers, room_type):
        payload = {"room_type_id": room_type["room_type_id"], "check_in": day(4), "check_out": day(2)}
        response = client.post("/api/availability/check", json=payload, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.api
    def test_daily_availability(self, client, auth_headers, room_type):
        room_type_id = room_type["room_type_id"]
        _book(client, auth_headers, room_type_id, 1, 2)

        response = client.get(
            f"/api/availability/{room_type_id}/daily",
            params={"check_in": day(0), "check_out": day(3)},
            headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["free_units"] == {day(0): 2, day(1): 1, day(2): 2}

    @pytest.mark.api
    def test_search(self, client, auth_headers, room_type):
        room_type_id = room_type["room_type_id"]
        _book(client, auth_headers, room_type_id, 1, 3)
        _book(client, auth_headers, room_type_id, 1, 3)

        params = {"check_in": day(1), "check_out": day(2)}
        results = client.get("/api/availability/search", params=params, headers=auth_headers).json()
        assert room_type_id not in [r["room_type_id"] for r in results]

        params = {"check_in": day(5), "check_out": day(6), "units_requested": 2}
        results = client.get("/api/availability/search", params=params, headers=auth_headers).json()
        assert room_type_id in [r["room_type_id"] for r in results]


# ============================================================================
# RESERVATIONS
# ============================================================================

class TestReservationAPI:
    """Test reservation endpoints"""

    @pytest.mark.api
    def test_create_and_get(self, client, auth_headers, room_type):
        room_type_id = room_type["room_type_id"]
        response = _book(client, auth_headers, room_type_id, 1, 3)
        assert response.status_code == 201
        body = response.json()
        assert body["assigned_unit"] == f"{room_type_id}#0"
        assert body["status"] == "CONFIRMED"
        assert body["nights"] == 2
        assert Decimal(str(body["total_amount"])) == Decimal("1000000")
        assert body["created_by"] == config.ADMIN_USERNAME

        fetched = client.get(f"/api/reservations/{body['reservation_id']}", headers=auth_headers)
        assert fetched.status_code == 200

        listed = client.get("/api/reservations", params={"room_type_id": room_type_id}, headers=auth_headers)
        assert [r["reservation_id"] for r in listed.json()] == [body["reservation_id"]]

    @pytest.mark.api
    def test_unit_conflict_is_confirmable(self, client, auth_headers, room_type):
        room_type_id = room_type["room_type_id"]
        first = _book(client, auth_headers, room_type_id, 1, 3, explicit_unit_index=0).json()

        response = _book(client, auth_headers, room_type_id, 2, 4, explicit_unit_index=0)
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "unit_conflict"
        assert body["recoverable"] is True
        assert body["details"]["reservation_ids"] == [first["reservation_id"]]

        forced = _book(client, auth_headers, room_type_id, 2, 4, explicit_unit_index=0, force=True)
        assert forced.status_code == 201
        assert forced.json()["forced"] is True
        assert forced.json()["overridden_reservation_ids"] == [first["reservation_id"]]

    @pytest.mark.api
    def test_capacity_exceeded(self, client, auth_headers, room_type):
        room_type_id = room_type["room_type_id"]
        _book(client, auth_headers, room_type_id, 1, 3)
        _book(client, auth_headers, room_type_id, 1, 3)

        response = _book(client, auth_headers, room_type_id, 2, 4)
        assert response.status_code == 409
        assert response.json()["error"] == "capacity_exceeded"

    @pytest.mark.api
    def test_unknown_room_type(self, client, auth_headers):
        response = _book(client, auth_headers, "NOPE", 1, 2)
        assert response.status_code == 404

    @pytest.mark.api
    def test_modify_and_cancel(self, client, auth_headers, room_type):
        room_type_id = room_type["room_type_id"]
        booked = _book(client, auth_headers, room_type_id, 1, 3).json()
        reservation_id = booked["reservation_id"]

        response = client.put(
            f"/api/reservations/{reservation_id}", json={"check_out": day(5)}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["nights"] == 4

        response = client.post(
            f"/api/reservations/{reservation_id}/cancel", json={"reason": "Flight cancelled"}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

        response = client.post(f"/api/reservations/{reservation_id}/cancel", json={}, headers=auth_headers)
        assert response.status_code == 400

    @pytest.mark.api
    def test_get_not_found(self, client, auth_headers):
        response = client.get(f"/api/reservations/{uuid4()}", headers=auth_headers)
        assert response.status_code == 404


# ============================================================================
# ROOMS & CHECK-IN
# ============================================================================

class TestCheckInAPI:
    """Test room directory and check-in endpoints"""

    @pytest.fixture
    def rooms(self, client, auth_headers, room_type):
        room_type_id = room_type["room_type_id"]
        suffix = uuid4().hex[:6]

        def register(number, **extra):
            payload = {"room_number": f"{number}-{suffix}", "room_type_id": room_type_id}
            payload.update(extra)
            response = client.post("/api/rooms", json=payload, headers=auth_headers)
            assert response.status_code == 201
            return response.json()

        return {
            "first": register("101", unit_index=0),
            "second": register("102", unit_index=1),
            "broken": register("103", status="OUT_OF_SERVICE"),
        }

    @pytest.mark.api
    def test_check_in_flow(self, client, auth_headers, room_type, rooms):
        booked = _book(client, auth_headers, room_type["room_type_id"], 1, 3, explicit_unit_index=1).json()
        reservation_id = booked["reservation_id"]

        eligible = client.get(f"/api/reservations/{reservation_id}/eligible-rooms", headers=auth_headers).json()
        ids = [e["room"]["room_id"] for e in eligible["rooms"]]
        assert ids[0] == rooms["second"]["room_id"]
        assert eligible["rooms"][0]["is_reserved_unit"] is True
        assert rooms["broken"]["room_id"] not in ids

        response = client.post(
            f"/api/reservations/{reservation_id}/check-in",
            json={"physical_room_id": rooms["second"]["room_id"]},
            headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["assignment_type"] == "INITIAL"

        response = client.post(
            f"/api/reservations/{reservation_id}/check-in",
            json={"physical_room_id": rooms["first"]["room_id"]},
            headers=auth_headers
        )
        assert response.status_code == 409
        assert response.json()["error"] == "already_bound"

        response = client.post(
            f"/api/reservations/{reservation_id}/change-room",
            json={"new_physical_room_id": rooms["first"]["room_id"], "reason": "MAINTENANCE"},
            headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["previous_room_id"] == rooms["second"]["room_id"]

        response = client.post(f"/api/reservations/{reservation_id}/check-out", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["close_reason"] == "CHECKOUT"

        history = client.get(f"/api/reservations/{reservation_id}/bindings", headers=auth_headers).json()
        assert [b["close_reason"] for b in history] == ["MAINTENANCE", "CHECKOUT"]

    @pytest.mark.api
    def test_check_in_out_of_service_room(self, client, auth_headers, room_type, rooms):
        booked = _book(client, auth_headers, room_type["room_type_id"], 1, 3).json()
        response = client.post(
            f"/api/reservations/{booked['reservation_id']}/check-in",
            json={"physical_room_id": rooms["broken"]["room_id"]},
            headers=auth_headers
        )
        assert response.status_code == 422
        assert response.json()["error"] == "not_eligible"

    @pytest.mark.api
    def test_check_in_records_arrival_time(self, client, auth_headers, room_type, rooms):
        booked = _book(client, auth_headers, room_type["room_type_id"], 1, 3).json()
        arrival = datetime.combine(BASE_DATE + timedelta(days=1), datetime.min.time()).replace(
            hour=14, minute=30, tzinfo=timezone.utc
        )

        response = client.post(
            f"/api/reservations/{booked['reservation_id']}/check-in",
            json={"physical_room_id": rooms["first"]["room_id"], "checked_in_at": arrival.isoformat()},
            headers=auth_headers
        )

        assert response.status_code == 200
        bound_at = datetime.fromisoformat(response.json()["bound_at"].replace("Z", "+00:00"))
        assert bound_at == arrival

    @pytest.mark.api
    def test_list_rooms(self, client, auth_headers, rooms):
        listed = client.get("/api/rooms", headers=auth_headers).json()
        assert rooms["first"]["room_id"] in [r["room_id"] for r in listed]


# ============================================================================
# ERROR MAPPING WITH MOCKED SERVICES
# ============================================================================

class TestAPIMockErrors:
    """Test API error handling using mocks"""

    def setup_method(self):
        self.mock_res_service = AsyncMock()
        self.mock_inv_service = AsyncMock()
        app.dependency_overrides[get_reservation_service] = lambda: self.mock_res_service
        app.dependency_overrides[get_inventory_service] = lambda: self.mock_inv_service

    def teardown_method(self):
        app.dependency_overrides = {}

    @pytest.mark.api
    def test_concurrent_modification_maps_to_conflict(self, client, auth_headers):
        self.mock_res_service.create_reservation.side_effect = ConcurrentModification("Claim set moved")
        response = _book(client, auth_headers, "DLX", 1, 2)
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "concurrent_modification"
        assert body["detail"] == "Claim set moved"
        assert body["recoverable"] is False

    @pytest.mark.api
    def test_inventory_in_use_maps_to_conflict(self, client, auth_headers):
        self.mock_inv_service.delete_room_type.side_effect = InventoryInUse(
            "Room type has active reservations", {"reservation_ids": ["abc"]}
        )
        response = client.delete("/api/room-types/DLX", headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["details"] == {"reservation_ids": ["abc"]}
