from datetime import date, datetime, time

import pytest
from httpx import AsyncClient

from app.core.config import settings
from app.models.appointment import AppointmentStatus

MANUAL = {"client_name": "Ana", "date": "2024-06-10", "time": "09:00"}


class TestAuthentication:
    async def test_login(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/auth/login",
            json={"password": settings.OPERATOR_PASSWORD.get_secret_value()},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

        response = await client.get(
            "/api/v1/appointments/stats",
            headers={"Authorization": f"Bearer {data['access_token']}"},
        )
        assert response.status_code == 200

    async def test_wrong_password(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/login", json={"password": "nope"})

        assert response.status_code == 401

    async def test_operator_routes_need_a_token(self, client: AsyncClient):
        response = await client.get("/api/v1/appointments/")

        assert response.status_code in (401, 403)

    async def test_invalid_token(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/shop/config", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401


class TestAppointmentManagement:
    async def test_manual_booking_is_accepted(self, client: AsyncClient, operator_headers):
        response = await client.post(
            "/api/v1/appointments/",
            json={**MANUAL, "admin_note": "phoned in"},
            headers=operator_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "accepted"
        assert data["booking_source"] == "operator"
        assert data["admin_note"] == "phoned in"

    async def test_manual_booking_as_pending(self, client: AsyncClient, operator_headers):
        response = await client.post(
            "/api/v1/appointments/",
            params={"accepted": "false"},
            json=MANUAL,
            headers=operator_headers,
        )

        assert response.json()["status"] == "pending"

    async def test_manual_booking_on_a_taken_slot(self, client: AsyncClient, operator_headers):
        await client.post("/api/v1/appointments/", json=MANUAL, headers=operator_headers)

        response = await client.post(
            "/api/v1/appointments/",
            json={**MANUAL, "client_name": "Bruno"},
            headers=operator_headers,
        )

        assert response.status_code == 409
        assert response.json()["error"] == "slot_unavailable"

    async def test_accept_and_reject(
        self, client: AsyncClient, operator_headers, booking_service
    ):
        ana = await booking_service.create_booking("Ana", date(2024, 6, 10), time(9, 0))
        bruno = await booking_service.create_booking("Bruno", date(2024, 6, 10), time(9, 40))

        accepted = await client.post(
            f"/api/v1/appointments/{ana.uuid}/accept", headers=operator_headers
        )
        rejected = await client.post(
            f"/api/v1/appointments/{bruno.uuid}/reject",
            json={"admin_note": "day off"},
            headers=operator_headers,
        )

        assert accepted.json()["status"] == "accepted"
        assert rejected.json()["status"] == "cancelled"
        assert rejected.json()["admin_note"] == "day off"

    async def test_reject_without_a_note(
        self, client: AsyncClient, operator_headers, booking_service
    ):
        ana = await booking_service.create_booking("Ana", date(2024, 6, 10), time(9, 0))

        response = await client.post(
            f"/api/v1/appointments/{ana.uuid}/reject", headers=operator_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    async def test_accepting_twice_is_invalid(
        self, client: AsyncClient, operator_headers, booking_service
    ):
        ana = await booking_service.create_booking("Ana", date(2024, 6, 10), time(9, 0))
        await client.post(f"/api/v1/appointments/{ana.uuid}/accept", headers=operator_headers)

        response = await client.post(
            f"/api/v1/appointments/{ana.uuid}/accept", headers=operator_headers
        )

        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"

    async def test_operator_reschedule(
        self, client: AsyncClient, operator_headers, booking_service
    ):
        ana = await booking_service.manual_book("Ana", date(2024, 6, 10), time(9, 0))

        response = await client.post(
            f"/api/v1/appointments/{ana.uuid}/reschedule",
            json={"date": "2024-06-12", "time": "15:00", "admin_note": "barber late"},
            headers=operator_headers,
        )

        data = response.json()
        assert data["status"] == "waiting_approval"
        assert data["date"] == "2024-06-12"
        assert data["time"] == "15:00"

    async def test_complete(self, client: AsyncClient, operator_headers, booking_service, clock):
        ana = await booking_service.manual_book("Ana", date(2024, 6, 10), time(9, 0))

        too_early = await client.post(
            f"/api/v1/appointments/{ana.uuid}/complete", headers=operator_headers
        )
        clock.now = datetime(2024, 6, 10, 10, 0)
        done = await client.post(
            f"/api/v1/appointments/{ana.uuid}/complete", headers=operator_headers
        )

        assert too_early.status_code == 409
        assert done.json()["status"] == "completed"

    async def test_get_appointment(self, client: AsyncClient, operator_headers, booking_service):
        ana = await booking_service.manual_book("Ana", date(2024, 6, 10), time(9, 0))

        response = await client.get(f"/api/v1/appointments/{ana.uuid}", headers=operator_headers)

        assert response.json()["client_name"] == "Ana"


class TestDashboard:
    @pytest.fixture
    async def history(self, make_appointment):
        await make_appointment(client_name="Ana", day=date(2024, 6, 1), at=time(9, 0), status=AppointmentStatus.ACCEPTED)
        await make_appointment(client_name="Bruno", day=date(2024, 6, 1), at=time(10, 20), status=AppointmentStatus.PENDING)
        await make_appointment(client_name="Caio", day=date(2024, 6, 5), at=time(9, 0), status=AppointmentStatus.WAITING_APPROVAL)
        await make_appointment(client_name="Duda", day=date(2024, 5, 28), at=time(9, 0), status=AppointmentStatus.COMPLETED)

    async def test_tabs(self, client: AsyncClient, operator_headers, history):
        async def tab(name):
            response = await client.get(
                "/api/v1/appointments/", params={"tab": name}, headers=operator_headers
            )
            assert response.status_code == 200
            return [a["client_name"] for a in response.json()["appointments"]]

        assert await tab("pending") == ["Caio", "Bruno"]
        assert await tab("today") == ["Bruno", "Ana"]
        assert await tab("upcoming") == ["Bruno", "Ana"]
        assert await tab("all") == ["Caio", "Bruno", "Ana", "Duda"]

    async def test_unknown_tab(self, client: AsyncClient, operator_headers):
        response = await client.get(
            "/api/v1/appointments/", params={"tab": "archive"}, headers=operator_headers
        )

        assert response.status_code == 422

    async def test_next_appointment(self, client: AsyncClient, operator_headers, history):
        response = await client.get("/api/v1/appointments/next", headers=operator_headers)

        assert response.json()["client_name"] == "Ana"

    async def test_no_next_appointment(self, client: AsyncClient, operator_headers):
        response = await client.get("/api/v1/appointments/next", headers=operator_headers)

        assert response.status_code == 200
        assert response.json() is None

    async def test_stats(self, client: AsyncClient, operator_headers, history):
        response = await client.get("/api/v1/appointments/stats", headers=operator_headers)

        data = response.json()
        assert data["pending_count"] == 1
        assert data["today_count"] == 2
        assert data["by_status"]["completed"] == 1

    async def test_client_history(self, client: AsyncClient, operator_headers, history):
        response = await client.get(
            "/api/v1/appointments/clients/Duda", headers=operator_headers
        )

        data = response.json()
        assert data["eligibility"]["can_book"] is False
        assert data["eligibility"]["reason"] == "cooldown_active"
        assert data["eligibility"]["cooldown_ends_on"] == "2024-06-07"
        assert [a["status"] for a in data["appointments"]] == ["completed"]


class TestShopConfiguration:
    async def test_read_defaults(self, client: AsyncClient, operator_headers):
        response = await client.get("/api/v1/shop/config", headers=operator_headers)

        data = response.json()
        assert data["open_time"] == "09:00"
        assert data["close_time"] == "20:00"
        assert data["work_days"] == [1, 2, 3, 4, 5, 6]
        assert data["lunch_start"] is None

    async def test_update_hours(self, client: AsyncClient, operator_headers):
        response = await client.patch(
            "/api/v1/shop/config",
            json={"close_time": "12:00", "interval_minutes": 60, "lunch_start": "10:00", "lunch_end": "11:00"},
            headers=operator_headers,
        )
        assert response.status_code == 200
        assert response.json()["lunch_start"] == "10:00"

        slots = await client.get("/api/v1/public/slots", params={"date": "2024-06-10"})
        assert slots.json()["slots"] == ["09:00", "11:00"]

    async def test_invalid_hours(self, client: AsyncClient, operator_headers):
        response = await client.patch(
            "/api/v1/shop/config",
            json={"open_time": "21:00"},
            headers=operator_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    async def test_toggle(self, client: AsyncClient, operator_headers):
        response = await client.post("/api/v1/shop/toggle", headers=operator_headers)
        assert response.json()["is_open"] is False

        public = await client.get("/api/v1/public/shop")
        assert public.json()["is_open"] is False

    async def test_release_and_unrelease(self, client: AsyncClient, operator_headers):
        for _ in range(2):
            response = await client.post(
                "/api/v1/shop/released-clients",
                json={"client_name": "Ana"},
                headers=operator_headers,
            )
            assert response.json()["released_clients"] == ["Ana"]

        response = await client.delete(
            "/api/v1/shop/released-clients/Ana", headers=operator_headers
        )
        assert response.json()["released_clients"] == []

    async def test_block_and_unblock(self, client: AsyncClient, operator_headers):
        response = await client.post(
            "/api/v1/shop/blocked-dates", json={"date": "2024-06-10"}, headers=operator_headers
        )
        assert response.json()["blocked_dates"] == ["2024-06-10"]

        slots = await client.get("/api/v1/public/slots", params={"date": "2024-06-10"})
        assert slots.json()["slots"] == []

        response = await client.delete(
            "/api/v1/shop/blocked-dates/2024-06-10", headers=operator_headers
        )
        assert response.json()["blocked_dates"] == []
