# ============================================================================
# Tests for the scheduling HTTP API
# ============================================================================
"""Integration tests for the FastAPI routes, envelope and staff auth.

The app is built around the in-memory store and Redis double; the lifespan
is not run, so no OpenEMR or Redis connection is made.
"""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from practice_scheduling.core.app_factory import create_app
from tests.conftest import make_appointment

STAFF_HEADERS = {"X-Staff-Token": "staff-secret"}


@pytest.fixture
def appointment_start() -> datetime:
    start = datetime.now(UTC) + timedelta(days=5)
    return start.replace(hour=15, minute=0, second=0, microsecond=0)


@pytest.fixture
def client(settings, container, store, appointment_start) -> TestClient:
    store.add(make_appointment(appointment_start))
    return TestClient(create_app(settings, container))


class TestCancellationRoutes:
    """Tests for /scheduling/cancellations."""

    def test_cancel_returns_envelope(self, client, store) -> None:
        """Should cancel and return the success envelope with the CC reference."""
        response = client.post(
            "/api/v1/scheduling/cancellations",
            json={"patient_id": "pat-1", "appointment_id": "appt-1", "reason": "travel"},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["data"]["reference_number"].startswith("CC")
        assert body["data"]["cancellation_fee"] == 0
        assert body["message"]
        assert store.cancel_calls == [("appt-1", "travel")]

    def test_cancel_unknown_appointment(self, client) -> None:
        """Should return 404 with the error envelope."""
        response = client.post(
            "/api/v1/scheduling/cancellations",
            json={"patient_id": "pat-1", "appointment_id": "nope"},
        )

        body = response.json()
        assert response.status_code == 404
        assert body["success"] is False
        assert body["error"] == "NOT_FOUND"
        assert body["message"]

    def test_cancel_requires_reference(self, client) -> None:
        """Should reject a request without appointment id or confirmation number."""
        response = client.post("/api/v1/scheduling/cancellations", json={"patient_id": "pat-1"})

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_lookup_cancellation_reference(self, client) -> None:
        """Should find a cancellation by its reference and reject unknown ones."""
        cancelled = client.post(
            "/api/v1/scheduling/cancellations",
            json={"patient_id": "pat-1", "appointment_id": "appt-1"},
        ).json()
        reference = cancelled["data"]["reference_number"]

        found = client.get(f"/api/v1/scheduling/cancellations/{reference}")
        missing = client.get("/api/v1/scheduling/cancellations/CC0000000")

        assert found.status_code == 200
        assert found.json()["data"]["reference_number"] == reference
        assert missing.status_code == 404


class TestRescheduleRoute:
    """Tests for the reschedule route."""

    def test_reschedule(self, client, appointment_start) -> None:
        """Should move the appointment and return a CE confirmation."""
        response = client.post(
            "/api/v1/scheduling/appointments/appt-1/reschedule",
            json={"patient_id": "pat-1", "new_start": (appointment_start + timedelta(days=2)).isoformat()},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["data"]["confirmation_number"].startswith("CE")

    def test_naive_new_start_rejected(self, client) -> None:
        """Should require a timezone offset on new_start."""
        response = client.post(
            "/api/v1/scheduling/appointments/appt-1/reschedule",
            json={"patient_id": "pat-1", "new_start": "2030-01-01T10:00:00"},
        )

        assert response.status_code == 422


class TestWaitlistRoutes:
    """Tests for /scheduling/waitlist."""

    def test_join_and_withdraw(self, client) -> None:
        """Should create the entry with 201 and withdraw it."""
        joined = client.post(
            "/api/v1/scheduling/waitlist",
            json={"patient_id": "pat-9", "phone": "+15555550199", "appointment_type": "routine"},
        )
        entry_id = joined.json()["data"]["id"]

        withdrawn = client.delete(f"/api/v1/scheduling/waitlist/{entry_id}")

        assert joined.status_code == 201
        assert withdrawn.status_code == 200
        assert withdrawn.json()["data"]["status"] == "withdrawn"

    def test_withdraw_unknown_entry(self, client) -> None:
        """Should map a missing entry to 404."""
        response = client.delete("/api/v1/scheduling/waitlist/missing")

        assert response.status_code == 404
        assert response.json()["success"] is False


class TestStaffRoutes:
    """Tests for the staff routes and their token."""

    def test_missing_token_is_forbidden(self, client) -> None:
        """Should reject staff calls without X-Staff-Token."""
        response = client.get("/api/v1/scheduling/staff/notifications")

        assert response.status_code == 403
        assert response.json()["error"] == "AUTHORIZATION_ERROR"

    def test_wrong_token_is_forbidden(self, client) -> None:
        """Should reject a mismatched token."""
        response = client.get("/api/v1/scheduling/staff/notifications", headers={"X-Staff-Token": "guess"})

        assert response.status_code == 403

    def test_cancellation_shows_up_for_staff(self, client) -> None:
        """Should list the staff notice created by a cancellation."""
        client.post(
            "/api/v1/scheduling/cancellations",
            json={"patient_id": "pat-1", "appointment_id": "appt-1", "is_emergency": True},
        )

        response = client.get("/api/v1/scheduling/staff/notifications", headers=STAFF_HEADERS)

        notices = response.json()["data"]
        assert response.status_code == 200
        assert len(notices) == 1
        assert notices[0]["priority"] == "critical"

    def test_metrics(self, client) -> None:
        """Should return metrics for a known timeframe."""
        response = client.get("/api/v1/scheduling/staff/metrics", headers=STAFF_HEADERS)

        assert response.status_code == 200
        assert response.json()["data"]["total"] == 0


class TestHealth:
    """Tests for the health endpoints."""

    def test_app_health(self, client) -> None:
        """Should report the environment."""
        assert client.get("/health").json() == {"status": "ok", "environment": "test"}

    def test_scheduling_health(self, client) -> None:
        """Should report Redis reachability."""
        body = client.get("/api/v1/scheduling/health").json()

        assert body["data"]["redis"] is True
        assert body["data"]["openemr_circuit"] is None

    def test_correlation_id_is_echoed(self, client) -> None:
        """Should echo the caller's correlation id and report the response time."""
        response = client.get("/health", headers={"X-Correlation-ID": "req-42"})

        assert response.headers["X-Correlation-ID"] == "req-42"
        assert float(response.headers["X-Response-Time-Ms"]) >= 0

    def test_correlation_id_is_generated(self, client) -> None:
        """Should generate a short correlation id when none is sent."""
        assert len(client.get("/health").headers["X-Correlation-ID"]) == 8
