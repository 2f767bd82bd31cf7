# ============================================================================
# Tests for RescheduleAppointmentUseCase
# ============================================================================
"""Scenario tests for rescheduling."""

import asyncio
from datetime import timedelta

import pytest

from practice_scheduling.domains.scheduling.application.dto import RescheduleAppointmentRequest
from practice_scheduling.domains.scheduling.application.use_cases._common import NOT_FOUND_MESSAGE
from tests.conftest import NOW, make_appointment, make_entry


def reschedule_request(new_start, **overrides) -> RescheduleAppointmentRequest:
    values = {"patient_id": "pat-1", "appointment_id": "appt-1", "new_start": new_start}
    values.update(overrides)
    return RescheduleAppointmentRequest(**values)


class TestReschedule:
    """Tests for RescheduleAppointmentUseCase."""

    @pytest.mark.asyncio
    async def test_moves_appointment_and_issues_new_number(self, container, store) -> None:
        """Should move the appointment, confirm with a CE number and keep history."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        new_start = NOW + timedelta(days=7)
        use_case = container.create_reschedule_appointment_use_case()

        result = await use_case.execute(reschedule_request(new_start), now=NOW)

        assert result.success is True
        assert result.confirmation_number.startswith("CE")
        assert result.new_start == new_start
        assert "Monday, March 17 at 10:00 AM" in result.message
        assert store.reschedule_calls == [("appt-1", new_start)]

        history = await use_case.history("appt-1")
        assert len(history) == 1
        assert history[0].previous_start == NOW + timedelta(hours=72)
        assert history[0].confirmation_number == result.confirmation_number

        audit = await container.audit.history("appointment", "appt-1")
        assert [e.action for e in audit] == ["rescheduled"]

    @pytest.mark.asyncio
    async def test_original_time_is_offered_to_waitlist(self, container, store) -> None:
        """Should offer the freed original start to matching waitlist entries."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        for i in range(2):
            await container.waitlist_service.add_entry(make_entry(f"e{i}", NOW - timedelta(days=1)))
        use_case = container.create_reschedule_appointment_use_case()

        result = await use_case.execute(reschedule_request(NOW + timedelta(days=7)), now=NOW)

        assert result.waitlist_count == 2

    @pytest.mark.asyncio
    async def test_insufficient_notice(self, container, store) -> None:
        """Should refer the patient to the office inside the notice window."""
        store.add(make_appointment(NOW + timedelta(hours=12)))
        use_case = container.create_reschedule_appointment_use_case()

        result = await use_case.execute(reschedule_request(NOW + timedelta(days=7)), now=NOW)

        assert result.success is False
        assert result.error_code == "POLICY_VIOLATION"
        assert "at least 24 hours notice" in result.message
        assert store.reschedule_calls == []

    @pytest.mark.asyncio
    async def test_new_start_in_past(self, container, store) -> None:
        """Should reject a new start that already passed."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        use_case = container.create_reschedule_appointment_use_case()

        result = await use_case.execute(reschedule_request(NOW - timedelta(hours=1)), now=NOW)

        assert result.error_code == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_unknown_appointment(self, container) -> None:
        """Should report not found for an unknown appointment."""
        use_case = container.create_reschedule_appointment_use_case()

        result = await use_case.execute(reschedule_request(NOW + timedelta(days=7)), now=NOW)

        assert result.error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_store_failure(self, container, store) -> None:
        """Should report an upstream failure without issuing a number."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        store.fail_mutations = True
        use_case = container.create_reschedule_appointment_use_case()

        result = await use_case.execute(reschedule_request(NOW + timedelta(days=7)), now=NOW)

        assert result.error_code == "UPSTREAM_FAILURE"
        assert result.confirmation_number is None

    @pytest.mark.asyncio
    async def test_concurrent_reschedules_move_once(self, container, store) -> None:
        """Should apply one of two simultaneous moves and answer the other as not found."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        use_case = container.create_reschedule_appointment_use_case()

        results = await asyncio.gather(
            use_case.execute(reschedule_request(NOW + timedelta(days=7)), now=NOW),
            use_case.execute(reschedule_request(NOW + timedelta(days=8)), now=NOW),
        )

        assert sorted(r.success for r in results) == [False, True]
        loser = next(r for r in results if not r.success)
        assert loser.error_code == "NOT_FOUND"
        assert loser.message == NOT_FOUND_MESSAGE
        assert len(store.reschedule_calls) == 1
