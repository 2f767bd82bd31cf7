# ============================================================================
# Tests for ProcessCancellationUseCase
# ============================================================================
"""Scenario tests for the cancellation pipeline."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from practice_scheduling.core.domain.exceptions import ConfirmationNumberExhaustedError
from practice_scheduling.domains.scheduling.application.dto import CancelAppointmentRequest
from practice_scheduling.domains.scheduling.application.services import confirmation_service as confirmation_module
from practice_scheduling.domains.scheduling.application.use_cases._common import (
    EMERGENCY_FAILURE_MESSAGE,
    NOT_FOUND_MESSAGE,
    VOICE_FAILURE_MESSAGE,
)
from practice_scheduling.domains.scheduling.domain.value_objects import AppointmentStatus, Channel
from tests.conftest import NOW, make_appointment, make_entry

# 20:00 America/New_York on Monday 2025-03-10
EVENING = datetime(2025, 3, 11, 0, 0, tzinfo=UTC)


def cancel_request(**overrides) -> CancelAppointmentRequest:
    values = {"patient_id": "pat-1", "appointment_id": "appt-1", "reason": "schedule conflict"}
    values.update(overrides)
    return CancelAppointmentRequest(**values)


class TestStandardCancellation:
    """Tests for non-emergency cancellations."""

    @pytest.mark.asyncio
    async def test_with_48_hours_notice_is_free(self, container, store, voice_channel, sms_channel) -> None:
        """Should cancel without a fee and confirm by voice and SMS."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(cancel_request(), now=NOW)

        assert result.success is True
        assert result.cancellation_fee == 0.0
        assert result.reference_number.startswith("CC")
        assert result.confirmation_delivery == {"voice": True, "sms": True}
        assert result.staff_notification_sent is True
        assert result.waitlist_notified is False
        assert result.confirmation_incomplete is False
        assert "fee" not in result.message
        assert f"Your cancellation reference number is {result.reference_number}." in result.message
        assert store.cancel_calls == [("appt-1", "schedule conflict")]
        assert store.appointments["appt-1"].status == AppointmentStatus.CANCELLED
        assert len(voice_channel.sent) == 1
        assert len(sms_channel.sent) == 1

    @pytest.mark.asyncio
    async def test_twelve_hours_across_midnight_charges_lt24_fee(self, container, store) -> None:
        """Should charge the <24h fee when the appointment is tomorrow morning."""
        store.add(make_appointment(EVENING + timedelta(hours=12)))
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(cancel_request(), now=EVENING)

        assert result.success is True
        assert result.cancellation_fee == 50.0
        assert "$50.00 cancellation fee" in result.message
        assert result.message.endswith("The fee will appear on your next statement.")

    @pytest.mark.asyncio
    async def test_same_day_fee(self, container, store) -> None:
        """Should charge the same-day fee for an appointment later today."""
        store.add(make_appointment(NOW + timedelta(hours=4)))
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(cancel_request(), now=NOW)

        assert result.cancellation_fee == 75.0

    @pytest.mark.asyncio
    async def test_by_confirmation_number(self, container, store) -> None:
        """Should find the appointment by its confirmation number."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(
            cancel_request(appointment_id=None, confirmation_number="CE7K3M9P2Q"), now=NOW
        )

        assert result.success is True

    @pytest.mark.asyncio
    async def test_waitlist_is_offered_the_slot(self, container, store, sms_channel) -> None:
        """Should offer the freed slot and record the count on the confirmation."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        for i in range(3):
            await container.waitlist_service.add_entry(make_entry(f"e{i}", NOW - timedelta(days=3 - i)))
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(cancel_request(), now=NOW)

        assert result.waitlist_notified is True
        assert result.waitlist_count == 2
        assert "offered to patients on our waitlist" in result.message
        stored = await container.confirmation_service.lookup_cancellation(result.reference_number)
        assert stored.waitlist_notified is True
        assert stored.waitlist_count == 2
        # one patient confirmation plus two waitlist offers
        assert len(sms_channel.sent) == 3


class TestEmergencyCancellation:
    """Tests for the emergency override."""

    @pytest.mark.asyncio
    async def test_emergency_after_start(self, container, store, sms_channel) -> None:
        """Should cancel an appointment that started two hours ago and offer its time urgently."""
        store.add(make_appointment(NOW - timedelta(hours=2)))
        for i in range(3):
            await container.waitlist_service.add_entry(make_entry(f"e{i}", NOW - timedelta(days=3 - i)))
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(
            cancel_request(is_emergency=True, reason="chest pain", channels=(Channel.EMAIL,)), now=NOW
        )

        assert result.success is True
        assert result.cancellation_fee == 0.0
        assert result.emergency_protocol_activated is True
        assert result.message.startswith("I understand this is an emergency.")
        assert "I've notified our staff" in result.message
        assert "I've also notified 3 patients on our waitlist" in result.message
        assert "call 911" in result.message
        assert set(result.confirmation_delivery) == {"voice", "sms"}
        assert store.cancel_calls == [("appt-1", "EMERGENCY: chest pain")]
        assert result.waitlist_notified is True
        assert result.waitlist_count == 3
        # patient confirmation plus three urgent waitlist offers
        assert len(sms_channel.sent) == 4

        urgent = await container.staff_service.get_active(urgent_only=True)
        assert len(urgent) == 1
        assert urgent[0].priority.value == "critical"

    @pytest.mark.asyncio
    async def test_emergency_store_failure(self, container, store) -> None:
        """Should direct the patient to call the office when the store is down."""
        store.add(make_appointment(NOW + timedelta(hours=2)))
        store.fail_mutations = True
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(cancel_request(is_emergency=True), now=NOW)

        assert result.success is False
        assert result.message == EMERGENCY_FAILURE_MESSAGE.format(office_phone="(555) 123-4567")
        assert result.emergency_protocol_activated is True

    @pytest.mark.asyncio
    async def test_emergency_staff_failure_omits_staff_promise(self, container, store) -> None:
        """Should not tell the patient staff were notified when the staff notice failed."""
        store.add(make_appointment(NOW + timedelta(hours=2)))
        container.staff_service.notify_cancellation = AsyncMock(side_effect=RuntimeError("queue down"))
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(cancel_request(is_emergency=True), now=NOW)

        assert result.success is True
        assert result.staff_notification_sent is False
        assert "notified our staff" not in result.message
        assert "call 911" in result.message


class TestFailures:
    """Tests for rejected and degraded cancellations."""

    @pytest.mark.asyncio
    async def test_concurrent_cancels_cancel_once(self, container, store) -> None:
        """Should cancel once and answer the losing request as not found."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        use_case = container.create_process_cancellation_use_case()

        results = await asyncio.gather(
            use_case.execute(cancel_request(reason="first"), now=NOW),
            use_case.execute(cancel_request(reason="second"), now=NOW),
        )

        assert sorted(r.success for r in results) == [False, True]
        loser = next(r for r in results if not r.success)
        assert loser.error_code == "NOT_FOUND"
        assert loser.message == NOT_FOUND_MESSAGE
        assert loser.reference_number is None
        assert len(store.cancel_calls) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "appointment",
        [
            make_appointment(NOW + timedelta(hours=72), patient_id="someone-else"),
            make_appointment(NOW - timedelta(hours=2)),
            make_appointment(NOW + timedelta(hours=72), status=AppointmentStatus.CANCELLED),
        ],
        ids=["foreign", "past", "already-cancelled"],
    )
    async def test_not_found(self, container, store, appointment) -> None:
        """Should answer foreign, past and closed appointments with the same not-found message."""
        store.add(appointment)
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(cancel_request(), now=NOW)

        assert result.success is False
        assert result.error_code == "NOT_FOUND"
        assert result.message == NOT_FOUND_MESSAGE
        assert store.cancel_calls == []

    @pytest.mark.asyncio
    async def test_store_failure(self, container, store) -> None:
        """Should report an upstream failure without issuing a reference."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        store.fail_mutations = True
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(cancel_request(), now=NOW)

        assert result.success is False
        assert result.error_code == "UPSTREAM_FAILURE"
        assert "(555) 123-4567" in result.message
        assert result.reference_number is None

    @pytest.mark.asyncio
    async def test_lookup_failure(self, container, store) -> None:
        """Should report an upstream failure when the appointment cannot be read."""
        store.fail_reads = True
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(cancel_request(), now=NOW)

        assert result.error_code == "UPSTREAM_FAILURE"

    @pytest.mark.asyncio
    async def test_waitlist_failure_does_not_fail_cancellation(self, container, store) -> None:
        """Should complete the cancellation when the waitlist step raises."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        container.waitlist_service.notify_for_slot = AsyncMock(side_effect=RuntimeError("redis down"))
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(cancel_request(), now=NOW)

        assert result.success is True
        assert result.waitlist_count == 0
        assert result.staff_notification_sent is True

    @pytest.mark.asyncio
    async def test_staff_failure_does_not_fail_cancellation(self, container, store) -> None:
        """Should complete the cancellation when the staff notice fails."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        container.staff_service.notify_cancellation = AsyncMock(side_effect=RuntimeError("queue down"))
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(cancel_request(), now=NOW)

        assert result.success is True
        assert result.staff_notification_sent is False

    @pytest.mark.asyncio
    async def test_voice_failure_reads_reference(self, container, store, voice_channel) -> None:
        """Should ask the patient to write the reference down when voice delivery fails."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        voice_channel.delivered = False
        use_case = container.create_process_cancellation_use_case()

        result = await use_case.execute(cancel_request(), now=NOW)

        assert result.success is True
        assert result.message == VOICE_FAILURE_MESSAGE.format(reference=result.reference_number)
        assert result.confirmation_incomplete is True
        assert result.to_dict()["confirmation_incomplete"] is True

    @pytest.mark.asyncio
    async def test_reference_exhaustion_propagates(self, container, store, fake_redis, monkeypatch) -> None:
        """Should raise when no cancellation reference can be issued."""
        store.add(make_appointment(NOW + timedelta(hours=72)))
        fake_redis.data["confirmation:reserved:CCAAAAAAAA"] = "1"
        monkeypatch.setattr(confirmation_module, "generate_candidate", lambda config, now: "CCAAAAAAAA")
        use_case = container.create_process_cancellation_use_case()

        with pytest.raises(ConfirmationNumberExhaustedError):
            await use_case.execute(cancel_request(), now=NOW)
