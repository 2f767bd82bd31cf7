# ============================================================================
# Tests for ConfirmationService
# ============================================================================
"""Unit tests for confirmation numbers and multi-channel confirmation delivery."""

from datetime import timedelta

import pytest

from practice_scheduling.core.domain.exceptions import ConfirmationNumberExhaustedError
from practice_scheduling.domains.scheduling.application.dto import ConfirmationPreferences
from practice_scheduling.domains.scheduling.application.services import ConfirmationService
from practice_scheduling.domains.scheduling.application.services import confirmation_service as confirmation_module
from practice_scheduling.domains.scheduling.application.services.confirmation_service import (
    VOICE_OPTIMIZED_CHARSET,
    ConfirmationNumberConfig,
    generate_candidate,
    normalize_number,
    to_base36,
)
from practice_scheduling.domains.scheduling.domain.value_objects import Channel
from tests.conftest import NOW, RecordingChannel, make_appointment


class TestNumberHelpers:
    """Tests for the pure number helpers."""

    def test_to_base36(self) -> None:
        """Should encode integers in base 36."""
        assert to_base36(0) == "0"
        assert to_base36(35) == "Z"
        assert to_base36(36) == "10"

    def test_candidate_shape(self) -> None:
        """Should produce prefix plus the configured number of voice-safe characters."""
        candidate = generate_candidate(ConfirmationNumberConfig(prefix="CC"), NOW)
        assert candidate.startswith("CC")
        assert len(candidate) == 10
        assert all(c in VOICE_OPTIMIZED_CHARSET for c in candidate[2:])

    def test_normalize_number(self) -> None:
        """Should strip separators and uppercase what the patient reads back."""
        assert normalize_number("ce-7k3m 9p2q,") == "CE7K3M9P2Q"


class TestGenerateNumber:
    """Tests for reserved, collision-free number generation."""

    @pytest.mark.asyncio
    async def test_numbers_are_unique_and_reserved(self, confirmation_service, fake_redis) -> None:
        """Should issue 10,000 distinct numbers and reserve each one."""
        config = confirmation_service.number_config("CE")
        numbers = {await confirmation_service.generate_number(config) for _ in range(10_000)}

        assert len(numbers) == 10_000
        for number in numbers:
            assert f"confirmation:reserved:{number}" in fake_redis.data

    @pytest.mark.asyncio
    async def test_retries_after_collision(self, confirmation_service, fake_redis, monkeypatch) -> None:
        """Should skip a candidate that is already reserved."""
        fake_redis.data["confirmation:reserved:CETAKEN123"] = "1"
        candidates = iter(["CETAKEN123", "CETAKEN123", "CEFREE4567"])
        monkeypatch.setattr(confirmation_module, "generate_candidate", lambda config, now: next(candidates))

        number = await confirmation_service.generate_number(confirmation_service.number_config("CE"))

        assert number == "CEFREE4567"

    @pytest.mark.asyncio
    async def test_exhaustion_raises(self, confirmation_service, fake_redis, monkeypatch) -> None:
        """Should give up after the configured number of attempts."""
        fake_redis.data["confirmation:reserved:CCAAAAAAAA"] = "1"
        monkeypatch.setattr(confirmation_module, "generate_candidate", lambda config, now: "CCAAAAAAAA")

        with pytest.raises(ConfirmationNumberExhaustedError):
            await confirmation_service.generate_number(confirmation_service.number_config("CC"))


class TestCancellationConfirmation:
    """Tests for create_cancellation_confirmation."""

    @pytest.mark.asyncio
    async def test_voice_first_then_sms(self, confirmation_service, voice_channel, sms_channel) -> None:
        """Should speak on the live call and text the patient's phone."""
        appointment = make_appointment(NOW + timedelta(hours=72))

        confirmation = await confirmation_service.create_cancellation_confirmation(
            appointment,
            cancellation_fee=0.0,
            reason="schedule conflict",
            is_emergency=False,
            channels=[Channel.VOICE, Channel.SMS],
            now=NOW,
        )

        assert confirmation.reference_number.startswith("CC")
        assert confirmation.voice_delivered is True
        assert confirmation.delivery["sms"].delivered is True
        assert voice_channel.sent[0].recipient is None
        assert "has been cancelled" in voice_channel.sent[0].message
        assert sms_channel.sent[0].recipient == "+15555550101"
        assert confirmation.reference_number in sms_channel.sent[0].message

    @pytest.mark.asyncio
    async def test_fee_is_included_in_messages(self, confirmation_service, voice_channel, sms_channel) -> None:
        """Should mention the fee on every channel."""
        appointment = make_appointment(NOW + timedelta(hours=30))

        await confirmation_service.create_cancellation_confirmation(
            appointment, 25.0, "", False, [Channel.VOICE, Channel.SMS], now=NOW
        )

        assert "$25.00 cancellation fee" in voice_channel.sent[0].message
        assert "(Fee: $25.00)" in sms_channel.sent[0].message

    @pytest.mark.asyncio
    async def test_channel_failure_is_recorded_not_raised(self, audit, fake_redis, settings) -> None:
        """Should record a raising channel as undelivered and keep going."""
        service = ConfirmationService(
            {Channel.VOICE: RecordingChannel(), Channel.SMS: RecordingChannel(error=RuntimeError("gateway down"))},
            audit,
            fake_redis,
            settings,
        )
        appointment = make_appointment(NOW + timedelta(hours=72))

        confirmation = await service.create_cancellation_confirmation(
            appointment, 0.0, "", False, [Channel.VOICE, Channel.SMS, Channel.EMAIL], now=NOW
        )

        assert confirmation.delivery["voice"].delivered is True
        assert confirmation.delivery["sms"].delivered is False
        assert confirmation.delivery["sms"].error == "gateway down"
        assert confirmation.delivery["email"].error == "email channel not configured"

    @pytest.mark.asyncio
    async def test_lookup_and_waitlist_update(self, confirmation_service) -> None:
        """Should persist the record and update only the waitlist fields."""
        appointment = make_appointment(NOW + timedelta(hours=72))
        confirmation = await confirmation_service.create_cancellation_confirmation(
            appointment, 0.0, "", False, [Channel.SMS], now=NOW
        )

        by_appointment = await confirmation_service.find_cancellation_for_appointment(appointment.id)
        assert by_appointment.reference_number == confirmation.reference_number

        updated = await confirmation_service.update_waitlist_status(confirmation.reference_number, True, 2)
        assert updated.waitlist_notified is True
        assert updated.waitlist_count == 2

        stored = await confirmation_service.lookup_cancellation(confirmation.reference_number.lower())
        assert stored.waitlist_count == 2
        assert stored.cancellation_reason == confirmation.cancellation_reason

    @pytest.mark.asyncio
    async def test_update_unknown_reference(self, confirmation_service) -> None:
        """Should return None for an unknown reference."""
        assert await confirmation_service.update_waitlist_status("CCNOPE0000", True, 1) is None

    @pytest.mark.asyncio
    async def test_analytics_event_pushed(self, confirmation_service, fake_redis) -> None:
        """Should push one analytics event per confirmation."""
        appointment = make_appointment(NOW + timedelta(hours=72))
        await confirmation_service.create_cancellation_confirmation(appointment, 0.0, "", False, [Channel.SMS], now=NOW)
        assert len(fake_redis.data["analytics:confirmations"]) == 1


class TestMessages:
    """Tests for patient-facing wording."""

    @pytest.mark.asyncio
    async def test_standard_message_repeats_reference(self, confirmation_service) -> None:
        """Should repeat the reference slowly and mention the text message."""
        appointment = make_appointment(NOW + timedelta(hours=72))
        confirmation = await confirmation_service.create_cancellation_confirmation(
            appointment, 0.0, "", False, [Channel.VOICE, Channel.SMS], now=NOW
        )

        message = confirmation_service.build_cancellation_message(confirmation)

        assert "I'll repeat that slowly" in message
        assert "text message" in message
        assert "Dr. Patel" in message

    @pytest.mark.asyncio
    async def test_brief_message_skips_repetition(self, confirmation_service) -> None:
        """Should drop the repetition when the caller asks for brief wording."""
        appointment = make_appointment(NOW + timedelta(hours=72))
        confirmation = await confirmation_service.create_cancellation_confirmation(
            appointment, 0.0, "", False, [Channel.VOICE], now=NOW
        )

        message = confirmation_service.build_cancellation_message(
            confirmation, ConfirmationPreferences(verbosity="brief")
        )

        assert "repeat" not in message
        assert confirmation.reference_number in message


class TestAppointmentConfirmation:
    """Tests for create_appointment_confirmation."""

    @pytest.mark.asyncio
    async def test_issues_ce_number_with_instructions(self, confirmation_service, email_channel) -> None:
        """Should issue a CE number and include preparation instructions."""
        appointment = make_appointment(NOW + timedelta(days=5))

        confirmation = await confirmation_service.create_appointment_confirmation(
            appointment, channels=[Channel.EMAIL], now=NOW
        )

        assert confirmation.confirmation_number.startswith("CE")
        assert confirmation.preparation_instructions[0] == "Arrive 15 minutes early for check-in."
        assert email_channel.sent[0].recipient == "jordan@example.com"
        assert email_channel.sent[0].subject == f"Appointment Confirmation - {confirmation.confirmation_number}"
        assert await confirmation_service.lookup_confirmation(confirmation.confirmation_number) is not None

    @pytest.mark.asyncio
    async def test_brief_preferences_skip_instructions(self, confirmation_service) -> None:
        """Should omit instructions for brief confirmations."""
        appointment = make_appointment(NOW + timedelta(days=5))

        confirmation = await confirmation_service.create_appointment_confirmation(
            appointment,
            channels=[Channel.VOICE],
            preferences=ConfirmationPreferences(language="fr", verbosity="brief"),
            now=NOW,
        )

        assert confirmation.preparation_instructions == []
