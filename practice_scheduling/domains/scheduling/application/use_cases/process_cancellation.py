# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Cancellation orchestrator: validate, cancel in the system of
# record, confirm, offer the slot to the waitlist and notify staff.
# ============================================================================
"""Process Cancellation Use Case.

Pipeline:
    validate -> (emergency | standard) -> mutate-store -> confirm
             -> notify-waitlist -> notify-staff

The store mutation and the confirmation are critical. Waitlist offers, the
waitlist status update and the staff notice are best effort: their failures
are logged and never change the patient-facing outcome.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.core.domain.exceptions import AppointmentConflictException
from practice_scheduling.core.shared.clock import practice_timezone, utc_now

from ...domain.entities import AppointmentDetails, CancellationConfirmation
from ...domain.services.cancellation_policy import CancellationPolicy, PolicyDecision, evaluate_cancellation
from ...domain.value_objects import Channel
from ..dto import CancelAppointmentRequest, CancellationResult
from ..services.message_templates import format_speech_date, format_time
from ._common import (
    EMERGENCY_FAILURE_MESSAGE,
    NOT_FOUND_MESSAGE,
    TROUBLE_MESSAGE,
    VOICE_FAILURE_MESSAGE,
    find_patient_appointment,
    slot_from_appointment,
)
from .pipeline import PipelineRun, PipelineStage

if TYPE_CHECKING:
    from ..ports import IAppointmentStore
    from ..services import AuditTrail, ConfirmationService, StaffNotificationService, WaitlistService

logger = logging.getLogger(__name__)

EMERGENCY_CHANNELS: tuple[Channel, ...] = (Channel.VOICE, Channel.SMS)

CONFIRM = PipelineStage.critical("confirm")
NOTIFY_WAITLIST = PipelineStage.best_effort("notify-waitlist", default=list)
UPDATE_WAITLIST_STATUS = PipelineStage.best_effort("update-waitlist-status")
NOTIFY_STAFF = PipelineStage.best_effort("notify-staff")


class ProcessCancellationUseCase:
    """Cancels a booked appointment and runs every follow-up step."""

    def __init__(
        self,
        appointment_store: "IAppointmentStore",
        confirmation_service: "ConfirmationService",
        waitlist_service: "WaitlistService",
        staff_service: "StaffNotificationService",
        audit: "AuditTrail",
        settings: Settings | None = None,
    ) -> None:
        """Initialize use case.

        Args:
            appointment_store: System of record (DIP).
            confirmation_service: Issues and delivers CC references.
            waitlist_service: Offers the freed slot.
            staff_service: Routes the staff notice.
            audit: Audit trail.
            settings: Application settings.
        """
        self._store = appointment_store
        self._confirmations = confirmation_service
        self._waitlist = waitlist_service
        self._staff = staff_service
        self._audit = audit
        self._settings = settings or get_settings()
        self._policy = CancellationPolicy.from_settings(self._settings)
        self._tz = practice_timezone(self._settings)

    async def execute(self, request: CancelAppointmentRequest, now: datetime | None = None) -> CancellationResult:
        """Execute the cancellation pipeline.

        Args:
            request: Cancellation request.
            now: Evaluation time (defaults to current UTC time).

        Returns:
            CancellationResult whose message is always a complete sentence.

        Raises:
            ConfirmationNumberExhaustedError: No reference could be issued.
        """
        now = now or utc_now()

        # 1. Validate
        try:
            appointment = await find_patient_appointment(
                self._store, request.patient_id, request.appointment_id, request.confirmation_number
            )
        except Exception:
            logger.exception("Appointment lookup failed during cancellation")
            return self._failure(request, "UPSTREAM_FAILURE")

        if appointment is None:
            return CancellationResult(success=False, error_code="NOT_FOUND", message=NOT_FOUND_MESSAGE)

        decision = evaluate_cancellation(appointment.start, now, request.is_emergency, self._policy, self._tz)
        if not decision.allowed:
            logger.info(f"Cancellation of past appointment {appointment.id} rejected")
            return CancellationResult(success=False, error_code="NOT_FOUND", message=NOT_FOUND_MESSAGE)

        logger.info(
            f"Cancelling appointment {appointment.id} "
            f"({'emergency' if request.is_emergency else 'standard'}, tier {decision.tier.value})"
        )

        # 2. Mutate the system of record
        reason = f"EMERGENCY: {request.reason}" if request.is_emergency else request.reason
        try:
            cancelled = await self._store.cancel(appointment, reason)
        except AppointmentConflictException:
            logger.info(f"Appointment {appointment.id} was changed by another request before cancelling")
            return CancellationResult(success=False, error_code="NOT_FOUND", message=NOT_FOUND_MESSAGE)
        except Exception:
            logger.exception(f"Cancellation of appointment {appointment.id} failed in the system of record")
            return self._failure(request, "UPSTREAM_FAILURE")

        await self._audit.record(
            "appointment",
            appointment.id,
            "cancelled",
            request.actor,
            {"reason": reason, "fee": decision.fee, "tier": decision.tier.value, "emergency": request.is_emergency},
            now=now,
        )

        run = PipelineRun("cancellation", appointment.id)

        # 3. Confirm
        channels = list(EMERGENCY_CHANNELS if request.is_emergency else request.channels)
        confirmation: CancellationConfirmation = await run.run(
            CONFIRM,
            lambda: self._confirmations.create_cancellation_confirmation(
                cancelled,
                cancellation_fee=decision.fee,
                reason=reason,
                is_emergency=request.is_emergency,
                channels=channels,
                preferences=request.preferences,
                actor=request.actor,
                now=now,
            ),
        )

        # 4. Offer the slot to the waitlist
        offers = await run.run(
            NOTIFY_WAITLIST,
            lambda: self._waitlist.notify_for_slot(
                slot_from_appointment(appointment), urgent=request.is_emergency, now=now
            ),
        )
        waitlist_count = len(offers)
        await run.run(
            UPDATE_WAITLIST_STATUS,
            lambda: self._confirmations.update_waitlist_status(
                confirmation.reference_number, waitlist_count > 0, waitlist_count, actor=request.actor
            ),
        )

        # 5. Notify staff
        staff_notice = await run.run(
            NOTIFY_STAFF,
            lambda: self._staff.notify_cancellation(
                appointment,
                confirmation.reference_number,
                is_emergency=request.is_emergency,
                is_late_notice=decision.is_late_notice,
                cancellation_fee=decision.fee,
                reason=request.reason,
                waitlist_count=waitlist_count,
                now=now,
            ),
        )

        if run.failed_stages:
            logger.warning(
                f"Cancellation {confirmation.reference_number} completed with failed stages: {run.failed_stages}"
            )

        staff_notified = staff_notice is not None
        voice_failed = Channel.VOICE in channels and not confirmation.voice_delivered
        if voice_failed:
            logger.warning(f"Cancellation {confirmation.reference_number} stands without a voice read-back")

        return CancellationResult(
            success=True,
            data=confirmation,
            message=self._message(
                appointment, confirmation, decision, waitlist_count, request, voice_failed, staff_notified
            ),
            reference_number=confirmation.reference_number,
            cancellation_fee=decision.fee,
            waitlist_notified=waitlist_count > 0,
            waitlist_count=waitlist_count,
            confirmation_delivery={name: d.delivered for name, d in confirmation.delivery.items()},
            staff_notification_sent=staff_notified,
            emergency_protocol_activated=request.is_emergency,
            confirmation_incomplete=voice_failed,
        )

    def _failure(self, request: CancelAppointmentRequest, code: str) -> CancellationResult:
        template = EMERGENCY_FAILURE_MESSAGE if request.is_emergency else TROUBLE_MESSAGE
        return CancellationResult(
            success=False,
            error_code=code,
            message=template.format(office_phone=self._settings.OFFICE_PHONE),
            emergency_protocol_activated=request.is_emergency,
        )

    def _message(
        self,
        appointment: AppointmentDetails,
        confirmation: CancellationConfirmation,
        decision: PolicyDecision,
        waitlist_count: int,
        request: CancelAppointmentRequest,
        voice_failed: bool,
        staff_notified: bool,
    ) -> str:
        if voice_failed:
            return VOICE_FAILURE_MESSAGE.format(reference=confirmation.reference_number)

        if request.is_emergency:
            return self._emergency_message(appointment, confirmation, waitlist_count, staff_notified)

        message = self._confirmations.build_cancellation_message(confirmation, request.preferences)
        if waitlist_count > 0:
            message += "This appointment time has been offered to patients on our waitlist. "
        if decision.has_fee:
            message += "The fee will appear on your next statement. "
        return message.strip()

    def _emergency_message(
        self,
        appointment: AppointmentDetails,
        confirmation: CancellationConfirmation,
        waitlist_count: int,
        staff_notified: bool,
    ) -> str:
        local_start = appointment.start.astimezone(self._tz)
        message = (
            f"I understand this is an emergency. I've immediately cancelled your "
            f"{appointment.appointment_type.spoken_name} appointment with "
            f"{appointment.provider_name or 'your provider'} on {format_speech_date(local_start)} "
            f"at {format_time(local_start)}. "
            "There is no cancellation fee for emergency situations. "
            f"Your emergency cancellation reference number is {confirmation.reference_number}. "
        )
        if staff_notified:
            message += "I've notified our staff, and they may contact you to offer assistance. "
        if waitlist_count > 0:
            message += f"I've also notified {waitlist_count} patients on our waitlist about this appointment time. "
        message += (
            "If you need immediate medical attention, please contact your healthcare provider or call 911. "
            f"When you're ready to reschedule, please call our office at {self._settings.OFFICE_PHONE}."
        )
        return message
