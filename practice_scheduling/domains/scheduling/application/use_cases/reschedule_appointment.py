# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Use case for moving a booked appointment to a new start time.
# ============================================================================
"""Reschedule Appointment Use Case.

Validates ownership and notice, moves the appointment in the system of record,
issues a new confirmation and offers the freed original time to the waitlist.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING

import redis.asyncio as aioredis
from pydantic import BaseModel

from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.core.domain.exceptions import AppointmentConflictException
from practice_scheduling.core.shared.clock import practice_timezone, utc_now
from practice_scheduling.repositories.async_redis_repository import AsyncRedisRepository

from ...domain.services.cancellation_policy import CancellationPolicy, can_reschedule
from ..dto import RescheduleAppointmentRequest, RescheduleResult
from ..services.message_templates import format_speech_date, format_time
from ._common import NOT_FOUND_MESSAGE, RESCHEDULE_TROUBLE_MESSAGE, find_patient_appointment, slot_from_appointment
from .pipeline import PipelineRun, PipelineStage

if TYPE_CHECKING:
    from ..ports import IAppointmentStore
    from ..services import AuditTrail, ConfirmationService, WaitlistService

logger = logging.getLogger(__name__)

HISTORY_MAX_LENGTH = 50

NOTICE_MESSAGE = (
    "Appointments need at least {hours} hours notice to be rescheduled automatically. "
    "Please call our office at {office_phone} and our staff will help you."
)
INVALID_TIME_MESSAGE = "That new time has already passed. Please choose a time in the future."

CONFIRM = PipelineStage.critical("confirm")
NOTIFY_WAITLIST = PipelineStage.best_effort("notify-waitlist", default=list)


class AppointmentHistoryEntry(BaseModel):
    """One start-time change of an appointment."""

    appointment_id: str
    previous_start: datetime
    new_start: datetime
    confirmation_number: str
    actor: str
    timestamp: datetime


class RescheduleAppointmentUseCase:
    """Use case for rescheduling an appointment."""

    def __init__(
        self,
        appointment_store: "IAppointmentStore",
        confirmation_service: "ConfirmationService",
        waitlist_service: "WaitlistService",
        audit: "AuditTrail",
        redis_client: aioredis.Redis | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._store = appointment_store
        self._confirmations = confirmation_service
        self._waitlist = waitlist_service
        self._audit = audit
        self._settings = settings or get_settings()
        self._policy = CancellationPolicy.from_settings(self._settings)
        self._tz = practice_timezone(self._settings)
        self._history = AsyncRedisRepository[AppointmentHistoryEntry](
            AppointmentHistoryEntry, prefix="appointment", client=redis_client, settings=self._settings
        )

    async def execute(self, request: RescheduleAppointmentRequest, now: datetime | None = None) -> RescheduleResult:
        """Execute the reschedule.

        Args:
            request: Reschedule request with the new start.
            now: Evaluation time (defaults to UTC now).

        Returns:
            RescheduleResult with the new confirmation number.
        """
        now = now or utc_now()
        office_phone = self._settings.OFFICE_PHONE

        try:
            appointment = await find_patient_appointment(
                self._store, request.patient_id, request.appointment_id, request.confirmation_number
            )
        except Exception:
            logger.exception("Appointment lookup failed during reschedule")
            return RescheduleResult(
                success=False,
                error_code="UPSTREAM_FAILURE",
                message=RESCHEDULE_TROUBLE_MESSAGE.format(office_phone=office_phone),
            )

        if appointment is None:
            return RescheduleResult(success=False, error_code="NOT_FOUND", message=NOT_FOUND_MESSAGE)

        if request.new_start <= now:
            return RescheduleResult(success=False, error_code="VALIDATION_ERROR", message=INVALID_TIME_MESSAGE)

        if not can_reschedule(appointment.start, now, self._policy):
            logger.info(f"Reschedule of appointment {appointment.id} rejected: insufficient notice")
            return RescheduleResult(
                success=False,
                error_code="POLICY_VIOLATION",
                message=NOTICE_MESSAGE.format(
                    hours=self._policy.minimum_notice_hours, office_phone=office_phone
                ),
            )

        try:
            updated = await self._store.reschedule(appointment, request.new_start)
        except AppointmentConflictException:
            logger.info(f"Appointment {appointment.id} was changed by another request before rescheduling")
            return RescheduleResult(success=False, error_code="NOT_FOUND", message=NOT_FOUND_MESSAGE)
        except Exception:
            logger.exception(f"Reschedule of appointment {appointment.id} failed in the system of record")
            return RescheduleResult(
                success=False,
                error_code="UPSTREAM_FAILURE",
                message=RESCHEDULE_TROUBLE_MESSAGE.format(office_phone=office_phone),
            )

        run = PipelineRun("reschedule", appointment.id)
        confirmation = await run.run(
            CONFIRM,
            lambda: self._confirmations.create_appointment_confirmation(
                updated,
                channels=list(request.channels),
                preferences=request.preferences,
                actor=request.actor,
                now=now,
            ),
        )

        await self._audit.record(
            "appointment",
            appointment.id,
            "rescheduled",
            request.actor,
            {
                "previous_start": appointment.start.isoformat(),
                "new_start": request.new_start.isoformat(),
                "confirmation_number": confirmation.confirmation_number,
            },
            now=now,
        )
        await self._history.list_push(
            f"history:{appointment.id}",
            AppointmentHistoryEntry(
                appointment_id=appointment.id,
                previous_start=appointment.start,
                new_start=request.new_start,
                confirmation_number=confirmation.confirmation_number,
                actor=request.actor,
                timestamp=now,
            ),
            max_length=HISTORY_MAX_LENGTH,
        )

        offers = await run.run(
            NOTIFY_WAITLIST,
            lambda: self._waitlist.notify_for_slot(slot_from_appointment(appointment), now=now),
        )

        local_start = request.new_start.astimezone(self._tz)
        logger.info(f"Appointment {appointment.id} rescheduled, confirmation {confirmation.confirmation_number}")
        return RescheduleResult(
            success=True,
            data=confirmation,
            message=(
                f"Your appointment has been moved to {format_speech_date(local_start)} "
                f"at {format_time(local_start)}. "
                f"Your new confirmation number is {confirmation.confirmation_number}."
            ),
            confirmation_number=confirmation.confirmation_number,
            new_start=request.new_start,
            waitlist_count=len(offers),
        )

    async def history(self, appointment_id: str) -> list[AppointmentHistoryEntry]:
        """Start-time changes of an appointment, newest first."""
        raw_entries = await self._history.list_range(f"history:{appointment_id}")
        return [AppointmentHistoryEntry.model_validate_json(raw) for raw in raw_entries]
