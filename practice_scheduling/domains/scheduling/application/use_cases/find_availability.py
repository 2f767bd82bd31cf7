# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Use case for answering availability questions.
# ============================================================================
"""Find Availability Use Case.

Normalizes a spoken availability query and searches the system of record for
free slots, or returns the clarification question to ask next.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.core.shared.clock import practice_timezone, utc_now

from ...domain.entities import Slot
from ...domain.services.query_normalizer import AvailabilityQuery, NormalizedQuery, normalize_query
from ...domain.value_objects import TimeOfDay
from ..dto import AvailabilityResult
from ..services.message_templates import format_speech_date, format_time

if TYPE_CHECKING:
    from ..ports import IAppointmentStore

logger = logging.getLogger(__name__)

MAX_SLOTS = 20
SEARCH_FAILED_MESSAGE = (
    "I'm having trouble checking the schedule right now. "
    "Please try again in a moment or call our office at {office_phone}."
)


class FindAvailabilityUseCase:
    """Use case for availability search."""

    def __init__(self, appointment_store: "IAppointmentStore", settings: Settings | None = None) -> None:
        self._store = appointment_store
        self._settings = settings or get_settings()
        self._tz = practice_timezone(self._settings)

    async def execute(self, query: AvailabilityQuery, now: datetime | None = None) -> AvailabilityResult:
        """Execute the availability search.

        Args:
            query: Intent and entities from the voice front end.
            now: Current time (defaults to UTC now).

        Returns:
            AvailabilityResult with slots, or the clarification prompt.
        """
        now = now or utc_now()
        normalized = normalize_query(query, now.astimezone(self._tz).date())
        query_data = _query_dict(normalized)

        if normalized.requires_clarification:
            logger.info(f"Availability query needs clarification: {normalized.clarification_type}")
            return AvailabilityResult(
                success=True,
                message=normalized.clarification_prompt or "",
                requires_clarification=True,
                clarification_type=normalized.clarification_type,
                query=query_data,
            )

        try:
            slots = await self._store.search_free_slots(
                normalized.start_date,
                normalized.end_date,
                provider_id=normalized.provider_id,
                appointment_type=normalized.appointment_type,
            )
        except Exception:
            logger.exception("Free slot search failed")
            return AvailabilityResult(
                success=False,
                error_code="UPSTREAM_FAILURE",
                message=SEARCH_FAILED_MESSAGE.format(office_phone=self._settings.OFFICE_PHONE),
                query=query_data,
            )

        slots = [s for s in slots if s.start > now]
        if normalized.time_preference is not None:
            slots = [s for s in slots if self._time_of_day(s) == normalized.time_preference]
        slots.sort(key=lambda s: s.start)
        slots = slots[:MAX_SLOTS]

        logger.info(
            f"Availability {normalized.start_date}..{normalized.end_date}: {len(slots)} slots "
            f"(type={normalized.appointment_type}, time={normalized.time_preference})"
        )
        return AvailabilityResult(
            success=True,
            data=slots,
            message=self._message(slots, normalized),
            slots=[s.model_dump(mode="json") for s in slots],
            query=query_data,
        )

    def _time_of_day(self, slot: Slot) -> TimeOfDay:
        return TimeOfDay.from_datetime(slot.start.astimezone(self._tz))

    def _message(self, slots: list[Slot], normalized: NormalizedQuery) -> str:
        if not slots:
            return (
                "I don't see any openings for those dates. "
                "Would you like me to try different dates or add you to our waitlist?"
            )
        first = slots[0].start.astimezone(self._tz)
        provider = f" with {slots[0].provider_name}" if slots[0].provider_name else ""
        count = "one available time" if len(slots) == 1 else f"{len(slots)} available times"
        return (
            f"I found {count}. The earliest is {format_speech_date(first)} at {format_time(first)}{provider}. "
            "Would you like that one?"
        )


def _query_dict(normalized: NormalizedQuery) -> dict:
    return {
        "start_date": normalized.start_date.isoformat(),
        "end_date": normalized.end_date.isoformat(),
        "appointment_type": normalized.appointment_type.value if normalized.appointment_type else None,
        "provider_id": normalized.provider_id,
        "time_preference": normalized.time_preference.value if normalized.time_preference else None,
    }
