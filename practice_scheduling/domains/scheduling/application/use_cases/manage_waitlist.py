# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Use cases for joining and leaving the waitlist.
# ============================================================================
"""Waitlist membership use cases."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING

from practice_scheduling.core.shared.clock import utc_now

from ...domain.entities import WaitlistEntry
from ...domain.value_objects import AppointmentType, Channel, TimeOfDay, WaitlistPriority
from ..services.waitlist_service import generate_entry_id

if TYPE_CHECKING:
    from ..services import WaitlistService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JoinWaitlistRequest:
    """Request DTO for adding a patient to the waitlist."""

    patient_id: str
    appointment_type: AppointmentType
    patient_name: str = ""
    phone: str | None = None
    email: str | None = None
    preferred_dates: list[date] = field(default_factory=list)
    preferred_times: list[TimeOfDay] = field(default_factory=list)
    preferred_provider_id: str | None = None
    priority: WaitlistPriority = WaitlistPriority.NORMAL
    channels: list[Channel] = field(default_factory=lambda: [Channel.SMS])
    immediate_notify: bool = True
    business_hours_only: bool = False
    max_wait_days: int = 30
    actor: str = "patient"


class JoinWaitlistUseCase:
    def __init__(self, waitlist_service: "WaitlistService") -> None:
        self._waitlist = waitlist_service

    async def execute(self, request: JoinWaitlistRequest, now: datetime | None = None) -> WaitlistEntry:
        """Create the entry.

        Raises:
            ValidationException: No usable contact or invalid wait window.
        """
        entry = WaitlistEntry(
            id=generate_entry_id(),
            patient_id=request.patient_id,
            patient_name=request.patient_name,
            phone=request.phone,
            email=request.email,
            appointment_type=request.appointment_type,
            preferred_dates=list(request.preferred_dates),
            preferred_times=list(request.preferred_times),
            preferred_provider_id=request.preferred_provider_id,
            priority=request.priority,
            channels=list(request.channels),
            immediate_notify=request.immediate_notify,
            business_hours_only=request.business_hours_only,
            max_wait_days=request.max_wait_days,
            created_at=now or utc_now(),
        )
        return await self._waitlist.add_entry(entry, actor=request.actor)


class WithdrawWaitlistEntryUseCase:
    def __init__(self, waitlist_service: "WaitlistService") -> None:
        self._waitlist = waitlist_service

    async def execute(self, entry_id: str, actor: str = "patient") -> WaitlistEntry:
        """Withdraw the entry.

        Raises:
            EntityNotFoundException: Unknown entry id.
        """
        return await self._waitlist.withdraw(entry_id, actor)
