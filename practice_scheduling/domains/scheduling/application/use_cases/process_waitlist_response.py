# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Use case for a patient's answer to a waitlist offer.
# ============================================================================
"""Process Waitlist Response Use Case."""

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from practice_scheduling.core.shared.clock import utc_now

from ...domain.entities import StaffNotification, WaitlistNotification
from ...domain.value_objects import WaitlistResponse
from ..dto import WaitlistResponseRequest, WaitlistResponseResult
from .pipeline import PipelineRun, PipelineStage

if TYPE_CHECKING:
    from ..services import StaffNotificationService, WaitlistService

logger = logging.getLogger(__name__)

NOTIFY_STAFF = PipelineStage.best_effort("notify-staff")


class ProcessWaitlistResponseUseCase:
    """Records the response, then tells reception about the outcome."""

    def __init__(self, waitlist_service: "WaitlistService", staff_service: "StaffNotificationService") -> None:
        self._waitlist = waitlist_service
        self._staff = staff_service

    async def execute(self, request: WaitlistResponseRequest, now: datetime | None = None) -> WaitlistResponseResult:
        """Execute the response.

        Raises:
            EntityNotFoundException: Unknown notification id.
        """
        now = now or utc_now()
        before = await self._waitlist.get_notification(request.notification_id, now, apply_expiry=False)

        result = await self._waitlist.respond(request.notification_id, request.response, request.actor, now)
        notification: WaitlistNotification = result.data

        # Repeated answers and late accepts leave nothing new for staff.
        if before.status.is_final() or notification.late:
            return result

        outcome = notification.response or WaitlistResponse.NO_RESPONSE
        run = PipelineRun("waitlist-response", notification.id)
        staff_notice = await run.run(NOTIFY_STAFF, lambda: self._notify_staff(notification, outcome, now))
        result.staff_notification_sent = staff_notice is not None
        return result

    async def _notify_staff(
        self,
        notification: WaitlistNotification,
        outcome: WaitlistResponse,
        now: datetime,
    ) -> StaffNotification | None:
        entry = await self._waitlist.get_entry(notification.entry_id)
        if entry is None:
            logger.warning(f"Waitlist entry {notification.entry_id} gone, no staff notice for {notification.id}")
            return None
        return await self._staff.notify_waitlist_response(entry, notification.slot, outcome, now=now)
