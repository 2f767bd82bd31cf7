# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Scheduling)
# Description: Periodic waitlist expiry sweep.
# ============================================================================
"""Waitlist Expiry Scheduler.

APScheduler-based async sweep for waitlist offers and entries. Deadlines are
also evaluated lazily on read; the sweep makes sure staff hear about silent
patients and the next candidate gets the slot without waiting for a read.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-not-found]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-not-found]

from practice_scheduling.core.shared.clock import utc_now

from ...domain.value_objects import WaitlistResponse

if TYPE_CHECKING:
    from ...application.services import StaffNotificationService, WaitlistService

logger = logging.getLogger(__name__)


class WaitlistExpiryScheduler:
    """Periodic sweep of overdue waitlist offers and expired entries."""

    def __init__(
        self,
        waitlist_service: "WaitlistService",
        staff_service: "StaffNotificationService",
        interval_seconds: int = 300,
        enabled: bool = True,
    ):
        """Initialize scheduler.

        Args:
            waitlist_service: Waitlist service to sweep.
            staff_service: Receives a notice per unanswered offer.
            interval_seconds: Seconds between sweeps.
            enabled: Whether the scheduler is enabled.
        """
        self._waitlist = waitlist_service
        self._staff = staff_service
        self.interval_seconds = interval_seconds
        self.enabled = enabled

        self._scheduler: AsyncIOScheduler | None = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def start(self) -> None:
        """Start the scheduler."""
        if not self.enabled:
            logger.info("WaitlistExpiryScheduler is disabled, skipping start")
            return

        if self._is_running:
            logger.warning("WaitlistExpiryScheduler already running")
            return

        scheduler = AsyncIOScheduler()
        self._scheduler = scheduler
        scheduler.add_job(
            self.sweep,
            IntervalTrigger(seconds=self.interval_seconds),
            id="waitlist_expiry_sweep",
            replace_existing=True,
            name="Waitlist Expiry Sweep",
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._is_running = True
        logger.info(f"WaitlistExpiryScheduler started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if self._scheduler and self._is_running:
            self._scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("WaitlistExpiryScheduler stopped")

    async def sweep(self, now: datetime | None = None) -> dict[str, int]:
        """Run one sweep.

        Returns:
            Counts of expired offers, staff notices, follow-up offers and
            removed entries.
        """
        now = now or utc_now()
        stats = {"expired": 0, "staff_notified": 0, "next_offers": 0, "entries_removed": 0}

        try:
            expired = await self._waitlist.expire_overdue(now)
        except Exception as e:
            logger.error(f"Error expiring waitlist offers: {e}", exc_info=True)
            return stats

        stats["expired"] = len(expired)
        for notification in expired:
            entry = await self._waitlist.get_entry(notification.entry_id)
            if entry is not None:
                try:
                    await self._staff.notify_waitlist_response(
                        entry, notification.slot, WaitlistResponse.NO_RESPONSE, now=now
                    )
                    stats["staff_notified"] += 1
                except Exception:
                    logger.exception(f"Staff notice for expired offer {notification.id} failed")

            try:
                offers = await self._waitlist.notify_next(notification.slot, now)
                stats["next_offers"] += len(offers)
            except Exception:
                logger.exception(f"Follow-up offer for slot {notification.slot.appointment_id} failed")

        try:
            stats["entries_removed"] = await self._waitlist.cleanup_expired_entries(now)
        except Exception as e:
            logger.error(f"Error cleaning up waitlist entries: {e}", exc_info=True)

        if any(stats.values()):
            logger.info(f"Waitlist sweep finished: {stats}")
        return stats
