# ============================================================================
# Tests for WaitlistExpiryScheduler
# ============================================================================
"""Unit tests for the waitlist sweep."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from practice_scheduling.domains.scheduling.domain.value_objects import WaitlistNotificationStatus
from practice_scheduling.domains.scheduling.infrastructure.scheduler import WaitlistExpiryScheduler
from tests.conftest import NOW, make_entry, make_slot


@pytest.fixture
def scheduler(waitlist_service, staff_service) -> WaitlistExpiryScheduler:
    return WaitlistExpiryScheduler(waitlist_service, staff_service, interval_seconds=60, enabled=False)


class TestSweep:
    """Tests for WaitlistExpiryScheduler.sweep."""

    @pytest.mark.asyncio
    async def test_sweep_expires_notifies_and_moves_on(self, scheduler, waitlist_service, staff_service) -> None:
        """Should expire silent offers, tell staff and offer the slot to the next entry."""
        for i in range(3):
            await waitlist_service.add_entry(make_entry(f"e{i}", NOW - timedelta(days=3 - i)))
        await waitlist_service.notify_for_slot(make_slot(NOW + timedelta(days=2)), now=NOW)

        stats = await scheduler.sweep(NOW + timedelta(hours=3))

        assert stats == {"expired": 2, "staff_notified": 2, "next_offers": 1, "entries_removed": 0}
        assert len(await staff_service.get_active()) == 2

    @pytest.mark.asyncio
    async def test_sweep_with_nothing_due(self, scheduler) -> None:
        """Should report zero counts."""
        stats = await scheduler.sweep(NOW)

        assert stats == {"expired": 0, "staff_notified": 0, "next_offers": 0, "entries_removed": 0}

    @pytest.mark.asyncio
    async def test_staff_failure_does_not_stop_sweep(self, waitlist_service) -> None:
        """Should keep sweeping when a staff notice fails."""
        await waitlist_service.add_entry(make_entry("e0", NOW - timedelta(days=1)))
        offers = await waitlist_service.notify_for_slot(make_slot(NOW + timedelta(days=2)), now=NOW)
        staff = AsyncMock()
        staff.notify_waitlist_response.side_effect = RuntimeError("redis down")
        scheduler = WaitlistExpiryScheduler(waitlist_service, staff, enabled=False)

        stats = await scheduler.sweep(NOW + timedelta(hours=3))

        notification = await waitlist_service.get_notification(offers[0].id, apply_expiry=False)
        assert stats["expired"] == 1
        assert stats["staff_notified"] == 0
        assert notification.status == WaitlistNotificationStatus.EXPIRED


class TestLifecycle:
    """Tests for start and stop."""

    @pytest.mark.asyncio
    async def test_disabled_scheduler_does_not_start(self, scheduler) -> None:
        """Should skip start when disabled."""
        await scheduler.start()

        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_start_and_stop(self, waitlist_service, staff_service) -> None:
        """Should run the interval job until stopped."""
        scheduler = WaitlistExpiryScheduler(waitlist_service, staff_service, interval_seconds=3600)

        await scheduler.start()
        assert scheduler.is_running is True

        await scheduler.stop()
        assert scheduler.is_running is False
