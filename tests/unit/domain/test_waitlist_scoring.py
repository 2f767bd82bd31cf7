# ============================================================================
# Tests for waitlist compatibility, match score and queue priority
# ============================================================================
"""Unit tests for waitlist scoring."""

from datetime import timedelta

import pytest

from practice_scheduling.domains.scheduling.domain.services.waitlist_scoring import (
    TIER_HEAD_START_HOURS,
    is_compatible,
    match_score,
    priority_score,
    rank_candidates,
)
from practice_scheduling.domains.scheduling.domain.value_objects import (
    AppointmentType,
    TimeOfDay,
    WaitlistPriority,
)
from tests.conftest import NOW, make_entry, make_slot


class TestCompatibility:
    """Tests for hard constraints."""

    def test_type_mismatch_is_incompatible(self) -> None:
        """Should never match a different appointment type."""
        entry = make_entry("e1", NOW, appointment_type=AppointmentType.FOLLOW_UP)
        assert is_compatible(entry, make_slot(NOW + timedelta(days=2))) is False

    def test_slot_within_max_wait_is_compatible(self) -> None:
        """Should accept slots before the entry expires."""
        entry = make_entry("e1", NOW, max_wait_days=30)
        assert is_compatible(entry, make_slot(NOW + timedelta(days=10))) is True

    def test_slot_after_max_wait_is_incompatible(self) -> None:
        """Should reject slots past the max-wait window."""
        entry = make_entry("e1", NOW, max_wait_days=5)
        assert is_compatible(entry, make_slot(NOW + timedelta(days=10))) is False

    def test_preferred_date_overrides_window(self) -> None:
        """Should accept a preferred date even beyond the window."""
        slot_start = NOW + timedelta(days=10)
        entry = make_entry("e1", NOW, max_wait_days=5, preferred_dates=[slot_start.date()])
        assert is_compatible(entry, make_slot(slot_start)) is True


class TestMatchScore:
    """Tests for the soft-preference score."""

    def test_no_preferences_scores_any_weights_plus_bonus(self) -> None:
        """Should give time-any and provider-any weights plus the priority bonus."""
        entry = make_entry("e1", NOW)
        assert match_score(entry, make_slot(NOW + timedelta(days=1))) == pytest.approx(0.15 + 0.1 + 0.08)

    def test_full_match(self) -> None:
        """Should add exact date, time and provider weights."""
        slot_start = NOW + timedelta(days=1)  # 14:00 UTC is afternoon without a timezone
        entry = make_entry(
            "e1",
            NOW,
            preferred_dates=[slot_start.date()],
            preferred_times=[TimeOfDay.AFTERNOON],
            preferred_provider_id="prac-1",
            priority=WaitlistPriority.URGENT,
        )
        assert match_score(entry, make_slot(slot_start)) == pytest.approx(0.4 + 0.25 + 0.2 + 0.15)

    def test_near_date_and_wrong_provider(self) -> None:
        """Should give the near-date weight and nothing for a different provider."""
        slot_start = NOW + timedelta(days=3)
        entry = make_entry(
            "e1",
            NOW,
            preferred_dates=[(NOW + timedelta(days=1)).date()],
            preferred_times=[TimeOfDay.MORNING],
            preferred_provider_id="prac-9",
            priority=WaitlistPriority.LOW,
        )
        assert match_score(entry, make_slot(slot_start)) == pytest.approx(0.2 + 0.05)


class TestRanking:
    """Tests for queue priority and candidate ranking."""

    def test_priority_score_weights_age(self) -> None:
        """Should multiply hours waiting plus the head start by the tier multiplier."""
        entry = make_entry("e1", NOW - timedelta(hours=10), priority=WaitlistPriority.HIGH)
        assert priority_score(entry, NOW) == pytest.approx(3 * (10 + TIER_HEAD_START_HOURS))

    def test_priority_score_clamps_future_age(self) -> None:
        """Should treat entries created in the future as brand new."""
        entry = make_entry("e1", NOW + timedelta(hours=1))
        assert priority_score(entry, NOW) == pytest.approx(2 * TIER_HEAD_START_HOURS)

    def test_fresh_urgent_outranks_day_old_low(self) -> None:
        """Should rank a just-added urgent entry above a low entry that waited a day."""
        urgent = make_entry("urgent", NOW, priority=WaitlistPriority.URGENT)
        low = make_entry("low", NOW - timedelta(days=1), priority=WaitlistPriority.LOW)
        assert priority_score(urgent, NOW) > priority_score(low, NOW)

    def test_rank_orders_by_score_then_age(self) -> None:
        """Should rank best score first and older entries first on ties."""
        slot = make_slot(NOW + timedelta(days=2))
        older = make_entry("older", NOW - timedelta(days=2))
        newer = make_entry("newer", NOW - timedelta(days=1))
        best = make_entry("best", NOW, preferred_provider_id="prac-1")
        other_type = make_entry("other", NOW, appointment_type=AppointmentType.URGENT)

        ranked = rank_candidates([newer, other_type, older, best], slot, threshold=0.3)

        assert [entry.id for entry, _ in ranked] == ["best", "older", "newer"]

    def test_threshold_is_strict(self) -> None:
        """Should drop entries whose score equals the threshold."""
        slot = make_slot(NOW + timedelta(days=2))
        entry = make_entry("e1", NOW)
        score = match_score(entry, slot)
        assert rank_candidates([entry], slot, threshold=score) == []
