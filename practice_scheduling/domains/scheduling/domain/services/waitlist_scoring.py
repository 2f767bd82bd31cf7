# ============================================================================
# SCOPE: DOMAIN LAYER (Scheduling)
# Description: Pure waitlist ranking: slot match score and queue priority.
# ============================================================================
"""Waitlist scoring functions."""

from datetime import datetime, timedelta, tzinfo

from ..entities import SlotCriteria, WaitlistEntry
from ..value_objects import TimeOfDay

DATE_EXACT_WEIGHT = 0.4
DATE_NEAR_WEIGHT = 0.2
DATE_NEAR_DAYS = 3
TIME_MATCH_WEIGHT = 0.25
TIME_ANY_WEIGHT = 0.15
PROVIDER_MATCH_WEIGHT = 0.2
PROVIDER_ANY_WEIGHT = 0.1
TIER_HEAD_START_HOURS = 24


def _local(value: datetime, tz: tzinfo | None) -> datetime:
    return value.astimezone(tz) if tz is not None else value


def is_compatible(entry: WaitlistEntry, slot: SlotCriteria, tz: tzinfo | None = None) -> bool:
    """Hard constraints: same appointment type, and the slot falls on a
    preferred date or inside the entry's max-wait window."""
    if entry.appointment_type != slot.appointment_type:
        return False
    slot_date = _local(slot.start, tz).date()
    if slot_date in entry.preferred_dates:
        return True
    return slot.start <= entry.expires_at


def match_score(entry: WaitlistEntry, slot: SlotCriteria, tz: tzinfo | None = None) -> float:
    """Score how well a slot fits an entry's soft preferences, in [0, 1]."""
    local_start = _local(slot.start, tz)
    slot_date = local_start.date()
    score = 0.0

    if slot_date in entry.preferred_dates:
        score += DATE_EXACT_WEIGHT
    elif any(abs((slot_date - d).days) <= DATE_NEAR_DAYS for d in entry.preferred_dates):
        score += DATE_NEAR_WEIGHT

    if not entry.preferred_times:
        score += TIME_ANY_WEIGHT
    elif TimeOfDay.from_datetime(local_start) in entry.preferred_times:
        score += TIME_MATCH_WEIGHT

    if not entry.preferred_provider_id:
        score += PROVIDER_ANY_WEIGHT
    elif entry.preferred_provider_id == slot.provider_id:
        score += PROVIDER_MATCH_WEIGHT

    score += entry.priority.match_bonus
    return min(score, 1.0)


def priority_score(entry: WaitlistEntry, now: datetime) -> float:
    """Queue rank: hours waiting, plus a head start, weighted by priority tier.

    The head start lets a fresh urgent entry outrank lower tiers that have
    waited less than a few days.
    """
    age_hours = max((now - entry.created_at) / timedelta(hours=1), 0.0)
    return (age_hours + TIER_HEAD_START_HOURS) * entry.priority.age_multiplier


def rank_candidates(
    entries: list[WaitlistEntry],
    slot: SlotCriteria,
    threshold: float,
    tz: tzinfo | None = None,
) -> list[tuple[WaitlistEntry, float]]:
    """Compatible entries above threshold, best score first, older first on ties."""
    scored = []
    for entry in entries:
        if not is_compatible(entry, slot, tz):
            continue
        score = match_score(entry, slot, tz)
        if score > threshold:
            scored.append((entry, score))

    scored.sort(key=lambda pair: (-pair[1], pair[0].created_at))
    return scored
