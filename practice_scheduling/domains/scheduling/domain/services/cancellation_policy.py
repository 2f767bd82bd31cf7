# ============================================================================
# SCOPE: DOMAIN LAYER (Scheduling)
# Description: Pure cancellation policy: notice-based fees, eligibility and
# the emergency override. No I/O.
# ============================================================================
"""Cancellation Policy Engine.

Computes the fee tier for a cancellation from the appointment start and the
current time. Tiers use strict less-than comparisons, so an appointment exactly
24h out is in the <48h tier and one exactly 48h out is fee-free.
"""

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from enum import Enum


class FeeTier(str, Enum):
    EMERGENCY = "emergency"
    PAST = "past"
    SAME_DAY = "same_day"
    LESS_THAN_24_HOURS = "lt24"
    LESS_THAN_48_HOURS = "lt48"
    MORE_THAN_48_HOURS = "ge48"


@dataclass(frozen=True)
class FeeSchedule:
    same_day: float = 75.0
    less_than_24_hours: float = 50.0
    less_than_48_hours: float = 25.0
    more_than_48_hours: float = 0.0


@dataclass(frozen=True)
class CancellationPolicy:
    """Practice cancellation rules."""

    minimum_notice_hours: int = 24
    fee_schedule: FeeSchedule = field(default_factory=FeeSchedule)
    emergency_exceptions: bool = True
    no_show_fee: float = 100.0

    @classmethod
    def from_settings(cls, settings) -> "CancellationPolicy":
        return cls(
            minimum_notice_hours=settings.CANCELLATION_MINIMUM_NOTICE_HOURS,
            fee_schedule=FeeSchedule(
                same_day=settings.CANCELLATION_FEE_SAME_DAY,
                less_than_24_hours=settings.CANCELLATION_FEE_LT_24H,
                less_than_48_hours=settings.CANCELLATION_FEE_LT_48H,
                more_than_48_hours=settings.CANCELLATION_FEE_GE_48H,
            ),
            emergency_exceptions=settings.EMERGENCY_EXCEPTIONS_ENABLED,
            no_show_fee=settings.NO_SHOW_FEE,
        )


@dataclass(frozen=True)
class PolicyDecision:
    """Outcome of evaluating a cancellation against the policy."""

    allowed: bool
    fee: float
    hours_until: float
    tier: FeeTier
    is_late_notice: bool
    is_past: bool

    @property
    def has_fee(self) -> bool:
        return self.fee > 0


def hours_between(start: datetime, now: datetime) -> float:
    """Hours from now until start (negative when start is in the past)."""
    return (start - now).total_seconds() / 3600


def _same_local_day(start: datetime, now: datetime, tz: tzinfo | None) -> bool:
    if tz is not None:
        return start.astimezone(tz).date() == now.astimezone(tz).date()
    return start.date() == now.date()


def evaluate_cancellation(
    start: datetime,
    now: datetime,
    is_emergency: bool = False,
    policy: CancellationPolicy | None = None,
    tz: tzinfo | None = None,
) -> PolicyDecision:
    """Evaluate a cancellation request.

    Args:
        start: Appointment start (timezone-aware)
        now: Current time (timezone-aware)
        is_emergency: Medical emergency override
        policy: Practice policy (defaults apply when omitted)
        tz: Practice timezone for the same-day check

    Returns:
        PolicyDecision with the fee tier. Past appointments are only allowed
        under the emergency override.
    """
    policy = policy or CancellationPolicy()
    hours_until = hours_between(start, now)
    is_past = hours_until < 0
    is_late_notice = hours_until < 24

    if is_emergency and policy.emergency_exceptions:
        return PolicyDecision(True, 0.0, hours_until, FeeTier.EMERGENCY, is_late_notice, is_past)

    if is_past:
        return PolicyDecision(False, 0.0, hours_until, FeeTier.PAST, True, True)

    schedule = policy.fee_schedule
    if hours_until < 24:
        if _same_local_day(start, now, tz):
            tier, fee = FeeTier.SAME_DAY, schedule.same_day
        else:
            tier, fee = FeeTier.LESS_THAN_24_HOURS, schedule.less_than_24_hours
    elif hours_until < 48:
        tier, fee = FeeTier.LESS_THAN_48_HOURS, schedule.less_than_48_hours
    else:
        tier, fee = FeeTier.MORE_THAN_48_HOURS, schedule.more_than_48_hours

    return PolicyDecision(True, fee, hours_until, tier, is_late_notice, False)


def no_show_fee(policy: CancellationPolicy | None = None) -> float:
    """Fee charged when the patient never arrived."""
    return (policy or CancellationPolicy()).no_show_fee


def can_reschedule(start: datetime, now: datetime, policy: CancellationPolicy | None = None) -> bool:
    """Reschedules need at least the minimum notice."""
    policy = policy or CancellationPolicy()
    return hours_between(start, now) >= policy.minimum_notice_hours
