# Domain Services (pure, no I/O)
from .cancellation_policy import (
    CancellationPolicy,
    FeeSchedule,
    FeeTier,
    PolicyDecision,
    can_reschedule,
    evaluate_cancellation,
    no_show_fee,
)
from .query_normalizer import AvailabilityQuery, NormalizedQuery, QueryEntity, normalize_phrase, normalize_query
from .waitlist_scoring import is_compatible, match_score, priority_score, rank_candidates

__all__ = [
    "AvailabilityQuery",
    "CancellationPolicy",
    "FeeSchedule",
    "FeeTier",
    "NormalizedQuery",
    "PolicyDecision",
    "QueryEntity",
    "can_reschedule",
    "evaluate_cancellation",
    "is_compatible",
    "match_score",
    "no_show_fee",
    "normalize_phrase",
    "normalize_query",
    "priority_score",
    "rank_candidates",
]
