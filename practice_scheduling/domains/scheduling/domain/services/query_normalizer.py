# ============================================================================
# SCOPE: DOMAIN LAYER (Scheduling)
# Description: Pure transform from extracted voice entities to a canonical
# availability query. Never raises; problems become clarification requests.
# ============================================================================
"""Query Normalizer.

Turns an intent plus typed entities (as produced by the voice front end) into a
date range and optional appointment-type, provider and time-of-day filters.
"""

import calendar
import logging
import re
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Any

from ..value_objects import AppointmentType, TimeOfDay

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 60
RELATIVE_FALLBACK_DAYS = 30
REFINEMENT_INTENT = "appointment_refinement"

CLARIFICATION_PROMPTS = {
    "appointment_type": (
        "What type of appointment do you need? A routine exam, a follow-up visit, or something urgent?"
    ),
    "time_preference": "Do you prefer morning or afternoon appointments?",
    "date_range": "When would you like to come in? You can say things like 'next week' or 'Monday morning'.",
    "provider": "Would you like to see a specific doctor, or would any available provider work for you?",
}

PHRASE_NORMALIZATIONS = {
    "appointment_availability": (
        "when can i come in",
        "do you have any openings",
        "what times are available",
        "when is the next available",
        "can i get an appointment",
        "i need to schedule",
        "are there any slots",
        "what appointments do you have",
    ),
    "routine": ("eye exam", "check up", "checkup", "annual exam"),
    "follow-up": ("follow up", "recheck"),
    "urgent": ("urgent care", "emergency"),
    "earliest": ("next available", "first available", "soonest"),
    "morning": ("first thing",),
    "afternoon": ("end of day", "after lunch"),
    "doctor": ("doc",),
}

_TYPE_KEYWORDS: tuple[tuple[AppointmentType, tuple[str, ...]], ...] = (
    (AppointmentType.ROUTINE, ("routine", "regular", "annual", "check", "exam")),
    (AppointmentType.FOLLOW_UP, ("follow", "recheck")),
    (AppointmentType.URGENT, ("urgent", "emergency", "asap", "soon")),
)

_TIME_PATTERNS: tuple[tuple[TimeOfDay, re.Pattern[str]], ...] = (
    (TimeOfDay.MORNING, re.compile(r"\b(morning|am|a\.m\.)\b")),
    (TimeOfDay.AFTERNOON, re.compile(r"\b(afternoon|pm|p\.m\.)\b")),
    (TimeOfDay.EVENING, re.compile(r"\bevening\b")),
)


@dataclass(frozen=True)
class QueryEntity:
    """Typed entity extracted by the voice front end."""

    type: str
    value: Any
    normalized_value: Any = None
    confidence: float = 1.0


@dataclass(frozen=True)
class NormalizedQuery:
    start_date: date
    end_date: date
    appointment_type: AppointmentType | None = None
    provider_id: str | None = None
    time_preference: TimeOfDay | None = None
    requires_clarification: bool = False
    clarification_type: str | None = None

    @property
    def clarification_prompt(self) -> str | None:
        if not self.requires_clarification:
            return None
        return CLARIFICATION_PROMPTS.get(
            self.clarification_type or "",
            "Could you tell me more about when you'd like to schedule your appointment?",
        )


@dataclass(frozen=True)
class AvailabilityQuery:
    intent: str
    raw_text: str = ""
    entities: list[QueryEntity] = field(default_factory=list)
    previous_query: NormalizedQuery | None = None
    patient_verified: bool = False


def normalize_phrase(text: str) -> str:
    """Lower-case text and map colloquial phrases onto canonical ones."""
    normalized = text.lower().strip()
    for canonical, phrases in PHRASE_NORMALIZATIONS.items():
        for phrase in phrases:
            normalized = re.sub(rf"\b{re.escape(phrase)}\b", canonical, normalized)
    return normalized


def normalize_appointment_type(value: str) -> AppointmentType:
    """Map free text onto an appointment type, defaulting to routine."""
    lowered = str(value).lower()
    for appointment_type, keywords in _TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return appointment_type
    return AppointmentType.ROUTINE


def _month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def resolve_relative_range(phrase: str, today: date) -> tuple[date, date]:
    """Resolve a relative time phrase with fixed calendar arithmetic."""
    value = phrase.lower()

    if "today" in value:
        return today, today
    if "tomorrow" in value:
        tomorrow = today + timedelta(days=1)
        return tomorrow, tomorrow
    if "next week" in value:
        start = today + timedelta(days=7 - today.weekday())
        return start, start + timedelta(days=6)
    if "this week" in value:
        return today, today + timedelta(days=6 - today.weekday())
    if "next month" in value:
        year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
        return _month_bounds(year, month)
    if "this month" in value:
        return _month_bounds(today.year, today.month)

    return today, today + timedelta(days=RELATIVE_FALLBACK_DAYS)


def _parse_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def _parse_range(value: Any) -> tuple[date, date] | None:
    if isinstance(value, dict):
        start, end = _parse_date(value.get("start")), _parse_date(value.get("end"))
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        start, end = _parse_date(value[0]), _parse_date(value[1])
    elif isinstance(value, str) and "/" in value:
        first, _, second = value.partition("/")
        start, end = _parse_date(first), _parse_date(second)
    else:
        return None
    if start is None or end is None:
        return None
    return (start, end) if start <= end else (end, start)


def extract_date_entity(entities: list[QueryEntity]) -> QueryEntity | None:
    """Pick the date signal: date_range over date over relative_time."""
    for entity_type in ("date_range", "date", "relative_time"):
        for entity in entities:
            if entity.type == entity_type:
                return entity
    return None


def _resolve_date_entity(entity: QueryEntity, today: date) -> tuple[date, date] | None:
    value = entity.normalized_value if entity.normalized_value is not None else entity.value

    if entity.type == "date_range":
        parsed = _parse_range(value)
        if parsed:
            return parsed
    elif entity.type == "date":
        parsed_date = _parse_date(value)
        if parsed_date:
            return parsed_date, parsed_date

    if isinstance(entity.value, str):
        return resolve_relative_range(entity.value, today)

    logger.debug(f"Unparseable {entity.type} entity, using default range")
    return None


def extract_time_preference(query: AvailabilityQuery) -> TimeOfDay | None:
    for entity in query.entities:
        if entity.type == "time_preference":
            raw = entity.normalized_value or entity.value
            try:
                return TimeOfDay(str(raw).lower())
            except ValueError:
                break

    lowered = query.raw_text.lower()
    for time_of_day, pattern in _TIME_PATTERNS:
        if pattern.search(lowered):
            return time_of_day
    return None


def _apply_refinement(query: AvailabilityQuery, result: NormalizedQuery, today: date) -> NormalizedQuery:
    previous = query.previous_query
    text = query.raw_text.lower()

    if "earlier" in text or "sooner" in text:
        return replace(result, start_date=today, end_date=today + timedelta(days=7))

    if "later" in text or "further" in text:
        anchor = max(previous.start_date, today) if previous else today
        return replace(
            result,
            start_date=anchor + timedelta(days=7),
            end_date=anchor + timedelta(days=RELATIVE_FALLBACK_DAYS),
        )

    if "different time" in text:
        return replace(result, requires_clarification=True, clarification_type="time_preference")

    if "different doctor" in text or "another provider" in text:
        return replace(
            result,
            provider_id=None,
            requires_clarification=True,
            clarification_type="provider",
        )

    return result


def normalize_query(query: AvailabilityQuery, today: date) -> NormalizedQuery:
    """Resolve an availability query into canonical filters.

    Args:
        query: Intent, raw text and entities from the voice front end
        today: Current practice-local date

    Returns:
        NormalizedQuery. When no date signal and no prior context exist the
        result carries the default range and asks for a date_range clarification.
    """
    previous = query.previous_query
    date_entity = extract_date_entity(query.entities)

    if previous is not None:
        start, end = previous.start_date, previous.end_date
    else:
        start, end = today, today + timedelta(days=DEFAULT_WINDOW_DAYS)

    if date_entity is not None:
        resolved = _resolve_date_entity(date_entity, today)
        if resolved:
            start, end = resolved

    appointment_type = previous.appointment_type if previous else None
    provider_id = previous.provider_id if previous else None
    time_preference = previous.time_preference if previous else None

    for entity in query.entities:
        if entity.type == "appointment_type":
            appointment_type = normalize_appointment_type(entity.normalized_value or entity.value)
        elif entity.type == "provider":
            provider_id = str(entity.normalized_value or entity.value)

    time_preference = extract_time_preference(query) or time_preference

    result = NormalizedQuery(
        start_date=start,
        end_date=end,
        appointment_type=appointment_type,
        provider_id=provider_id,
        time_preference=time_preference,
    )

    if previous is not None and query.intent == REFINEMENT_INTENT:
        result = _apply_refinement(query, result, today)

    if date_entity is None and previous is None:
        result = replace(result, requires_clarification=True, clarification_type="date_range")

    return result
