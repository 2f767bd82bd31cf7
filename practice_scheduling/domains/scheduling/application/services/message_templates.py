# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Patient message templates keyed by (template, channel) and the
# accessibility formatting applied to them.
# ============================================================================
"""Message Templates.

Templates are plain `str.format` strings. Voice output follows a constant
accessibility profile (slow pace, repetition, spelled reference numbers)
unless the caller overrides verbosity.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo

from ...domain.entities import AppointmentDetails
from ...domain.value_objects import AppointmentType, Channel

logger = logging.getLogger(__name__)

CANCELLATION_TEMPLATE = "cancellation"
SUPPORTED_LANGUAGES = ("en",)


@dataclass(frozen=True)
class AccessibilityProfile:
    """Voice delivery adaptations, applied to every patient by default."""

    slower_pace: bool = True
    simplified_language: bool = True
    repetition_enabled: bool = True
    clear_pronunciation: bool = True


@dataclass(frozen=True)
class MessageTemplate:
    body: str
    subject: str | None = None


@dataclass(frozen=True)
class RenderedMessage:
    body: str
    subject: str | None = None


_BOOKING_VOICE = (
    "Your appointment has been confirmed. "
    "You have a {appointment_type} appointment on {date} at {time} with {provider}. "
    "Your confirmation number is {reference_spoken}. {repeat_sentence}"
    "{instructions_sentence}"
    "If you need to make changes, please call our office at {office_phone}. {closing}"
)
_BOOKING_SMS = (
    "{practice}: Your {appointment_type} appointment is confirmed for {short_date} with {provider}. "
    "Confirmation: {reference}. Questions? Call {office_phone}."
)
_BOOKING_EMAIL = (
    "Dear {patient_name},\n\n"
    "Your {appointment_type} appointment is confirmed.\n\n"
    "Appointment Details:\n"
    "- Provider: {provider}\n"
    "- Date & Time: {long_date}\n"
    "- Confirmation Number: {reference}\n\n"
    "{instructions_block}"
    "If you need to make changes, please call {office_phone}.\n\n"
    "{practice}"
)
_BOOKING_SUBJECT = "Appointment Confirmation - {reference}"

_CLOSINGS = {
    AppointmentType.ROUTINE: "We look forward to seeing you.",
    AppointmentType.FOLLOW_UP: "We look forward to seeing how you are doing.",
    AppointmentType.URGENT: "We will see you soon. If this becomes an emergency, please call 911.",
}

TEMPLATES: dict[tuple[str, Channel], MessageTemplate] = {
    (CANCELLATION_TEMPLATE, Channel.VOICE): MessageTemplate(
        "Your {appointment_type} appointment with {provider} on {date} at {time} has been cancelled. "
        "{fee_sentence}"
        "Your cancellation reference number is {reference_spoken}. {repeat_sentence}"
        "Please write this down for your records. "
        "The appointment time is now available for other patients."
    ),
    (CANCELLATION_TEMPLATE, Channel.SMS): MessageTemplate(
        "{practice}: Your {appointment_type} appointment on {short_date} has been cancelled. "
        "Reference: {reference}{fee_suffix}. To reschedule, call {office_phone}."
    ),
    (CANCELLATION_TEMPLATE, Channel.EMAIL): MessageTemplate(
        "Dear {patient_name},\n\n"
        "This confirms that your appointment has been cancelled:\n\n"
        "Appointment Details:\n"
        "- Type: {appointment_type_title} appointment\n"
        "- Provider: {provider}\n"
        "- Date & Time: {long_date}\n"
        "- Cancellation Reference: {reference}\n\n"
        "{fee_block}"
        "To schedule a new appointment, please call {office_phone}.\n\n"
        "{practice}",
        subject="Appointment Cancellation Confirmation - {reference}",
    ),
}

for _type in AppointmentType:
    TEMPLATES[(_type.value, Channel.VOICE)] = MessageTemplate(
        _BOOKING_VOICE.replace("{closing}", _CLOSINGS[_type])
    )
    TEMPLATES[(_type.value, Channel.SMS)] = MessageTemplate(_BOOKING_SMS)
    TEMPLATES[(_type.value, Channel.EMAIL)] = MessageTemplate(_BOOKING_EMAIL, subject=_BOOKING_SUBJECT)


PREPARATION_INSTRUCTIONS: dict[AppointmentType, list[tuple[str, str]]] = {
    # (full wording, simplified wording)
    AppointmentType.ROUTINE: [
        (
            "Please bring your insurance card, current list of medications, and previous glasses if you have them.",
            "Bring your insurance card, medication list, and glasses.",
        ),
        (
            "Your eyes may be dilated during this exam. Please arrange for someone to drive you home, "
            "as your vision may be blurry for 2 to 4 hours.",
            "Your eyes may be dilated. Arrange a ride home.",
        ),
    ],
    AppointmentType.FOLLOW_UP: [
        (
            "Please bring your current glasses and any medications you are taking for your eyes.",
            "Bring your glasses and eye medications.",
        ),
    ],
    AppointmentType.URGENT: [
        (
            "Please do not put any drops in your eyes unless instructed by our office. "
            "If this is an emergency, please call 911.",
            "Do not use eye drops unless we tell you to. Call 911 for emergencies.",
        ),
    ],
}
ARRIVAL_INSTRUCTION = (
    "Please arrive 15 minutes early to complete check-in forms.",
    "Arrive 15 minutes early for check-in.",
)


def get_template(template_key: str, channel: Channel) -> MessageTemplate:
    """Template for (key, channel), falling back to the routine template for that channel."""
    template = TEMPLATES.get((template_key, channel))
    if template is None:
        logger.warning(f"No template for ({template_key}, {channel.value}), using routine")
        template = TEMPLATES[(AppointmentType.ROUTINE.value, channel)]
    return template


def resolve_language(language: str) -> str:
    if language not in SUPPORTED_LANGUAGES:
        logger.warning(f"Language '{language}' not available for confirmations, falling back to en")
        return "en"
    return language


def preparation_instructions(appointment_type: AppointmentType, simplified: bool) -> list[str]:
    """Arrival and type-specific instructions for a booking confirmation."""
    pairs = [ARRIVAL_INSTRUCTION, *PREPARATION_INSTRUCTIONS.get(appointment_type, [])]
    return [short if simplified else full for full, short in pairs]


def spell_reference(reference: str, profile: AccessibilityProfile) -> str:
    """Reference number as read aloud.

    Clear pronunciation spells it character by character; a slower pace puts
    a pause (comma) between characters.
    """
    if not profile.clear_pronunciation:
        return reference
    separator = ", " if profile.slower_pace else " "
    return separator.join(reference)


def format_time(value: datetime) -> str:
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value:%M} {suffix}"


def format_speech_date(value: datetime) -> str:
    return f"{value:%A, %B} {value.day}"


def format_short_date(value: datetime) -> str:
    return f"{value:%b} {value.day} {format_time(value)}"


def format_long_date(value: datetime) -> str:
    return f"{value:%A, %B} {value.day}, {value.year} at {format_time(value)}"


def appointment_variables(
    appointment: AppointmentDetails,
    reference: str,
    tz: tzinfo | None,
    profile: AccessibilityProfile,
    practice: str,
    office_phone: str,
) -> dict[str, str]:
    """Template variables shared by every channel."""
    local_start = appointment.start.astimezone(tz) if tz is not None else appointment.start
    spoken = spell_reference(reference, profile)
    return {
        "patient_name": appointment.patient_name or "Patient",
        "appointment_type": appointment.appointment_type.spoken_name,
        "appointment_type_title": appointment.appointment_type.spoken_name.capitalize(),
        "provider": appointment.provider_name or "your provider",
        "date": format_speech_date(local_start),
        "time": format_time(local_start),
        "short_date": format_short_date(local_start),
        "long_date": format_long_date(local_start),
        "reference": reference,
        "reference_spoken": spoken,
        "repeat_sentence": f"Let me repeat that: {spoken}. " if profile.repetition_enabled else "",
        "practice": practice,
        "office_phone": office_phone,
    }


def render(template: MessageTemplate, variables: dict[str, str]) -> RenderedMessage:
    return RenderedMessage(
        body=template.body.format(**variables),
        subject=template.subject.format(**variables) if template.subject else None,
    )
