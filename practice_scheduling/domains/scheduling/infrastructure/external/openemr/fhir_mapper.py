# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Scheduling)
# Description: Mapping between FHIR R4 resources and scheduling entities.
# ============================================================================
"""FHIR mapper.

Translates OpenEMR FHIR Appointment, Slot and Patient resources into domain
entities and applies lifecycle changes back onto Appointment resources.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from ....domain.entities import AppointmentDetails, Slot
from ....domain.value_objects import AppointmentStatus, AppointmentType

logger = logging.getLogger(__name__)

STATUS_MAP: dict[str, AppointmentStatus] = {
    "booked": AppointmentStatus.BOOKED,
    "pending": AppointmentStatus.BOOKED,
    "proposed": AppointmentStatus.BOOKED,
    "arrived": AppointmentStatus.BOOKED,
    "checked-in": AppointmentStatus.BOOKED,
    "cancelled": AppointmentStatus.CANCELLED,
    "fulfilled": AppointmentStatus.FULFILLED,
    "noshow": AppointmentStatus.NO_SHOW,
}

# HL7 v2-0276 codes plus the plain values used by the practice.
APPOINTMENT_TYPE_CODES: dict[str, AppointmentType] = {
    "routine": AppointmentType.ROUTINE,
    "checkup": AppointmentType.ROUTINE,
    "follow-up": AppointmentType.FOLLOW_UP,
    "followup": AppointmentType.FOLLOW_UP,
    "urgent": AppointmentType.URGENT,
    "emergency": AppointmentType.URGENT,
    "walkin": AppointmentType.URGENT,
}


def parse_instant(value: str | None) -> datetime | None:
    """Parse a FHIR instant; naive values are taken as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def map_status(value: str | None) -> AppointmentStatus:
    status = STATUS_MAP.get((value or "").lower())
    if status is None:
        logger.warning(f"Unknown FHIR appointment status '{value}', treating as cancelled")
        return AppointmentStatus.CANCELLED
    return status


def map_appointment_type(resource: dict[str, Any]) -> AppointmentType:
    codings = (resource.get("appointmentType") or {}).get("coding") or []
    for coding in codings:
        code = str(coding.get("code", "")).lower()
        if code in APPOINTMENT_TYPE_CODES:
            return APPOINTMENT_TYPE_CODES[code]
    return AppointmentType.ROUTINE


def _reference_id(reference: str | None, resource_type: str) -> str | None:
    if reference and reference.startswith(f"{resource_type}/"):
        return reference.split("/", 1)[1]
    return None


def confirmation_number(resource: dict[str, Any]) -> str | None:
    for identifier in resource.get("identifier") or []:
        if str(identifier.get("system", "")).endswith("confirmation"):
            return identifier.get("value")
    return None


def patient_contact(patient: dict[str, Any]) -> tuple[str | None, str | None]:
    """(phone, email) from a Patient resource, preferring mobile numbers."""
    phone = email = None
    for telecom in patient.get("telecom") or []:
        system = telecom.get("system")
        if system == "phone" and (phone is None or telecom.get("use") == "mobile"):
            phone = telecom.get("value")
        elif system == "email" and email is None:
            email = telecom.get("value")
    return phone, email


def appointment_from_fhir(resource: dict[str, Any], patient: dict[str, Any] | None = None) -> AppointmentDetails:
    """Map an Appointment resource (and optionally its Patient) to AppointmentDetails."""
    start = parse_instant(resource.get("start"))
    if start is None:
        raise ValueError(f"Appointment {resource.get('id')} has no start")

    end = parse_instant(resource.get("end"))
    appointment_type = map_appointment_type(resource)
    duration = resource.get("minutesDuration")
    if not duration:
        duration = int((end - start).total_seconds() // 60) if end else appointment_type.default_duration_minutes

    patient_id = provider_id = None
    patient_name = provider_name = None
    for participant in resource.get("participant") or []:
        actor = participant.get("actor") or {}
        reference = actor.get("reference")
        if _reference_id(reference, "Patient"):
            patient_id = _reference_id(reference, "Patient")
            patient_name = actor.get("display")
        elif _reference_id(reference, "Practitioner"):
            provider_id = _reference_id(reference, "Practitioner")
            provider_name = actor.get("display")

    phone = email = None
    if patient is not None:
        phone, email = patient_contact(patient)
        if not patient_name:
            patient_name = patient_display_name(patient)

    return AppointmentDetails(
        id=str(resource["id"]),
        confirmation_number=confirmation_number(resource),
        patient_id=patient_id or "",
        patient_name=patient_name or "",
        patient_phone=phone,
        patient_email=email,
        provider_id=provider_id,
        provider_name=provider_name,
        start=start,
        duration_minutes=int(duration),
        appointment_type=appointment_type,
        status=map_status(resource.get("status")),
        notes=resource.get("comment") or resource.get("description"),
    )


def patient_display_name(patient: dict[str, Any]) -> str:
    names = patient.get("name") or []
    if not names:
        return ""
    name = names[0]
    if name.get("text"):
        return name["text"]
    return " ".join([*name.get("given", []), name.get("family", "")]).strip()


def slot_from_fhir(resource: dict[str, Any]) -> Slot:
    """Map a Slot resource; the provider comes from schedule.actor when present."""
    start = parse_instant(resource.get("start"))
    end = parse_instant(resource.get("end"))
    if start is None:
        raise ValueError(f"Slot {resource.get('id')} has no start")

    schedule = resource.get("schedule") or {}
    provider_id = _reference_id(schedule.get("reference"), "Practitioner") or _reference_id(
        (schedule.get("actor") or {}).get("reference"), "Practitioner"
    )
    codings = (resource.get("appointmentType") or {}).get("coding") or []

    return Slot(
        id=str(resource["id"]),
        start=start,
        end=end or start + timedelta(minutes=60),
        provider_id=provider_id,
        provider_name=schedule.get("display"),
        appointment_type=map_appointment_type(resource) if codings else None,
        status=resource.get("status", "free"),
    )


def rescheduled_resource(resource: dict[str, Any], new_start: datetime, duration_minutes: int) -> dict[str, Any]:
    """Copy of an Appointment resource moved to a new start."""
    updated = dict(resource)
    updated["start"] = new_start.isoformat()
    updated["end"] = (new_start + timedelta(minutes=duration_minutes)).isoformat()
    updated["minutesDuration"] = duration_minutes
    updated.pop("slot", None)
    return updated
