"""Shared helpers for the scheduling use cases."""

import logging
from typing import TYPE_CHECKING

from ...domain.entities import AppointmentDetails, SlotCriteria

if TYPE_CHECKING:
    from ..ports import IAppointmentStore

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "I couldn't find that appointment. Please check your confirmation number and try again."
TROUBLE_MESSAGE = (
    "I'm having trouble cancelling your appointment right now. "
    "Please try again in a moment or call our office at {office_phone}."
)
RESCHEDULE_TROUBLE_MESSAGE = (
    "I'm having trouble rescheduling your appointment right now. "
    "Please try again in a moment or call our office at {office_phone}."
)
EMERGENCY_FAILURE_MESSAGE = (
    "I'm unable to process your emergency cancellation automatically. "
    "Please call our office immediately for emergency assistance at {office_phone}."
)
VOICE_FAILURE_MESSAGE = (
    "I've cancelled your appointment, but I'm having trouble sending the confirmation. "
    "Please write down this reference number: {reference}"
)


async def find_patient_appointment(
    store: "IAppointmentStore",
    patient_id: str,
    appointment_id: str | None,
    confirmation_number: str | None,
) -> AppointmentDetails | None:
    """Booked appointment owned by the patient, or None.

    Missing, foreign and no-longer-booked appointments all look the same to
    the caller.
    """
    appointment = None
    if appointment_id:
        appointment = await store.get_by_id(appointment_id)
    elif confirmation_number:
        appointment = await store.get_by_confirmation_number(confirmation_number)

    if appointment is None:
        return None
    if not appointment.is_owned_by(patient_id):
        logger.warning(f"Appointment {appointment.id} requested by non-owner {patient_id}")
        return None
    if not appointment.status.is_modifiable():
        logger.info(f"Appointment {appointment.id} is {appointment.status.value}, not modifiable")
        return None
    return appointment


def slot_from_appointment(appointment: AppointmentDetails) -> SlotCriteria:
    return SlotCriteria(
        appointment_id=appointment.id,
        appointment_type=appointment.appointment_type,
        start=appointment.start,
        provider_id=appointment.provider_id,
        provider_name=appointment.provider_name,
        duration_minutes=appointment.duration_minutes,
    )
