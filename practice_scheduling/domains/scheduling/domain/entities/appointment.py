"""Appointment Entity.

Snapshot of a booked appointment as read from the system of record.
"""

from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from ..value_objects import AppointmentStatus, AppointmentType


class AppointmentDetails(BaseModel):
    """Booked appointment snapshot.

    The confirmation number is issued once at booking and never changes.
    """

    id: str
    confirmation_number: str | None = None

    patient_id: str
    patient_name: str = ""
    patient_phone: str | None = None
    patient_email: str | None = None

    provider_id: str | None = None
    provider_name: str | None = None

    start: datetime
    duration_minutes: int = 60
    appointment_type: AppointmentType = AppointmentType.ROUTINE
    status: AppointmentStatus = AppointmentStatus.BOOKED
    notes: str | None = None

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    def hours_until(self, now: datetime) -> float:
        """Hours between now and the appointment start (negative when past)."""
        return (self.start - now).total_seconds() / 3600

    def is_owned_by(self, patient_id: str) -> bool:
        return self.patient_id == patient_id


class Slot(BaseModel):
    """A free bookable time range with a provider."""

    id: str
    start: datetime
    end: datetime
    provider_id: str | None = None
    provider_name: str | None = None
    appointment_type: AppointmentType | None = None
    status: str = Field(default="free")
