"""Appointment status as held by the system of record."""

from enum import Enum


class AppointmentStatus(str, Enum):
    """Only a booked appointment can still change; the rest are terminal."""

    BOOKED = "booked"
    CANCELLED = "cancelled"
    FULFILLED = "fulfilled"
    NO_SHOW = "noshow"

    def can_transition_to(self, new_status: "AppointmentStatus") -> bool:
        return self is AppointmentStatus.BOOKED and new_status is not AppointmentStatus.BOOKED

    def is_modifiable(self) -> bool:
        """Whether the patient may still cancel or move the appointment."""
        return self.can_transition_to(AppointmentStatus.CANCELLED)
