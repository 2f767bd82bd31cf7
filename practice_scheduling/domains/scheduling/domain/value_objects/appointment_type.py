"""Appointment Type Value Object."""

from enum import Enum

# Booked length when the system of record gives neither end nor duration
DEFAULT_DURATIONS = {"routine": 60, "follow-up": 30, "urgent": 45}


class AppointmentType(str, Enum):
    """Kinds of visit offered by the practice."""

    ROUTINE = "routine"
    FOLLOW_UP = "follow-up"
    URGENT = "urgent"

    @property
    def default_duration_minutes(self) -> int:
        return DEFAULT_DURATIONS[self.value]

    @property
    def spoken_name(self) -> str:
        """Name as read to patients ("follow-up" -> "follow up")."""
        return self.value.replace("-", " ")
