# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Appointment store port (DIP compliant).
# ============================================================================
"""Appointment Store Port.

Interface over the system of record used by the lifecycle use cases.
"""

from datetime import date, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ...domain.entities import AppointmentDetails, Slot
    from ...domain.value_objects import AppointmentType


@runtime_checkable
class IAppointmentStore(Protocol):
    """Interface for appointment lookups and mutations.

    Implementations: CachedAppointmentStore

    Mutations raise UpstreamServiceException when the system of record
    rejects or cannot be reached, and AppointmentConflictException when the
    appointment is no longer booked at write time.
    """

    async def get_by_id(self, appointment_id: str) -> "AppointmentDetails | None":
        """Get an appointment by id, or None when it does not exist."""
        ...

    async def get_by_confirmation_number(self, confirmation_number: str) -> "AppointmentDetails | None":
        """Get an appointment by its confirmation number."""
        ...

    async def cancel(self, appointment: "AppointmentDetails", reason: str) -> "AppointmentDetails":
        """Cancel a booked appointment and return the updated snapshot."""
        ...

    async def reschedule(self, appointment: "AppointmentDetails", new_start: datetime) -> "AppointmentDetails":
        """Move a booked appointment and return the updated snapshot."""
        ...

    async def search_free_slots(
        self,
        start: date,
        end: date,
        provider_id: str | None = None,
        appointment_type: "AppointmentType | None" = None,
    ) -> "list[Slot]":
        """Free slots between start and end (inclusive)."""
        ...
