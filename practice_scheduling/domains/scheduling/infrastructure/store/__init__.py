from .cached_appointment_store import CachedAppointmentStore

__all__ = ["CachedAppointmentStore"]
