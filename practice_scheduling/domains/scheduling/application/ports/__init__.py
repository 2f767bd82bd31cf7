# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Port interfaces (DIP).
# ============================================================================
"""Application Ports - interfaces for external dependencies."""

from .appointment_store_port import IAppointmentStore
from .notification_channel_port import DeliveryResult, INotificationChannel
from .response import ExternalResponse

__all__ = [
    "DeliveryResult",
    "ExternalResponse",
    "IAppointmentStore",
    "INotificationChannel",
]
