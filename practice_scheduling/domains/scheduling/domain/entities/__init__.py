# Domain Entities
from .appointment import AppointmentDetails, Slot
from .audit import AuditEntry
from .confirmation import AppointmentConfirmation, CancellationConfirmation, ChannelDelivery
from .staff_notification import StaffNotification
from .waitlist import SlotCriteria, WaitlistEntry, WaitlistNotification

__all__ = [
    "AppointmentConfirmation",
    "AppointmentDetails",
    "AuditEntry",
    "CancellationConfirmation",
    "ChannelDelivery",
    "Slot",
    "SlotCriteria",
    "StaffNotification",
    "WaitlistEntry",
    "WaitlistNotification",
]
