# Domain Value Objects
from .appointment_status import AppointmentStatus
from .appointment_type import AppointmentType
from .channel import Channel
from .priority import NotificationPriority, WaitlistPriority
from .staff_routing import Department, StaffActionType, StaffNotificationType
from .time_of_day import TimeOfDay
from .waitlist_states import WaitlistEntryStatus, WaitlistNotificationStatus, WaitlistResponse

__all__ = [
    "AppointmentStatus",
    "AppointmentType",
    "Channel",
    "Department",
    "NotificationPriority",
    "StaffActionType",
    "StaffNotificationType",
    "TimeOfDay",
    "WaitlistEntryStatus",
    "WaitlistNotificationStatus",
    "WaitlistPriority",
    "WaitlistResponse",
]
