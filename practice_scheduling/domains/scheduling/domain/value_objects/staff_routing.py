"""Staff notification routing value objects."""

from enum import Enum


class StaffNotificationType(str, Enum):
    CANCELLATION = "cancellation"
    EMERGENCY_CANCELLATION = "emergency_cancellation"
    LATE_CANCELLATION = "late_cancellation"
    WAITLIST_RESPONSE = "waitlist_response"


class Department(str, Enum):
    RECEPTION = "reception"
    MEDICAL = "medical"
    BILLING = "billing"
    MANAGEMENT = "management"


class StaffActionType(str, Enum):
    """What staff are expected to do with a notice."""

    FOLLOW_UP = "follow_up"
    BILLING_REVIEW = "billing_review"
    RESCHEDULE_ASSISTANCE = "reschedule_assistance"
    CHART_UPDATE = "chart_update"
    SCHEDULE_APPOINTMENT = "schedule_appointment"
    CONTACT_PATIENT = "contact_patient"
