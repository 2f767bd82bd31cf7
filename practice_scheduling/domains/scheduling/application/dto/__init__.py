# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: DTO exports.
# ============================================================================
from .lifecycle_dtos import (
    DEFAULT_CANCELLATION_CHANNELS,
    AvailabilityResult,
    CancelAppointmentRequest,
    CancellationResult,
    ConfirmationPreferences,
    RescheduleAppointmentRequest,
    RescheduleResult,
    StaffActionRequest,
    UseCaseResult,
    WaitlistResponseRequest,
    WaitlistResponseResult,
)

__all__ = [
    "DEFAULT_CANCELLATION_CHANNELS",
    "AvailabilityResult",
    "CancelAppointmentRequest",
    "CancellationResult",
    "ConfirmationPreferences",
    "RescheduleAppointmentRequest",
    "RescheduleResult",
    "StaffActionRequest",
    "UseCaseResult",
    "WaitlistResponseRequest",
    "WaitlistResponseResult",
]
