# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Use Cases exports.
# ============================================================================
"""Application Use Cases for the Scheduling domain."""

from .find_availability import FindAvailabilityUseCase
from .lookup_confirmation import LookupConfirmationUseCase
from .manage_waitlist import JoinWaitlistRequest, JoinWaitlistUseCase, WithdrawWaitlistEntryUseCase
from .pipeline import PipelineRun, PipelineStage, StageKind
from .process_cancellation import ProcessCancellationUseCase
from .process_waitlist_response import ProcessWaitlistResponseUseCase
from .reschedule_appointment import RescheduleAppointmentUseCase
from .staff_notifications import (
    AcknowledgeStaffNotificationUseCase,
    GetStaffMetricsUseCase,
    ListStaffNotificationsUseCase,
    ResolveStaffNotificationUseCase,
)

__all__ = [
    "AcknowledgeStaffNotificationUseCase",
    "FindAvailabilityUseCase",
    "GetStaffMetricsUseCase",
    "JoinWaitlistRequest",
    "JoinWaitlistUseCase",
    "ListStaffNotificationsUseCase",
    "LookupConfirmationUseCase",
    "PipelineRun",
    "PipelineStage",
    "ProcessCancellationUseCase",
    "ProcessWaitlistResponseUseCase",
    "RescheduleAppointmentUseCase",
    "ResolveStaffNotificationUseCase",
    "StageKind",
    "WithdrawWaitlistEntryUseCase",
]
