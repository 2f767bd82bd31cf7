# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Application services exports.
# ============================================================================
from .audit_trail import AuditTrail
from .confirmation_service import ConfirmationNumberConfig, ConfirmationService
from .message_templates import AccessibilityProfile
from .staff_notification_service import StaffMetrics, StaffNotificationService
from .waitlist_service import WaitlistService

__all__ = [
    "AccessibilityProfile",
    "AuditTrail",
    "ConfirmationNumberConfig",
    "ConfirmationService",
    "StaffMetrics",
    "StaffNotificationService",
    "WaitlistService",
]
