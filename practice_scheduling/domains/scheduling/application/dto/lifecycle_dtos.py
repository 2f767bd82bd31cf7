# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Data Transfer Objects for lifecycle operations.
# ============================================================================
"""Lifecycle DTOs.

Request and result objects for cancellation, reschedule, waitlist response,
confirmation lookup and staff actions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ...domain.value_objects import Channel, WaitlistResponse

DEFAULT_CANCELLATION_CHANNELS: tuple[Channel, ...] = (Channel.VOICE, Channel.SMS)

# =============================================================================
# Request DTOs
# =============================================================================


@dataclass(frozen=True)
class ConfirmationPreferences:
    """Caller overrides for confirmation wording."""

    language: str = "en"
    verbosity: str = "standard"  # "standard" or "brief"

    @property
    def is_brief(self) -> bool:
        return self.verbosity == "brief"


@dataclass(frozen=True)
class CancelAppointmentRequest:
    """Request DTO for cancelling an appointment."""

    patient_id: str
    appointment_id: str | None = None
    confirmation_number: str | None = None
    reason: str = ""
    is_emergency: bool = False
    channels: tuple[Channel, ...] = DEFAULT_CANCELLATION_CHANNELS
    preferences: ConfirmationPreferences | None = None
    actor: str = "patient"


@dataclass(frozen=True)
class RescheduleAppointmentRequest:
    """Request DTO for moving an appointment to a new start time."""

    patient_id: str
    new_start: datetime
    appointment_id: str | None = None
    confirmation_number: str | None = None
    channels: tuple[Channel, ...] = DEFAULT_CANCELLATION_CHANNELS
    preferences: ConfirmationPreferences | None = None
    actor: str = "patient"


@dataclass(frozen=True)
class WaitlistResponseRequest:
    """Request DTO for a patient's answer to a slot offer."""

    notification_id: str
    response: WaitlistResponse
    actor: str = "patient"


@dataclass(frozen=True)
class StaffActionRequest:
    """Request DTO for acknowledging or resolving a staff notification."""

    notification_id: str
    actor: str
    notes: str | None = None


# =============================================================================
# Result DTOs
# =============================================================================


@dataclass
class UseCaseResult:
    """Generic result for use case operations."""

    success: bool
    data: Any | None = None
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "UseCaseResult":
        """Create successful result."""
        return cls(success=True, data=data)

    @classmethod
    def error(cls, code: str, message: str) -> "UseCaseResult":
        """Create error result."""
        return cls(success=False, error_code=code, error_message=message)


@dataclass
class CancellationResult(UseCaseResult):
    """Result for the cancellation pipeline.

    `message` is always a complete sentence that can be read to the patient.
    `confirmation_incomplete` is set when the cancellation stands but the
    voice read-back of the reference failed, so callers can follow up.
    """

    message: str = ""
    reference_number: str | None = None
    cancellation_fee: float | None = None
    waitlist_notified: bool = False
    waitlist_count: int = 0
    confirmation_delivery: dict[str, bool] = field(default_factory=dict)
    staff_notification_sent: bool = False
    emergency_protocol_activated: bool = False
    confirmation_incomplete: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference_number": self.reference_number,
            "cancellation_fee": self.cancellation_fee,
            "waitlist_notified": self.waitlist_notified,
            "waitlist_count": self.waitlist_count,
            "confirmation_delivery": self.confirmation_delivery,
            "staff_notification_sent": self.staff_notification_sent,
            "emergency_protocol_activated": self.emergency_protocol_activated,
            "confirmation_incomplete": self.confirmation_incomplete,
        }


@dataclass
class RescheduleResult(UseCaseResult):
    """Result for the reschedule operation."""

    message: str = ""
    confirmation_number: str | None = None
    new_start: datetime | None = None
    waitlist_count: int = 0


@dataclass
class WaitlistResponseResult(UseCaseResult):
    """Result of recording a waitlist response.

    `accepted` is True only for the single response that won the slot.
    """

    message: str = ""
    accepted: bool = False
    status: str = ""
    late: bool = False
    slot: dict[str, Any] | None = None
    next_notified: int = 0
    staff_notification_sent: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "status": self.status,
            "late": self.late,
            "slot": self.slot,
            "next_notified": self.next_notified,
            "staff_notification_sent": self.staff_notification_sent,
        }


@dataclass
class AvailabilityResult(UseCaseResult):
    """Result for the availability search."""

    message: str = ""
    requires_clarification: bool = False
    clarification_type: str | None = None
    slots: list[dict[str, Any]] = field(default_factory=list)
    query: dict[str, Any] = field(default_factory=dict)
