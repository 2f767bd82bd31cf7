"""Confirmation Entities.

Records backing the reference numbers read to patients.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .appointment import AppointmentDetails


class ChannelDelivery(BaseModel):
    """Outcome of a single channel send."""

    delivered: bool
    error: str | None = None


class CancellationConfirmation(BaseModel):
    """Record of one cancellation event.

    Only the waitlist fields change after creation.
    """

    reference_number: str
    appointment: AppointmentDetails
    cancellation_reason: str = ""
    is_emergency: bool = False
    cancellation_fee: float = 0.0
    delivery: dict[str, ChannelDelivery] = Field(default_factory=dict)
    waitlist_notified: bool = False
    waitlist_count: int = 0
    created_at: datetime

    @property
    def voice_delivered(self) -> bool:
        voice = self.delivery.get("voice")
        return bool(voice and voice.delivered)


class AppointmentConfirmation(BaseModel):
    """Record of a booking or reschedule confirmation."""

    confirmation_number: str
    appointment: AppointmentDetails
    preparation_instructions: list[str] = Field(default_factory=list)
    delivery: dict[str, ChannelDelivery] = Field(default_factory=dict)
    created_at: datetime
