"""Waitlist Entities.

Standing waitlist requests and the slot offers sent to them.
"""

from datetime import date, datetime, timedelta

from pydantic import BaseModel, Field

from ..value_objects import (
    AppointmentType,
    Channel,
    TimeOfDay,
    WaitlistEntryStatus,
    WaitlistNotificationStatus,
    WaitlistPriority,
    WaitlistResponse,
)


class WaitlistEntry(BaseModel):
    """A patient's standing request for an earlier or matching opening."""

    id: str
    patient_id: str
    patient_name: str = ""
    phone: str | None = None
    email: str | None = None

    appointment_type: AppointmentType
    preferred_dates: list[date] = Field(default_factory=list)
    preferred_times: list[TimeOfDay] = Field(default_factory=list)
    preferred_provider_id: str | None = None
    priority: WaitlistPriority = WaitlistPriority.NORMAL

    channels: list[Channel] = Field(default_factory=lambda: [Channel.SMS])
    immediate_notify: bool = True
    business_hours_only: bool = False
    max_wait_days: int = 30

    created_at: datetime
    status: WaitlistEntryStatus = WaitlistEntryStatus.ACTIVE

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(days=self.max_wait_days)

    def contact_for(self, channel: Channel) -> str | None:
        """Recipient address for a channel."""
        if channel == Channel.EMAIL:
            return self.email
        return self.phone


class SlotCriteria(BaseModel):
    """Matching criteria of a freed slot."""

    appointment_id: str
    appointment_type: AppointmentType
    start: datetime
    provider_id: str | None = None
    provider_name: str | None = None
    duration_minutes: int = 60


class WaitlistNotification(BaseModel):
    """Offer of a freed slot to one waitlist entry."""

    id: str
    entry_id: str
    patient_id: str
    slot: SlotCriteria
    channels: list[Channel] = Field(default_factory=list)
    delivery: dict[str, bool] = Field(default_factory=dict)

    sent_at: datetime
    response_deadline: datetime
    status: WaitlistNotificationStatus = WaitlistNotificationStatus.SENT
    response: WaitlistResponse | None = None
    responded_at: datetime | None = None
    late: bool = False

    def is_overdue(self, now: datetime) -> bool:
        """Whether the deadline passed while the offer was still open."""
        return not self.status.is_final() and now > self.response_deadline
