"""
Scheduling API Schemas

Pydantic schemas for API request validation.
"""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from ..application.dto import ConfirmationPreferences
from ..domain.value_objects import AppointmentType, Channel, TimeOfDay, WaitlistPriority, WaitlistResponse

DEFAULT_CHANNELS = [Channel.VOICE, Channel.SMS]


class PreferencesMixin(BaseModel):
    language: str = "en"
    verbosity: Literal["standard", "brief"] = "standard"

    def preferences(self) -> ConfirmationPreferences:
        return ConfirmationPreferences(language=self.language, verbosity=self.verbosity)


class AppointmentReference(BaseModel):
    """Identifies a patient's appointment by id or confirmation number."""

    patient_id: str = Field(..., min_length=1)
    appointment_id: str | None = None
    confirmation_number: str | None = None

    @model_validator(mode="after")
    def require_reference(self) -> "AppointmentReference":
        if not self.appointment_id and not self.confirmation_number:
            raise ValueError("appointment_id or confirmation_number is required")
        return self


class CancellationRequest(PreferencesMixin, AppointmentReference):
    """Cancellation request schema."""

    reason: str = Field("", max_length=500)
    is_emergency: bool = False
    channels: list[Channel] = Field(default_factory=lambda: list(DEFAULT_CHANNELS))


class RescheduleRequest(PreferencesMixin):
    """Reschedule request schema. The appointment id comes from the path."""

    patient_id: str = Field(..., min_length=1)
    new_start: datetime
    channels: list[Channel] = Field(default_factory=lambda: list(DEFAULT_CHANNELS))

    @field_validator("new_start")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("new_start must include a timezone offset")
        return v


class QueryEntitySchema(BaseModel):
    type: str
    value: Any
    normalized_value: Any = None
    confidence: float = Field(1.0, ge=0.0, le=1.0)


class AvailabilityRequest(BaseModel):
    """Availability query from the voice front end."""

    intent: str
    raw_text: str = ""
    entities: list[QueryEntitySchema] = Field(default_factory=list)
    patient_verified: bool = False


class JoinWaitlistRequestSchema(BaseModel):
    """Waitlist entry request schema."""

    patient_id: str = Field(..., min_length=1)
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
    max_wait_days: int = Field(30, ge=1, le=365)


class WaitlistResponseRequestSchema(BaseModel):
    response: WaitlistResponse


class StaffActionSchema(BaseModel):
    actor: str = Field(..., min_length=1)
    notes: str | None = Field(None, max_length=2000)
