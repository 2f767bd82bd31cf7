"""Staff Notification Entity."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ..value_objects import Department, NotificationPriority, StaffActionType, StaffNotificationType


class StaffNotification(BaseModel):
    """Actionable notice routed to a practice department."""

    id: str
    type: StaffNotificationType
    priority: NotificationPriority
    department: Department
    title: str
    message: str
    appointment_id: str | None = None
    patient_id: str | None = None
    requires_action: bool = False
    action_type: StaffActionType | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    acknowledged: bool = False
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolved: bool = False
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None

    def acknowledge(self, actor: str, at: datetime) -> None:
        if self.acknowledged:
            return
        self.acknowledged = True
        self.acknowledged_by = actor
        self.acknowledged_at = at

    def resolve(self, actor: str, at: datetime, notes: str | None = None) -> None:
        """Resolve, implicitly acknowledging first."""
        self.acknowledge(actor, at)
        self.resolved = True
        self.resolved_by = actor
        self.resolved_at = at
        self.resolution_notes = notes
