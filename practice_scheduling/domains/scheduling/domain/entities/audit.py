"""Audit Trail Entity."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AuditEntry(BaseModel):
    """Immutable record of one mutation."""

    model_config = ConfigDict(frozen=True)

    entity_type: str
    entity_id: str
    action: str
    actor: str
    timestamp: datetime
    details: dict[str, Any] = Field(default_factory=dict)
