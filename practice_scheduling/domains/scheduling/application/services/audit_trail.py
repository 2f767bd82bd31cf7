# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Append-only audit trail for every lifecycle mutation.
# ============================================================================
"""Audit Trail Service.

Redis Key Pattern:
    audit:{entity_type}:{entity_id}   list, newest first, retention TTL
    audit:log                          list, newest first, trimmed
"""

import logging
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as aioredis

from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.core.domain.exceptions import UpstreamServiceException
from practice_scheduling.repositories.async_redis_repository import AsyncRedisRepository

from ...domain.entities import AuditEntry

logger = logging.getLogger(__name__)

GLOBAL_LOG_KEY = "log"


class AuditTrail:
    """Records who did what to which entity, and when.

    Entries are only ever pushed, never rewritten. A failed audit write is
    logged at ERROR and does not undo the mutation that triggered it.
    """

    PREFIX = "audit"

    def __init__(
        self,
        redis_client: aioredis.Redis | None = None,
        settings: Settings | None = None,
        repository: AsyncRedisRepository[AuditEntry] | None = None,
    ):
        self._settings = settings or get_settings()
        self._entries = repository or AsyncRedisRepository[AuditEntry](
            AuditEntry, prefix=self.PREFIX, client=redis_client, settings=self._settings
        )

    async def record(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        actor: str,
        details: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> AuditEntry:
        """Append an audit entry for a mutation."""
        entry = AuditEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor=actor,
            timestamp=now or datetime.now(UTC),
            details=details or {},
        )
        entity_key = f"{entity_type}:{entity_id}"

        try:
            await self._entries.list_push(entity_key, entry)
            await self._entries.expire(entity_key, self._settings.AUDIT_RETENTION_DAYS * 86400)
            await self._entries.list_push(
                GLOBAL_LOG_KEY, entry, max_length=self._settings.AUDIT_LOG_MAX_LENGTH
            )
        except UpstreamServiceException:
            logger.error(f"Audit write failed: {entity_type} {entity_id} {action} by {actor}", exc_info=True)

        return entry

    async def history(self, entity_type: str, entity_id: str) -> list[AuditEntry]:
        """Entries for one entity, oldest first."""
        raw_entries = await self._entries.list_range(f"{entity_type}:{entity_id}")
        return [AuditEntry.model_validate_json(raw) for raw in reversed(raw_entries)]

    async def recent(self, limit: int = 100) -> list[AuditEntry]:
        """Most recent entries across all entities, newest first."""
        raw_entries = await self._entries.list_range(GLOBAL_LOG_KEY, 0, limit - 1)
        return [AuditEntry.model_validate_json(raw) for raw in raw_entries]
