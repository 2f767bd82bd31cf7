# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Ordered stage runner with critical and best-effort stages.
# ============================================================================
"""Pipeline stages.

A CRITICAL stage failure propagates to the caller. A BEST_EFFORT stage
failure is logged with its traceback and replaced by the stage default.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class StageKind(str, Enum):
    CRITICAL = "critical"
    BEST_EFFORT = "best_effort"


@dataclass(frozen=True)
class PipelineStage:
    """A named step of a lifecycle operation."""

    name: str
    kind: StageKind
    default: Callable[[], Any] = field(default=lambda: None)

    @classmethod
    def critical(cls, name: str) -> "PipelineStage":
        return cls(name, StageKind.CRITICAL)

    @classmethod
    def best_effort(cls, name: str, default: Callable[[], Any] = lambda: None) -> "PipelineStage":
        return cls(name, StageKind.BEST_EFFORT, default)


@dataclass
class StageRecord:
    name: str
    kind: StageKind
    succeeded: bool
    error: str | None = None


class PipelineRun:
    """Executes stages in order and keeps a record of each outcome."""

    def __init__(self, operation: str, subject_id: str):
        self.operation = operation
        self.subject_id = subject_id
        self.records: list[StageRecord] = []

    async def run(self, stage: PipelineStage, action: Callable[[], Awaitable[Any]]) -> Any:
        try:
            result = await action()
        except Exception as e:
            self.records.append(StageRecord(stage.name, stage.kind, False, str(e)))
            if stage.kind == StageKind.CRITICAL:
                logger.error(f"{self.operation} {self.subject_id}: critical stage '{stage.name}' failed: {e}")
                raise
            logger.exception(f"{self.operation} {self.subject_id}: best-effort stage '{stage.name}' failed")
            return stage.default()

        self.records.append(StageRecord(stage.name, stage.kind, True))
        return result

    @property
    def failed_stages(self) -> list[str]:
        return [r.name for r in self.records if not r.succeeded]
