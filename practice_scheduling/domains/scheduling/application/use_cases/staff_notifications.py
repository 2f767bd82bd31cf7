# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Staff notification use cases (list, acknowledge, resolve,
# metrics).
# ============================================================================
"""Staff Notification Use Cases.

Thin wrappers over StaffNotificationService used by the staff endpoints.
"""

import logging
from typing import TYPE_CHECKING

from ...domain.entities import StaffNotification
from ...domain.value_objects import Department, NotificationPriority
from ..dto import StaffActionRequest

if TYPE_CHECKING:
    from ..services import StaffMetrics, StaffNotificationService

logger = logging.getLogger(__name__)


class ListStaffNotificationsUseCase:
    def __init__(self, staff_service: "StaffNotificationService") -> None:
        self._staff = staff_service

    async def execute(
        self,
        department: Department | None = None,
        priority: NotificationPriority | None = None,
        urgent_only: bool = False,
        limit: int = 50,
    ) -> list[StaffNotification]:
        return await self._staff.get_active(department, priority, urgent_only=urgent_only, limit=limit)


class AcknowledgeStaffNotificationUseCase:
    def __init__(self, staff_service: "StaffNotificationService") -> None:
        self._staff = staff_service

    async def execute(self, request: StaffActionRequest) -> StaffNotification:
        """Acknowledge a notice.

        Raises:
            EntityNotFoundException: Unknown notification id.
        """
        return await self._staff.acknowledge(request.notification_id, request.actor)


class ResolveStaffNotificationUseCase:
    def __init__(self, staff_service: "StaffNotificationService") -> None:
        self._staff = staff_service

    async def execute(self, request: StaffActionRequest) -> StaffNotification:
        """Resolve a notice.

        Raises:
            EntityNotFoundException: Unknown notification id.
        """
        return await self._staff.resolve(request.notification_id, request.actor, request.notes)


class GetStaffMetricsUseCase:
    def __init__(self, staff_service: "StaffNotificationService") -> None:
        self._staff = staff_service

    async def execute(self, timeframe: str = "day") -> "StaffMetrics":
        return await self._staff.get_metrics(timeframe)
