# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Staff notification routing, queues, lifecycle and metrics.
# ============================================================================
"""
Staff Notification Service.

Classifies cancellations and waitlist outcomes into prioritized,
department-routed notices. Each notice is pushed onto several queues at once
so filtered staff views never need recomputation.

Redis Key Pattern:
    staff:notification:{id}                       StaffNotification (30 days)
    staff:notifications:timeline                  sorted set, score = created epoch
    staff:notifications:active                    list of ids
    staff:notifications:department:{department}   list of ids
    staff:notifications:priority:{priority}       list of ids
    staff:notifications:urgent                    list of ids (critical/high)
    staff:metrics:{timeframe}:{bucket}            cached metrics
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import redis.asyncio as aioredis
from pydantic import BaseModel, Field

from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.core.domain.exceptions import EntityNotFoundException, ValidationException
from practice_scheduling.core.shared.clock import practice_timezone, utc_now
from practice_scheduling.repositories.async_redis_repository import AsyncRedisRepository

from ...domain.entities import AppointmentDetails, SlotCriteria, StaffNotification, WaitlistEntry
from ...domain.value_objects import (
    AppointmentType,
    Department,
    NotificationPriority,
    StaffActionType,
    StaffNotificationType,
    WaitlistPriority,
    WaitlistResponse,
)
from .audit_trail import AuditTrail
from .message_templates import format_short_date

logger = logging.getLogger(__name__)

TIMEFRAMES: dict[str, timedelta] = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
}

ACTIVE_QUEUE = "notifications:active"
URGENT_QUEUE = "notifications:urgent"
TIMELINE = "notifications:timeline"


def department_queue(department: Department) -> str:
    return f"notifications:department:{department.value}"


def priority_queue(priority: NotificationPriority) -> str:
    return f"notifications:priority:{priority.value}"


@dataclass(frozen=True)
class Classification:
    """Row of the routing decision table."""

    type: StaffNotificationType
    priority: NotificationPriority
    department: Department
    requires_action: bool
    action_type: StaffActionType


def classify_cancellation(
    appointment_type: AppointmentType, is_emergency: bool, is_late_notice: bool
) -> Classification:
    """Route a cancellation.

    emergency            -> critical / medical
    late and urgent type -> high / billing
    late                 -> normal / billing
    urgent type          -> normal / reception
    otherwise            -> low / reception
    """
    is_urgent_type = appointment_type == AppointmentType.URGENT
    requires_action = is_emergency or is_late_notice or is_urgent_type

    if is_emergency:
        return Classification(
            StaffNotificationType.EMERGENCY_CANCELLATION,
            NotificationPriority.CRITICAL,
            Department.MEDICAL,
            True,
            StaffActionType.FOLLOW_UP,
        )
    if is_late_notice:
        return Classification(
            StaffNotificationType.LATE_CANCELLATION,
            NotificationPriority.HIGH if is_urgent_type else NotificationPriority.NORMAL,
            Department.BILLING,
            True,
            StaffActionType.BILLING_REVIEW,
        )
    return Classification(
        StaffNotificationType.CANCELLATION,
        NotificationPriority.NORMAL if is_urgent_type else NotificationPriority.LOW,
        Department.RECEPTION,
        requires_action,
        StaffActionType.RESCHEDULE_ASSISTANCE if is_urgent_type else StaffActionType.CHART_UPDATE,
    )


def classify_waitlist_response(response: WaitlistResponse, priority: WaitlistPriority) -> Classification:
    """Route a waitlist outcome; accepted offers need booking, silence needs a call."""
    is_urgent = priority == WaitlistPriority.URGENT
    if response == WaitlistResponse.ACCEPTED:
        notification_priority = NotificationPriority.HIGH if is_urgent else NotificationPriority.NORMAL
    elif response == WaitlistResponse.NO_RESPONSE and is_urgent:
        notification_priority = NotificationPriority.NORMAL
    else:
        notification_priority = NotificationPriority.LOW

    return Classification(
        StaffNotificationType.WAITLIST_RESPONSE,
        notification_priority,
        Department.RECEPTION,
        response in (WaitlistResponse.ACCEPTED, WaitlistResponse.NO_RESPONSE),
        (
            StaffActionType.SCHEDULE_APPOINTMENT
            if response == WaitlistResponse.ACCEPTED
            else StaffActionType.CONTACT_PATIENT
        ),
    )


class StaffMetrics(BaseModel):
    timeframe: str
    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_priority: dict[str, int] = Field(default_factory=dict)
    by_department: dict[str, int] = Field(default_factory=dict)
    average_acknowledgment_minutes: float = 0.0
    average_resolution_minutes: float = 0.0
    unacknowledged: int = 0
    unresolved: int = 0
    computed_at: datetime


class StaffNotificationService:
    """Creates staff notices and drives their acknowledge/resolve lifecycle."""

    PREFIX = "staff"

    def __init__(
        self,
        audit: AuditTrail,
        redis_client: aioredis.Redis | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or get_settings()
        self._audit = audit
        self._tz = practice_timezone(self._settings)
        self._retention = timedelta(days=self._settings.STAFF_NOTIFICATION_RETENTION_DAYS)
        self._notifications = AsyncRedisRepository[StaffNotification](
            StaffNotification, prefix=self.PREFIX, client=redis_client, settings=self._settings
        )
        self._metrics = AsyncRedisRepository[StaffMetrics](
            StaffMetrics, prefix=self.PREFIX, client=redis_client, settings=self._settings
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def notify_cancellation(
        self,
        appointment: AppointmentDetails,
        reference_number: str,
        is_emergency: bool,
        is_late_notice: bool,
        cancellation_fee: float = 0.0,
        reason: str = "",
        waitlist_count: int = 0,
        now: datetime | None = None,
    ) -> StaffNotification:
        """Create the staff notice for a completed cancellation."""
        route = classify_cancellation(appointment.appointment_type, is_emergency, is_late_notice)
        type_name = appointment.appointment_type.spoken_name

        if is_emergency:
            title = f"EMERGENCY: {type_name} appointment cancelled"
        elif is_late_notice:
            title = f"Late cancellation: {type_name} appointment"
        else:
            title = f"Appointment cancelled: {type_name}"

        message = (
            f"Patient {appointment.patient_name or appointment.patient_id} has cancelled their {type_name} "
            f"appointment with {appointment.provider_name or 'their provider'} "
            f"on {format_short_date(appointment.start.astimezone(self._tz))}. "
        )
        if is_emergency:
            message += "This was marked as an EMERGENCY cancellation. "
            if reason:
                message += f"Reason: {reason}. "
        elif is_late_notice:
            message += "This is a late notice cancellation. "
            if cancellation_fee > 0:
                message += f"Cancellation fee: ${cancellation_fee:.2f}. "
        message += f"Reference: {reference_number}. "
        if waitlist_count > 0:
            message += f"{waitlist_count} waitlisted patients have been notified."
        else:
            message += "No waitlisted patients to notify."

        return await self._create(
            route,
            title,
            message,
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            metadata={
                "reference_number": reference_number,
                "cancellation_fee": cancellation_fee,
                "waitlist_count": waitlist_count,
            },
            now=now,
        )

    async def notify_waitlist_response(
        self,
        entry: WaitlistEntry,
        slot: SlotCriteria,
        response: WaitlistResponse,
        now: datetime | None = None,
    ) -> StaffNotification:
        """Create the staff notice for a waitlist outcome."""
        route = classify_waitlist_response(response, entry.priority)
        type_name = entry.appointment_type.spoken_name
        slot_date = format_short_date(slot.start.astimezone(self._tz))
        patient = entry.patient_name or entry.patient_id

        titles = {
            WaitlistResponse.ACCEPTED: f"Waitlist accepted: {type_name} appointment",
            WaitlistResponse.DECLINED: f"Waitlist declined: {type_name} appointment",
            WaitlistResponse.NO_RESPONSE: f"No waitlist response: {type_name} appointment",
        }
        messages = {
            WaitlistResponse.ACCEPTED: (
                f"Patient {patient} has ACCEPTED the waitlist offer for {slot_date}. "
                "Please process the appointment booking and confirm with the patient."
            ),
            WaitlistResponse.DECLINED: (
                f"Patient {patient} has declined the waitlist offer for {slot_date}. "
                "The slot remains available for other patients."
            ),
            WaitlistResponse.NO_RESPONSE: (
                f"Patient {patient} has not responded to the waitlist offer for {slot_date}. "
                "The deadline has passed. Consider calling the patient directly."
            ),
        }

        return await self._create(
            route,
            titles[response],
            messages[response],
            appointment_id=slot.appointment_id,
            patient_id=entry.patient_id,
            metadata={"waitlist_entry_id": entry.id, "response": response.value},
            now=now,
        )

    async def _create(
        self,
        route: Classification,
        title: str,
        message: str,
        appointment_id: str | None,
        patient_id: str | None,
        metadata: dict,
        now: datetime | None,
    ) -> StaffNotification:
        now = now or utc_now()
        notification = StaffNotification(
            id=f"sn_{uuid.uuid4().hex[:16]}",
            type=route.type,
            priority=route.priority,
            department=route.department,
            title=title,
            message=message,
            appointment_id=appointment_id,
            patient_id=patient_id,
            requires_action=route.requires_action,
            action_type=route.action_type,
            metadata=metadata,
            created_at=now,
        )

        await self._save(notification)
        await self._notifications.sorted_set_add(TIMELINE, notification.id, now.timestamp())
        # Timeline spans the record retention window only
        await self._notifications.sorted_set_remove_by_score(
            TIMELINE, float("-inf"), (now - self._retention).timestamp()
        )

        for queue in self._queues_for(notification):
            await self._notifications.list_push(queue, notification.id)

        await self._audit.record(
            "staff_notification",
            notification.id,
            "created",
            "system",
            {"type": route.type.value, "priority": route.priority.value, "department": route.department.value},
            now=now,
        )
        logger.info(
            f"Staff notification {notification.id} created: {route.type.value} "
            f"{route.priority.value} -> {route.department.value}"
        )
        return notification

    def _queues_for(self, notification: StaffNotification) -> list[str]:
        queues = [
            ACTIVE_QUEUE,
            department_queue(notification.department),
            priority_queue(notification.priority),
        ]
        if notification.priority.is_urgent():
            queues.append(URGENT_QUEUE)
        return queues

    async def _save(self, notification: StaffNotification) -> None:
        await self._notifications.set(
            f"notification:{notification.id}",
            notification,
            expiration=int(self._retention.total_seconds()),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def get(self, notification_id: str) -> StaffNotification:
        notification = await self._notifications.get(f"notification:{notification_id}")
        if notification is None:
            raise EntityNotFoundException("StaffNotification", notification_id)
        return notification

    async def acknowledge(self, notification_id: str, actor: str, now: datetime | None = None) -> StaffNotification:
        """Acknowledge a notice. It leaves the urgent queue only."""
        notification = await self.get(notification_id)
        if notification.acknowledged:
            return notification

        now = now or utc_now()
        notification.acknowledge(actor, now)
        await self._save(notification)
        await self._notifications.list_remove(URGENT_QUEUE, notification.id)
        await self._audit.record("staff_notification", notification.id, "acknowledged", actor, now=now)

        logger.info(f"Staff notification {notification.id} acknowledged by {actor}")
        return notification

    async def resolve(
        self,
        notification_id: str,
        actor: str,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> StaffNotification:
        """Resolve a notice and remove it from every queue."""
        notification = await self.get(notification_id)
        if notification.resolved:
            return notification

        now = now or utc_now()
        notification.resolve(actor, now, notes)
        await self._save(notification)
        for queue in (
            ACTIVE_QUEUE,
            URGENT_QUEUE,
            department_queue(notification.department),
            priority_queue(notification.priority),
        ):
            await self._notifications.list_remove(queue, notification.id)
        await self._audit.record(
            "staff_notification", notification.id, "resolved", actor, {"notes": notes} if notes else None, now=now
        )

        logger.info(f"Staff notification {notification.id} resolved by {actor}")
        return notification

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def queue_ids(self, queue: str) -> list[str]:
        return await self._notifications.list_range(queue)

    async def get_active(
        self,
        department: Department | None = None,
        priority: NotificationPriority | None = None,
        urgent_only: bool = False,
        limit: int = 50,
    ) -> list[StaffNotification]:
        """Unresolved notices, most urgent first, newest first within a priority."""
        if urgent_only:
            queue = URGENT_QUEUE
        elif department is not None:
            queue = department_queue(department)
        elif priority is not None:
            queue = priority_queue(priority)
        else:
            queue = ACTIVE_QUEUE

        ids = await self._notifications.list_range(queue)
        notifications = await self._notifications.get_many([f"notification:{i}" for i in ids])
        await self._prune_queue(queue, ids, notifications)
        notifications = [
            n
            for n in notifications
            if not n.resolved
            and (department is None or n.department == department)
            and (priority is None or n.priority == priority)
        ]
        notifications.sort(key=lambda n: (n.priority.rank, -n.created_at.timestamp()))
        return notifications[:limit]

    async def _prune_queue(self, queue: str, ids: list[str], found: list[StaffNotification]) -> None:
        """Drop queue ids whose records have expired."""
        dangling = set(ids) - {n.id for n in found}
        for notification_id in dangling:
            await self._notifications.list_remove(queue, notification_id)
        if dangling:
            logger.info(f"Pruned {len(dangling)} expired notices from {queue}")

    async def get_metrics(self, timeframe: str = "day", now: datetime | None = None) -> StaffMetrics:
        """Counts and latency averages for notices created within the timeframe.

        Served from a short-lived cache keyed by timeframe bucket.
        """
        if timeframe not in TIMEFRAMES:
            raise ValidationException(f"Unknown timeframe '{timeframe}'", field="timeframe")

        now = now or utc_now()
        window = TIMEFRAMES[timeframe]
        bucket = int(now.timestamp() // window.total_seconds())
        cache_key = f"metrics:{timeframe}:{bucket}"

        cached = await self._metrics.get(cache_key)
        if cached is not None:
            return cached

        ids = await self._notifications.sorted_set_range_by_score(
            TIMELINE, (now - window).timestamp(), now.timestamp()
        )
        notifications = await self._notifications.get_many([f"notification:{i}" for i in ids])

        metrics = StaffMetrics(timeframe=timeframe, computed_at=now)
        ack_minutes: list[float] = []
        resolution_minutes: list[float] = []

        for n in notifications:
            metrics.total += 1
            metrics.by_type[n.type.value] = metrics.by_type.get(n.type.value, 0) + 1
            metrics.by_priority[n.priority.value] = metrics.by_priority.get(n.priority.value, 0) + 1
            metrics.by_department[n.department.value] = metrics.by_department.get(n.department.value, 0) + 1

            if n.acknowledged_at:
                ack_minutes.append((n.acknowledged_at - n.created_at).total_seconds() / 60)
            else:
                metrics.unacknowledged += 1
            if n.resolved_at:
                resolution_minutes.append((n.resolved_at - n.created_at).total_seconds() / 60)
            else:
                metrics.unresolved += 1

        if ack_minutes:
            metrics.average_acknowledgment_minutes = round(sum(ack_minutes) / len(ack_minutes), 2)
        if resolution_minutes:
            metrics.average_resolution_minutes = round(sum(resolution_minutes) / len(resolution_minutes), 2)

        await self._metrics.set(cache_key, metrics, expiration=self._settings.STAFF_METRICS_CACHE_SECONDS)
        return metrics
