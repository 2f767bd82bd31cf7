# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Waitlist storage, slot matching, offers and the single-award
# response protocol.
# ============================================================================
"""
Waitlist Service.

Matches freed slots against standing waitlist requests, sends time-boxed
offers and records the patients' answers. At most one accepted response
exists per slot: the award is an atomic SET NX on a per-slot key.

Redis Key Pattern:
    waitlist:{entry_id}                              WaitlistEntry (TTL max_wait_days)
    waitlist:priority:{appointment_type}             sorted set of entry ids
    waitlist:expiry                                  sorted set, score = entry expiry epoch
    waitlist:notification:{id}                       WaitlistNotification (7 days)
    waitlist:pending                                 sorted set, score = response deadline epoch
    waitlist:slot:{appointment_id}:notifications     list of notification ids
    waitlist:slot:{appointment_id}:award             winning notification id (NX)
    waitlist:declined:{entry_id}                     last declined appointment ids (30 days)
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta

import redis.asyncio as aioredis

from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.core.domain.exceptions import EntityNotFoundException, ValidationException
from practice_scheduling.core.shared.clock import is_business_hours, practice_timezone, utc_now
from practice_scheduling.repositories.async_redis_repository import AsyncRedisRepository

from ...domain.entities import SlotCriteria, WaitlistEntry, WaitlistNotification
from ...domain.services.waitlist_scoring import priority_score, rank_candidates
from ...domain.value_objects import (
    AppointmentType,
    Channel,
    WaitlistEntryStatus,
    WaitlistNotificationStatus,
    WaitlistPriority,
    WaitlistResponse,
)
from ..dto import WaitlistResponseResult
from ..ports import INotificationChannel
from .audit_trail import AuditTrail
from .message_templates import format_speech_date, format_time

logger = logging.getLogger(__name__)

MATCH_POOL_SIZE = 50
DECLINED_HISTORY_LENGTH = 10
DECLINED_RETENTION_SECONDS = 30 * 86400
NOTIFICATION_RETENTION_SECONDS = 7 * 86400
FINAL_ENTRY_RETENTION_SECONDS = 7 * 86400
STANDARD_NOTIFY_COUNT = 2
URGENT_NOTIFY_COUNT = 3

EXPIRY_INDEX = "expiry"
PENDING_INDEX = "pending"

ACCEPTED_MESSAGE = (
    "Great news! The {appointment_type} appointment on {date} at {time} is yours. "
    "Our office will contact you shortly to finish the booking."
)
TAKEN_MESSAGE = (
    "I'm sorry, that appointment has already been taken by another patient. "
    "You are still on the waitlist and we will let you know about the next opening."
)
DECLINED_MESSAGE = "No problem. You are still on the waitlist and we will let you know about the next opening."
EXPIRED_MESSAGE = "I'm sorry, the time to respond to this offer has passed. You are still on the waitlist."


def priority_index(appointment_type: AppointmentType) -> str:
    return f"priority:{appointment_type.value}"


def slot_notifications_key(appointment_id: str) -> str:
    return f"slot:{appointment_id}:notifications"


def slot_award_key(appointment_id: str) -> str:
    return f"slot:{appointment_id}:award"


def declined_key(entry_id: str) -> str:
    return f"declined:{entry_id}"


def generate_entry_id() -> str:
    return f"wl_{uuid.uuid4().hex[:16]}"


def format_window(minutes: int) -> str:
    """Response window as spoken, e.g. 120 -> "2 hours"."""
    if minutes % 60 == 0:
        hours = minutes // 60
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} minutes"


class WaitlistService:
    """Waitlist matching, offers and responses."""

    PREFIX = "waitlist"

    def __init__(
        self,
        channels: dict[Channel, INotificationChannel],
        audit: AuditTrail,
        redis_client: aioredis.Redis | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or get_settings()
        self._channels = channels
        self._audit = audit
        self._tz = practice_timezone(self._settings)
        self._entries = AsyncRedisRepository[WaitlistEntry](
            WaitlistEntry, prefix=self.PREFIX, client=redis_client, settings=self._settings
        )
        self._notifications = AsyncRedisRepository[WaitlistNotification](
            WaitlistNotification, prefix=self.PREFIX, client=redis_client, settings=self._settings
        )

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def add_entry(self, entry: WaitlistEntry, actor: str = "patient") -> WaitlistEntry:
        """Store a new entry and index it by type and expiry."""
        if entry.max_wait_days < 1:
            raise ValidationException("max_wait_days must be at least 1", field="max_wait_days")
        if not any(entry.contact_for(channel) for channel in entry.channels if channel != Channel.VOICE):
            raise ValidationException("A phone number or email is required for waitlist offers", field="channels")

        await self._entries.set(entry.id, entry, expiration=entry.max_wait_days * 86400)
        await self._entries.sorted_set_add(
            priority_index(entry.appointment_type), entry.id, priority_score(entry, entry.created_at)
        )
        await self._entries.sorted_set_add(EXPIRY_INDEX, entry.id, entry.expires_at.timestamp())
        await self._audit.record(
            "waitlist_entry",
            entry.id,
            "created",
            actor,
            {"appointment_type": entry.appointment_type.value, "priority": entry.priority.value},
            now=entry.created_at,
        )

        logger.info(f"Waitlist entry {entry.id} added ({entry.appointment_type.value}, {entry.priority.value})")
        return entry

    async def get_entry(self, entry_id: str) -> WaitlistEntry | None:
        return await self._entries.get(entry_id)

    async def withdraw(self, entry_id: str, actor: str = "patient", now: datetime | None = None) -> WaitlistEntry:
        """Withdraw an entry from the waitlist."""
        entry = await self.get_entry(entry_id)
        if entry is None:
            raise EntityNotFoundException("WaitlistEntry", entry_id)
        if entry.status.is_final():
            return entry

        now = now or utc_now()
        entry.status = WaitlistEntryStatus.WITHDRAWN
        await self._save_entry(entry, now)
        await self._unindex_entry(entry)
        await self._audit.record("waitlist_entry", entry.id, "withdrawn", actor, now=now)

        logger.info(f"Waitlist entry {entry.id} withdrawn by {actor}")
        return entry

    async def _save_entry(self, entry: WaitlistEntry, now: datetime) -> None:
        if entry.status.is_final():
            ttl = FINAL_ENTRY_RETENTION_SECONDS
        else:
            ttl = max(int((entry.expires_at - now).total_seconds()), 1)
        await self._entries.set(entry.id, entry, expiration=ttl)

    async def _unindex_entry(self, entry: WaitlistEntry) -> None:
        await self._entries.sorted_set_remove(priority_index(entry.appointment_type), entry.id)
        await self._entries.sorted_set_remove(EXPIRY_INDEX, entry.id)

    async def _set_entry_status(self, entry_id: str, status: WaitlistEntryStatus, now: datetime) -> None:
        entry = await self.get_entry(entry_id)
        if entry is None or entry.status.is_final():
            return
        entry.status = status
        await self._save_entry(entry, now)

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    async def find_matches(
        self,
        slot: SlotCriteria,
        now: datetime | None = None,
        exclude_entry_ids: set[str] | None = None,
    ) -> list[tuple[WaitlistEntry, float]]:
        """Active entries that fit the slot, best match first.

        The candidate pool is the MATCH_POOL_SIZE active, not yet offered
        entries of the slot's type with the highest priority score at `now`.
        """
        now = now or utc_now()
        exclude_entry_ids = exclude_entry_ids or set()

        ids = await self._entries.sorted_set_range_by_score(
            priority_index(slot.appointment_type), float("-inf"), float("inf")
        )
        entries = await self._entries.get_many(ids)
        entries.sort(key=lambda e: priority_score(e, now), reverse=True)

        candidates = []
        for entry in entries:
            if len(candidates) >= MATCH_POOL_SIZE:
                break
            if entry.status != WaitlistEntryStatus.ACTIVE or entry.id in exclude_entry_ids:
                continue
            if slot.appointment_id in await self._entries.list_range(declined_key(entry.id)):
                continue
            candidates.append(entry)

        return rank_candidates(candidates, slot, self._settings.WAITLIST_MATCH_THRESHOLD, self._tz)

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    async def notify_for_slot(
        self,
        slot: SlotCriteria,
        urgent: bool = False,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> list[WaitlistNotification]:
        """Offer a freed slot to the best-matching waitlist entries.

        Slots that have already started are only offered on the urgent path,
        where an emergency cancellation frees the provider's time.
        """
        now = now or utc_now()

        if slot.start <= now and not urgent:
            logger.info(f"Slot {slot.appointment_id} already started, no waitlist offers sent")
            return []

        if await self._entries.exists(slot_award_key(slot.appointment_id)):
            logger.info(f"Slot {slot.appointment_id} already awarded, no waitlist offers sent")
            return []

        already_offered = await self._offered_entry_ids(slot.appointment_id)
        matches = await self.find_matches(slot, now, exclude_entry_ids=already_offered)
        if not matches:
            logger.info(f"No waitlist matches for slot {slot.appointment_id}")
            return []

        if limit is None:
            has_urgent_candidate = any(entry.priority == WaitlistPriority.URGENT for entry, _ in matches)
            urgent_slot = urgent or slot.appointment_type == AppointmentType.URGENT or has_urgent_candidate
            limit = URGENT_NOTIFY_COUNT if urgent_slot else STANDARD_NOTIFY_COUNT
        limit = min(limit, self._settings.WAITLIST_MAX_NOTIFY)

        in_business_hours = is_business_hours(
            now, self._tz, self._settings.BUSINESS_HOURS_START, self._settings.BUSINESS_HOURS_END
        )

        notifications: list[WaitlistNotification] = []
        for entry, score in matches:
            if len(notifications) >= limit:
                break
            if entry.business_hours_only and not entry.immediate_notify and not in_business_hours:
                logger.info(f"Waitlist entry {entry.id} delayed until business hours")
                continue
            notifications.append(await self._send_offer(entry, slot, urgent, now))
            logger.debug(f"Waitlist entry {entry.id} offered slot {slot.appointment_id} (score {score:.2f})")

        logger.info(
            f"Waitlist offers for slot {slot.appointment_id}: {len(notifications)} sent of {len(matches)} matches"
        )
        return notifications

    async def notify_next(self, slot: SlotCriteria, now: datetime | None = None) -> list[WaitlistNotification]:
        """Offer the slot to the next-ranked entry after a decline or expiry."""
        return await self.notify_for_slot(slot, now=now, limit=1)

    async def _offered_entry_ids(self, appointment_id: str) -> set[str]:
        ids = await self._entries.list_range(slot_notifications_key(appointment_id))
        notifications = await self._notifications.get_many([f"notification:{i}" for i in ids])
        return {n.entry_id for n in notifications}

    def _response_minutes(self, entry: WaitlistEntry, urgent: bool) -> int:
        if urgent:
            return self._settings.WAITLIST_URGENT_RESPONSE_MINUTES
        if entry.business_hours_only:
            return self._settings.WAITLIST_BUSINESS_HOURS_RESPONSE_MINUTES
        return self._settings.WAITLIST_RESPONSE_MINUTES

    def _offer_message(self, slot: SlotCriteria, window_minutes: int) -> str:
        local_start = slot.start.astimezone(self._tz)
        provider = f" with {slot.provider_name}" if slot.provider_name else ""
        return (
            f"Good news! An earlier {slot.appointment_type.spoken_name} appointment is now available on "
            f"{format_speech_date(local_start)} at {format_time(local_start)}{provider}. "
            f"Reply YES to accept or NO to decline within {format_window(window_minutes)}."
        )

    async def _deliver(self, channel: Channel, recipient: str | None, message: str) -> bool:
        sender = self._channels.get(channel)
        if sender is None:
            logger.warning(f"No {channel.value} channel configured for waitlist offers")
            return False
        try:
            result = await sender.send(recipient, message, subject="An earlier appointment is available")
        except Exception as e:
            logger.warning(f"Waitlist offer via {channel.value} failed: {e}")
            return False
        if not result.delivered:
            logger.warning(f"Waitlist offer via {channel.value} not delivered: {result.error}")
        return result.delivered

    async def _send_offer(
        self,
        entry: WaitlistEntry,
        slot: SlotCriteria,
        urgent: bool,
        now: datetime,
    ) -> WaitlistNotification:
        window = self._response_minutes(entry, urgent)
        message = self._offer_message(slot, window)

        outcomes = await asyncio.gather(
            *[self._deliver(channel, entry.contact_for(channel), message) for channel in entry.channels]
        )
        delivery = {channel.value: ok for channel, ok in zip(entry.channels, outcomes, strict=True)}

        notification = WaitlistNotification(
            id=f"wn_{uuid.uuid4().hex[:16]}",
            entry_id=entry.id,
            patient_id=entry.patient_id,
            slot=slot,
            channels=list(entry.channels),
            delivery=delivery,
            sent_at=now,
            response_deadline=now + timedelta(minutes=window),
            status=WaitlistNotificationStatus.DELIVERED if any(outcomes) else WaitlistNotificationStatus.SENT,
        )

        await self._save_notification(notification)
        await self._entries.list_push(slot_notifications_key(slot.appointment_id), notification.id)
        await self._entries.expire(slot_notifications_key(slot.appointment_id), NOTIFICATION_RETENTION_SECONDS)
        await self._entries.sorted_set_add(PENDING_INDEX, notification.id, notification.response_deadline.timestamp())
        await self._set_entry_status(entry.id, WaitlistEntryStatus.NOTIFIED, now)
        await self._audit.record(
            "waitlist_notification",
            notification.id,
            "sent",
            "system",
            {"entry_id": entry.id, "appointment_id": slot.appointment_id, "delivery": delivery},
            now=now,
        )
        return notification

    async def _save_notification(self, notification: WaitlistNotification) -> None:
        await self._notifications.set(
            f"notification:{notification.id}", notification, expiration=NOTIFICATION_RETENTION_SECONDS
        )

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    async def get_notification(
        self,
        notification_id: str,
        now: datetime | None = None,
        apply_expiry: bool = True,
    ) -> WaitlistNotification:
        """Load an offer, expiring it first when its deadline has passed."""
        notification = await self._notifications.get(f"notification:{notification_id}")
        if notification is None:
            raise EntityNotFoundException("WaitlistNotification", notification_id)

        now = now or utc_now()
        if apply_expiry and notification.is_overdue(now):
            notification = await self._expire(notification, now)
        return notification

    async def _expire(self, notification: WaitlistNotification, now: datetime) -> WaitlistNotification:
        notification.status = WaitlistNotificationStatus.EXPIRED
        notification.response = WaitlistResponse.NO_RESPONSE
        notification.responded_at = now
        await self._save_notification(notification)
        await self._entries.sorted_set_remove(PENDING_INDEX, notification.id)
        await self._set_entry_status(notification.entry_id, WaitlistEntryStatus.ACTIVE, now)
        await self._audit.record("waitlist_notification", notification.id, "expired", "system", now=now)

        logger.info(f"Waitlist notification {notification.id} expired without response")
        return notification

    async def _close(
        self,
        notification: WaitlistNotification,
        response: WaitlistResponse,
        actor: str,
        now: datetime,
        late: bool = False,
    ) -> None:
        notification.status = WaitlistNotificationStatus.RESPONDED
        notification.response = response
        notification.responded_at = now
        notification.late = late
        await self._save_notification(notification)
        await self._entries.sorted_set_remove(PENDING_INDEX, notification.id)
        await self._audit.record(
            "waitlist_notification",
            notification.id,
            f"responded_{response.value}",
            actor,
            {"late": late} if late else None,
            now=now,
        )

    def _result_for(self, notification: WaitlistNotification, next_notified: int = 0) -> WaitlistResponseResult:
        if notification.status == WaitlistNotificationStatus.EXPIRED:
            message = EXPIRED_MESSAGE
        elif notification.response == WaitlistResponse.ACCEPTED:
            local_start = notification.slot.start.astimezone(self._tz)
            message = ACCEPTED_MESSAGE.format(
                appointment_type=notification.slot.appointment_type.spoken_name,
                date=format_speech_date(local_start),
                time=format_time(local_start),
            )
        elif notification.late:
            message = TAKEN_MESSAGE
        else:
            message = DECLINED_MESSAGE

        accepted = notification.response == WaitlistResponse.ACCEPTED
        return WaitlistResponseResult(
            success=True,
            data=notification,
            message=message,
            accepted=accepted,
            status=notification.status.value,
            late=notification.late,
            slot=notification.slot.model_dump(mode="json") if accepted else None,
            next_notified=next_notified,
        )

    async def respond(
        self,
        notification_id: str,
        response: WaitlistResponse,
        actor: str = "patient",
        now: datetime | None = None,
    ) -> WaitlistResponseResult:
        """Record a patient's answer to an offer.

        Only one accepted response wins a slot. A later accept is recorded as
        declined with late=True and the entry stays on the waitlist. An
        overdue offer, or an explicit no-response, expires and the slot moves
        on to the next-ranked entry the same way a decline does.
        """
        now = now or utc_now()
        notification = await self.get_notification(notification_id, now, apply_expiry=False)

        if notification.status.is_final():
            return self._result_for(notification)

        if response == WaitlistResponse.NO_RESPONSE or notification.is_overdue(now):
            await self._expire(notification, now)
            next_offers = await self.notify_next(notification.slot, now)
            return self._result_for(notification, next_notified=len(next_offers))

        slot = notification.slot

        if response == WaitlistResponse.ACCEPTED:
            won = await self._entries.set_if_not_exists(
                slot_award_key(slot.appointment_id),
                notification.id,
                expiration=NOTIFICATION_RETENTION_SECONDS,
            )
            if not won:
                holder = await self._entries.get_raw(slot_award_key(slot.appointment_id))
                won = holder == notification.id

            if won:
                await self._close(notification, WaitlistResponse.ACCEPTED, actor, now)
                entry = await self.get_entry(notification.entry_id)
                if entry is not None and not entry.status.is_final():
                    entry.status = WaitlistEntryStatus.ACCEPTED
                    await self._save_entry(entry, now)
                    await self._unindex_entry(entry)
                logger.info(f"Slot {slot.appointment_id} awarded to waitlist notification {notification.id}")
                return self._result_for(notification)

            await self._close(notification, WaitlistResponse.DECLINED, actor, now, late=True)
            await self._set_entry_status(notification.entry_id, WaitlistEntryStatus.ACTIVE, now)
            logger.info(f"Late accept on slot {slot.appointment_id} from notification {notification.id}")
            return self._result_for(notification)

        await self._close(notification, WaitlistResponse.DECLINED, actor, now)
        await self._entries.list_push(
            declined_key(notification.entry_id), slot.appointment_id, max_length=DECLINED_HISTORY_LENGTH
        )
        await self._entries.expire(declined_key(notification.entry_id), DECLINED_RETENTION_SECONDS)
        await self._set_entry_status(notification.entry_id, WaitlistEntryStatus.ACTIVE, now)

        next_offers = await self.notify_next(slot, now)
        return self._result_for(notification, next_notified=len(next_offers))

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def expire_overdue(self, now: datetime | None = None) -> list[WaitlistNotification]:
        """Expire every pending offer whose deadline has passed."""
        now = now or utc_now()
        ids = await self._entries.sorted_set_range_by_score(PENDING_INDEX, float("-inf"), now.timestamp())

        expired = []
        for notification_id in ids:
            notification = await self._notifications.get(f"notification:{notification_id}")
            if notification is None or notification.status.is_final():
                await self._entries.sorted_set_remove(PENDING_INDEX, notification_id)
                continue
            if notification.is_overdue(now):
                expired.append(await self._expire(notification, now))

        if expired:
            logger.info(f"Expired {len(expired)} overdue waitlist notifications")
        return expired

    async def cleanup_expired_entries(self, now: datetime | None = None) -> int:
        """Drop entries whose max-wait window has passed from every index."""
        now = now or utc_now()
        ids = await self._entries.sorted_set_range_by_score(EXPIRY_INDEX, float("-inf"), now.timestamp())

        for entry_id in ids:
            entry = await self.get_entry(entry_id)
            if entry is not None:
                await self._unindex_entry(entry)
                await self._entries.delete(entry_id)
            else:
                for appointment_type in AppointmentType:
                    await self._entries.sorted_set_remove(priority_index(appointment_type), entry_id)
                await self._entries.sorted_set_remove(EXPIRY_INDEX, entry_id)

        if ids:
            logger.info(f"Cleaned up {len(ids)} expired waitlist entries")
        return len(ids)
