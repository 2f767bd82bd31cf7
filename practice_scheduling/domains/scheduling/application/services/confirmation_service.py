# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Confirmation numbers and multi-channel confirmation delivery.
# ============================================================================
"""
Confirmation Service.

Generates unique, voice-pronounceable reference numbers and delivers
confirmations over voice first, then SMS/email.

Redis Key Pattern:
    confirmation:reserved:{number}         SET NX reservation (collision check)
    confirmation:{number}                  AppointmentConfirmation
    cancellation:confirmation:{reference}  CancellationConfirmation
    cancellation:ref:{reference}           appointment id
    cancellation:appointment:{id}          reference
    analytics:confirmations                bounded list of events
"""

import asyncio
import logging
import re
import secrets
import string
from dataclasses import dataclass
from datetime import datetime

import redis.asyncio as aioredis
from pydantic import BaseModel

from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.core.domain.exceptions import ConfirmationNumberExhaustedError, UpstreamServiceException
from practice_scheduling.core.shared.clock import practice_timezone, utc_now
from practice_scheduling.repositories.async_redis_repository import AsyncRedisRepository

from ...domain.entities import (
    AppointmentConfirmation,
    AppointmentDetails,
    CancellationConfirmation,
    ChannelDelivery,
)
from ...domain.value_objects import Channel
from ..dto import ConfirmationPreferences
from ..ports import DeliveryResult, INotificationChannel
from .audit_trail import AuditTrail
from .message_templates import (
    CANCELLATION_TEMPLATE,
    AccessibilityProfile,
    RenderedMessage,
    appointment_variables,
    get_template,
    preparation_instructions,
    render,
    resolve_language,
    spell_reference,
)

logger = logging.getLogger(__name__)

VOICE_OPTIMIZED_CHARSET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
FULL_CHARSET = string.digits + string.ascii_uppercase
TIMESTAMP_CHARS = 4


class ConfirmationEvent(BaseModel):
    """Analytics event pushed for every confirmation issued."""

    kind: str
    number: str
    appointment_type: str
    channels: dict[str, bool]
    timestamp: datetime


@dataclass(frozen=True)
class ConfirmationNumberConfig:
    """Shape of a generated number: prefix + [timestamp] + random characters."""

    prefix: str
    length: int = 8
    include_timestamp: bool = True
    voice_optimized: bool = True
    collision_check_enabled: bool = True

    @property
    def charset(self) -> str:
        return VOICE_OPTIMIZED_CHARSET if self.voice_optimized else FULL_CHARSET


def to_base36(value: int) -> str:
    digits = FULL_CHARSET
    if value == 0:
        return "0"
    result = ""
    while value:
        value, remainder = divmod(value, 36)
        result = digits[remainder] + result
    return result


def generate_candidate(config: ConfirmationNumberConfig, now: datetime) -> str:
    """Build one candidate number (not reserved)."""
    body = ""
    if config.include_timestamp:
        body = to_base36(int(now.timestamp() * 1000))[-TIMESTAMP_CHARS:]
        if config.voice_optimized:
            # Keep the number free of confusable characters.
            body = "".join(c if c in VOICE_OPTIMIZED_CHARSET else secrets.choice(config.charset) for c in body)
    remaining = max(config.length - len(body), 1)
    body += "".join(secrets.choice(config.charset) for _ in range(remaining))
    return f"{config.prefix}{body}"


def normalize_number(value: str) -> str:
    """Uppercase and strip spaces, dashes and commas, as read back by patients."""
    return re.sub(r"[\s,\-]", "", value).upper()


class ConfirmationService:
    """Issues confirmation numbers and delivers confirmations.

    Voice is always attempted first and synchronously. SMS and email run
    afterwards and their failures are recorded per channel.
    """

    def __init__(
        self,
        channels: dict[Channel, INotificationChannel],
        audit: AuditTrail,
        redis_client: aioredis.Redis | None = None,
        settings: Settings | None = None,
        accessibility: AccessibilityProfile | None = None,
    ):
        self._settings = settings or get_settings()
        self._channels = channels
        self._audit = audit
        self._accessibility = accessibility or AccessibilityProfile()
        self._tz = practice_timezone(self._settings)
        self._confirmations = AsyncRedisRepository[AppointmentConfirmation](
            AppointmentConfirmation, prefix="confirmation", client=redis_client, settings=self._settings
        )
        self._cancellations = AsyncRedisRepository[CancellationConfirmation](
            CancellationConfirmation, prefix="cancellation", client=redis_client, settings=self._settings
        )
        self._analytics = AsyncRedisRepository[ConfirmationEvent](
            ConfirmationEvent, prefix="analytics", client=redis_client, settings=self._settings
        )

    @property
    def retention_seconds(self) -> int:
        return self._settings.CONFIRMATION_RETENTION_DAYS * 86400

    def number_config(self, prefix: str) -> ConfirmationNumberConfig:
        return ConfirmationNumberConfig(
            prefix=prefix,
            length=self._settings.CONFIRMATION_NUMBER_LENGTH,
            include_timestamp=self._settings.CONFIRMATION_INCLUDE_TIMESTAMP,
            voice_optimized=self._settings.CONFIRMATION_VOICE_OPTIMIZED,
            collision_check_enabled=self._settings.CONFIRMATION_COLLISION_CHECK,
        )

    # ------------------------------------------------------------------
    # Number generation
    # ------------------------------------------------------------------

    async def generate_number(self, config: ConfirmationNumberConfig) -> str:
        """Generate and reserve a unique number.

        Raises:
            ConfirmationNumberExhaustedError: No free number within the retry bound.
        """
        if not config.collision_check_enabled:
            return generate_candidate(config, utc_now())

        attempts = self._settings.CONFIRMATION_MAX_ATTEMPTS
        for attempt in range(1, attempts + 1):
            candidate = generate_candidate(config, utc_now())
            reserved = await self._confirmations.set_if_not_exists(
                f"reserved:{candidate}", "1", expiration=self.retention_seconds
            )
            if reserved:
                return candidate
            logger.debug(f"Confirmation number collision on attempt {attempt}/{attempts}")

        logger.error(f"Confirmation number space exhausted for prefix {config.prefix}")
        raise ConfirmationNumberExhaustedError(config.prefix, attempts)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _send(
        self,
        channel: Channel,
        recipient: str | None,
        message: RenderedMessage,
        language: str,
    ) -> ChannelDelivery:
        sender = self._channels.get(channel)
        if sender is None:
            return ChannelDelivery(delivered=False, error=f"{channel.value} channel not configured")
        try:
            result: DeliveryResult = await sender.send(
                recipient, message.body, subject=message.subject, language=language
            )
        except Exception as e:
            logger.exception(f"{channel.value} delivery raised")
            return ChannelDelivery(delivered=False, error=str(e))
        return ChannelDelivery(delivered=result.delivered, error=result.error)

    async def _deliver_all(
        self,
        template_key: str,
        channels: list[Channel],
        variables: dict[str, str],
        appointment: AppointmentDetails,
        language: str,
    ) -> dict[str, ChannelDelivery]:
        """Voice first, then the remaining channels concurrently."""
        delivery: dict[str, ChannelDelivery] = {}

        if Channel.VOICE in channels:
            message = render(get_template(template_key, Channel.VOICE), variables)
            delivery[Channel.VOICE.value] = await self._send(Channel.VOICE, None, message, language)

        others = [c for c in channels if c != Channel.VOICE]
        if others:
            results = await asyncio.gather(
                *[
                    self._send(
                        channel,
                        appointment.patient_email if channel == Channel.EMAIL else appointment.patient_phone,
                        render(get_template(template_key, channel), variables),
                        language,
                    )
                    for channel in others
                ]
            )
            for channel, result in zip(others, results):
                delivery[channel.value] = result

        for channel_name, result in delivery.items():
            if not result.delivered:
                logger.warning(f"Confirmation via {channel_name} not delivered: {result.error}")
        return delivery

    def _profile_for(self, preferences: ConfirmationPreferences | None) -> AccessibilityProfile:
        if preferences is not None and preferences.is_brief:
            return AccessibilityProfile(
                slower_pace=self._accessibility.slower_pace,
                simplified_language=True,
                repetition_enabled=False,
                clear_pronunciation=self._accessibility.clear_pronunciation,
            )
        return self._accessibility

    def _variables(self, appointment: AppointmentDetails, number: str, profile: AccessibilityProfile) -> dict[str, str]:
        return appointment_variables(
            appointment,
            number,
            self._tz,
            profile,
            practice=self._settings.PRACTICE_NAME,
            office_phone=self._settings.OFFICE_PHONE,
        )

    async def _log_event(
        self,
        kind: str,
        number: str,
        appointment: AppointmentDetails,
        delivery: dict[str, ChannelDelivery],
        now: datetime,
    ) -> None:
        event = ConfirmationEvent(
            kind=kind,
            number=number,
            appointment_type=appointment.appointment_type.value,
            channels={name: d.delivered for name, d in delivery.items()},
            timestamp=now,
        )
        try:
            await self._analytics.list_push(
                "confirmations", event, max_length=self._settings.ANALYTICS_LOG_MAX_LENGTH
            )
        except UpstreamServiceException:
            logger.warning(f"Confirmation analytics event for {number} not recorded")

    # ------------------------------------------------------------------
    # Cancellation confirmations
    # ------------------------------------------------------------------

    async def create_cancellation_confirmation(
        self,
        appointment: AppointmentDetails,
        cancellation_fee: float,
        reason: str,
        is_emergency: bool,
        channels: list[Channel],
        preferences: ConfirmationPreferences | None = None,
        actor: str = "system",
        now: datetime | None = None,
    ) -> CancellationConfirmation:
        """Issue a CC reference, deliver it and persist the record.

        Raises:
            ConfirmationNumberExhaustedError: Reference generation failed.
        """
        now = now or utc_now()
        language = resolve_language(preferences.language if preferences else "en")
        profile = self._profile_for(preferences)
        reference = await self.generate_number(self.number_config(self._settings.CANCELLATION_REFERENCE_PREFIX))

        variables = self._variables(appointment, reference, profile)
        fee_text = f"${cancellation_fee:.2f}"
        has_fee = cancellation_fee > 0
        variables.update(
            fee_sentence=f"There is a {fee_text} cancellation fee for this appointment. " if has_fee else "",
            fee_suffix=f" (Fee: {fee_text})" if has_fee else "",
            fee_block=f"Cancellation Fee: {fee_text} (due to short notice)\n\n" if has_fee else "",
        )

        delivery = await self._deliver_all(CANCELLATION_TEMPLATE, channels, variables, appointment, language)

        confirmation = CancellationConfirmation(
            reference_number=reference,
            appointment=appointment,
            cancellation_reason=reason,
            is_emergency=is_emergency,
            cancellation_fee=cancellation_fee,
            delivery=delivery,
            created_at=now,
        )
        ttl = self.retention_seconds
        await self._cancellations.set(f"confirmation:{reference}", confirmation, expiration=ttl)
        await self._cancellations.set_raw(f"ref:{reference}", appointment.id, expiration=ttl)
        await self._cancellations.set_raw(f"appointment:{appointment.id}", reference, expiration=ttl)

        await self._audit.record(
            "cancellation_confirmation",
            reference,
            "created",
            actor,
            {"appointment_id": appointment.id, "fee": cancellation_fee, "emergency": is_emergency},
            now=now,
        )
        await self._log_event("cancellation", reference, appointment, delivery, now)

        logger.info(f"Cancellation confirmation {reference} issued for appointment {appointment.id}")
        return confirmation

    async def lookup_cancellation(self, reference: str) -> CancellationConfirmation | None:
        return await self._cancellations.get(f"confirmation:{normalize_number(reference)}")

    async def find_cancellation_for_appointment(self, appointment_id: str) -> CancellationConfirmation | None:
        reference = await self._cancellations.get_raw(f"appointment:{appointment_id}")
        if not reference:
            return None
        return await self.lookup_cancellation(reference)

    async def update_waitlist_status(
        self, reference: str, notified: bool, count: int, actor: str = "system"
    ) -> CancellationConfirmation | None:
        """Record the waitlist outcome on an existing cancellation confirmation."""
        confirmation = await self.lookup_cancellation(reference)
        if confirmation is None:
            logger.warning(f"Cannot update waitlist status, unknown reference {reference}")
            return None

        updated = confirmation.model_copy(update={"waitlist_notified": notified, "waitlist_count": count})
        await self._cancellations.set(
            f"confirmation:{updated.reference_number}", updated, expiration=self.retention_seconds
        )
        await self._audit.record(
            "cancellation_confirmation",
            updated.reference_number,
            "waitlist_updated",
            actor,
            {"waitlist_notified": notified, "waitlist_count": count},
        )
        return updated

    def build_cancellation_message(
        self,
        confirmation: CancellationConfirmation,
        preferences: ConfirmationPreferences | None = None,
    ) -> str:
        """Sentence read back to the patient on the live call."""
        appointment = confirmation.appointment
        profile = self._profile_for(preferences)
        variables = self._variables(appointment, confirmation.reference_number, profile)

        message = (
            f"I've cancelled your {variables['appointment_type']} appointment with {variables['provider']} "
            f"on {variables['date']} at {variables['time']}. "
        )
        if confirmation.cancellation_fee > 0:
            message += f"There is a ${confirmation.cancellation_fee:.2f} cancellation fee for this appointment. "

        message += f"Your cancellation reference number is {confirmation.reference_number}. "
        if profile.repetition_enabled:
            message += f"I'll repeat that slowly: {spell_reference(confirmation.reference_number, profile)}. "

        extra = []
        if confirmation.delivery.get(Channel.SMS.value, ChannelDelivery(delivered=False)).delivered:
            extra.append("text message")
        if confirmation.delivery.get(Channel.EMAIL.value, ChannelDelivery(delivered=False)).delivered:
            extra.append("email")
        if extra:
            message += f"I've also sent you a confirmation by {' and '.join(extra)}. "

        return message

    # ------------------------------------------------------------------
    # Appointment confirmations
    # ------------------------------------------------------------------

    async def create_appointment_confirmation(
        self,
        appointment: AppointmentDetails,
        channels: list[Channel],
        preferences: ConfirmationPreferences | None = None,
        actor: str = "system",
        now: datetime | None = None,
    ) -> AppointmentConfirmation:
        """Issue a CE number for a booking or reschedule and deliver it."""
        now = now or utc_now()
        language = resolve_language(preferences.language if preferences else "en")
        profile = self._profile_for(preferences)
        number = await self.generate_number(self.number_config(self._settings.CONFIRMATION_PREFIX))

        include_instructions = not (preferences and preferences.is_brief)
        instructions = (
            preparation_instructions(appointment.appointment_type, profile.simplified_language)
            if include_instructions
            else []
        )

        variables = self._variables(appointment, number, profile)
        variables.update(
            instructions_sentence=(" ".join(instructions) + " ") if instructions else "",
            instructions_block=(
                "Before your visit:\n" + "\n".join(f"- {line}" for line in instructions) + "\n\n"
                if instructions
                else ""
            ),
        )

        delivery = await self._deliver_all(
            appointment.appointment_type.value, channels, variables, appointment, language
        )

        confirmation = AppointmentConfirmation(
            confirmation_number=number,
            appointment=appointment,
            preparation_instructions=instructions,
            delivery=delivery,
            created_at=now,
        )
        await self._confirmations.set(number, confirmation, expiration=self.retention_seconds)
        await self._audit.record(
            "appointment_confirmation", number, "created", actor, {"appointment_id": appointment.id}, now=now
        )
        await self._log_event("appointment", number, appointment, delivery, now)

        logger.info(f"Appointment confirmation {number} issued for appointment {appointment.id}")
        return confirmation

    async def lookup_confirmation(self, number: str) -> AppointmentConfirmation | None:
        return await self._confirmations.get(normalize_number(number))
