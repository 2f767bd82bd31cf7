"""
Shared pytest fixtures for all tests.

Provides settings, an in-memory async Redis double, recording notification
channels, a fake appointment store and the scheduling services wired on top.
"""

import asyncio
import fnmatch
import os
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from practice_scheduling.config.settings import Settings
from practice_scheduling.core.container import SchedulingContainer
from practice_scheduling.core.domain.exceptions import AppointmentConflictException
from practice_scheduling.domains.scheduling.application.ports import DeliveryResult
from practice_scheduling.domains.scheduling.application.services import (
    AuditTrail,
    ConfirmationService,
    StaffNotificationService,
    WaitlistService,
)
from practice_scheduling.domains.scheduling.domain.entities import (
    AppointmentDetails,
    Slot,
    SlotCriteria,
    WaitlistEntry,
)
from practice_scheduling.domains.scheduling.domain.value_objects import (
    AppointmentStatus,
    AppointmentType,
    Channel,
    WaitlistPriority,
)

os.environ["ENVIRONMENT"] = "test"

# Monday 2025-03-10 10:00 America/New_York (EDT)
NOW = datetime(2025, 3, 10, 14, 0, tzinfo=UTC)


# ============================================================================
# REDIS DOUBLE
# ============================================================================


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis (decode_responses=True).

    Implements the subset of commands used by AsyncRedisRepository.
    """

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    async def get(self, key: str) -> str | None:
        value = self.data.get(key)
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False) -> bool | None:
        if nx and key in self.data:
            return None
        self.data[key] = value
        if ex:
            self.ttls[key] = ex
        return True

    async def mget(self, keys: list[str]) -> list[str | None]:
        return [await self.get(k) for k in keys]

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def exists(self, *keys: str) -> int:
        return sum(1 for k in keys if k in self.data)

    async def expire(self, key: str, seconds: int) -> bool:
        if key not in self.data:
            return False
        self.ttls[key] = seconds
        return True

    async def lpush(self, key: str, *values: str) -> int:
        items = self.data.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        items = self.data.get(key, [])
        return list(items[start:] if end == -1 else items[start : end + 1])

    async def ltrim(self, key: str, start: int, end: int) -> bool:
        items = self.data.get(key, [])
        self.data[key] = items[start:] if end == -1 else items[start : end + 1]
        return True

    async def lrem(self, key: str, count: int, value: str) -> int:
        items = self.data.get(key, [])
        kept = [i for i in items if i != value]
        self.data[key] = kept
        return len(items) - len(kept)

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        zset = self.data.setdefault(key, {})
        added = sum(1 for m in mapping if m not in zset)
        zset.update({m: float(s) for m, s in mapping.items()})
        return added

    def _sorted(self, key: str) -> list[tuple[str, float]]:
        return sorted(self.data.get(key, {}).items(), key=lambda pair: (pair[1], pair[0]))

    async def zrangebyscore(self, key: str, min_score: float, max_score: float) -> list[str]:
        low, high = float(min_score), float(max_score)
        return [m for m, s in self._sorted(key) if low <= s <= high]

    async def zrem(self, key: str, *members: str) -> int:
        zset = self.data.get(key, {})
        return sum(1 for m in members if zset.pop(m, None) is not None)

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        low, high = float(min_score), float(max_score)
        zset = self.data.get(key, {})
        doomed = [m for m, s in zset.items() if low <= s <= high]
        for member in doomed:
            del zset[member]
        return len(doomed)

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True

    def keys_matching(self, pattern: str) -> list[str]:
        return [k for k in self.data if fnmatch.fnmatch(k, pattern)]


class BrokenRedis(FakeRedis):
    """Every command fails as if the server were unreachable."""

    def __getattribute__(self, name: str) -> Any:
        if name in {"get", "set", "mget", "delete", "exists", "expire", "lpush", "lrange", "zadd", "zrangebyscore"}:

            async def fail(*args: Any, **kwargs: Any) -> Any:
                raise RedisConnectionError("connection refused")

            return fail
        return super().__getattribute__(name)


# ============================================================================
# CHANNELS AND STORE DOUBLES
# ============================================================================


@dataclass
class SentMessage:
    recipient: str | None
    message: str
    subject: str | None
    language: str


class RecordingChannel:
    """INotificationChannel that records messages and returns a fixed outcome."""

    def __init__(self, delivered: bool = True, error: Exception | None = None) -> None:
        self.delivered = delivered
        self.error = error
        self.sent: list[SentMessage] = []

    async def send(
        self,
        recipient: str | None,
        message: str,
        subject: str | None = None,
        language: str = "en",
    ) -> DeliveryResult:
        if self.error is not None:
            raise self.error
        self.sent.append(SentMessage(recipient, message, subject, language))
        return DeliveryResult.ok() if self.delivered else DeliveryResult.failed("gateway rejected")


@dataclass
class FakeAppointmentStore:
    """IAppointmentStore over a dict."""

    appointments: dict[str, AppointmentDetails] = field(default_factory=dict)
    slots: list[Slot] = field(default_factory=list)
    fail_reads: bool = False
    fail_mutations: bool = False
    cancel_calls: list[tuple[str, str]] = field(default_factory=list)
    reschedule_calls: list[tuple[str, datetime]] = field(default_factory=list)

    def add(self, appointment: AppointmentDetails) -> AppointmentDetails:
        self.appointments[appointment.id] = appointment
        return appointment

    async def get_by_id(self, appointment_id: str) -> AppointmentDetails | None:
        if self.fail_reads:
            raise ConnectionError("system of record unreachable")
        return self.appointments.get(appointment_id)

    async def get_by_confirmation_number(self, confirmation_number: str) -> AppointmentDetails | None:
        if self.fail_reads:
            raise ConnectionError("system of record unreachable")
        for appointment in self.appointments.values():
            if appointment.confirmation_number == confirmation_number:
                return appointment
        return None

    async def _require_booked(self, appointment: AppointmentDetails, same_start: bool = False) -> None:
        # Yield first so concurrent callers interleave like real round trips
        await asyncio.sleep(0)
        current = self.appointments.get(appointment.id)
        if current is None or current.status is not AppointmentStatus.BOOKED:
            raise AppointmentConflictException(appointment.id)
        if same_start and current.start != appointment.start:
            raise AppointmentConflictException(appointment.id, f"Appointment {appointment.id} was moved")

    async def cancel(self, appointment: AppointmentDetails, reason: str) -> AppointmentDetails:
        if self.fail_mutations:
            raise ConnectionError("system of record unreachable")
        await self._require_booked(appointment)
        self.cancel_calls.append((appointment.id, reason))
        updated = appointment.model_copy(update={"status": AppointmentStatus.CANCELLED})
        self.appointments[appointment.id] = updated
        return updated

    async def reschedule(self, appointment: AppointmentDetails, new_start: datetime) -> AppointmentDetails:
        if self.fail_mutations:
            raise ConnectionError("system of record unreachable")
        await self._require_booked(appointment, same_start=True)
        self.reschedule_calls.append((appointment.id, new_start))
        updated = appointment.model_copy(update={"start": new_start})
        self.appointments[appointment.id] = updated
        return updated

    async def search_free_slots(
        self,
        start: date,
        end: date,
        provider_id: str | None = None,
        appointment_type: AppointmentType | None = None,
    ) -> list[Slot]:
        if self.fail_reads:
            raise ConnectionError("system of record unreachable")
        return [
            s
            for s in self.slots
            if start <= s.start.date() <= end and (provider_id is None or s.provider_id == provider_id)
        ]


# ============================================================================
# FACTORIES
# ============================================================================


def make_appointment(
    start: datetime,
    appointment_id: str = "appt-1",
    patient_id: str = "pat-1",
    appointment_type: AppointmentType = AppointmentType.ROUTINE,
    **overrides: Any,
) -> AppointmentDetails:
    values: dict[str, Any] = {
        "id": appointment_id,
        "confirmation_number": "CE7K3M9P2Q",
        "patient_id": patient_id,
        "patient_name": "Jordan Reyes",
        "patient_phone": "+15555550101",
        "patient_email": "jordan@example.com",
        "provider_id": "prac-1",
        "provider_name": "Dr. Patel",
        "start": start,
        "appointment_type": appointment_type,
    }
    values.update(overrides)
    return AppointmentDetails(**values)


def make_entry(
    entry_id: str,
    created_at: datetime,
    appointment_type: AppointmentType = AppointmentType.ROUTINE,
    priority: WaitlistPriority = WaitlistPriority.NORMAL,
    **overrides: Any,
) -> WaitlistEntry:
    values: dict[str, Any] = {
        "id": entry_id,
        "patient_id": f"pat-{entry_id}",
        "patient_name": f"Patient {entry_id}",
        "phone": "+15555550199",
        "email": f"{entry_id}@example.com",
        "appointment_type": appointment_type,
        "priority": priority,
        "channels": [Channel.SMS],
        "created_at": created_at,
    }
    values.update(overrides)
    return WaitlistEntry(**values)


def make_slot(start: datetime, appointment_id: str = "appt-1", **overrides: Any) -> SlotCriteria:
    values: dict[str, Any] = {
        "appointment_id": appointment_id,
        "appointment_type": AppointmentType.ROUTINE,
        "start": start,
        "provider_id": "prac-1",
        "provider_name": "Dr. Patel",
    }
    values.update(overrides)
    return SlotCriteria(**values)


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        PRACTICE_TIMEZONE="America/New_York",
        OFFICE_PHONE="(555) 123-4567",
        STAFF_API_TOKEN="staff-secret",
        SMS_GATEWAY_URL=None,
        EMAIL_GATEWAY_URL=None,
        WAITLIST_SWEEP_ENABLED=False,
        LOG_FORMAT="plain",
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def voice_channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def sms_channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def email_channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def channels(
    voice_channel: RecordingChannel, sms_channel: RecordingChannel, email_channel: RecordingChannel
) -> dict[Channel, RecordingChannel]:
    return {Channel.VOICE: voice_channel, Channel.SMS: sms_channel, Channel.EMAIL: email_channel}


@pytest.fixture
def store() -> FakeAppointmentStore:
    return FakeAppointmentStore()


@pytest.fixture
def audit(fake_redis: FakeRedis, settings: Settings) -> AuditTrail:
    return AuditTrail(fake_redis, settings)


@pytest.fixture
def confirmation_service(channels, audit, fake_redis, settings) -> ConfirmationService:
    return ConfirmationService(channels, audit, fake_redis, settings)


@pytest.fixture
def waitlist_service(channels, audit, fake_redis, settings) -> WaitlistService:
    return WaitlistService(channels, audit, fake_redis, settings)


@pytest.fixture
def staff_service(audit, fake_redis, settings) -> StaffNotificationService:
    return StaffNotificationService(audit, fake_redis, settings)


@pytest.fixture
def future(now: datetime):
    """Build a time relative to NOW."""

    def _at(**delta: float) -> datetime:
        return now + timedelta(**delta)

    return _at


@pytest.fixture
def container(store, channels, fake_redis, settings):
    return SchedulingContainer(store, channels, redis_client=fake_redis, settings=settings)
