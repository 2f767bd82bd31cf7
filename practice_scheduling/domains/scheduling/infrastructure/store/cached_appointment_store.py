# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Scheduling)
# Description: IAppointmentStore backed by OpenEMR with a Redis read cache.
# ============================================================================
"""Cached Appointment Store.

Redis Key Pattern:
    appointment:{id}                         AppointmentDetails snapshot
    appointment:confirmation:{number}        appointment id

Both keys expire after APPOINTMENT_CACHE_SECONDS and are deleted on every
mutation. Cache failures degrade to reading OpenEMR directly; mutation
failures raise UpstreamServiceException. Cancel and reschedule only write an
appointment that is still booked, and raise AppointmentConflictException
otherwise.
"""

import asyncio
import logging
import weakref
from datetime import date, datetime

import redis.asyncio as aioredis

from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.core.domain.exceptions import AppointmentConflictException, UpstreamServiceException
from practice_scheduling.repositories.async_redis_repository import AsyncRedisRepository

from ...application.ports import ExternalResponse
from ...domain.entities import AppointmentDetails, Slot
from ...domain.value_objects import AppointmentStatus, AppointmentType
from ..external.openemr import OpenEMRClient
from ..external.openemr.fhir_mapper import appointment_from_fhir, slot_from_fhir

logger = logging.getLogger(__name__)


class CachedAppointmentStore:
    """Appointment store over OpenEMR.

    Implements IAppointmentStore.
    """

    PREFIX = "appointment"

    def __init__(
        self,
        client: OpenEMRClient,
        redis_client: aioredis.Redis | None = None,
        settings: Settings | None = None,
    ):
        self._client = client
        self._settings = settings or get_settings()
        self._cache = AsyncRedisRepository[AppointmentDetails](
            AppointmentDetails, prefix=self.PREFIX, client=redis_client, settings=self._settings
        )
        # Serializes read-modify-write per appointment within this process
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    async def _cached(self, appointment_id: str) -> AppointmentDetails | None:
        try:
            return await self._cache.get(appointment_id)
        except UpstreamServiceException:
            logger.warning(f"Appointment cache read failed for {appointment_id}")
            return None

    async def _remember(self, appointment: AppointmentDetails) -> None:
        ttl = self._settings.APPOINTMENT_CACHE_SECONDS
        try:
            await self._cache.set(appointment.id, appointment, expiration=ttl)
            if appointment.confirmation_number:
                await self._cache.set_raw(
                    f"confirmation:{appointment.confirmation_number}", appointment.id, expiration=ttl
                )
        except UpstreamServiceException:
            logger.warning(f"Appointment cache write failed for {appointment.id}")

    async def invalidate(self, appointment: AppointmentDetails) -> None:
        keys = [appointment.id]
        if appointment.confirmation_number:
            keys.append(f"confirmation:{appointment.confirmation_number}")
        try:
            await self._cache.delete(*keys)
        except UpstreamServiceException:
            logger.warning(f"Appointment cache invalidation failed for {appointment.id}")

    @staticmethod
    def _raise_on_error(response: ExternalResponse, operation: str) -> None:
        if not response.success:
            raise UpstreamServiceException(
                "openemr", f"{operation} failed: {response.error_code} {response.error_message}"
            )

    async def _load(self, resource: dict) -> AppointmentDetails:
        patient = None
        appointment = appointment_from_fhir(resource)
        if appointment.patient_id:
            patient_response = await self._client.get_patient(appointment.patient_id)
            if patient_response.success:
                patient = patient_response.first_resource()
        return appointment_from_fhir(resource, patient)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_by_id(self, appointment_id: str) -> AppointmentDetails | None:
        cached = await self._cached(appointment_id)
        if cached is not None:
            return cached

        response = await self._client.get_appointment(appointment_id)
        if response.error_code == "NOT_FOUND":
            return None
        self._raise_on_error(response, "Appointment read")

        appointment = await self._load(response.first_resource())
        await self._remember(appointment)
        return appointment

    async def get_by_confirmation_number(self, confirmation_number: str) -> AppointmentDetails | None:
        try:
            appointment_id = await self._cache.get_raw(f"confirmation:{confirmation_number}")
        except UpstreamServiceException:
            appointment_id = None
        if appointment_id:
            return await self.get_by_id(appointment_id)

        response = await self._client.find_appointment_by_confirmation(confirmation_number)
        if response.error_code == "NOT_FOUND":
            return None
        self._raise_on_error(response, "Appointment search")

        appointment = await self._load(response.first_resource())
        await self._remember(appointment)
        return appointment

    async def search_free_slots(
        self,
        start: date,
        end: date,
        provider_id: str | None = None,
        appointment_type: AppointmentType | None = None,
    ) -> list[Slot]:
        response = await self._client.search_slots(
            start,
            end,
            practitioner_id=provider_id,
            appointment_type=appointment_type.value if appointment_type else None,
        )
        self._raise_on_error(response, "Slot search")

        slots = []
        for resource in response.resources():
            try:
                slots.append(slot_from_fhir(resource))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed slot {resource.get('id')}: {e}")
        return slots

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _lock_for(self, appointment_id: str) -> asyncio.Lock:
        lock = self._locks.get(appointment_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[appointment_id] = lock
        return lock

    async def _check_mutation(
        self, response: ExternalResponse, appointment: AppointmentDetails, operation: str
    ) -> None:
        if response.error_code == "CONFLICT":
            await self.invalidate(appointment)
            raise AppointmentConflictException(appointment.id, response.error_message)
        self._raise_on_error(response, operation)

    async def cancel(self, appointment: AppointmentDetails, reason: str) -> AppointmentDetails:
        async with self._lock_for(appointment.id):
            response = await self._client.cancel_appointment(appointment.id, reason)
            await self._check_mutation(response, appointment, "Appointment cancel")
            await self.invalidate(appointment)

        logger.info(f"Appointment {appointment.id} cancelled in OpenEMR")
        return appointment.model_copy(update={"status": AppointmentStatus.CANCELLED})

    async def reschedule(self, appointment: AppointmentDetails, new_start: datetime) -> AppointmentDetails:
        async with self._lock_for(appointment.id):
            response = await self._client.reschedule_appointment(
                appointment.id, new_start, appointment.duration_minutes, expected_start=appointment.start
            )
            await self._check_mutation(response, appointment, "Appointment update")
            await self.invalidate(appointment)

        logger.info(f"Appointment {appointment.id} moved in OpenEMR")
        return appointment.model_copy(update={"start": new_start})

    async def create(
        self,
        patient_id: str,
        slot: Slot,
        appointment_type: AppointmentType,
        confirmation_number: str | None = None,
        notes: str | None = None,
    ) -> AppointmentDetails:
        """Book a free slot for a patient."""
        if not slot.provider_id:
            raise UpstreamServiceException("openemr", f"Slot {slot.id} has no practitioner")

        response = await self._client.create_appointment(
            patient_id=patient_id,
            practitioner_id=slot.provider_id,
            start=slot.start,
            end=slot.end,
            appointment_type=appointment_type.value,
            slot_id=slot.id,
            confirmation_number=confirmation_number,
            comment=notes,
        )
        self._raise_on_error(response, "Appointment create")

        appointment = await self._load(response.first_resource())
        logger.info(f"Appointment {appointment.id} booked in OpenEMR")
        return appointment
