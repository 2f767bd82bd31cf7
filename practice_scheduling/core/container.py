# ============================================================================
# SCOPE: GLOBAL
# Description: Dependency container wiring the scheduling services and use
# cases. One instance lives on app.state for the lifetime of the process.
# ============================================================================
"""
Dependency Injection Container.

Holds the shared singletons (Redis client, appointment store, channels,
services) and creates use cases on demand.

Usage:
    container = SchedulingContainer.from_settings(settings, redis_client)
    use_case = container.create_process_cancellation_use_case()
"""

import logging

import redis.asyncio as aioredis

from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.domains.scheduling.application.ports import IAppointmentStore, INotificationChannel
from practice_scheduling.domains.scheduling.application.services import (
    AuditTrail,
    ConfirmationService,
    StaffNotificationService,
    WaitlistService,
)
from practice_scheduling.domains.scheduling.application.use_cases import (
    AcknowledgeStaffNotificationUseCase,
    FindAvailabilityUseCase,
    GetStaffMetricsUseCase,
    JoinWaitlistUseCase,
    ListStaffNotificationsUseCase,
    LookupConfirmationUseCase,
    ProcessCancellationUseCase,
    ProcessWaitlistResponseUseCase,
    RescheduleAppointmentUseCase,
    ResolveStaffNotificationUseCase,
    WithdrawWaitlistEntryUseCase,
)
from practice_scheduling.domains.scheduling.domain.value_objects import Channel
from practice_scheduling.domains.scheduling.infrastructure.channels import (
    EmailGatewayChannel,
    SmsGatewayChannel,
    VoiceSessionChannel,
)
from practice_scheduling.domains.scheduling.infrastructure.external.openemr import OpenEMRClient
from practice_scheduling.domains.scheduling.infrastructure.scheduler import WaitlistExpiryScheduler
from practice_scheduling.domains.scheduling.infrastructure.store import CachedAppointmentStore

logger = logging.getLogger(__name__)


class SchedulingContainer:
    """Wires services and creates use cases.

    Single Responsibility: dependency wiring for the scheduling domain.
    """

    def __init__(
        self,
        appointment_store: IAppointmentStore,
        channels: dict[Channel, INotificationChannel],
        redis_client: aioredis.Redis | None = None,
        settings: Settings | None = None,
        openemr_client: OpenEMRClient | None = None,
    ):
        """Initialize container.

        Args:
            appointment_store: System of record adapter.
            channels: Delivery channel per Channel value.
            redis_client: Shared redis.asyncio client.
            settings: Application settings.
            openemr_client: FHIR client, closed on shutdown when given.
        """
        self.settings = settings or get_settings()
        self.redis_client = redis_client
        self.appointment_store = appointment_store
        self.channels = channels
        self.openemr_client = openemr_client

        self.audit = AuditTrail(redis_client, self.settings)
        self.confirmation_service = ConfirmationService(channels, self.audit, redis_client, self.settings)
        self.waitlist_service = WaitlistService(channels, self.audit, redis_client, self.settings)
        self.staff_service = StaffNotificationService(self.audit, redis_client, self.settings)

        logger.debug("SchedulingContainer initialized")

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, redis_client: aioredis.Redis | None = None
    ) -> "SchedulingContainer":
        """Build the production wiring: OpenEMR store and gateway channels."""
        settings = settings or get_settings()
        openemr_client = OpenEMRClient(settings)
        channels: dict[Channel, INotificationChannel] = {
            Channel.VOICE: VoiceSessionChannel(),
            Channel.SMS: SmsGatewayChannel.from_settings(settings),
            Channel.EMAIL: EmailGatewayChannel.from_settings(settings),
        }
        store = CachedAppointmentStore(openemr_client, redis_client, settings)
        return cls(store, channels, redis_client, settings, openemr_client=openemr_client)

    # =========================================================================
    # Use cases
    # =========================================================================

    def create_process_cancellation_use_case(self) -> ProcessCancellationUseCase:
        return ProcessCancellationUseCase(
            self.appointment_store,
            self.confirmation_service,
            self.waitlist_service,
            self.staff_service,
            self.audit,
            self.settings,
        )

    def create_reschedule_appointment_use_case(self) -> RescheduleAppointmentUseCase:
        return RescheduleAppointmentUseCase(
            self.appointment_store,
            self.confirmation_service,
            self.waitlist_service,
            self.audit,
            self.redis_client,
            self.settings,
        )

    def create_find_availability_use_case(self) -> FindAvailabilityUseCase:
        return FindAvailabilityUseCase(self.appointment_store, self.settings)

    def create_lookup_confirmation_use_case(self) -> LookupConfirmationUseCase:
        return LookupConfirmationUseCase(self.confirmation_service, self.settings)

    def create_join_waitlist_use_case(self) -> JoinWaitlistUseCase:
        return JoinWaitlistUseCase(self.waitlist_service)

    def create_withdraw_waitlist_entry_use_case(self) -> WithdrawWaitlistEntryUseCase:
        return WithdrawWaitlistEntryUseCase(self.waitlist_service)

    def create_process_waitlist_response_use_case(self) -> ProcessWaitlistResponseUseCase:
        return ProcessWaitlistResponseUseCase(self.waitlist_service, self.staff_service)

    def create_list_staff_notifications_use_case(self) -> ListStaffNotificationsUseCase:
        return ListStaffNotificationsUseCase(self.staff_service)

    def create_acknowledge_staff_notification_use_case(self) -> AcknowledgeStaffNotificationUseCase:
        return AcknowledgeStaffNotificationUseCase(self.staff_service)

    def create_resolve_staff_notification_use_case(self) -> ResolveStaffNotificationUseCase:
        return ResolveStaffNotificationUseCase(self.staff_service)

    def create_get_staff_metrics_use_case(self) -> GetStaffMetricsUseCase:
        return GetStaffMetricsUseCase(self.staff_service)

    # =========================================================================
    # Background jobs
    # =========================================================================

    def create_expiry_scheduler(self) -> WaitlistExpiryScheduler:
        return WaitlistExpiryScheduler(
            self.waitlist_service,
            self.staff_service,
            interval_seconds=self.settings.WAITLIST_SWEEP_INTERVAL_SECONDS,
            enabled=self.settings.WAITLIST_SWEEP_ENABLED,
        )

    async def close(self) -> None:
        """Close outbound HTTP clients."""
        if self.openemr_client is not None:
            await self.openemr_client.close()
        for channel in self.channels.values():
            close = getattr(channel, "close", None)
            if close is not None:
                await close()
