"""
Scheduling API Dependencies

FastAPI dependencies for the scheduling domain. The container is created in
the lifespan and kept on app.state.
"""

import hmac
from typing import Annotated

from fastapi import Depends, Header, Request

from practice_scheduling.core.container import SchedulingContainer
from practice_scheduling.core.domain.exceptions import AuthorizationException

from ..application.use_cases import (
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


def get_container(request: Request) -> SchedulingContainer:
    """Get the SchedulingContainer created at startup."""
    return request.app.state.container


ContainerDep = Annotated[SchedulingContainer, Depends(get_container)]


def require_staff_token(
    container: ContainerDep,
    x_staff_token: Annotated[str | None, Header()] = None,
) -> None:
    """Reject staff calls whose X-Staff-Token does not match STAFF_API_TOKEN."""
    expected = container.settings.STAFF_API_TOKEN
    if not expected or not x_staff_token or not hmac.compare_digest(x_staff_token, expected):
        raise AuthorizationException("staff_api", resource="staff")


def get_process_cancellation_use_case(container: ContainerDep) -> ProcessCancellationUseCase:
    return container.create_process_cancellation_use_case()


def get_reschedule_appointment_use_case(container: ContainerDep) -> RescheduleAppointmentUseCase:
    return container.create_reschedule_appointment_use_case()


def get_find_availability_use_case(container: ContainerDep) -> FindAvailabilityUseCase:
    return container.create_find_availability_use_case()


def get_lookup_confirmation_use_case(container: ContainerDep) -> LookupConfirmationUseCase:
    return container.create_lookup_confirmation_use_case()


def get_join_waitlist_use_case(container: ContainerDep) -> JoinWaitlistUseCase:
    return container.create_join_waitlist_use_case()


def get_withdraw_waitlist_entry_use_case(container: ContainerDep) -> WithdrawWaitlistEntryUseCase:
    return container.create_withdraw_waitlist_entry_use_case()


def get_process_waitlist_response_use_case(container: ContainerDep) -> ProcessWaitlistResponseUseCase:
    return container.create_process_waitlist_response_use_case()


def get_list_staff_notifications_use_case(container: ContainerDep) -> ListStaffNotificationsUseCase:
    return container.create_list_staff_notifications_use_case()


def get_acknowledge_staff_notification_use_case(container: ContainerDep) -> AcknowledgeStaffNotificationUseCase:
    return container.create_acknowledge_staff_notification_use_case()


def get_resolve_staff_notification_use_case(container: ContainerDep) -> ResolveStaffNotificationUseCase:
    return container.create_resolve_staff_notification_use_case()


def get_staff_metrics_use_case(container: ContainerDep) -> GetStaffMetricsUseCase:
    return container.create_get_staff_metrics_use_case()


__all__ = [
    "ContainerDep",
    "get_acknowledge_staff_notification_use_case",
    "get_container",
    "get_find_availability_use_case",
    "get_join_waitlist_use_case",
    "get_list_staff_notifications_use_case",
    "get_lookup_confirmation_use_case",
    "get_process_cancellation_use_case",
    "get_process_waitlist_response_use_case",
    "get_reschedule_appointment_use_case",
    "get_resolve_staff_notification_use_case",
    "get_staff_metrics_use_case",
    "get_withdraw_waitlist_entry_use_case",
    "require_staff_token",
]
