"""
Scheduling API Routes

FastAPI router for the appointment lifecycle: cancellation, reschedule,
availability, confirmations, waitlist and staff notifications. Every response
uses the {success, data|error, message} envelope.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from practice_scheduling.api.envelope import error_response, success

from ..application.dto import (
    CancelAppointmentRequest,
    RescheduleAppointmentRequest,
    StaffActionRequest,
    UseCaseResult,
    WaitlistResponseRequest,
)
from ..application.use_cases import (
    AcknowledgeStaffNotificationUseCase,
    FindAvailabilityUseCase,
    GetStaffMetricsUseCase,
    JoinWaitlistRequest,
    JoinWaitlistUseCase,
    ListStaffNotificationsUseCase,
    LookupConfirmationUseCase,
    ProcessCancellationUseCase,
    ProcessWaitlistResponseUseCase,
    RescheduleAppointmentUseCase,
    ResolveStaffNotificationUseCase,
    WithdrawWaitlistEntryUseCase,
)
from ..domain.services.query_normalizer import AvailabilityQuery, QueryEntity
from ..domain.value_objects import Department, NotificationPriority
from .dependencies import (
    ContainerDep,
    get_acknowledge_staff_notification_use_case,
    get_find_availability_use_case,
    get_join_waitlist_use_case,
    get_list_staff_notifications_use_case,
    get_lookup_confirmation_use_case,
    get_process_cancellation_use_case,
    get_process_waitlist_response_use_case,
    get_reschedule_appointment_use_case,
    get_resolve_staff_notification_use_case,
    get_staff_metrics_use_case,
    get_withdraw_waitlist_entry_use_case,
    require_staff_token,
)
from .schemas import (
    AvailabilityRequest,
    CancellationRequest,
    JoinWaitlistRequestSchema,
    RescheduleRequest,
    StaffActionSchema,
    WaitlistResponseRequestSchema,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["Scheduling"])
staff_router = APIRouter(prefix="/staff", tags=["Staff"], dependencies=[Depends(require_staff_token)])

ProcessCancellationUseCaseDep = Annotated[ProcessCancellationUseCase, Depends(get_process_cancellation_use_case)]
RescheduleAppointmentUseCaseDep = Annotated[
    RescheduleAppointmentUseCase, Depends(get_reschedule_appointment_use_case)
]
FindAvailabilityUseCaseDep = Annotated[FindAvailabilityUseCase, Depends(get_find_availability_use_case)]
LookupConfirmationUseCaseDep = Annotated[LookupConfirmationUseCase, Depends(get_lookup_confirmation_use_case)]
JoinWaitlistUseCaseDep = Annotated[JoinWaitlistUseCase, Depends(get_join_waitlist_use_case)]
WithdrawWaitlistEntryUseCaseDep = Annotated[
    WithdrawWaitlistEntryUseCase, Depends(get_withdraw_waitlist_entry_use_case)
]
ProcessWaitlistResponseUseCaseDep = Annotated[
    ProcessWaitlistResponseUseCase, Depends(get_process_waitlist_response_use_case)
]
ListStaffNotificationsUseCaseDep = Annotated[
    ListStaffNotificationsUseCase, Depends(get_list_staff_notifications_use_case)
]
AcknowledgeStaffNotificationUseCaseDep = Annotated[
    AcknowledgeStaffNotificationUseCase, Depends(get_acknowledge_staff_notification_use_case)
]
ResolveStaffNotificationUseCaseDep = Annotated[
    ResolveStaffNotificationUseCase, Depends(get_resolve_staff_notification_use_case)
]
GetStaffMetricsUseCaseDep = Annotated[GetStaffMetricsUseCase, Depends(get_staff_metrics_use_case)]

RESULT_STATUS: dict[str, int] = {
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "POLICY_VIOLATION": status.HTTP_409_CONFLICT,
    "VALIDATION_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "UPSTREAM_FAILURE": status.HTTP_502_BAD_GATEWAY,
}


def result_response(result: UseCaseResult, data: Any, message: str) -> dict[str, Any] | JSONResponse:
    """Envelope for a use case result; failures keep their patient-facing sentence."""
    if result.success:
        return success(data, message)
    code = result.error_code or "ERROR"
    return error_response(
        RESULT_STATUS.get(code, status.HTTP_400_BAD_REQUEST), code, message or result.error_message or ""
    )


# =============================================================================
# Cancellation and reschedule
# =============================================================================


@router.post("/cancellations")
async def cancel_appointment(request: CancellationRequest, use_case: ProcessCancellationUseCaseDep):
    """Cancel a booked appointment and run the follow-up pipeline."""
    result = await use_case.execute(
        CancelAppointmentRequest(
            patient_id=request.patient_id,
            appointment_id=request.appointment_id,
            confirmation_number=request.confirmation_number,
            reason=request.reason,
            is_emergency=request.is_emergency,
            channels=tuple(request.channels),
            preferences=request.preferences(),
        )
    )
    return result_response(result, result.to_dict(), result.message)


@router.get("/cancellations/{reference}")
async def get_cancellation(reference: str, use_case: LookupConfirmationUseCaseDep):
    """Look up a cancellation by its reference number."""
    result = await use_case.execute(reference)
    if result.success and result.data["kind"] != "cancellation":
        return error_response(status.HTTP_404_NOT_FOUND, "NOT_FOUND", "No cancellation with that reference.")
    return result_response(result, result.data["record"] if result.success else None, result.error_message or "")


@router.get("/confirmations/{number}")
async def get_confirmation(number: str, use_case: LookupConfirmationUseCaseDep):
    """Look up an appointment confirmation or cancellation reference."""
    result = await use_case.execute(number)
    return result_response(result, result.data, result.error_message or "")


@router.post("/appointments/{appointment_id}/reschedule")
async def reschedule_appointment(
    appointment_id: str,
    request: RescheduleRequest,
    use_case: RescheduleAppointmentUseCaseDep,
):
    """Move a booked appointment to a new start time."""
    result = await use_case.execute(
        RescheduleAppointmentRequest(
            patient_id=request.patient_id,
            new_start=request.new_start,
            appointment_id=appointment_id,
            channels=tuple(request.channels),
            preferences=request.preferences(),
        )
    )
    data = {
        "confirmation_number": result.confirmation_number,
        "new_start": result.new_start,
        "waitlist_count": result.waitlist_count,
    }
    return result_response(result, data, result.message)


@router.post("/availability")
async def find_availability(request: AvailabilityRequest, use_case: FindAvailabilityUseCaseDep):
    """Normalize a spoken availability query and search free slots."""
    result = await use_case.execute(
        AvailabilityQuery(
            intent=request.intent,
            raw_text=request.raw_text,
            entities=[
                QueryEntity(e.type, e.value, normalized_value=e.normalized_value, confidence=e.confidence)
                for e in request.entities
            ],
            patient_verified=request.patient_verified,
        )
    )
    data = {
        "requires_clarification": result.requires_clarification,
        "clarification_type": result.clarification_type,
        "slots": result.slots,
        "query": result.query,
    }
    return result_response(result, data, result.message)


# =============================================================================
# Waitlist
# =============================================================================


@router.post("/waitlist", status_code=status.HTTP_201_CREATED)
async def join_waitlist(request: JoinWaitlistRequestSchema, use_case: JoinWaitlistUseCaseDep):
    """Add a patient to the waitlist."""
    entry = await use_case.execute(JoinWaitlistRequest(**request.model_dump()))
    return success(entry, "You've been added to our waitlist. We'll contact you when an opening comes up.")


@router.delete("/waitlist/{entry_id}")
async def withdraw_waitlist_entry(entry_id: str, use_case: WithdrawWaitlistEntryUseCaseDep):
    """Withdraw a waitlist entry."""
    entry = await use_case.execute(entry_id)
    return success(entry, "You've been removed from our waitlist.")


@router.post("/waitlist/notifications/{notification_id}/response")
async def respond_to_waitlist_offer(
    notification_id: str,
    request: WaitlistResponseRequestSchema,
    use_case: ProcessWaitlistResponseUseCaseDep,
):
    """Record a patient's answer to a slot offer."""
    result = await use_case.execute(WaitlistResponseRequest(notification_id=notification_id, response=request.response))
    return result_response(result, result.to_dict(), result.message)


# =============================================================================
# Staff
# =============================================================================


@staff_router.get("/notifications")
async def list_staff_notifications(
    use_case: ListStaffNotificationsUseCaseDep,
    department: Department | None = None,
    priority: NotificationPriority | None = None,
    urgent_only: bool = False,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
):
    """Unresolved notices, most urgent first."""
    notifications = await use_case.execute(department, priority, urgent_only=urgent_only, limit=limit)
    return success(notifications, f"{len(notifications)} active notifications")


@staff_router.post("/notifications/{notification_id}/acknowledge")
async def acknowledge_staff_notification(
    notification_id: str,
    request: StaffActionSchema,
    use_case: AcknowledgeStaffNotificationUseCaseDep,
):
    notification = await use_case.execute(StaffActionRequest(notification_id=notification_id, actor=request.actor))
    return success(notification, "Notification acknowledged")


@staff_router.post("/notifications/{notification_id}/resolve")
async def resolve_staff_notification(
    notification_id: str,
    request: StaffActionSchema,
    use_case: ResolveStaffNotificationUseCaseDep,
):
    notification = await use_case.execute(
        StaffActionRequest(notification_id=notification_id, actor=request.actor, notes=request.notes)
    )
    return success(notification, "Notification resolved")


@staff_router.get("/metrics")
async def get_staff_metrics(use_case: GetStaffMetricsUseCaseDep, timeframe: str = "day"):
    metrics = await use_case.execute(timeframe)
    return success(metrics, f"Metrics for the last {timeframe}")


router.include_router(staff_router)


# =============================================================================
# Health
# =============================================================================


@router.get("/health")
async def scheduling_health(container: ContainerDep):
    """Redis reachability and the OpenEMR circuit state."""
    redis_ok = False
    if container.redis_client is not None:
        try:
            redis_ok = bool(await container.redis_client.ping())
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")

    circuit = None
    if container.openemr_client is not None:
        circuit = container.openemr_client.circuit_breaker.state.value

    healthy = redis_ok and circuit != "open"
    return success(
        {"redis": redis_ok, "openemr_circuit": circuit, "status": "ok" if healthy else "degraded"},
        "ok" if healthy else "degraded",
    )
