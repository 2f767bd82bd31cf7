"""
Domain Exceptions

Error taxonomy for the scheduling lifecycle. The API layer translates these
into the JSON envelope; use cases translate them into patient-safe sentences.

    not found        -> EntityNotFoundException        404
    staff auth       -> AuthorizationException         403
    policy           -> PolicyViolationException       409
    upstream         -> UpstreamServiceException       502
    number space     -> ConfirmationNumberExhaustedError (fatal)
    bad input        -> ValidationException            422
"""

from typing import Any


class DomainException(Exception):
    """
    Root of the scheduling error taxonomy.

    Carries a stable machine code next to the human message so handlers can
    map errors without parsing text.
    """

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None):
        """
        Args:
            message: Message for logs and staff-facing responses
            code: Envelope error code (defaults to the class name)
            details: Extra context; must not contain patient data
        """
        super().__init__(message)
        self.message = message
        self.code = code or type(self).__name__.upper()
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class ValidationException(DomainException):
    """Input that can never be processed, e.g. a waitlist entry with no contact."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, "VALIDATION_ERROR", {"field": field} if field else None)
        self.field = field


class EntityNotFoundException(DomainException):
    """A waitlist entry, offer or staff notice that does not exist."""

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(
            f"{entity_type} '{entity_id}' does not exist",
            "NOT_FOUND",
            {"entity_type": entity_type},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class AuthorizationException(DomainException):
    """Caller may not use a staff endpoint."""

    def __init__(self, operation: str, resource: str | None = None):
        target = f" on '{resource}'" if resource else ""
        super().__init__(f"Not authorized to perform '{operation}'{target}", "AUTHORIZATION_ERROR")
        self.operation = operation
        self.resource = resource


class BusinessRuleViolationException(DomainException):
    """A scheduling rule forbids the requested change."""

    def __init__(self, rule: str, message: str, code: str = "BUSINESS_RULE_VIOLATION"):
        super().__init__(message, code, {"rule": rule})
        self.rule = rule


class PolicyViolationException(BusinessRuleViolationException):
    """Change to a past, cancelled or short-notice appointment without an override."""

    def __init__(self, rule: str, appointment_id: str, message: str | None = None):
        super().__init__(rule, message or f"Appointment {appointment_id} violates '{rule}'", "POLICY_VIOLATION")
        self.appointment_id = appointment_id


class IntegrationException(DomainException):
    """An external system misbehaved."""

    def __init__(self, service: str, message: str, original_error: Exception | None = None, code: str | None = None):
        details: dict[str, Any] = {"service": service}
        if original_error is not None:
            details["cause"] = type(original_error).__name__
        super().__init__(message, code or "INTEGRATION_ERROR", details)
        self.service = service
        self.original_error = original_error


class UpstreamServiceException(IntegrationException):
    """OpenEMR or Redis could not be reached or rejected the call."""

    def __init__(self, service: str, message: str, original_error: Exception | None = None):
        super().__init__(service, message, original_error, code="UPSTREAM_FAILURE")


class ConfirmationNumberExhaustedError(DomainException):
    """Every candidate within the retry bound was already reserved."""

    def __init__(self, prefix: str, attempts: int):
        super().__init__(
            f"No free {prefix} number after {attempts} attempts",
            "CONFIRMATION_NUMBER_EXHAUSTED",
            {"prefix": prefix, "attempts": attempts},
        )
        self.prefix = prefix
        self.attempts = attempts


class AppointmentConflictException(BusinessRuleViolationException):
    """The appointment stopped being booked, or changed version, between read and write."""

    def __init__(self, appointment_id: str, message: str | None = None):
        super().__init__(
            "appointment_booked",
            message or f"Appointment {appointment_id} is no longer booked",
            "APPOINTMENT_CONFLICT",
        )
        self.appointment_id = appointment_id
