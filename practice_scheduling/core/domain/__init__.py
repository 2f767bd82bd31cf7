"""
Domain Layer - shared error taxonomy.
"""

from practice_scheduling.core.domain.exceptions import (
    AppointmentConflictException,
    AuthorizationException,
    BusinessRuleViolationException,
    ConfirmationNumberExhaustedError,
    DomainException,
    EntityNotFoundException,
    IntegrationException,
    PolicyViolationException,
    UpstreamServiceException,
    ValidationException,
)

__all__ = [
    "AppointmentConflictException",
    "AuthorizationException",
    "BusinessRuleViolationException",
    "ConfirmationNumberExhaustedError",
    "DomainException",
    "EntityNotFoundException",
    "IntegrationException",
    "PolicyViolationException",
    "UpstreamServiceException",
    "ValidationException",
]
