"""
Exception handlers for FastAPI application.

Every error leaves the service in the {success: false, error, message}
envelope. Not-found and upstream failures get fixed patient-safe sentences;
anything unexpected is logged with its traceback and reported generically.
"""

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from practice_scheduling.api.envelope import error_response
from practice_scheduling.core.domain.exceptions import (
    AuthorizationException,
    BusinessRuleViolationException,
    DomainException,
    EntityNotFoundException,
    IntegrationException,
    ValidationException,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "I couldn't find what you were looking for. Please check the details and try again."
UPSTREAM_MESSAGE = "We're having trouble reaching the scheduling system. Please try again shortly."
INTERNAL_ERROR_MESSAGE = "Something went wrong on our side. Please call our office for help."

DOMAIN_STATUS: tuple[tuple[type[DomainException], int], ...] = (
    (EntityNotFoundException, status.HTTP_404_NOT_FOUND),
    (AuthorizationException, status.HTTP_403_FORBIDDEN),
    (BusinessRuleViolationException, status.HTTP_409_CONFLICT),
    (IntegrationException, status.HTTP_502_BAD_GATEWAY),
    (ValidationException, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def status_for(exc: DomainException) -> int:
    for exc_type, status_code in DOMAIN_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Translate DomainException into the envelope."""
    if not isinstance(exc, DomainException):
        return await global_exception_handler(request, exc)

    status_code = status_for(exc)
    if isinstance(exc, EntityNotFoundException):
        # Entity ids never leave the service in not-found responses.
        return error_response(status_code, exc.code, NOT_FOUND_MESSAGE)
    if isinstance(exc, IntegrationException):
        logger.error(f"Upstream failure on {request.method} {request.url.path}: {exc.message}")
        return error_response(status_code, exc.code, UPSTREAM_MESSAGE)
    if status_code >= 500:
        logger.error(f"Domain error on {request.method} {request.url.path}: {exc.code}", exc_info=exc)
        return error_response(status_code, exc.code, INTERNAL_ERROR_MESSAGE)

    logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return error_response(status_code, exc.code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle HTTPException with consistent response format."""
    http_exc = exc if isinstance(exc, HTTPException) else HTTPException(status_code=500, detail=str(exc))
    return error_response(
        http_exc.status_code,
        f"HTTP_{http_exc.status_code}",
        str(http_exc.detail),
        headers=http_exc.headers,
    )


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle request validation errors with detailed error messages."""
    if not isinstance(exc, RequestValidationError):
        return error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", str(exc))

    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    logger.warning(f"Validation error on {request.url.path}: {errors}")
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", "Validation error", {"errors": errors}
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all unhandled exceptions.

    Logs the full exception with traceback and returns a safe error response.
    """
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc!s}",
        exc_info=True,
    )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", INTERNAL_ERROR_MESSAGE)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    logger.info("Exception handlers registered")
