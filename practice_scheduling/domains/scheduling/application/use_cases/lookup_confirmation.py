# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Use case for looking up a confirmation or cancellation number.
# ============================================================================
"""Lookup Confirmation Use Case."""

import logging
from typing import TYPE_CHECKING

from practice_scheduling.config.settings import Settings, get_settings

from ..dto import UseCaseResult
from ..services.confirmation_service import normalize_number

if TYPE_CHECKING:
    from ..services import ConfirmationService

logger = logging.getLogger(__name__)

CONFIRMATION_NOT_FOUND_MESSAGE = (
    "I couldn't find a confirmation with that number. Please check the number and try again."
)


class LookupConfirmationUseCase:
    """Resolves a CE number to its appointment confirmation and a CC number
    to its cancellation record."""

    def __init__(self, confirmation_service: "ConfirmationService", settings: Settings | None = None) -> None:
        self._confirmations = confirmation_service
        self._settings = settings or get_settings()

    async def execute(self, number: str) -> UseCaseResult:
        normalized = normalize_number(number)

        if normalized.startswith(self._settings.CANCELLATION_REFERENCE_PREFIX):
            record = await self._confirmations.lookup_cancellation(normalized)
            kind = "cancellation"
        else:
            record = await self._confirmations.lookup_confirmation(normalized)
            kind = "appointment"

        if record is None:
            logger.info(f"Confirmation lookup miss for {normalized}")
            return UseCaseResult.error("NOT_FOUND", CONFIRMATION_NOT_FOUND_MESSAGE)

        return UseCaseResult.ok({"kind": kind, "record": record.model_dump(mode="json")})
