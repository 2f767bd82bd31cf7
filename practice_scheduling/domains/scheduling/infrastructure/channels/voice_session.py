# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Scheduling)
# Description: Voice channel bound to the live caller session.
# ============================================================================
"""Voice Session Channel.

Messages for the live call are handed to the session, which reads them back
through the response of the current request. Delivery succeeds while the
session is active.
"""

import logging
from collections import deque

from ...application.ports import DeliveryResult

logger = logging.getLogger(__name__)


class VoiceSessionChannel:
    """Implements INotificationChannel for the live call."""

    def __init__(self, max_history: int = 100) -> None:
        self._active = True
        self._spoken: deque[str] = deque(maxlen=max_history)

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def spoken(self) -> list[str]:
        return list(self._spoken)

    def start_session(self) -> None:
        self._active = True

    def end_session(self) -> None:
        self._active = False

    async def send(
        self,
        recipient: str | None,
        message: str,
        subject: str | None = None,
        language: str = "en",
    ) -> DeliveryResult:
        if not self._active:
            return DeliveryResult.failed("voice session not active")
        self._spoken.append(message)
        logger.debug(f"Voice message queued ({len(message)} chars, {language})")
        return DeliveryResult.ok()
