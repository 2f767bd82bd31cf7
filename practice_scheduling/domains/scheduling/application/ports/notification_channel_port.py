# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Patient notification channel port (DIP compliant).
# ============================================================================
"""Notification Channel Port.

Send operation shared by the voice, SMS and email channels.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a single send."""

    delivered: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> "DeliveryResult":
        return cls(delivered=True)

    @classmethod
    def failed(cls, reason: str) -> "DeliveryResult":
        return cls(delivered=False, error=reason)


@runtime_checkable
class INotificationChannel(Protocol):
    """Interface for patient notification channels.

    Implementations: VoiceSessionChannel, SmsGatewayChannel, EmailGatewayChannel

    No retries happen at this layer.
    """

    async def send(
        self,
        recipient: str | None,
        message: str,
        subject: str | None = None,
        language: str = "en",
    ) -> DeliveryResult:
        """Send a message.

        Args:
            recipient: Phone number or email address (voice ignores it).
            message: Message text.
            subject: Subject line, used by email only.
            language: Message language code.

        Returns:
            DeliveryResult with delivered flag and failure reason.
        """
        ...
