# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Scheduling)
# Description: SMS and email channels posting JSON to delivery gateways.
# ============================================================================
"""HTTP gateway channels.

Each channel posts one JSON document per message to its configured gateway.
No retries happen here; failures come back as DeliveryResult.failed.
"""

import logging
from typing import Any

import httpx

from practice_scheduling.config.settings import Settings, get_settings

from ...application.ports import DeliveryResult

logger = logging.getLogger(__name__)


class HttpGatewayChannel:
    """Base class for JSON-over-HTTP delivery gateways."""

    channel_name = "gateway"

    def __init__(
        self,
        gateway_url: str | None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._gateway_url = gateway_url
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout), transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def build_payload(self, recipient: str, message: str, subject: str | None, language: str) -> dict[str, Any]:
        raise NotImplementedError

    async def send(
        self,
        recipient: str | None,
        message: str,
        subject: str | None = None,
        language: str = "en",
    ) -> DeliveryResult:
        if not self._gateway_url:
            return DeliveryResult.failed(f"{self.channel_name} gateway not configured")
        if not recipient:
            return DeliveryResult.failed(f"no {self.channel_name} recipient")

        client = await self._get_client()
        try:
            response = await client.post(
                self._gateway_url, json=self.build_payload(recipient, message, subject, language)
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(f"{self.channel_name} gateway returned {e.response.status_code}")
            return DeliveryResult.failed(f"{self.channel_name} gateway returned {e.response.status_code}")
        except httpx.RequestError as e:
            logger.warning(f"{self.channel_name} gateway unreachable: {e}")
            return DeliveryResult.failed(f"{self.channel_name} gateway unreachable")

        return DeliveryResult.ok()


class SmsGatewayChannel(HttpGatewayChannel):
    channel_name = "sms"

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None
    ) -> "SmsGatewayChannel":
        settings = settings or get_settings()
        return cls(settings.SMS_GATEWAY_URL, settings.CHANNEL_TIMEOUT, transport)

    def build_payload(self, recipient: str, message: str, subject: str | None, language: str) -> dict[str, Any]:
        return {"to": recipient, "body": message, "language": language}


class EmailGatewayChannel(HttpGatewayChannel):
    channel_name = "email"

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None
    ) -> "EmailGatewayChannel":
        settings = settings or get_settings()
        return cls(settings.EMAIL_GATEWAY_URL, settings.CHANNEL_TIMEOUT, transport)

    def build_payload(self, recipient: str, message: str, subject: str | None, language: str) -> dict[str, Any]:
        return {"to": recipient, "subject": subject or "", "text": message, "language": language}
