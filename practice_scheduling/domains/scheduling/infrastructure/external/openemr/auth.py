# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Scheduling)
# Description: OAuth2 token management for the OpenEMR FHIR API.
# ============================================================================
"""OpenEMR OAuth2 token manager.

Uses the client-credentials grant and refreshes the access token before it
expires. A failed refresh falls back to a full client-credentials grant.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.core.domain.exceptions import UpstreamServiceException

logger = logging.getLogger(__name__)


@dataclass
class TokenSet:
    access_token: str
    expires_at: float
    refresh_token: str | None = None

    def seconds_remaining(self, now: float) -> float:
        return self.expires_at - now


class OAuthTokenManager:
    """Caches the OpenEMR access token and renews it near expiry."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        self._clock = clock
        self._token: TokenSet | None = None
        self._lock = asyncio.Lock()

    @property
    def token(self) -> TokenSet | None:
        return self._token

    def invalidate(self) -> None:
        """Forget the cached token, e.g. after a 401."""
        self._token = None

    async def get_token(self) -> str:
        """Return a valid access token.

        Raises:
            UpstreamServiceException: Authentication failed.
        """
        async with self._lock:
            now = self._clock()
            margin = self._settings.OPENEMR_TOKEN_REFRESH_MARGIN_SECONDS

            if self._token is not None and self._token.seconds_remaining(now) > margin:
                return self._token.access_token

            if self._token is not None and self._token.refresh_token:
                try:
                    self._token = await self._request_token(
                        {"grant_type": "refresh_token", "refresh_token": self._token.refresh_token}
                    )
                    logger.debug("OpenEMR access token refreshed")
                    return self._token.access_token
                except UpstreamServiceException:
                    logger.warning("OpenEMR token refresh failed, re-authenticating")

            self._token = await self._request_token(
                {"grant_type": "client_credentials", "scope": self._settings.OPENEMR_SCOPE}
            )
            logger.info("Authenticated with OpenEMR")
            return self._token.access_token

    async def _request_token(self, form: dict[str, str]) -> TokenSet:
        auth = httpx.BasicAuth(self._settings.OPENEMR_CLIENT_ID, self._settings.OPENEMR_CLIENT_SECRET)
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.OPENEMR_TIMEOUT),
                transport=self._transport,
            ) as client:
                response = await client.post(self._settings.token_url, data=form, auth=auth)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamServiceException(
                "openemr", f"Token request rejected with HTTP {e.response.status_code}", e
            ) from e
        except (httpx.RequestError, ValueError) as e:
            raise UpstreamServiceException("openemr", "Token request failed", e) from e

        if "access_token" not in payload:
            raise UpstreamServiceException("openemr", "Token response without access_token")

        return TokenSet(
            access_token=payload["access_token"],
            expires_at=self._clock() + float(payload.get("expires_in", 3600)),
            refresh_token=payload.get("refresh_token"),
        )
