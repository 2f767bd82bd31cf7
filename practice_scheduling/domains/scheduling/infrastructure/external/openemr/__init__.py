# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Scheduling)
# Description: OpenEMR FHIR client module.
# ============================================================================
"""OpenEMR FHIR Client Module.

Components:
- OpenEMRClient: async FHIR R4 client returning ExternalResponse
- OAuthTokenManager: OAuth2 client-credentials token with refresh margin
- CircuitBreaker: rejects calls while OpenEMR is failing
- fhir_mapper: FHIR resources <-> scheduling entities

Usage:
    from practice_scheduling.domains.scheduling.infrastructure.external.openemr import OpenEMRClient

    client = OpenEMRClient(settings)
    result = await client.search_slots(date(2025, 3, 1), date(2025, 3, 7))
"""

from .auth import OAuthTokenManager, TokenSet
from .client import CONFIRMATION_IDENTIFIER_SYSTEM, OpenEMRClient, bundle_resources
from .resilience import CircuitBreaker, CircuitBreakerConfig, CircuitOpenError, CircuitState

__all__ = [
    "CONFIRMATION_IDENTIFIER_SYSTEM",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenError",
    "CircuitState",
    "OAuthTokenManager",
    "OpenEMRClient",
    "TokenSet",
    "bundle_resources",
]
