# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Result type returned by the system-of-record client.
# ============================================================================
"""ExternalResponse.

Own module so ports and the OpenEMR adapter can both import it without a cycle.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class ExternalResponse:
    """Outcome of one FHIR call.

    ``data`` is a single resource, a list of resources (search results) or
    None. Failures carry an error code such as NOT_FOUND, UPSTREAM_ERROR or
    SERVICE_UNAVAILABLE; the client returns them instead of raising.
    """

    success: bool
    data: dict[str, Any] | list[Any] | None = None
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def ok(cls, data: dict[str, Any] | list[Any] | None = None) -> "ExternalResponse":
        return cls(True, data)

    @classmethod
    def error(cls, code: str, message: str) -> "ExternalResponse":
        return cls(False, None, code, message)

    def resources(self) -> list[dict[str, Any]]:
        """Search results, or the single resource as a one-item list."""
        if self.data is None:
            return []
        items = self.data if isinstance(self.data, list) else [self.data]
        return [item for item in items if isinstance(item, dict)]

    def first_resource(self) -> dict[str, Any]:
        """The single resource, or the first search result; {} when empty."""
        found = self.resources()
        return found[0] if found else {}
