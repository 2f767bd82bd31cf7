# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Scheduling)
# Description: OpenEMR FHIR R4 client implementation.
# ============================================================================
"""OpenEMR FHIR Client.

Async client for the OpenEMR FHIR API. Every public method returns an
ExternalResponse; transport, HTTP and authentication errors are mapped to
ExternalResponse.error and never raised.

Components:
- OAuthTokenManager: client-credentials token with refresh margin
- CircuitBreaker: rejects calls while OpenEMR is failing
"""

import logging
from datetime import date, datetime
from typing import Any

import httpx

from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.core.domain.exceptions import UpstreamServiceException

from ....application.ports import ExternalResponse
from ....domain.value_objects import AppointmentStatus
from .auth import OAuthTokenManager
from .fhir_mapper import map_status, parse_instant, rescheduled_resource
from .resilience import CircuitBreaker, CircuitBreakerConfig, CircuitOpenError

logger = logging.getLogger(__name__)

FHIR_JSON = "application/fhir+json"
CONFIRMATION_IDENTIFIER_SYSTEM = "urn:practice-scheduling/confirmation"


class RetryableHTTPError(Exception):
    """5xx or transport failure; counts against the circuit breaker."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def bundle_resources(data: Any) -> list[dict[str, Any]]:
    """Resources of a FHIR searchset Bundle."""
    if not isinstance(data, dict):
        return []
    return [entry["resource"] for entry in data.get("entry", []) if isinstance(entry, dict) and "resource" in entry]


class OpenEMRClient:
    """Async FHIR client for OpenEMR."""

    def __init__(
        self,
        settings: Settings | None = None,
        token_manager: OAuthTokenManager | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        circuit_breaker_config: CircuitBreakerConfig | None = None,
    ):
        """Initialize FHIR client.

        Args:
            settings: Application settings (base URL, site, timeout).
            token_manager: Optional custom token manager.
            transport: Optional httpx transport (tests use MockTransport).
            circuit_breaker_config: Optional circuit breaker configuration.
        """
        self._settings = settings or get_settings()
        self.base_url = self._settings.fhir_base_url
        self._transport = transport
        self._tokens = token_manager or OAuthTokenManager(self._settings, transport=transport)
        self._circuit_breaker = CircuitBreaker(circuit_breaker_config, name="openemr")
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._settings.OPENEMR_TIMEOUT),
                headers={"Accept": FHIR_JSON},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    async def _request(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> ExternalResponse:
        """Call the FHIR API through the circuit breaker.

        Returns:
            ExternalResponse with the parsed JSON body or an error.
        """
        try:
            return await self._circuit_breaker.call(self._execute_request, method, path, params, json, headers)
        except CircuitOpenError as e:
            logger.warning(f"Circuit breaker open for {method} {path}: {e}")
            return ExternalResponse.error("SERVICE_UNAVAILABLE", "OpenEMR is temporarily unavailable")
        except RetryableHTTPError as e:
            return ExternalResponse.error("UPSTREAM_ERROR", str(e))
        except UpstreamServiceException as e:
            logger.error(f"OpenEMR authentication failed for {method} {path}: {e.message}")
            return ExternalResponse.error("AUTHENTICATION_FAILED", e.message)

    async def _execute_request(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]] | None,
        json: dict[str, Any] | None,
        extra_headers: dict[str, str] | None = None,
    ) -> ExternalResponse:
        """Execute the HTTP request.

        Client errors (4xx) come back as ExternalResponse.error; server and
        transport errors raise so the circuit breaker counts them.
        """
        client = await self._get_client()
        token = await self._tokens.get_token()
        headers = {"Authorization": f"Bearer {token}", **(extra_headers or {})}
        if json is not None:
            headers["Content-Type"] = FHIR_JSON

        try:
            response = await client.request(method, path, params=params, json=json, headers=headers)
        except httpx.RequestError as e:
            logger.error(f"Request error calling {method} {path}: {e}")
            raise RetryableHTTPError(f"Request to OpenEMR failed: {e}") from e

        if response.status_code == 401:
            self._tokens.invalidate()
        if response.status_code >= 500:
            logger.error(f"HTTP error calling {method} {path}: {response.status_code}")
            raise RetryableHTTPError(f"OpenEMR returned HTTP {response.status_code}", response.status_code)
        if response.status_code == 404:
            return ExternalResponse.error("NOT_FOUND", f"{path} not found")
        if response.status_code in (409, 412):
            logger.warning(f"OpenEMR refused {method} {path} on a stale version: {response.status_code}")
            return ExternalResponse.error("CONFLICT", f"{path} was modified concurrently")
        if response.status_code >= 400:
            logger.warning(f"OpenEMR rejected {method} {path}: {response.status_code}")
            return ExternalResponse.error(f"HTTP_{response.status_code}", response.text[:200])

        if not response.content:
            return ExternalResponse.ok({})
        try:
            return ExternalResponse.ok(response.json())
        except ValueError:
            return ExternalResponse.error("INVALID_RESPONSE", "OpenEMR returned a non-JSON body")

    # =========================================================================
    # Slots and appointments
    # =========================================================================

    async def search_slots(
        self,
        start: date,
        end: date,
        practitioner_id: str | None = None,
        appointment_type: str | None = None,
    ) -> ExternalResponse:
        """Free slots between start and end (inclusive), as a list of resources."""
        params = [
            ("start", f"ge{start.isoformat()}"),
            ("start", f"le{end.isoformat()}"),
            ("status", "free"),
        ]
        if practitioner_id:
            params.append(("schedule.actor", f"Practitioner/{practitioner_id}"))
        if appointment_type:
            params.append(("appointment-type", appointment_type))

        response = await self._request("GET", "/Slot", params=params)
        if not response.success:
            return response
        return ExternalResponse.ok(bundle_resources(response.data))

    async def search_appointments(self, patient_id: str, on_date: date | None = None) -> ExternalResponse:
        params = [("patient", patient_id)]
        if on_date:
            params.append(("date", on_date.isoformat()))
        response = await self._request("GET", "/Appointment", params=params)
        if not response.success:
            return response
        return ExternalResponse.ok(bundle_resources(response.data))

    async def find_appointment_by_confirmation(self, confirmation_number: str) -> ExternalResponse:
        params = [("identifier", f"{CONFIRMATION_IDENTIFIER_SYSTEM}|{confirmation_number}")]
        response = await self._request("GET", "/Appointment", params=params)
        if not response.success:
            return response
        resources = bundle_resources(response.data)
        if not resources:
            return ExternalResponse.error("NOT_FOUND", f"No appointment with confirmation {confirmation_number}")
        return ExternalResponse.ok(resources[0])

    async def get_appointment(self, appointment_id: str) -> ExternalResponse:
        return await self._request("GET", f"/Appointment/{appointment_id}")

    async def create_appointment(
        self,
        patient_id: str,
        practitioner_id: str,
        start: datetime,
        end: datetime,
        appointment_type: str | None = None,
        slot_id: str | None = None,
        confirmation_number: str | None = None,
        comment: str | None = None,
    ) -> ExternalResponse:
        """Book an appointment (status booked, patient and practitioner accepted)."""
        resource: dict[str, Any] = {
            "resourceType": "Appointment",
            "status": "booked",
            "start": start.isoformat(),
            "end": end.isoformat(),
            "minutesDuration": int((end - start).total_seconds() // 60),
            "participant": [
                {"actor": {"reference": f"Patient/{patient_id}"}, "status": "accepted"},
                {"actor": {"reference": f"Practitioner/{practitioner_id}"}, "status": "accepted"},
            ],
        }
        if appointment_type:
            resource["appointmentType"] = {"coding": [{"code": appointment_type}]}
        if slot_id:
            resource["slot"] = [{"reference": f"Slot/{slot_id}"}]
        if confirmation_number:
            resource["identifier"] = [{"system": CONFIRMATION_IDENTIFIER_SYSTEM, "value": confirmation_number}]
        if comment:
            resource["comment"] = comment

        return await self._request("POST", "/Appointment", json=resource)

    async def update_appointment(self, appointment_id: str, resource: dict[str, Any]) -> ExternalResponse:
        """PUT a full Appointment resource.

        When the resource carries meta.versionId the write is conditional
        (If-Match); a stale version comes back as a CONFLICT error.
        """
        version = (resource.get("meta") or {}).get("versionId")
        headers = {"If-Match": f'W/"{version}"'} if version else None
        return await self._request("PUT", f"/Appointment/{appointment_id}", json=resource, headers=headers)

    async def _read_booked(self, appointment_id: str, expected_start: datetime | None = None) -> ExternalResponse:
        """Fresh read that fails with CONFLICT unless the appointment is still booked
        and, when expected_start is given, still starts at that instant."""
        current = await self.get_appointment(appointment_id)
        if not current.success:
            return current
        status = current.first_resource().get("status")
        if map_status(status) is not AppointmentStatus.BOOKED:
            logger.info(f"Appointment {appointment_id} is '{status}', refusing to modify it")
            return ExternalResponse.error("CONFLICT", f"Appointment {appointment_id} is no longer booked")
        if expected_start is not None and parse_instant(current.first_resource().get("start")) != expected_start:
            logger.info(f"Appointment {appointment_id} moved since it was read, refusing to reschedule it")
            return ExternalResponse.error("CONFLICT", f"Appointment {appointment_id} was moved")
        return current

    async def cancel_appointment(self, appointment_id: str, reason: str = "") -> ExternalResponse:
        """Read-modify-write: status cancelled with the cancellation reason."""
        current = await self._read_booked(appointment_id)
        if not current.success:
            return current

        resource = dict(current.first_resource())
        resource["status"] = "cancelled"
        if reason:
            resource["cancelationReason"] = {"text": reason}
        return await self.update_appointment(appointment_id, resource)

    async def reschedule_appointment(
        self,
        appointment_id: str,
        new_start: datetime,
        duration_minutes: int,
        expected_start: datetime | None = None,
    ) -> ExternalResponse:
        """Read-modify-write: move a booked appointment to new_start."""
        current = await self._read_booked(appointment_id, expected_start)
        if not current.success:
            return current

        resource = rescheduled_resource(current.first_resource(), new_start, duration_minutes)
        return await self.update_appointment(appointment_id, resource)

    # =========================================================================
    # Practitioners and patients
    # =========================================================================

    async def list_practitioners(self) -> ExternalResponse:
        response = await self._request("GET", "/Practitioner")
        if not response.success:
            return response
        return ExternalResponse.ok(bundle_resources(response.data))

    async def search_patients_by_phone(self, phone: str) -> ExternalResponse:
        digits = "".join(c for c in phone if c.isdigit())
        if len(digits) < 7:
            return ExternalResponse.error("VALIDATION_ERROR", "Phone must be at least 7 digits")
        response = await self._request("GET", "/Patient", params=[("telecom", digits)])
        if not response.success:
            return response
        return ExternalResponse.ok(bundle_resources(response.data))

    async def get_patient(self, patient_id: str) -> ExternalResponse:
        return await self._request("GET", f"/Patient/{patient_id}")

    async def test_connection(self) -> ExternalResponse:
        """Fetch the CapabilityStatement."""
        return await self._request("GET", "/metadata")
