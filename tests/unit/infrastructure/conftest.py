"""Fixtures for the OpenEMR adapters: a FHIR server double behind httpx.MockTransport."""

import json
from typing import Any

import httpx
import pytest

from practice_scheduling.domains.scheduling.infrastructure.external.openemr import OpenEMRClient
from practice_scheduling.domains.scheduling.infrastructure.external.openemr.resilience import CircuitBreakerConfig

APPOINTMENT_RESOURCE: dict[str, Any] = {
    "resourceType": "Appointment",
    "id": "appt-1",
    "meta": {"versionId": "1"},
    "status": "booked",
    "start": "2025-03-13T14:00:00Z",
    "end": "2025-03-13T14:30:00Z",
    "appointmentType": {"coding": [{"code": "FOLLOWUP"}]},
    "identifier": [{"system": "urn:practice-scheduling/confirmation", "value": "CE7K3M9P2Q"}],
    "slot": [{"reference": "Slot/slot-9"}],
    "participant": [
        {"actor": {"reference": "Patient/pat-1", "display": "Jordan Reyes"}, "status": "accepted"},
        {"actor": {"reference": "Practitioner/prac-1", "display": "Dr. Patel"}, "status": "accepted"},
    ],
}

PATIENT_RESOURCE: dict[str, Any] = {
    "resourceType": "Patient",
    "id": "pat-1",
    "name": [{"given": ["Jordan"], "family": "Reyes"}],
    "telecom": [
        {"system": "phone", "value": "+15555550100", "use": "home"},
        {"system": "phone", "value": "+15555550101", "use": "mobile"},
        {"system": "email", "value": "jordan@example.com"},
    ],
}

PRACTITIONER_RESOURCE: dict[str, Any] = {
    "resourceType": "Practitioner",
    "id": "prac-1",
    "name": [{"family": "Patel", "given": ["Anika"], "prefix": ["Dr."]}],
}

SLOT_RESOURCES: list[dict[str, Any]] = [
    {
        "resourceType": "Slot",
        "id": "slot-1",
        "start": "2025-03-12T19:00:00Z",
        "end": "2025-03-12T20:00:00Z",
        "status": "free",
        "schedule": {"actor": {"reference": "Practitioner/prac-1"}, "display": "Dr. Patel"},
    },
    {"resourceType": "Slot", "id": "slot-broken", "status": "free"},
]


def bundle(resources: list[dict[str, Any]]) -> dict[str, Any]:
    return {"resourceType": "Bundle", "type": "searchset", "entry": [{"resource": r} for r in resources]}


class FakeOpenEMR:
    """Handles token and FHIR requests; records every request it sees."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.appointments: dict[str, dict[str, Any]] = {"appt-1": dict(APPOINTMENT_RESOURCE)}
        self.token_calls = 0
        self.token_status = 200
        self.fhir_status: int | None = None
        self.unauthorized_next = False

    @property
    def fhir_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if "/fhir/" in r.url.path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/token"):
            self.token_calls += 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(
                200,
                json={
                    "access_token": f"token-{self.token_calls}",
                    "expires_in": 3600,
                    "refresh_token": f"refresh-{self.token_calls}",
                },
            )

        if self.unauthorized_next:
            self.unauthorized_next = False
            return httpx.Response(401, json={"error": "invalid_token"})
        if self.fhir_status is not None:
            return httpx.Response(self.fhir_status, text="unavailable")

        resource_path = path.split("/fhir", 1)[1]
        parts = [p for p in resource_path.split("/") if p]

        if parts == ["metadata"]:
            return httpx.Response(200, json={"resourceType": "CapabilityStatement"})
        if parts == ["Slot"]:
            return httpx.Response(200, json=bundle(SLOT_RESOURCES))
        if parts == ["Appointment"] and request.method == "GET":
            patient = request.url.params.get("patient")
            if patient is not None:
                matches = [
                    a
                    for a in self.appointments.values()
                    if any(p["actor"]["reference"] == f"Patient/{patient}" for p in a.get("participant", []))
                ]
                return httpx.Response(200, json=bundle(matches))
            identifier = request.url.params.get("identifier", "")
            matches = [
                a
                for a in self.appointments.values()
                if any(f"{i['system']}|{i['value']}" == identifier for i in a.get("identifier", []))
            ]
            return httpx.Response(200, json=bundle(matches))
        if parts == ["Appointment"] and request.method == "POST":
            body = json.loads(request.content)
            body["id"] = "appt-new"
            self.appointments["appt-new"] = body
            return httpx.Response(201, json=body)
        if len(parts) == 2 and parts[0] == "Appointment":
            if parts[1] not in self.appointments:
                return httpx.Response(404, json={"resourceType": "OperationOutcome"})
            if request.method == "PUT":
                current = self.appointments[parts[1]]
                version = current.get("meta", {}).get("versionId", "1")
                if request.headers.get("If-Match", f'W/"{version}"') != f'W/"{version}"':
                    return httpx.Response(412, json={"resourceType": "OperationOutcome"})
                body = json.loads(request.content)
                body["meta"] = {"versionId": str(int(version) + 1)}
                self.appointments[parts[1]] = body
            return httpx.Response(200, json=self.appointments[parts[1]])
        if parts == ["Patient", "pat-1"]:
            return httpx.Response(200, json=PATIENT_RESOURCE)
        if parts == ["Patient"]:
            return httpx.Response(200, json=bundle([PATIENT_RESOURCE]))
        if parts == ["Practitioner"]:
            return httpx.Response(200, json=bundle([PRACTITIONER_RESOURCE]))
        return httpx.Response(404)


@pytest.fixture
def openemr() -> FakeOpenEMR:
    return FakeOpenEMR()


@pytest.fixture
def openemr_client(openemr, settings) -> OpenEMRClient:
    return OpenEMRClient(
        settings,
        transport=httpx.MockTransport(openemr),
        circuit_breaker_config=CircuitBreakerConfig(failure_threshold=2, recovery_timeout=60.0),
    )
