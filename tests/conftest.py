"""Shared test fixtures for the expand service.

Engine and resolver tests run against a small clinic schema document and
a FakeDispatcher that serves canned resources by path, recording every
internal call it receives.
"""

import asyncio
import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from expand_svc.errors import DispatchError
from expand_svc.expand.engine import ExpansionEngine
from expand_svc.identity.types import CallerContext, CallerIdentity
from expand_svc.resolver.dispatch import DispatchResult
from expand_svc.resolver.internal import InternalResolver
from expand_svc.resolver.marker import InternalMarker
from expand_svc.schema.loader import load_indexes


# =============================================================================
# Schema Fixtures
# =============================================================================

def _ref(name: str) -> dict:
    return {"$ref": f"#/components/schemas/{name}"}


def _id_or(name: str) -> dict:
    return {"anyOf": [{"type": "string"}, _ref(name)]}


def _json_response(schema: dict) -> dict:
    return {"200": {"content": {"application/json": {"schema": schema}}}}


CLINIC_DOCUMENT = {
    "openapi": "3.1.0",
    "paths": {
        "/persons/{person}": {
            "get": {"operationId": "getPerson", "responses": _json_response(_ref("Person"))},
        },
        "/providers/{provider}": {
            "get": {"operationId": "getProvider", "responses": _json_response(_ref("Provider"))},
        },
        "/providers/batch": {
            "get": {
                "operationId": "batchGetProviders",
                "responses": _json_response({
                    "type": "object",
                    "properties": {"data": {"type": "array", "items": _ref("Provider")}},
                }),
            },
        },
        "/patients": {
            "get": {"operationId": "listPatients", "responses": _json_response(_ref("PatientList"))},
        },
        "/patients/{patient}": {
            "get": {"operationId": "getPatient", "responses": _json_response(_ref("Patient"))},
        },
    },
    "components": {
        "schemas": {
            "Person": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "firstName": {"type": "string"},
                    "spouse": {
                        "anyOf": [{"type": "string"}, _ref("Person"), {"type": "null"}],
                        "x-expandable-field": {"opId": "getPerson"},
                    },
                },
            },
            "Provider": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "person": {**_id_or("Person"), "x-expandable-field": {"opId": "getPerson"}},
                },
            },
            "Patient": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "person": {**_id_or("Person"), "x-expandable-field": {"opId": "getPerson"}},
                    "primaryProvider": {
                        "anyOf": [{"type": "string"}, _ref("Provider"), {"type": "null"}],
                        "x-expandable-field": {"opId": "getProvider"},
                    },
                    "providers": {
                        "type": "array",
                        "items": _id_or("Provider"),
                        "x-expandable-field": {"opId": "getProvider"},
                    },
                    "careTeam": {
                        "type": "array",
                        "items": _id_or("Provider"),
                        "x-expandable-field": {
                            "opId": "getProvider",
                            "batchOpId": "batchGetProviders",
                        },
                    },
                },
            },
            "PatientList": {
                "type": "object",
                "properties": {
                    "data": {"type": "array", "items": _ref("Patient")},
                    "pagination": {"type": "object"},
                },
            },
        },
    },
}


CLINIC_RESOURCES = {
    "/persons/p1": {"id": "p1", "firstName": "Ada", "spouse": "p2"},
    "/persons/p2": {"id": "p2", "firstName": "William", "spouse": "p1"},
    "/persons/p3": {"id": "p3", "firstName": "Gregory"},
    "/persons/p4": {"id": "p4", "firstName": "Michaela"},
    "/providers/d1": {"id": "d1", "person": "p3"},
    "/providers/d2": {"id": "d2", "person": "p4"},
    "/providers/d3": {"id": "d3", "person": "p3"},
}


@pytest.fixture
def clinic_document() -> dict:
    return copy.deepcopy(CLINIC_DOCUMENT)


@pytest.fixture
def clinic_indexes(clinic_document):
    return load_indexes(clinic_document)


@pytest.fixture
def sample_schema_path() -> Path:
    """Schema document shipped with the package."""
    import expand_svc
    return Path(expand_svc.__file__).parent / "sample_schema.yaml"


# =============================================================================
# Dispatcher Fixtures
# =============================================================================

@dataclass
class DispatchCall:
    method: str
    path: str
    headers: dict[str, str]
    params: dict[str, str] | None


@dataclass
class FakeDispatcher:
    """
    In-memory dispatcher serving canned resources keyed by path.

    `failures` maps a path to a status code; `broken` paths raise a
    DispatchError; `delay` slows every call down.
    """
    resources: dict[str, Any] = field(default_factory=lambda: copy.deepcopy(CLINIC_RESOURCES))
    failures: dict[str, int] = field(default_factory=dict)
    broken: set[str] = field(default_factory=set)
    batch_paths: dict[str, str] = field(default_factory=lambda: {"/providers/batch": "/providers"})
    delay: float = 0.0
    calls: list[DispatchCall] = field(default_factory=list)
    in_flight: int = 0
    max_in_flight: int = 0

    async def dispatch(self, method, path, headers, params=None):
        self.calls.append(DispatchCall(method, path, dict(headers), params))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self._respond(method, path, params)
        finally:
            self.in_flight -= 1

    def _respond(self, method, path, params):
        if path in self.broken:
            raise DispatchError(method, path, "connection reset")
        if path in self.failures:
            return DispatchResult(self.failures[path], {"error": "failed"}, "application/json")
        if path in self.batch_paths:
            prefix = self.batch_paths[path]
            ids = (params or {}).get("ids", "").split(",")
            items = [
                copy.deepcopy(self.resources[f"{prefix}/{i}"])
                for i in ids
                if f"{prefix}/{i}" in self.resources and f"{prefix}/{i}" not in self.failures
            ]
            return DispatchResult(200, {"data": items}, "application/json")
        if path in self.resources:
            return DispatchResult(200, copy.deepcopy(self.resources[path]), "application/json")
        return DispatchResult(404, {"error": "Not found"}, "application/json")

    def paths(self) -> list[str]:
        return [c.path for c in self.calls]


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def marker() -> InternalMarker:
    return InternalMarker()


@pytest.fixture
def caller() -> CallerContext:
    return CallerContext(
        identity=CallerIdentity(user_id="u-ada"),
        headers=(("Authorization", "Bearer ada-token"), ("X-App-ID", "portal")),
    )


@pytest.fixture
def resolver(clinic_indexes, dispatcher, marker) -> InternalResolver:
    return InternalResolver(clinic_indexes.routes, dispatcher, marker, timeout_seconds=1.0)


@pytest.fixture
def engine(clinic_indexes, resolver) -> ExpansionEngine:
    return ExpansionEngine(clinic_indexes.schemas, resolver)
