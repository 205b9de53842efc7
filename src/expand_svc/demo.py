"""Demo domain - persons, providers and patients with per-record authorization.

Stands in for the application whose responses get expanded. Handlers
return plain reference ids; the expand layer does the rest. Each record
type has its own read rule, so expansion visibly re-applies authorization
for the original caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field


# =============================================================================
# Errors
# =============================================================================

class DemoError(Exception):
    """Base class for demo domain errors."""
    status_code = 500


class UnauthorizedError(DemoError):
    status_code = 401


class ForbiddenError(DemoError):
    status_code = 403


class NotFoundError(DemoError):
    status_code = 404


# =============================================================================
# Response models
# =============================================================================

def expandable(op_id: str, batch_op_id: str | None = None, **kwargs: Any) -> Any:
    """Field annotated for expansion in the generated OpenAPI document."""
    extension: dict[str, Any] = {"opId": op_id}
    if batch_op_id:
        extension["batchOpId"] = batch_op_id
    return Field(json_schema_extra={"x-expandable-field": extension}, **kwargs)


class Person(BaseModel):
    id: str
    firstName: str
    lastName: str | None = None
    email: str | None = None
    emergencyContact: Optional[Union[str, Person]] = expandable("getPerson", default=None)


class Provider(BaseModel):
    id: str
    person: Union[str, Person] = expandable("getPerson")
    specialty: str | None = None


class Patient(BaseModel):
    id: str
    person: Union[str, Person] = expandable("getPerson")
    primaryProvider: Optional[Union[str, Provider]] = expandable("getProvider", default=None)
    careTeam: list[Union[str, Provider]] = expandable(
        "getProvider", batch_op_id="batchGetProviders", default_factory=list,
    )


class Pagination(BaseModel):
    limit: int
    offset: int
    count: int
    totalCount: int
    hasMore: bool


class PersonList(BaseModel):
    data: list[Person]
    pagination: Pagination


class PatientList(BaseModel):
    data: list[Patient]
    pagination: Pagination


class ProviderBatch(BaseModel):
    data: list[Provider]


# =============================================================================
# Store
# =============================================================================

@dataclass(frozen=True)
class User:
    id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass
class DemoStore:
    """In-memory records keyed by id. Each record carries its owner user id."""
    tokens: dict[str, User] = field(default_factory=dict)
    persons: dict[str, dict[str, Any]] = field(default_factory=dict)
    providers: dict[str, dict[str, Any]] = field(default_factory=dict)
    patients: dict[str, dict[str, Any]] = field(default_factory=dict)

    def authenticate(self, authorization: str | None) -> User:
        if not authorization or not authorization.startswith("Bearer "):
            raise UnauthorizedError("Authentication required")
        user = self.tokens.get(authorization[7:].strip())
        if user is None:
            raise UnauthorizedError("Invalid token")
        return user

    def _provider_person_ids(self) -> set[str]:
        return {p["person"] for p in self.providers.values()}

    def can_read_person(self, user: User, person: dict[str, Any]) -> bool:
        # Provider profiles are public to any signed-in user.
        return (
            user.is_admin
            or person.get("owner") == user.id
            or person["id"] in self._provider_person_ids()
        )

    def can_read_patient(self, user: User, patient: dict[str, Any]) -> bool:
        return user.is_admin or patient.get("owner") == user.id

    def get_person(self, user: User, person_id: str) -> dict[str, Any]:
        person = self.persons.get(person_id)
        if person is None:
            raise NotFoundError(f"Person not found: {person_id}")
        if not self.can_read_person(user, person):
            raise ForbiddenError(f"Not allowed to read person {person_id}")
        return person

    def get_provider(self, user: User, provider_id: str) -> dict[str, Any]:
        provider = self.providers.get(provider_id)
        if provider is None:
            raise NotFoundError(f"Provider not found: {provider_id}")
        return provider

    def get_patient(self, user: User, patient_id: str) -> dict[str, Any]:
        patient = self.patients.get(patient_id)
        if patient is None:
            raise NotFoundError(f"Patient not found: {patient_id}")
        if not self.can_read_patient(user, patient):
            raise ForbiddenError(f"Not allowed to read patient {patient_id}")
        return patient

    def list_persons(self, user: User) -> list[dict[str, Any]]:
        return [p for p in self.persons.values() if self.can_read_person(user, p)]

    def list_patients(self, user: User) -> list[dict[str, Any]]:
        return [p for p in self.patients.values() if self.can_read_patient(user, p)]


def create_demo_store() -> DemoStore:
    """Create a store with sample records."""
    store = DemoStore()

    store.tokens.update({
        "ada-token": User(id="u-ada"),
        "grace-token": User(id="u-grace"),
        "admin-token": User(id="u-admin", role="admin"),
    })

    store.persons.update({
        "per_ada": {
            "id": "per_ada", "firstName": "Ada", "lastName": "Lovelace",
            "email": "ada@example.com", "emergencyContact": "per_charles", "owner": "u-ada",
        },
        "per_charles": {
            "id": "per_charles", "firstName": "Charles", "lastName": "Babbage",
            "emergencyContact": "per_ada", "owner": "u-ada",
        },
        "per_grace": {
            "id": "per_grace", "firstName": "Grace", "lastName": "Hopper",
            "email": "grace@example.com", "emergencyContact": "per_charles", "owner": "u-grace",
        },
        "per_house": {
            "id": "per_house", "firstName": "Gregory", "lastName": "House", "owner": "u-house",
        },
        "per_quinn": {
            "id": "per_quinn", "firstName": "Michaela", "lastName": "Quinn", "owner": "u-quinn",
        },
    })

    store.providers.update({
        "prv_house": {"id": "prv_house", "person": "per_house", "specialty": "Diagnostics"},
        "prv_quinn": {"id": "prv_quinn", "person": "per_quinn", "specialty": "Family Medicine"},
    })

    store.patients.update({
        "pat_ada": {
            "id": "pat_ada",
            "person": "per_ada",
            "primaryProvider": "prv_house",
            "careTeam": ["prv_house", "prv_retired", "prv_quinn"],
            "owner": "u-ada",
        },
        "pat_grace": {
            "id": "pat_grace",
            "person": "per_grace",
            "primaryProvider": "prv_quinn",
            "careTeam": ["prv_quinn"],
            "owner": "u-grace",
        },
    })

    return store


# =============================================================================
# Routes
# =============================================================================

router = APIRouter()


def get_store(request: Request) -> DemoStore:
    return request.app.state.store


def current_user(request: Request, store: DemoStore = Depends(get_store)) -> User:
    return store.authenticate(request.headers.get("Authorization"))


def _paginate(items: list[dict[str, Any]], limit: int, offset: int) -> dict[str, Any]:
    page = items[offset:offset + limit]
    return {
        "data": page,
        "pagination": {
            "limit": limit,
            "offset": offset,
            "count": len(page),
            "totalCount": len(items),
            "hasMore": offset + limit < len(items),
        },
    }


@router.get("/persons", response_model=PersonList, operation_id="listPersons")
async def list_persons(
    limit: int = Query(25, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(current_user),
    store: DemoStore = Depends(get_store),
):
    return _paginate(store.list_persons(user), limit, offset)


@router.get("/persons/{person_id}", response_model=Person, operation_id="getPerson")
async def get_person(
    person_id: str,
    user: User = Depends(current_user),
    store: DemoStore = Depends(get_store),
):
    return store.get_person(user, person_id)


@router.get("/providers/{provider_id}", response_model=Provider, operation_id="getProvider")
async def get_provider(
    provider_id: str,
    user: User = Depends(current_user),
    store: DemoStore = Depends(get_store),
):
    return store.get_provider(user, provider_id)


@router.get("/batch/providers", response_model=ProviderBatch, operation_id="batchGetProviders")
async def batch_get_providers(
    ids: str = Query(..., description="Comma-separated provider ids"),
    user: User = Depends(current_user),
    store: DemoStore = Depends(get_store),
):
    found = []
    for provider_id in dict.fromkeys(i.strip() for i in ids.split(",") if i.strip()):
        try:
            found.append(store.get_provider(user, provider_id))
        except (NotFoundError, ForbiddenError):
            continue
    return {"data": found}


@router.get("/patients", response_model=PatientList, operation_id="listPatients")
async def list_patients(
    limit: int = Query(25, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(current_user),
    store: DemoStore = Depends(get_store),
):
    return _paginate(store.list_patients(user), limit, offset)


@router.get("/patients/{patient_id}", response_model=Patient, operation_id="getPatient")
async def get_patient(
    patient_id: str,
    user: User = Depends(current_user),
    store: DemoStore = Depends(get_store),
):
    return store.get_patient(user, patient_id)
