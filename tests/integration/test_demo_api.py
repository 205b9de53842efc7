"""End-to-end expansion through the demo patient API."""

import pytest


class TestPlainResponses:
    @pytest.mark.asyncio
    async def test_health(self, client_factory):
        async with client_factory(None) as client:
            response = await client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["expansion"]["enabled"] is True
        assert body["expansion"]["expandable_fields"] >= 5

    @pytest.mark.asyncio
    async def test_without_expand_returns_ids(self, client_factory):
        async with client_factory() as client:
            response = await client.get("/patients/pat_ada")
        body = response.json()
        assert body["person"] == "per_ada"
        assert body["careTeam"] == ["prv_house", "prv_retired", "prv_quinn"]

    @pytest.mark.asyncio
    async def test_unauthenticated_request_untouched(self, client_factory):
        async with client_factory(None) as client:
            response = await client.get("/patients/pat_ada", params={"expand": "person"})
        assert response.status_code == 401
        assert response.json()["error"] == "UnauthorizedError"


class TestExpansion:
    @pytest.mark.asyncio
    async def test_expand_person(self, client_factory):
        async with client_factory() as client:
            response = await client.get("/patients/pat_ada", params={"expand": "person"})
        person = response.json()["person"]
        assert person["id"] == "per_ada"
        assert person["firstName"] == "Ada"
        assert person["emergencyContact"] == "per_charles"

    @pytest.mark.asyncio
    async def test_nested_path(self, client_factory):
        async with client_factory() as client:
            response = await client.get(
                "/patients/pat_ada", params={"expand": "primaryProvider.person"},
            )
        provider = response.json()["primaryProvider"]
        assert provider["id"] == "prv_house"
        assert provider["person"]["lastName"] == "House"

    @pytest.mark.asyncio
    async def test_self_reference(self, client_factory):
        async with client_factory() as client:
            response = await client.get(
                "/persons/per_ada",
                params={"expand": "emergencyContact.emergencyContact"},
            )
        contact = response.json()["emergencyContact"]
        assert contact["id"] == "per_charles"
        assert contact["emergencyContact"]["id"] == "per_ada"
        assert contact["emergencyContact"]["emergencyContact"] == "per_charles"

    @pytest.mark.asyncio
    async def test_repeated_expand_parameters(self, client_factory):
        async with client_factory() as client:
            response = await client.get(
                "/patients/pat_ada?expand=person&expand=primaryProvider",
            )
        body = response.json()
        assert body["person"]["id"] == "per_ada"
        assert body["primaryProvider"]["id"] == "prv_house"

    @pytest.mark.asyncio
    async def test_care_team_batch_with_missing_provider(self, client_factory):
        async with client_factory() as client:
            response = await client.get("/patients/pat_ada", params={"expand": "careTeam"})
        team = response.json()["careTeam"]
        assert len(team) == 3
        assert team[0]["id"] == "prv_house"
        assert team[1] == "prv_retired"
        assert team[2]["id"] == "prv_quinn"

    @pytest.mark.asyncio
    async def test_care_team_nested(self, client_factory):
        async with client_factory() as client:
            response = await client.get(
                "/patients/pat_ada", params={"expand": "careTeam.person"},
            )
        team = response.json()["careTeam"]
        assert team[0]["person"]["firstName"] == "Gregory"
        assert team[1] == "prv_retired"
        assert team[2]["person"]["firstName"] == "Michaela"

    @pytest.mark.asyncio
    async def test_paginated_list(self, client_factory):
        async with client_factory("admin-token") as client:
            response = await client.get("/patients", params={"expand": "person"})
        body = response.json()
        assert body["pagination"]["totalCount"] == 2
        assert [p["person"]["id"] for p in body["data"]] == ["per_ada", "per_grace"]

    @pytest.mark.asyncio
    async def test_depth_over_limit_ignored(self, client_factory):
        async with client_factory() as client:
            plain = await client.get("/persons/per_ada")
            deep = await client.get(
                "/persons/per_ada",
                params={"expand": "emergencyContact.emergencyContact.emergencyContact"
                                   ".emergencyContact.emergencyContact"},
            )
        assert deep.content == plain.content


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_caller_permissions_apply_to_expanded_resources(self, client_factory):
        # Grace can read her own record but not Charles, her emergency contact.
        async with client_factory("grace-token") as client:
            response = await client.get(
                "/patients/pat_grace", params={"expand": "person.emergencyContact"},
            )
        person = response.json()["person"]
        assert person["id"] == "per_grace"
        assert person["emergencyContact"] == "per_charles"

    @pytest.mark.asyncio
    async def test_owner_sees_expanded_contact(self, client_factory):
        async with client_factory() as client:
            response = await client.get(
                "/patients/pat_ada", params={"expand": "person.emergencyContact"},
            )
        assert response.json()["person"]["emergencyContact"]["firstName"] == "Charles"

    @pytest.mark.asyncio
    async def test_provider_profiles_visible_to_any_user(self, client_factory):
        async with client_factory("grace-token") as client:
            response = await client.get(
                "/patients/pat_grace", params={"expand": "primaryProvider.person"},
            )
        assert response.json()["primaryProvider"]["person"]["lastName"] == "Quinn"
