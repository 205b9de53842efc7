"""Tests for the internal resolver."""

import asyncio

import pytest

from expand_svc.expand.types import FallbackToIdentifier, Resolved
from expand_svc.resolver.internal import InternalResolver


class TestResolve:
    @pytest.mark.asyncio
    async def test_resolved(self, resolver, dispatcher, caller):
        outcome = await resolver.resolve("getPerson", "p1", caller)
        assert isinstance(outcome, Resolved)
        assert outcome.is_resolved
        assert outcome.value == {"id": "p1", "firstName": "Ada", "spouse": "p2"}
        assert dispatcher.paths() == ["/persons/p1"]

    @pytest.mark.asyncio
    async def test_propagates_caller_credentials_and_marker(self, resolver, dispatcher, caller, marker):
        await resolver.resolve("getPerson", "p1", caller)
        call = dispatcher.calls[0]
        assert call.method == "GET"
        assert call.headers["Authorization"] == "Bearer ada-token"
        assert call.headers["X-App-ID"] == "portal"
        assert marker.is_internal(call.headers)

    @pytest.mark.asyncio
    async def test_never_sends_expand(self, resolver, dispatcher, caller):
        await resolver.resolve("getPerson", "p1", caller)
        call = dispatcher.calls[0]
        assert "expand" not in call.path
        assert not call.params

    @pytest.mark.asyncio
    async def test_not_found_falls_back(self, resolver, caller):
        outcome = await resolver.resolve("getPerson", "missing", caller)
        assert isinstance(outcome, FallbackToIdentifier)
        assert outcome.identifier == "missing"
        assert outcome.value == "missing"
        assert "404" in outcome.reason

    @pytest.mark.asyncio
    async def test_forbidden_falls_back(self, resolver, dispatcher, caller):
        dispatcher.failures["/persons/p1"] = 403
        outcome = await resolver.resolve("getPerson", "p1", caller)
        assert not outcome.is_resolved
        assert "403" in outcome.reason

    @pytest.mark.asyncio
    async def test_transport_error_falls_back(self, resolver, dispatcher, caller):
        dispatcher.broken.add("/persons/p1")
        outcome = await resolver.resolve("getPerson", "p1", caller)
        assert not outcome.is_resolved
        assert "dispatch error" in outcome.reason

    @pytest.mark.asyncio
    async def test_unknown_operation_falls_back(self, resolver, dispatcher, caller):
        outcome = await resolver.resolve("getUnicorn", "u1", caller)
        assert not outcome.is_resolved
        assert dispatcher.calls == []

    @pytest.mark.asyncio
    async def test_non_object_body_falls_back(self, resolver, dispatcher, caller):
        dispatcher.resources["/persons/p1"] = ["not", "an", "object"]
        outcome = await resolver.resolve("getPerson", "p1", caller)
        assert not outcome.is_resolved

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, clinic_indexes, dispatcher, marker, caller):
        dispatcher.delay = 0.5
        resolver = InternalResolver(clinic_indexes.routes, dispatcher, marker, timeout_seconds=0.05)
        outcome = await resolver.resolve("getPerson", "p1", caller)
        assert not outcome.is_resolved
        assert outcome.reason == "timeout"

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, resolver, dispatcher, caller):
        dispatcher.delay = 5.0
        task = asyncio.create_task(resolver.resolve("getPerson", "p1", caller))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_limiter_caps_in_flight_calls(self, resolver, dispatcher, caller):
        dispatcher.delay = 0.02
        limiter = asyncio.Semaphore(2)
        ids = ["p1", "p2", "p3", "p4"]
        await asyncio.gather(*(resolver.resolve("getPerson", i, caller, limiter) for i in ids))
        assert dispatcher.max_in_flight == 2


class TestResolveMany:
    @pytest.mark.asyncio
    async def test_per_id_calls_preserve_order(self, resolver, dispatcher, caller):
        outcomes = await resolver.resolve_many("getProvider", ["d2", "missing", "d1"], caller)
        assert [o.is_resolved for o in outcomes] == [True, False, True]
        assert [o.identifier for o in outcomes] == ["d2", "missing", "d1"]
        assert outcomes[0].value["id"] == "d2"
        assert sorted(dispatcher.paths()) == ["/providers/d1", "/providers/d2", "/providers/missing"]

    @pytest.mark.asyncio
    async def test_empty(self, resolver, dispatcher, caller):
        assert await resolver.resolve_many("getProvider", [], caller) == []
        assert dispatcher.calls == []

    @pytest.mark.asyncio
    async def test_batch_single_call(self, resolver, dispatcher, caller, marker):
        outcomes = await resolver.resolve_many(
            "getProvider", ["d1", "d2", "d1"], caller, batch_operation_id="batchGetProviders",
        )
        assert dispatcher.paths() == ["/providers/batch"]
        assert dispatcher.calls[0].params == {"ids": "d1,d2"}
        assert marker.is_internal(dispatcher.calls[0].headers)
        assert [o.value["id"] for o in outcomes] == ["d1", "d2", "d1"]

    @pytest.mark.asyncio
    async def test_batch_missing_items_fall_back_positionally(self, resolver, dispatcher, caller):
        dispatcher.failures["/providers/d2"] = 403
        outcomes = await resolver.resolve_many(
            "getProvider", ["d1", "d2", "d3"], caller, batch_operation_id="batchGetProviders",
        )
        assert [o.is_resolved for o in outcomes] == [True, False, True]
        assert outcomes[1].value == "d2"

    @pytest.mark.asyncio
    async def test_batch_failure_falls_back_to_per_id(self, resolver, dispatcher, caller):
        dispatcher.failures["/providers/batch"] = 500
        outcomes = await resolver.resolve_many(
            "getProvider", ["d1", "d2"], caller, batch_operation_id="batchGetProviders",
        )
        assert all(o.is_resolved for o in outcomes)
        assert dispatcher.paths()[0] == "/providers/batch"
        assert sorted(dispatcher.paths()[1:]) == ["/providers/d1", "/providers/d2"]

    @pytest.mark.asyncio
    async def test_unknown_batch_operation_uses_per_id(self, resolver, dispatcher, caller):
        outcomes = await resolver.resolve_many(
            "getProvider", ["d1"], caller, batch_operation_id="batchGetUnicorns",
        )
        assert outcomes[0].is_resolved
        assert dispatcher.paths() == ["/providers/d1"]
