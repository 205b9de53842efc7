"""Internal resolver - fetches referenced resources through the app itself."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any

from ..expand.types import FallbackToIdentifier, Resolved, ResolutionOutcome
from ..identity.types import CallerContext
from ..schema.registry import OperationRouteIndex
from .dispatch import DispatchResult, InternalDispatcher
from .marker import InternalMarker

logger = logging.getLogger(__name__)


class InternalResolver:
    """
    Resolves identifiers into full resources via internal dispatch.

    Every call carries the original caller's credentials plus the internal
    marker, and never an `expand` parameter. Failures of any kind (unknown
    operation, non-2xx, non-JSON, timeout, transport error) come back as
    FallbackToIdentifier; only cancellation propagates.
    """

    def __init__(
        self,
        routes: OperationRouteIndex,
        dispatcher: InternalDispatcher,
        marker: InternalMarker,
        timeout_seconds: float | None = 10.0,
        id_field: str = "id",
        envelope_keys: tuple[str, ...] = ("data", "items"),
    ):
        self.routes = routes
        self.dispatcher = dispatcher
        self.marker = marker
        self.timeout_seconds = timeout_seconds
        self.id_field = id_field
        self.envelope_keys = envelope_keys

    def _headers(self, caller: CallerContext) -> dict[str, str]:
        headers = caller.header_dict()
        headers["Accept"] = "application/json"
        headers.update(self.marker.headers())
        return headers

    async def _dispatch(
        self,
        method: str,
        path: str,
        caller: CallerContext,
        params: dict[str, str] | None = None,
        limiter: asyncio.Semaphore | None = None,
    ) -> DispatchResult:
        call = self.dispatcher.dispatch(method, path, self._headers(caller), params)
        if limiter is None:
            return await asyncio.wait_for(call, self.timeout_seconds)
        async with limiter:
            return await asyncio.wait_for(call, self.timeout_seconds)

    async def resolve(
        self,
        operation_id: str,
        value: str,
        caller: CallerContext,
        limiter: asyncio.Semaphore | None = None,
    ) -> ResolutionOutcome:
        """Fetch one resource by id."""
        route = self.routes.get(operation_id)
        if route is None:
            logger.warning(f"Route not found for operation '{operation_id}'; keeping id {value}")
            return FallbackToIdentifier(value, f"unknown operation {operation_id}")

        path = route.build_path(value)
        try:
            result = await self._dispatch(route.method, path, caller, limiter=limiter)
        except asyncio.TimeoutError:
            logger.warning(
                f"Expand of {value} via {operation_id} timed out after {self.timeout_seconds}s"
            )
            return FallbackToIdentifier(value, "timeout")
        except Exception as e:
            logger.warning(f"Expand of {value} via {operation_id} failed: {e}")
            return FallbackToIdentifier(value, f"dispatch error: {e}")

        if not result.ok:
            logger.warning(
                f"Expand of {value} via {operation_id} returned {result.status_code} "
                f"(caller={caller.identity.principal}, path={path})"
            )
            return FallbackToIdentifier(value, f"status {result.status_code}")

        if not isinstance(result.body, dict):
            logger.warning(f"Expand of {value} via {operation_id} returned a non-object body")
            return FallbackToIdentifier(value, "non-object body")

        return Resolved(value, result.body)

    async def resolve_many(
        self,
        operation_id: str,
        values: list[str],
        caller: CallerContext,
        batch_operation_id: str | None = None,
        limiter: asyncio.Semaphore | None = None,
    ) -> list[ResolutionOutcome]:
        """
        Fetch several resources, one outcome per input position.

        With a batch operation available a single call is made; if it
        fails the resolver falls back to one call per identifier.
        """
        if not values:
            return []

        if batch_operation_id:
            outcomes = await self._resolve_batch(batch_operation_id, values, caller, limiter)
            if outcomes is not None:
                return outcomes

        return list(await asyncio.gather(*(
            self.resolve(operation_id, value, caller, limiter) for value in values
        )))

    async def _resolve_batch(
        self,
        batch_operation_id: str,
        values: list[str],
        caller: CallerContext,
        limiter: asyncio.Semaphore | None,
    ) -> list[ResolutionOutcome] | None:
        route = self.routes.get(batch_operation_id)
        if route is None:
            logger.debug(f"Batch operation '{batch_operation_id}' has no route; using per-id calls")
            return None

        unique = list(dict.fromkeys(values))
        try:
            result = await self._dispatch(
                route.method,
                route.build_path(),
                caller,
                params={"ids": ",".join(unique)},
                limiter=limiter,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Batch expand via {batch_operation_id} timed out; using per-id calls")
            return None
        except Exception as e:
            logger.warning(f"Batch expand via {batch_operation_id} failed ({e}); using per-id calls")
            return None

        items = self._batch_items(result.body) if result.ok else None
        if items is None:
            logger.warning(
                f"Batch expand via {batch_operation_id} returned {result.status_code}; "
                "using per-id calls"
            )
            return None

        found: dict[str, Any] = {}
        for item in items:
            if isinstance(item, dict) and item.get(self.id_field) is not None:
                found[str(item[self.id_field])] = item

        outcomes: list[ResolutionOutcome] = []
        used: set[str] = set()
        for value in values:
            if value in found:
                # Repeated ids get their own copy; expansion mutates in place.
                item = copy.deepcopy(found[value]) if value in used else found[value]
                used.add(value)
                outcomes.append(Resolved(value, item))
            else:
                logger.warning(f"Batch expand via {batch_operation_id} did not return {value}")
                outcomes.append(FallbackToIdentifier(value, "not returned by batch"))
        return outcomes

    def _batch_items(self, body: Any) -> list[Any] | None:
        if isinstance(body, list):
            return body
        if isinstance(body, dict):
            for key in self.envelope_keys:
                if isinstance(body.get(key), list):
                    return body[key]
        return None
