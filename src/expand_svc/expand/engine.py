"""Expansion engine - replaces reference ids with the resources they name."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from ..identity.types import CallerContext
from ..schema.registry import SchemaMetadata
from ..schema.types import FieldExpansionMetadata
from .parser import group_by_first_segment, max_depth, subpaths
from .types import ExpandPath, ExpansionRequest, ResolutionOutcome

if TYPE_CHECKING:
    from ..resolver.internal import InternalResolver

logger = logging.getLogger(__name__)


MAX_EXPAND_DEPTH = 4


class ExpansionEngine:
    """
    Recursively expands reference fields of a JSON value.

    Handles:
    - Plain objects of a known schema
    - Lists of such objects (list endpoints)
    - Paginated envelopes ({"data": [...], "pagination": {...}})

    The engine mutates the value it is given and returns it. It never
    raises for missing metadata or failed resolutions; those fields just
    keep their identifiers.
    """

    def __init__(
        self,
        schemas: SchemaMetadata,
        resolver: InternalResolver,
        max_depth: int = MAX_EXPAND_DEPTH,
        max_concurrency: int = 10,
        envelope_keys: tuple[str, ...] = ("data", "items"),
        pagination_key: str = "pagination",
    ):
        self.schemas = schemas
        self.resolver = resolver
        self.max_depth = max_depth
        self.max_concurrency = max_concurrency
        self.envelope_keys = envelope_keys
        self.pagination_key = pagination_key

    def exceeds_depth(self, paths: list[ExpandPath]) -> bool:
        return max_depth(paths) > self.max_depth

    async def expand(
        self,
        data: Any,
        paths: list[ExpandPath],
        schema_name: str,
        caller: CallerContext,
    ) -> Any:
        """
        Expand a whole response body.

        A request whose longest path exceeds the depth limit is treated as
        if nothing had been requested: no resolution work happens and the
        data comes back untouched.
        """
        if not paths:
            return data

        if self.exceeds_depth(paths):
            logger.debug(
                f"Expand depth {max_depth(paths)} exceeds limit {self.max_depth}; skipping"
            )
            return data

        request = ExpansionRequest(
            data=data,
            requested_paths=paths,
            schema_name=schema_name,
            caller=caller,
            limiter=asyncio.Semaphore(max(1, self.max_concurrency)),
        )
        result = await self.apply(request)

        logger.debug(
            f"Expanded {schema_name} for {caller.identity.principal}: "
            f"{request.stats['resolved']} resolved, {request.stats['fallback']} kept as ids"
        )
        return result

    async def apply(self, request: ExpansionRequest) -> Any:
        """Expand one level of a value and recurse into nested paths."""
        data = request.data

        if isinstance(data, list):
            return list(await asyncio.gather(*(
                self.apply(request.sibling(item)) for item in data
            )))

        envelope_key = self._envelope_key(data)
        if envelope_key is not None:
            data[envelope_key] = await self.apply(request.sibling(data[envelope_key]))
            return data

        if request.current_depth >= self.max_depth or not isinstance(data, dict):
            return data

        if not self.schemas.has_schema(request.schema_name):
            logger.warning(f"Schema '{request.schema_name}' not found in schema metadata")
            return data

        fields = self.schemas.expandable_fields(request.schema_name)
        tasks = []
        for field_name, remaining in group_by_first_segment(request.requested_paths).items():
            meta = fields.get(field_name)
            if meta is None:
                logger.warning(
                    f"Requested field '{field_name}' is not expandable on {request.schema_name}"
                )
                continue
            tasks.append(self._expand_field(data, meta, subpaths(remaining), request))

        if tasks:
            await asyncio.gather(*tasks)
        return data

    def _envelope_key(self, data: Any) -> str | None:
        """Key of the item list if data is a paginated envelope."""
        if not isinstance(data, dict) or self.pagination_key not in data:
            return None
        for key in self.envelope_keys:
            if isinstance(data.get(key), list):
                return key
        return None

    async def _expand_field(
        self,
        data: dict[str, Any],
        meta: FieldExpansionMetadata,
        remaining: list[ExpandPath],
        request: ExpansionRequest,
    ) -> None:
        value = data.get(meta.field_name)
        if not value:
            return

        if isinstance(value, str):
            if meta.is_array:
                logger.debug(f"{request.schema_name}.{meta.field_name}: single id in array field")
            outcome = await self.resolver.resolve(
                meta.fetch_operation_id, value, request.caller, request.limiter,
            )
            data[meta.field_name] = await self._merge(outcome, meta, remaining, request)

        elif isinstance(value, list):
            data[meta.field_name] = await self._expand_array(value, meta, remaining, request)

        elif isinstance(value, dict) and remaining:
            # Already expanded by the handler; only nested paths need work.
            await self.apply(request.descend(value, remaining, meta.target_schema_name))

    async def _expand_array(
        self,
        values: list[Any],
        meta: FieldExpansionMetadata,
        remaining: list[ExpandPath],
        request: ExpansionRequest,
    ) -> list[Any]:
        ids = [v for v in values if isinstance(v, str)]
        outcomes = iter(await self.resolver.resolve_many(
            meta.fetch_operation_id,
            ids,
            request.caller,
            batch_operation_id=meta.batch_operation_id,
            limiter=request.limiter,
        ))

        async def keep(value: Any) -> Any:
            return value

        jobs = []
        for value in values:
            if isinstance(value, str):
                jobs.append(self._merge(next(outcomes), meta, remaining, request))
            elif isinstance(value, dict) and remaining:
                jobs.append(self.apply(request.descend(value, remaining, meta.target_schema_name)))
            else:
                jobs.append(keep(value))

        # gather preserves input order
        return list(await asyncio.gather(*jobs))

    async def _merge(
        self,
        outcome: ResolutionOutcome,
        meta: FieldExpansionMetadata,
        remaining: list[ExpandPath],
        request: ExpansionRequest,
    ) -> Any:
        if not outcome.is_resolved:
            request.stats["fallback"] += 1
            return outcome.identifier

        request.stats["resolved"] += 1
        if not remaining:
            return outcome.value
        return await self.apply(request.descend(outcome.value, remaining, meta.target_schema_name))
