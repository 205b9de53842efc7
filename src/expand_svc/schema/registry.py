"""Read-only indexes over the schema document.

Both indexes are built once at boot and shared by every request. They are
never mutated after construction, so no locking is needed.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from .types import FieldExpansionMetadata, RouteDescriptor

logger = logging.getLogger(__name__)


class SchemaMetadata:
    """
    Index of expandable fields: schema name -> field name -> metadata.

    Schemas with no expandable fields are still recorded (with an empty
    mapping) so "known but nothing to expand" is distinguishable from
    "unknown schema".
    """

    __slots__ = ("_schemas",)

    def __init__(self, schemas: Mapping[str, Iterable[FieldExpansionMetadata]] | None = None):
        frozen: dict[str, Mapping[str, FieldExpansionMetadata]] = {}
        for schema_name, fields in (schemas or {}).items():
            frozen[schema_name] = MappingProxyType({f.field_name: f for f in fields})
        self._schemas: Mapping[str, Mapping[str, FieldExpansionMetadata]] = MappingProxyType(frozen)

    def has_schema(self, schema_name: str) -> bool:
        return schema_name in self._schemas

    def expandable_fields(self, schema_name: str) -> Mapping[str, FieldExpansionMetadata]:
        """Expandable fields of a schema (empty for unknown schemas)."""
        return self._schemas.get(schema_name, MappingProxyType({}))

    def get(self, schema_name: str, field_name: str) -> FieldExpansionMetadata | None:
        return self.expandable_fields(schema_name).get(field_name)

    def schema_names(self) -> list[str]:
        return sorted(self._schemas)

    def __iter__(self) -> Iterator[tuple[str, FieldExpansionMetadata]]:
        for schema_name in sorted(self._schemas):
            for meta in self._schemas[schema_name].values():
                yield schema_name, meta

    def __len__(self) -> int:
        return sum(len(fields) for fields in self._schemas.values())

    @property
    def stats(self) -> dict[str, int]:
        return {
            "schemas": len(self._schemas),
            "expandable_fields": len(self),
        }


class OperationRouteIndex:
    """
    Index of routes: operation id -> method + path template.

    Also answers the reverse question used by the response interceptor:
    which operation (and so which response schema) served a request path.
    """

    __slots__ = ("_routes", "_match_order")

    def __init__(self, routes: Iterable[RouteDescriptor] | None = None):
        by_id: dict[str, RouteDescriptor] = {}
        for route in routes or ():
            if route.operation_id in by_id:
                logger.warning(
                    f"Duplicate operationId '{route.operation_id}' "
                    f"({route.method} {route.path_template}); keeping the first"
                )
                continue
            by_id[route.operation_id] = route

        self._routes: Mapping[str, RouteDescriptor] = MappingProxyType(by_id)
        # Literal templates beat parameterised ones: /persons/me before /persons/{id}
        self._match_order: tuple[RouteDescriptor, ...] = tuple(
            sorted(by_id.values(), key=lambda r: (r.param_count, -len(r.path_template)))
        )

    def get(self, operation_id: str) -> RouteDescriptor | None:
        return self._routes.get(operation_id)

    def match(self, method: str, path: str) -> RouteDescriptor | None:
        """Find the route serving a concrete request path."""
        for route in self._match_order:
            if route.matches(method, path):
                return route
        return None

    def operation_ids(self) -> list[str]:
        return sorted(self._routes)

    def __iter__(self) -> Iterator[RouteDescriptor]:
        return iter(self._match_order)

    def __len__(self) -> int:
        return len(self._routes)

    def __contains__(self, operation_id: str) -> bool:
        return operation_id in self._routes
