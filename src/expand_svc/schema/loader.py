"""Schema loader - builds expansion indexes from an OpenAPI document."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ..errors import SchemaDocumentError
from .registry import OperationRouteIndex, SchemaMetadata
from .types import Cardinality, FieldExpansionMetadata, RouteDescriptor


logger = logging.getLogger(__name__)


EXPANDABLE_EXTENSION = "x-expandable-field"
RESPONSE_SCHEMA_EXTENSION = "x-expand-schema"
HTTP_METHODS = ("get", "put", "post", "delete", "patch", "head", "options")
COMPOSITION_KEYS = ("anyOf", "oneOf", "allOf")


@dataclass(frozen=True, slots=True)
class ExpansionIndexes:
    """Everything the engine needs from the schema document."""
    schemas: SchemaMetadata
    routes: OperationRouteIndex


class SchemaLoader:
    """
    Builds SchemaMetadata and OperationRouteIndex from an OpenAPI document.

    Expandable fields are properties annotated with `x-expandable-field`:
    ```yaml
    components:
      schemas:
        Patient:
          properties:
            person:
              anyOf:
                - type: string
                - $ref: '#/components/schemas/Person'
              x-expandable-field:
                opId: getPerson
            providers:
              type: array
              items:
                anyOf:
                  - type: string
                  - $ref: '#/components/schemas/Provider'
              x-expandable-field:
                opId: getProvider
                batchOpId: batchGetProviders
    paths:
      /persons/{person}:
        get:
          operationId: getPerson
    ```
    """

    def __init__(self, envelope_keys: tuple[str, ...] = ("data", "items")):
        self.envelope_keys = envelope_keys

    def load_file(self, path: str | Path) -> ExpansionIndexes:
        """Load indexes from a YAML or JSON schema document."""
        return self.load_dict(load_schema_document(path))

    def load_dict(self, document: dict[str, Any]) -> ExpansionIndexes:
        """Load indexes from an already-parsed document (e.g. app.openapi())."""
        if not isinstance(document, dict):
            raise SchemaDocumentError(
                f"Schema document must be a mapping, got {type(document).__name__}"
            )

        components = (document.get("components") or {}).get("schemas") or {}
        if not components:
            logger.warning("Schema document has no components.schemas; nothing is expandable")

        schemas = SchemaMetadata({
            name: self._parse_schema(name, schema, components)
            for name, schema in components.items()
            if isinstance(schema, dict)
        })
        routes = OperationRouteIndex(self._parse_routes(document.get("paths") or {}, components))

        for schema_name, meta in schemas:
            if meta.fetch_operation_id not in routes:
                logger.warning(
                    f"{schema_name}.{meta.field_name}: operation "
                    f"'{meta.fetch_operation_id}' has no route; field will not expand"
                )

        logger.info(
            f"Indexed {len(schemas)} expandable fields across "
            f"{len(schemas.schema_names())} schemas, {len(routes)} routes"
        )
        return ExpansionIndexes(schemas=schemas, routes=routes)

    def _parse_schema(
        self,
        schema_name: str,
        schema: dict[str, Any],
        components: dict[str, Any],
    ) -> list[FieldExpansionMetadata]:
        fields: list[FieldExpansionMetadata] = []

        for field_name, prop in self._properties(schema, components).items():
            if not isinstance(prop, dict):
                continue
            extension = prop.get(EXPANDABLE_EXTENSION)
            if not isinstance(extension, dict):
                continue

            op_id = extension.get("opId") or extension.get("operationId")
            if not op_id:
                logger.warning(f"{schema_name}.{field_name}: {EXPANDABLE_EXTENSION} without opId")
                continue

            target, is_array = _unwrap_target(prop)
            target = extension.get("targetSchema") or target
            if not target:
                logger.warning(f"{schema_name}.{field_name}: cannot determine target schema")
                continue

            cardinality = extension.get("cardinality")
            if cardinality:
                try:
                    cardinality = Cardinality(cardinality)
                except ValueError:
                    logger.warning(
                        f"{schema_name}.{field_name}: unknown cardinality '{cardinality}'"
                    )
                    continue
            else:
                cardinality = Cardinality.ARRAY if is_array else Cardinality.SINGLE

            fields.append(FieldExpansionMetadata(
                field_name=field_name,
                fetch_operation_id=op_id,
                target_schema_name=target,
                cardinality=cardinality,
                batch_operation_id=extension.get("batchOpId"),
            ))
            logger.debug(f"Expandable field: {schema_name}.{field_name} -> {target} via {op_id}")

        return fields

    def _properties(self, schema: dict[str, Any], components: dict[str, Any]) -> dict[str, Any]:
        """Own properties plus those merged in through allOf."""
        properties: dict[str, Any] = {}
        for part in schema.get("allOf") or ():
            if not isinstance(part, dict):
                continue
            ref = _ref_name(part)
            if ref and isinstance(components.get(ref), dict):
                part = components[ref]
            properties.update(part.get("properties") or {})
        properties.update(schema.get("properties") or {})
        return properties

    def _parse_routes(
        self,
        paths: dict[str, Any],
        components: dict[str, Any],
    ) -> list[RouteDescriptor]:
        routes: list[RouteDescriptor] = []

        for template, operations in paths.items():
            if not isinstance(operations, dict):
                continue
            for method, operation in operations.items():
                if method.lower() not in HTTP_METHODS or not isinstance(operation, dict):
                    continue
                op_id = operation.get("operationId")
                if not op_id:
                    continue
                response_schema = (
                    operation.get(RESPONSE_SCHEMA_EXTENSION)
                    or self._response_schema(operation, components)
                )
                routes.append(RouteDescriptor(
                    operation_id=op_id,
                    method=method.upper(),
                    path_template=template,
                    response_schema_name=response_schema,
                ))

        return routes

    def _response_schema(self, operation: dict[str, Any], components: dict[str, Any]) -> str | None:
        """Item schema returned by an operation's first 2xx JSON response."""
        responses = operation.get("responses") or {}
        # YAML may load status codes as ints
        for status, response in sorted(responses.items(), key=lambda kv: str(kv[0])):
            if not str(status).startswith("2") or not isinstance(response, dict):
                continue
            content = response.get("content") or {}
            for media_type, body in content.items():
                if "json" not in media_type or not isinstance(body, dict):
                    continue
                schema = body.get("schema")
                if isinstance(schema, dict):
                    return self._item_schema(schema, components)
        return None

    def _item_schema(self, schema: dict[str, Any], components: dict[str, Any]) -> str | None:
        ref = _ref_name(schema)
        if ref:
            # A named list envelope (PersonList) expands as its items.
            inner = components.get(ref)
            if isinstance(inner, dict):
                envelope_item = self._envelope_item(inner)
                if envelope_item:
                    return envelope_item
            return ref

        if schema.get("type") == "array" and isinstance(schema.get("items"), dict):
            return _unwrap_target(schema["items"])[0]

        return self._envelope_item(schema)

    def _envelope_item(self, schema: dict[str, Any]) -> str | None:
        properties = schema.get("properties") or {}
        for key in self.envelope_keys:
            prop = properties.get(key)
            if isinstance(prop, dict) and prop.get("type") == "array":
                items = prop.get("items")
                if isinstance(items, dict):
                    return _unwrap_target(items)[0]
        return None


def _ref_name(schema: dict[str, Any]) -> str | None:
    ref = schema.get("$ref")
    if isinstance(ref, str) and ref:
        return ref.rsplit("/", 1)[-1]
    return None


def _unwrap_target(prop: dict[str, Any]) -> tuple[str | None, bool]:
    """
    Find the concrete schema behind a property.

    Examples:
        {$ref: Person}                                  -> ("Person", False)
        {anyOf: [{type: string}, {$ref: Person}]}       -> ("Person", False)
        {anyOf: [{$ref: Person}, {type: "null"}]}       -> ("Person", False)
        {type: array, items: {anyOf: [..., {$ref: P}]}} -> ("P", True)
    """
    ref = _ref_name(prop)
    if ref:
        return ref, False

    if prop.get("type") == "array" and isinstance(prop.get("items"), dict):
        target, _ = _unwrap_target(prop["items"])
        return target, True

    for key in COMPOSITION_KEYS:
        for option in prop.get(key) or ():
            if not isinstance(option, dict):
                continue
            target, is_array = _unwrap_target(option)
            if target:
                return target, is_array

    return None, False


def load_schema_document(path: str | Path) -> dict[str, Any]:
    """Read a schema document from a YAML or JSON file."""
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Schema document not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise SchemaDocumentError(f"Cannot parse schema document {path}: {e}") from e

    return data or {}


def load_indexes(
    source: str | Path | dict,
    envelope_keys: tuple[str, ...] = ("data", "items"),
) -> ExpansionIndexes:
    """
    Convenience function to build the expansion indexes.

    Args:
        source: File path or an already-parsed document

    Returns:
        ExpansionIndexes with schema metadata and routes
    """
    loader = SchemaLoader(envelope_keys=envelope_keys)
    if isinstance(source, dict):
        return loader.load_dict(source)
    return loader.load_file(source)
