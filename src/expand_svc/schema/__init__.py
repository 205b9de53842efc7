"""Schema metadata - boot-time indexes of expandable fields and routes."""

from .loader import ExpansionIndexes, SchemaLoader, load_indexes, load_schema_document
from .registry import OperationRouteIndex, SchemaMetadata
from .types import Cardinality, FieldExpansionMetadata, RouteDescriptor

__all__ = [
    "Cardinality",
    "ExpansionIndexes",
    "FieldExpansionMetadata",
    "OperationRouteIndex",
    "RouteDescriptor",
    "SchemaLoader",
    "SchemaMetadata",
    "load_indexes",
    "load_schema_document",
]
