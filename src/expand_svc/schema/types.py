"""Schema metadata types."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import quote


class Cardinality(str, Enum):
    """Whether an expandable field holds one reference or a list of them."""
    SINGLE = "single"
    ARRAY = "array"


# Path template parameter: /persons/{person}
PARAM_PATTERN = re.compile(r"\{[^}/]+\}")


@dataclass(frozen=True, slots=True)
class FieldExpansionMetadata:
    """How to fetch the resource referenced by one field of one schema."""
    field_name: str
    fetch_operation_id: str
    target_schema_name: str
    cardinality: Cardinality = Cardinality.SINGLE

    # Optional operation accepting many ids at once (?ids=a,b,c)
    batch_operation_id: str | None = None

    @property
    def is_array(self) -> bool:
        return self.cardinality == Cardinality.ARRAY


@dataclass(frozen=True, slots=True)
class RouteDescriptor:
    """
    A route known to the schema document.

    Examples:
        getPerson  -> GET /persons/{person}
        listPatients -> GET /patients  (response schema Patient, paginated)
    """
    operation_id: str
    method: str
    path_template: str
    response_schema_name: str | None = None
    _regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        parts = PARAM_PATTERN.split(self.path_template)
        pattern = "[^/]+".join(re.escape(p) for p in parts)
        object.__setattr__(self, "_regex", re.compile(f"^{pattern}/?$"))

    @property
    def param_count(self) -> int:
        return len(PARAM_PATTERN.findall(self.path_template))

    @property
    def is_literal(self) -> bool:
        return self.param_count == 0

    def build_path(self, value: str | None = None) -> str:
        """Substitute the path parameter with a concrete identifier."""
        if value is None:
            return self.path_template
        return PARAM_PATTERN.sub(lambda _: quote(str(value), safe=""), self.path_template)

    def matches(self, method: str, path: str) -> bool:
        return method.upper() == self.method and bool(self._regex.match(path))
