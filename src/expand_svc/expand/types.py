"""Core expansion types."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Union

from ..identity.types import CallerContext


@dataclass(frozen=True, slots=True)
class ExpandPath:
    """
    A dotted expansion path requested by the client.

    Examples:
        person                      -> ("person",)           depth 1
        primaryProvider.person      -> ("primaryProvider", "person")  depth 2

    Inside a grouped map an empty path is a leaf: "expand this field and stop".
    """
    segments: tuple[str, ...]

    def __str__(self) -> str:
        return ".".join(self.segments)

    def __len__(self) -> int:
        return len(self.segments)

    @property
    def depth(self) -> int:
        """Number of segments."""
        return len(self.segments)

    @property
    def is_leaf(self) -> bool:
        return not self.segments

    @property
    def head(self) -> str | None:
        """First segment - the field to expand at the current level."""
        return self.segments[0] if self.segments else None

    def tail(self) -> ExpandPath:
        """Remaining segments after the first."""
        return ExpandPath(self.segments[1:])

    @classmethod
    def leaf(cls) -> ExpandPath:
        return cls(())

    @classmethod
    def from_string(cls, path_str: str) -> ExpandPath:
        """Parse a dotted path string, dropping blank segments."""
        segments = tuple(s.strip() for s in path_str.split(".") if s.strip())
        return cls(segments)


@dataclass(frozen=True, slots=True)
class Resolved:
    """An identifier that was successfully fetched."""
    identifier: str
    value: Any

    @property
    def is_resolved(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class FallbackToIdentifier:
    """An identifier that could not be fetched; the raw id stays in place."""
    identifier: str
    reason: str

    @property
    def is_resolved(self) -> bool:
        return False

    @property
    def value(self) -> str:
        return self.identifier


ResolutionOutcome = Union[Resolved, FallbackToIdentifier]


@dataclass
class ExpansionRequest:
    """
    One level of expansion work for a single incoming request.

    Created per request and discarded once the response is written.
    """
    data: Any
    requested_paths: list[ExpandPath]
    schema_name: str
    caller: CallerContext
    current_depth: int = 0

    # Caps in-flight internal calls for this request
    limiter: asyncio.Semaphore | None = None
    stats: dict[str, int] = field(default_factory=lambda: {"resolved": 0, "fallback": 0})

    def descend(self, data: Any, paths: list[ExpandPath], schema_name: str) -> ExpansionRequest:
        """Request for the next level down, sharing caller and stats."""
        return ExpansionRequest(
            data=data,
            requested_paths=paths,
            schema_name=schema_name,
            caller=self.caller,
            current_depth=self.current_depth + 1,
            limiter=self.limiter,
            stats=self.stats,
        )

    def sibling(self, data: Any) -> ExpansionRequest:
        """Request for another element at the same level (list items)."""
        return ExpansionRequest(
            data=data,
            requested_paths=self.requested_paths,
            schema_name=self.schema_name,
            caller=self.caller,
            current_depth=self.current_depth,
            limiter=self.limiter,
            stats=self.stats,
        )
