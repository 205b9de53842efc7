"""Anti-recursion marker for engine-issued internal calls."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Mapping


@dataclass(frozen=True)
class InternalMarker:
    """
    Header proving a request was issued by the expansion engine itself.

    The token is generated per process and never leaves it, so an external
    client cannot mint a valid marker. The marker only suppresses further
    expansion; it grants no authorization.
    """
    header_name: str = "X-Internal-Expand"
    token: str = field(default_factory=lambda: secrets.token_urlsafe(32), repr=False)

    def headers(self) -> dict[str, str]:
        return {self.header_name: self.token}

    def is_present(self, headers: Mapping[str, str]) -> bool:
        return headers.get(self.header_name) is not None

    def is_internal(self, headers: Mapping[str, str]) -> bool:
        """True only for a marker carrying this process's token."""
        value = headers.get(self.header_name)
        if not value:
            return False
        return secrets.compare_digest(value.encode("utf-8"), self.token.encode("utf-8"))
