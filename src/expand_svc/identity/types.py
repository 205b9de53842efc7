"""Caller identity types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    """
    Who made the original request, as far as headers tell us.

    Used for log context only. Authorization is never decided here; the
    application's own auth layer re-checks the forwarded credentials.
    """
    # Service identity (from mTLS or service account)
    service_id: str | None = None

    # User identity (from OAuth/JWT)
    user_id: str | None = None

    # Application/client identifier
    app_id: str | None = None

    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def principal(self) -> str:
        """Primary identifier for this caller."""
        return self.service_id or self.user_id or self.app_id or "anonymous"

    def __str__(self) -> str:
        return self.principal


@dataclass(frozen=True, slots=True)
class CallerContext:
    """
    Credentials of the original caller, carried onto internal calls.

    `headers` holds the raw credential headers exactly as received so the
    downstream auth middleware sees the same requester.
    """
    identity: CallerIdentity = field(default_factory=CallerIdentity)
    headers: tuple[tuple[str, str], ...] = ()

    def header_dict(self) -> dict[str, str]:
        return dict(self.headers)

    @classmethod
    def anonymous(cls) -> CallerContext:
        return cls()
