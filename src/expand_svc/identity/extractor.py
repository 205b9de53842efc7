"""Caller context extraction from requests."""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Callable

from starlette.requests import HTTPConnection

from .types import CallerContext, CallerIdentity


logger = logging.getLogger(__name__)


DEFAULT_FORWARD_HEADERS = (
    "Authorization",
    "Cookie",
    "X-API-Key",
    "X-App-ID",
    "X-Team",
    "X-Request-ID",
)


@dataclass
class CallerContextExtractor:
    """
    Captures the original caller's credentials from an HTTP request.

    The forwarded headers are replayed verbatim on every internal
    resolution call, so an expanded resource is authorized against the
    same requester as the primary response.

    The identity is best-effort and used for logging:
    1. Custom extractor (if configured)
    2. JWT Bearer token (payload decoded, not verified)
    3. mTLS client DN passed by the proxy
    4. Basic auth username
    5. App id header / anonymous
    """
    forward_headers: tuple[str, ...] = DEFAULT_FORWARD_HEADERS

    jwt_header: str = "Authorization"
    app_id_header: str = "X-App-ID"
    jwt_user_claim: str = "sub"
    jwt_service_claim: str = "client_id"

    custom_extractor: Callable[[HTTPConnection], CallerIdentity | None] | None = None

    _lowered: frozenset[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._lowered = frozenset(h.lower() for h in self.forward_headers)

    def extract(self, request: HTTPConnection) -> CallerContext:
        """Build the caller context for a request."""
        headers = tuple(
            (name, value)
            for name, value in request.headers.items()
            if name.lower() in self._lowered
        )
        return CallerContext(identity=self.identify(request), headers=headers)

    def identify(self, request: HTTPConnection) -> CallerIdentity:
        if self.custom_extractor:
            identity = self.custom_extractor(request)
            if identity:
                return identity

        for method in (self._extract_jwt, self._extract_mtls, self._extract_basic):
            identity = method(request)
            if identity:
                return identity

        return CallerIdentity(app_id=request.headers.get(self.app_id_header))

    def _extract_jwt(self, request: HTTPConnection) -> CallerIdentity | None:
        auth_header = request.headers.get(self.jwt_header, "")
        if not auth_header.startswith("Bearer "):
            return None

        parts = auth_header[7:].split(".")
        if len(parts) != 3:
            # Opaque bearer token; auth layer knows who it is, we don't.
            return None

        try:
            payload_b64 = parts[1]
            padding = 4 - len(payload_b64) % 4
            if padding != 4:
                payload_b64 += "=" * padding
            payload = json.loads(base64.urlsafe_b64decode(payload_b64))
        except (ValueError, TypeError) as e:
            logger.debug(f"Failed to decode JWT payload: {e}")
            return None

        if not isinstance(payload, dict):
            return None

        return CallerIdentity(
            user_id=payload.get(self.jwt_user_claim),
            service_id=payload.get(self.jwt_service_claim),
            app_id=request.headers.get(self.app_id_header),
            claims=payload,
        )

    def _extract_mtls(self, request: HTTPConnection) -> CallerIdentity | None:
        cert_dn = (
            request.headers.get("X-SSL-Client-DN") or
            request.headers.get("X-Client-Cert-DN")
        )
        if not cert_dn:
            return None

        # Format: CN=service-name,OU=team,O=org
        for part in cert_dn.split(","):
            part = part.strip()
            if part.startswith("CN="):
                return CallerIdentity(
                    service_id=part[3:],
                    app_id=request.headers.get(self.app_id_header),
                )
        return None

    def _extract_basic(self, request: HTTPConnection) -> CallerIdentity | None:
        auth_header = request.headers.get(self.jwt_header, "")
        if not auth_header.startswith("Basic "):
            return None

        try:
            creds = base64.b64decode(auth_header[6:]).decode("utf-8")
            username, _ = creds.split(":", 1)
        except ValueError as e:
            logger.debug(f"Failed to decode Basic auth header: {e}")
            return None

        return CallerIdentity(
            service_id=username,
            app_id=request.headers.get(self.app_id_header),
        )


# Default extractor instance
_default_extractor = CallerContextExtractor()


def extract_caller(request: HTTPConnection) -> CallerContext:
    """Extract caller context using the default extractor."""
    return _default_extractor.extract(request)
