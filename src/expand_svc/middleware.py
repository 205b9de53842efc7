"""Response interceptor applying `expand=` to JSON responses."""

from __future__ import annotations

import json
import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from .expand.engine import ExpansionEngine
from .expand.parser import max_depth, parse_expand_values
from .identity.extractor import CallerContextExtractor
from .resolver.marker import InternalMarker
from .schema.registry import OperationRouteIndex

logger = logging.getLogger(__name__)


EXPAND_PARAM = "expand"


class ExpandMiddleware(BaseHTTPMiddleware):
    """
    Expands reference fields of JSON responses after the handler has run.

    Handlers know nothing about expansion. A response is left exactly as
    the handler produced it when:
    - the request is an internal expansion call (valid marker)
    - there is no `expand` query parameter
    - the response is not a 2xx JSON response
    - the route's response schema is unknown
    - the longest expand path exceeds the depth limit
    - anything goes wrong while expanding
    """

    def __init__(
        self,
        app: ASGIApp,
        engine: ExpansionEngine,
        routes: OperationRouteIndex,
        marker: InternalMarker,
        extractor: CallerContextExtractor | None = None,
        enabled: bool = True,
    ):
        super().__init__(app)
        self.engine = engine
        self.routes = routes
        self.marker = marker
        self.extractor = extractor or CallerContextExtractor()
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)

        if not self.enabled:
            return response

        # Internal calls never expand again; this is the recursion stop.
        if self.marker.is_internal(request.headers):
            return response
        if self.marker.is_present(request.headers):
            logger.warning(
                f"Ignoring invalid {self.marker.header_name} header on "
                f"{request.method} {request.url.path}"
            )

        expand_values = request.query_params.getlist(EXPAND_PARAM)
        if not any(v.strip() for v in expand_values):
            return response

        content_type = response.headers.get("content-type", "")
        if "json" not in content_type or not 200 <= response.status_code < 300:
            return response

        route = self.routes.match(request.method, request.url.path)
        schema_name = route.response_schema_name if route else None
        if not schema_name:
            logger.debug(f"No response schema for {request.method} {request.url.path}; not expanding")
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])

        paths = parse_expand_values(expand_values)
        if not paths:
            return self._rebuild(response, body)

        if self.engine.exceeds_depth(paths):
            logger.warning(
                f"Expand depth {max_depth(paths)} exceeds limit {self.engine.max_depth}; "
                f"returning original response for {request.url.path}"
            )
            return self._rebuild(response, body)

        try:
            data = json.loads(body)
            expanded = await self.engine.expand(
                data, paths, schema_name, self.extractor.extract(request),
            )
            content = json.dumps(expanded, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        except Exception as e:
            logger.error(
                f"Expand transformation failed for {schema_name} "
                f"(expand={','.join(expand_values)}): {e}; returning original response",
                exc_info=True,
            )
            return self._rebuild(response, body)

        return self._rebuild(response, content)

    @staticmethod
    def _rebuild(original: Response, body: bytes) -> Response:
        """New response with the original status and headers around `body`."""
        response = Response(content=body, status_code=original.status_code)
        response.raw_headers = [
            (name, value)
            for name, value in original.raw_headers
            if name.lower() != b"content-length"
        ] + [(b"content-length", str(len(body)).encode("latin-1"))]
        return response
