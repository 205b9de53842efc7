"""Internal dispatch - re-enters the application's own request pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from ..errors import DispatchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """Status and parsed JSON body of an internal call."""
    status_code: int
    body: Any = None
    content_type: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_json(self) -> bool:
        return "json" in self.content_type


class InternalDispatcher(Protocol):
    """
    Performs a call equivalent to an external HTTP request, in process.

    Implementations must route the call through the same authorization
    middleware and handlers that serve external clients, and must send the
    given headers unchanged (they carry the caller's credentials and the
    internal marker). Transport failures raise DispatchError.
    """

    async def dispatch(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        params: dict[str, str] | None = None,
    ) -> DispatchResult:
        ...


class AsgiDispatcher:
    """
    Dispatcher driving an ASGI application directly, without a socket.

    The application passed in should be the outermost app (middleware
    included) so internal calls see exactly what external ones do.
    """

    def __init__(self, app: Any, base_url: str = "http://internal"):
        self.app = app
        self.base_url = base_url
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            # Handler crashes must surface as 500s, not as exceptions here.
            transport = httpx.ASGITransport(app=self.app, raise_app_exceptions=False)
            self._client = httpx.AsyncClient(transport=transport, base_url=self.base_url)
        return self._client

    async def dispatch(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        params: dict[str, str] | None = None,
    ) -> DispatchResult:
        try:
            response = await self.client.request(method, path, headers=headers, params=params)
        except httpx.HTTPError as e:
            raise DispatchError(method, path, str(e) or type(e).__name__) from e

        content_type = response.headers.get("content-type", "")
        body: Any = None
        if "json" in content_type:
            try:
                body = response.json()
            except ValueError:
                logger.debug(f"Internal {method} {path} returned unparsable JSON")

        return DispatchResult(
            status_code=response.status_code,
            body=body,
            content_type=content_type,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
