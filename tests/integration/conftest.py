"""Fixtures for end-to-end tests against the demo application."""

import httpx
import pytest

from expand_svc.config import Config
from expand_svc.main import create_app


@pytest.fixture
def app():
    """Demo app built from default config, expanding via its own OpenAPI document."""
    return create_app(Config())


@pytest.fixture
def client_factory(app):
    """Build an httpx client for the demo app authenticated with `token`."""
    def make(token: str | None = "ada-token") -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://test",
            headers=headers,
        )
    return make
