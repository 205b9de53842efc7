"""Expansion service wiring - attaches expansion to a FastAPI application.

The expansion layer is built once at boot:
1. The schema document is indexed (expandable fields, routes)
2. A per-process internal marker is minted
3. The resolver is bound to a dispatcher re-entering the app itself
4. ExpandMiddleware is installed around every route

Nothing in here is mutated after boot; every request shares it read-only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fastapi import FastAPI

from .config import Config
from .expand.engine import ExpansionEngine
from .identity.extractor import CallerContextExtractor
from .middleware import ExpandMiddleware
from .resolver.dispatch import AsgiDispatcher, InternalDispatcher
from .resolver.internal import InternalResolver
from .resolver.marker import InternalMarker
from .schema.loader import ExpansionIndexes, load_indexes


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpansionService:
    """Boot-time components of the expansion layer."""
    indexes: ExpansionIndexes
    marker: InternalMarker
    dispatcher: InternalDispatcher
    resolver: InternalResolver
    engine: ExpansionEngine
    config: Config

    @property
    def stats(self) -> dict[str, Any]:
        return {
            **self.indexes.schemas.stats,
            "routes": len(self.indexes.routes),
            "max_depth": self.engine.max_depth,
            "enabled": self.config.expand.enabled,
        }

    async def aclose(self) -> None:
        if isinstance(self.dispatcher, AsgiDispatcher):
            await self.dispatcher.aclose()


def build_expansion(
    app: Any,
    source: str | Path | dict,
    config: Config | None = None,
    dispatcher: InternalDispatcher | None = None,
) -> ExpansionService:
    """
    Build the expansion components for an ASGI app without installing them.

    Args:
        app: The outermost ASGI app internal calls should re-enter
        source: Schema document path or parsed document (e.g. app.openapi())
        config: Service configuration (defaults if omitted)
        dispatcher: Override of the in-process dispatcher
    """
    config = config or Config()
    expand_cfg = config.expand
    envelope_keys = tuple(expand_cfg.envelope_keys)

    indexes = load_indexes(source, envelope_keys=envelope_keys)
    marker = InternalMarker(header_name=expand_cfg.marker_header)
    dispatcher = dispatcher or AsgiDispatcher(app)

    resolver = InternalResolver(
        routes=indexes.routes,
        dispatcher=dispatcher,
        marker=marker,
        timeout_seconds=expand_cfg.timeout,
        id_field=expand_cfg.id_field,
        envelope_keys=envelope_keys,
    )
    engine = ExpansionEngine(
        schemas=indexes.schemas,
        resolver=resolver,
        max_depth=expand_cfg.max_depth,
        max_concurrency=expand_cfg.max_concurrency,
        envelope_keys=envelope_keys,
        pagination_key=expand_cfg.pagination_key,
    )

    return ExpansionService(
        indexes=indexes,
        marker=marker,
        dispatcher=dispatcher,
        resolver=resolver,
        engine=engine,
        config=config,
    )


def install_expansion(
    app: FastAPI,
    source: str | Path | dict,
    config: Config | None = None,
    dispatcher: InternalDispatcher | None = None,
) -> ExpansionService:
    """Build the expansion layer and install ExpandMiddleware on `app`."""
    service = build_expansion(app, source, config=config, dispatcher=dispatcher)

    app.add_middleware(
        ExpandMiddleware,
        engine=service.engine,
        routes=service.indexes.routes,
        marker=service.marker,
        extractor=CallerContextExtractor(
            forward_headers=tuple(service.config.expand.forward_headers),
        ),
        enabled=service.config.expand.enabled,
    )
    app.state.expansion = service

    logger.info(
        f"Expansion installed: {service.stats['expandable_fields']} expandable fields, "
        f"max depth {service.engine.max_depth}"
    )
    return service
