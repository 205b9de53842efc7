"""FastAPI application - demo API with automatic `expand=` support.

Handlers return reference ids only. ExpandMiddleware replaces them with
the referenced resources on request, re-running each resource's own
authorization for the original caller.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .config import Config
from .demo import DemoError, create_demo_store, router as demo_router
from .service import install_expansion


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting expand service...")
    logger.info(f"Expansion ready: {app.state.expansion.stats}")

    yield

    logger.info("Shutting down expand service...")
    await app.state.expansion.aclose()
    logger.info("Expand service stopped")


def create_app(config: Config | None = None) -> FastAPI:
    """
    Create the demo application with expansion installed.

    The schema document is the configured definition file if there is one,
    otherwise the OpenAPI document FastAPI generates from the routes.
    """
    config = config or Config.load()

    app = FastAPI(
        title="Expand Service",
        description="Demo API whose responses support Stripe-style expand= parameters.",
        version=__version__,
        lifespan=lifespan,
        separate_input_output_schemas=False,
    )
    app.state.store = create_demo_store()

    @app.exception_handler(DemoError)
    async def demo_error_handler(request: Request, exc: DemoError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint."""
        return {"status": "healthy", "expansion": request.app.state.expansion.stats}

    app.include_router(demo_router)

    # Routes must all be registered before the document is generated.
    source = config.schema.definition_file or app.openapi()
    install_expansion(app, source, config=config)

    return app


app = create_app()


def run():
    """Run the service with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = Config.load()
    uvicorn.run(
        "expand_svc.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
    )


if __name__ == "__main__":
    run()
