"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) to
improve testability and separation of concerns compared to a monolithic main.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from nerix_gateway.api.routes import health_router, pages_router, support_router, system_router
from nerix_gateway.core.config import settings
from nerix_gateway.core.exception_handlers import setup_exception_handlers
from nerix_gateway.core.logging import configure_logging
from nerix_gateway.core.middleware import gate_middleware
from nerix_gateway.core.openapi import apply_openapi_customizations
from nerix_gateway.core.rate_limit import close_rate_limit_evaluator


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Close backend connections (Redis pool) on shutdown.
    await close_rate_limit_evaluator()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Nerix Gateway",
        description=(
            "Nerix web API behind a request-gating pipeline: CORS preflight, "
            "tiered rate limiting, trace ids and nonce-based Content-Security-Policy."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=lifespan,
    )

    # Middleware
    app.middleware("http")(gate_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    api_prefix = settings.app.api_prefix.rstrip("/")
    app.include_router(support_router, prefix=api_prefix)
    app.include_router(system_router, prefix=api_prefix)
    app.include_router(health_router)
    app.include_router(pages_router)

    apply_openapi_customizations(app)

    return app
