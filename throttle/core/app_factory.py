"""Application factory for the FastAPI app.

Centralizes app construction (state, middleware, handlers, routers) so tests
can build isolated apps with their own limiter.
"""

from __future__ import annotations

from fastapi import FastAPI

from throttle.adapters.rate_limit.base import AbstractRateLimiter
from throttle.api.routes import health_router, limits_router
from throttle.core.config import settings
from throttle.core.exception_handlers import setup_exception_handlers
from throttle.core.logging import configure_logging
from throttle.core.middleware import request_id_middleware
from throttle.core.openapi import apply_openapi_customizations
from throttle.core.rate_limit import build_rate_limiter


def create_app(rate_limiter: AbstractRateLimiter | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limiter: Limiter to serve; built from settings when omitted.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Throttle",
        description=(
            "In-process fixed-window rate limiter with an HTTP decision API. "
            "Guarded routes answer 429 with Retry-After once a client's "
            "budget for the current window is spent."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    app.state.rate_limiter = rate_limiter or build_rate_limiter(settings.app)

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(limits_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
