"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ngoportal.config.logging import setup_logging
from ngoportal.config.settings import get_settings
from ngoportal.web.dependencies import Services, build_services, get_services
from ngoportal.web.errors import install_error_handlers
from ngoportal.web.health import check_health
from ngoportal.web.middleware import RateLimitMiddleware, RequestIDMiddleware
from ngoportal.web.routes.admin import router as admin_router
from ngoportal.web.routes.billing import router as billing_router
from ngoportal.web.routes.integrations import router as integrations_router
from ngoportal.web.routes.invitations import router as invitations_router
from ngoportal.web.routes.notify import router as notify_router
from ngoportal.web.routes.portal import router as portal_router
from ngoportal.web.routes.requests import router as requests_router

if TYPE_CHECKING:
    from ngoportal.config.settings import Settings

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    services: Services = app.state.services
    await services.aclose()


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    app = FastAPI(
        title="NGO Portal",
        description="Multi-tenant NGO portal API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services or build_services(settings)
    install_error_handlers(app, debug=settings.debug)

    # Middleware (last added runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID", "Stripe-Signature"],
    )
    app.add_middleware(RateLimitMiddleware, max_requests=120, window_seconds=60)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/api/health")
    async def health_check(services: Services = Depends(get_services)) -> dict[str, object]:
        return await check_health(services)

    for router in (
        portal_router,
        admin_router,
        requests_router,
        invitations_router,
        billing_router,
        integrations_router,
        notify_router,
    ):
        app.include_router(router)

    logger.info("app_created", auth_policy=settings.auth_policy)
    return app
