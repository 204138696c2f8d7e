"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace.api.v1 import v1_router
from marketplace.core.config import Settings, get_settings
from marketplace.core.exceptions import (
    ConfigurationError,
    MarketplaceAPIError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from marketplace.core.logging import configure_logging
from marketplace.middleware.tenant import TenantResolverMiddleware
from marketplace.services.tenancy import Tenancy, build_tenancy

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, tenancy: Tenancy | None = None) -> FastAPI:
    """Build the application.

    A prebuilt ``tenancy`` is attached immediately and left open on shutdown;
    otherwise one is built from ``settings`` during startup and closed after.
    """
    settings = settings or (tenancy.settings if tenancy else get_settings())
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        owned = None
        if getattr(app.state, "tenancy", None) is None:
            owned = await build_tenancy(settings)
            app.state.tenancy = owned
            logger.info("Tenancy ready: %d tenants", len(owned.registry))
        yield
        if owned is not None:
            await owned.aclose()

    app = FastAPI(
        title="Marketplace Tenancy",
        version="0.1.0",
        description="Subdomain-based multi-tenancy for a hosted marketplace backend",
        lifespan=lifespan,
    )
    app.state.tenancy = tenancy

    # ── Middleware ───────────────────────────────────────────
    # Added last runs first: CORS wraps the tenant resolver.
    app.add_middleware(TenantResolverMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.allowed_origins.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Error mapping ────────────────────────────────────────
    @app.exception_handler(ValidationError)
    async def _validation_error(_request: Request, exc: ValidationError) -> JSONResponse:
        code = status.HTTP_409_CONFLICT if exc.conflict else status.HTTP_400_BAD_REQUEST
        return JSONResponse(status_code=code, content={"detail": exc.message, "field": exc.field})

    @app.exception_handler(NotFoundError)
    async def _not_found(_request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message})

    @app.exception_handler(ConfigurationError)
    async def _configuration_error(_request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("Configuration error: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": exc.message, "field": exc.field},
        )

    @app.exception_handler(StoreUnavailableError)
    async def _store_unavailable(_request: Request, exc: StoreUnavailableError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": exc.message},
        )

    @app.exception_handler(MarketplaceAPIError)
    async def _backend_error(_request: Request, exc: MarketplaceAPIError) -> JSONResponse:
        logger.warning("Backend call failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": "Marketplace backend request failed", "upstream_status": exc.status_code},
        )

    # ── API routes ───────────────────────────────────────────
    app.include_router(v1_router)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
