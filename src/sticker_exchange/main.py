"""FastAPI application entry point for the seal signing authority.

Lifecycle:
    1. Startup: Initialize logging, check the issuer key.
    2. Running: Serve /api/sign-seal and /health on a single Uvicorn process.
    3. Shutdown: Nothing to release; the issuer key lives in process memory.

Exchange participants never run this service. They reach it through
`HttpSigningAuthority` at `SIGNING_AUTHORITY_URL`.

Run with:
    uv run sticker-signer
    # or
    uv run uvicorn sticker_exchange.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from sticker_exchange import __version__
from sticker_exchange.config import get_settings
from sticker_exchange.domain.exceptions import SigningConfigurationError
from sticker_exchange.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
    )

    # 2. Import the issuer key so a misconfiguration shows up at boot
    from sticker_exchange.api.deps import get_signing_authority

    try:
        issuer = get_signing_authority().keypair().did()
    except SigningConfigurationError as exc:
        logger.warning("app.issuer_unconfigured", error=exc.message)
    else:
        logger.info("app.issuer_loaded", issuer=issuer)

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Sticker Exchange Signing Authority",
        description="Issues tamper-evident seals binding sticker attributes to a holder.",
        version=__version__,
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from sticker_exchange.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from sticker_exchange.api.routes.health import router as health_router
    from sticker_exchange.api.routes.seal import router as seal_router

    app.include_router(health_router)
    app.include_router(seal_router)

    return app


# The app instance used by Uvicorn
app = create_app()


def run() -> None:
    """Console entry point (`sticker-signer`): serve `app` on the configured host/port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "sticker_exchange.main:app",
        host=settings.app_host,
        port=settings.app_port,
        log_level=settings.app_log_level.lower(),
        reload=settings.is_development,
    )
