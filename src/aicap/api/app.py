"""FastAPI application factory, lifespan management, and middleware configuration.

Creates the FastAPI app with:
- Async lifespan (logging, engine init, DB tables, outbound HTTP client)
- CORS middleware
- Rate limiting (slowapi)
- Request body size limit middleware
- All route modules registered
- Global error handlers
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.responses import JSONResponse

from aicap import __version__
from aicap.api.error_handlers import register_error_handlers
from aicap.api.rate_limit import limiter
from aicap.api.routes import dispatch, health, keys, webhooks
from aicap.config import Settings
from aicap.db.session import create_async_engine_from_url, create_session_factory, init_models
from aicap.keys.issuer import KeyIssuer
from aicap.keys.lifecycle import KeyLifecycle
from aicap.keys.verifier import KeyVerifier
from aicap.log_config import configure_logging
from aicap.observability.correlation import CorrelationMiddleware
from aicap.webhooks.dispatcher import WebhookDispatcher
from aicap.webhooks.secrets import SecretBox
from aicap.webhooks.store import WebhookStore

logger = structlog.get_logger()


def attach_services(
    app: FastAPI,
    session_factory: async_sessionmaker[AsyncSession],
    dispatcher: WebhookDispatcher,
) -> None:
    """Build the key and webhook services and store them on app.state."""
    settings: Settings = app.state.settings

    app.state.session_factory = session_factory
    app.state.dispatcher = dispatcher
    app.state.key_issuer = KeyIssuer(session_factory, rounds=settings.key_hash_rounds)
    app.state.key_verifier = KeyVerifier(
        session_factory,
        concurrency=settings.verify_concurrency,
        scan_warn_threshold=settings.verify_scan_warn_threshold,
    )
    app.state.key_lifecycle = KeyLifecycle(session_factory)
    app.state.webhook_store = WebhookStore(
        session_factory, SecretBox(settings.webhook_secret_encryption_key)
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown logic.

    Startup:
        1. Configure structured logging
        2. Create async DB engine and session factory
        3. Create database tables (if they don't exist)
        4. Create the shared outbound HTTP client and dispatcher
        5. Store services on app.state

    Shutdown:
        6. Close the HTTP client and dispose the database engine
    """
    settings: Settings = app.state.settings

    # 1. Logging
    configure_logging(log_level=settings.log_level, log_format=settings.log_format)

    # 2. Database engine + session factory
    engine = create_async_engine_from_url(
        settings.database_url,
        pool_timeout=settings.db_pool_timeout,
        connect_timeout=settings.db_connect_timeout,
    )
    session_factory = create_session_factory(engine)

    # 3. Create tables
    await init_models(engine)

    # 4. Outbound HTTP. Redirects are not followed so a 3xx cannot bounce
    #    the request to an address that skipped the SSRF check.
    http_client = httpx.AsyncClient(
        timeout=settings.webhook_timeout_seconds,
        follow_redirects=False,
    )
    dispatcher = WebhookDispatcher(
        http_client=http_client,
        dns_timeout=settings.dns_timeout_seconds,
        http_timeout=settings.webhook_timeout_seconds,
        pin_resolved_ip=settings.webhook_pin_resolved_ip,
    )

    # 5. Store on app.state
    app.state.db_engine = engine
    attach_services(app, session_factory, dispatcher)

    await logger.ainfo(
        "startup_complete",
        version=__version__,
        database_url=settings.database_url.split("://")[0] + "://***",
        pin_resolved_ip=settings.webhook_pin_resolved_ip,
    )

    yield

    # Shutdown
    await http_client.aclose()
    await engine.dispose()
    await logger.ainfo("shutdown_complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Application factory: create and configure the FastAPI app.

    Args:
        settings: Optional Settings instance. If None, loads from environment.

    Returns:
        A fully configured FastAPI application.
    """
    if settings is None:
        from aicap.config import get_settings
        settings = get_settings()

    app = FastAPI(
        title="AICAP Security Core",
        description="SSRF-guarded webhook dispatch and API key management",
        version=__version__,
        lifespan=lifespan,
    )

    # Attach settings before lifespan runs
    app.state.settings = settings

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Owner-ID"],
    )

    # --- Correlation IDs ---
    app.add_middleware(CorrelationMiddleware)

    # --- Rate limiting ---
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={"success": False, "error": "Rate limit exceeded"},
        )

    # --- Request body size limit ---
    max_body = settings.max_request_body_bytes

    @app.middleware("http")
    async def limit_request_body(request: Request, call_next: object) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                too_large = int(content_length) > max_body
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content={"success": False, "error": "Invalid Content-Length header"},
                )
            if too_large:
                return JSONResponse(
                    status_code=413,
                    content={"success": False, "error": "Request body too large"},
                )
        response = await call_next(request)  # type: ignore[operator]
        return response

    # --- Security headers (JSON API only, nothing to frame or script) ---
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next: object) -> Response:
        response = await call_next(request)  # type: ignore[operator]
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = "default-src 'none'"
        return response

    # --- Routes ---
    app.include_router(dispatch.router)
    app.include_router(keys.router)
    app.include_router(webhooks.router)
    app.include_router(health.router)

    # --- Error handlers ---
    register_error_handlers(app)

    return app
