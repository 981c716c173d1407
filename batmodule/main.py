from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import async_sessionmaker
from starlette.responses import JSONResponse

from batmodule.api.auth import router as auth_router
from batmodule.api.health import APP_VERSION
from batmodule.api.health import router as health_router
from batmodule.api.metrics import router as metrics_router
from batmodule.config import GlobalConfig, check_secret
from batmodule.db.session import build_session_factory, dispose_session_factory
from batmodule.dependencies import limiter
from batmodule.errors import APIError, api_error_handler
from batmodule.middleware.csrf_middleware import CSRFMiddleware
from batmodule.middleware.request_id import RequestIdMiddleware
from batmodule.middleware.session_middleware import SessionMiddleware
from batmodule.services.auth_service import AuthService
from batmodule.services.csrf_protection import CSRFProtection
from batmodule.services.session_manager import SessionManager
from batmodule.services.session_store import RedisSessionStore
from batmodule.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def _filter_sensitive_data(event, hint):
    """Strip session cookies and CSRF tokens from Sentry events."""
    if "request" in event:
        headers = event["request"].get("headers", {})
        for key in list(headers.keys()):
            if key.lower() in ("cookie", "set-cookie", "authorization", "x-csrf-token"):
                headers[key] = "[FILTERED]"
        data = event["request"].get("data")
        if isinstance(data, dict):
            for key in ("_csrf", "password", "currentPassword", "newPassword"):
                if key in data:
                    data[key] = "[FILTERED]"
    return event


def _rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        {"error": "Trop de tentatives de connexion, veuillez réessayer plus tard."},
        status_code=429,
        headers={"Retry-After": "900"},
    )


def _validation_handler(request: Request, exc: RequestValidationError):
    details = [err.get("msg", "") for err in exc.errors()]
    return JSONResponse({"error": "Données invalides", "details": details}, status_code=400)


def create_app(
    settings: GlobalConfig | None = None,
    session_store: RedisSessionStore | None = None,
    session_factory: async_sessionmaker | None = None,
) -> FastAPI:
    """
    Assemble the API. Collaborators are built from settings unless injected.
    Middleware order (outer -> inner): request id, CORS, session, CSRF.
    """
    settings = settings or GlobalConfig()

    csrf_secret = settings.csrf_secret_resolution()
    session_secret = settings.session_secret_resolution()
    check_secret(csrf_secret, "CSRF_SECRET", settings.is_production)
    check_secret(session_secret, "SESSION_SECRET", settings.is_production)

    csrf = CSRFProtection(csrf_secret.secret)
    store = session_store or RedisSessionStore(
        redis_url=settings.redis_url,
        timeout_seconds=settings.redis_timeout_seconds,
    )
    session_manager = SessionManager(
        session_secret.secret, store, secure=settings.is_production
    )
    session_factory = session_factory or build_session_factory(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Initialize Sentry before anything else
        if settings.sentry_dsn:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                environment=settings.environment,
                traces_sample_rate=0.2,
                send_default_pii=False,
                include_local_variables=False,  # secrets live in frames
                before_send=_filter_sensitive_data,
            )

        setup_logging(settings.log_level)
        logger.info("Starting BatModule API (%s)...", settings.environment)
        await store.connect()

        yield

        logger.info("Shutting down...")
        await store.close()
        await dispose_session_factory(session_factory)

    app = FastAPI(
        title="BatModule API",
        description="Business management for building-trade artisans",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.csrf = csrf
    app.state.session_manager = session_manager
    app.state.session_factory = session_factory
    app.state.auth_service = AuthService(session_factory=session_factory)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_handler)

    # Last added = first executed
    app.add_middleware(CSRFMiddleware, csrf=csrf)
    app.add_middleware(SessionMiddleware, session_manager=session_manager)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(auth_router)

    @app.get("/")
    async def root():
        return {"status": "running", "service": "batmodule-api"}

    return app


app = create_app()
