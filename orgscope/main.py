from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from orgscope.db import filters as _filters  # noqa: F401  (register SQLAlchemy filters)
from orgscope.errors import (
    AuthorizationError,
    DirectoryUnavailable,
    IntegrityError,
    NoDataAvailable,
    PredicateValidationError,
    ReauthenticationRequired,
    RegionNotConfigured,
    ScopeError,
    StaleScopeError,
    UnknownPrincipal,
)
from orgscope.logging_config import configure_app_logging
from orgscope.routers import admin, assistant, dashboard, health, scope, sessions
from orgscope.security.config import load_scope_config
from orgscope.security.dependencies import enforce_security
from orgscope.services import ScopeServices, build_services
from orgscope.settings import get_settings

logger = logging.getLogger(__name__)

# First match wins; subclasses before their bases.
_ERROR_STATUS: tuple[tuple[type[ScopeError], int], ...] = (
    (ReauthenticationRequired, 401),
    (UnknownPrincipal, 403),
    (AuthorizationError, 403),
    (RegionNotConfigured, 409),
    (StaleScopeError, 409),
    (IntegrityError, 503),
    (DirectoryUnavailable, 503),
    (NoDataAvailable, 503),
    (PredicateValidationError, 500),
)


def _status_for(exc: ScopeError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def _scope_error_handler(request: Request, exc: ScopeError) -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    else:
        logger.info("%s on %s %s", type(exc).__name__, request.method, request.url.path)

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
        headers=headers,
    )


def create_app(services: ScopeServices | None = None) -> FastAPI:
    """
    App factory. Pass a prebuilt `services` container (tests) to skip config
    loading, database setup and background workers.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        if services is not None:
            yield
            return

        from orgscope.db.init_db import init_db
        from orgscope.db.session import SessionLocal, engine

        scope_config = load_scope_config(settings.resolved_scope_config_path())
        logger.info("Loaded scope config: %s", settings.resolved_scope_config_path())
        init_db(engine, SessionLocal, seed=settings.seed_demo_data)
        logger.info("Database initialized (tables ensured + seed if enabled)")

        built = build_services(settings, scope_config, session_factory=SessionLocal)
        app.state.services = built
        try:
            built.store.refresh()
        except ScopeError as e:
            # The directory worker keeps retrying; requests get 503 until a snapshot loads.
            logger.error("Initial directory load failed: %s", e)
        built.start_workers()

        yield

        # Shutdown
        built.stop_workers()

    # Global dependency: applies security with zero changes to route handlers.
    app = FastAPI(title="orgscope", dependencies=[Depends(enforce_security)], lifespan=lifespan)
    if services is not None:
        app.state.services = services
    app.add_exception_handler(ScopeError, _scope_error_handler)

    app.include_router(health.router)
    app.include_router(sessions.router)
    app.include_router(scope.router)
    app.include_router(dashboard.router)
    app.include_router(assistant.router)
    app.include_router(admin.router)

    return app


app = create_app()
