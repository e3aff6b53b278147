"""FastAPI application for the Storeloom API.

Provides the application instance with routers, middleware, exception
handlers and the job engine lifespan configured.
"""

import logging
import os
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import version as _pkg_version
from typing import Any

from fastapi import FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("src").setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.ext.asyncio import AsyncEngine

from src.api.dependencies import AppServices, build_services
from src.api.routes import chat, connections, generation, products, settings, sync
from src.db.connection import (
    AsyncSessionLocal,
    async_init_db,
    build_session_factory,
    close_async_db,
)
from src.db.models import JobType
from src.errors import ConflictError, DomainError, NotFoundError, ValidationError
from src.services.catalog_sync import SyncInProgressError
from src.services.job_store import InvalidStateTransition
from src.services.media_storage import LOCAL_URL_PREFIX
from src.utils.paths import ensure_dirs_exist, get_uploads_dir

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 10.0

_startup_time: float = 0.0


def _parse_allowed_origins() -> list[str]:
    """Parse comma-separated CORS allowlist from ALLOWED_ORIGINS env var."""
    raw = os.environ.get("ALLOWED_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _uses_local_media() -> bool:
    return os.environ.get("MEDIA_STORAGE_BACKEND", "local").strip().lower() in {"", "local"}


async def run_startup_recovery(services: AppServices) -> None:
    """Fail jobs left active by a previous process.

    Their tasks died with that process, so nothing would ever finish them.
    Failures here are logged and do not block startup.
    """
    for job_type in (JobType.sync, JobType.generation):
        try:
            await services.job_store.fail_interrupted(job_type)
        except Exception as e:
            logger.error("Startup recovery for %s jobs failed: %s", job_type.value, e)


def create_app(engine: AsyncEngine | None = None, **service_overrides: Any) -> FastAPI:
    """Build the FastAPI application.

    Args:
        engine: Database engine for the job engine. Defaults to the
            module engine configured from DATABASE_URL.
        **service_overrides: Collaborators passed to ``build_services``
            (catalog_source, adapter, media_storage, cipher, ...).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        global _startup_time

        # --- Startup ---
        _startup_time = _time.time()

        if engine is None:
            ensure_dirs_exist()
            await async_init_db()
            session_factory = AsyncSessionLocal
        else:
            await async_init_db(engine)
            session_factory = build_session_factory(engine)

        services = build_services(session_factory, **service_overrides)
        app.state.services = services
        await run_startup_recovery(services)

        yield

        # --- Shutdown ---
        await services.supervisor.shutdown(timeout=SHUTDOWN_DRAIN_SECONDS)
        if engine is None:
            await close_async_db()
        else:
            await engine.dispose()

    app = FastAPI(
        title="Storeloom API",
        description="Catalog sync and AI content generation jobs",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
    allowed_origins = _parse_allowed_origins()
    if allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization", "X-User-Id"],
        )

    _register_exception_handlers(app)

    for module in (connections, sync, chat, generation, settings, products):
        app.include_router(module.router, prefix="/api/v1")

    if _uses_local_media():
        app.mount(
            LOCAL_URL_PREFIX,
            StaticFiles(directory=get_uploads_dir(), check_dir=False),
            name="uploads",
        )

    @app.get("/health")
    def health_check(request: Request) -> dict:
        """Health check with uptime and running job count."""
        uptime = int(_time.time() - _startup_time) if _startup_time else 0
        state_services = getattr(request.app.state, "services", None)
        running = len(state_services.supervisor.running_job_ids) if state_services else 0
        try:
            version = _pkg_version("storeloom")
        except Exception:
            version = "unknown"
        return {
            "status": "healthy",
            "version": version,
            "uptime_seconds": uptime,
            "running_jobs": running,
        }

    return app


def _error_body(exc: DomainError, **extra) -> dict:
    return {"detail": str(exc), "error_type": type(exc).__name__, **extra}


def _register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors to HTTP status codes."""

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content=_error_body(exc))

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_error_body(exc))

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
        extra = {}
        if isinstance(exc, SyncInProgressError):
            extra["job_id"] = exc.job_id
        return JSONResponse(status_code=409, content=_error_body(exc, **extra))

    @app.exception_handler(InvalidStateTransition)
    async def transition_handler(
        request: Request, exc: InvalidStateTransition
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": str(exc), "error_type": type(exc).__name__},
        )

    @app.exception_handler(DomainError)
    async def domain_handler(request: Request, exc: DomainError) -> JSONResponse:
        logger.warning("Unhandled domain error on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content=_error_body(exc))


app = create_app()
