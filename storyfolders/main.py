"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from storyfolders.api.folders import router as folders_router
from storyfolders.api.health import router as health_router
from storyfolders.api.reconcile import router as reconcile_router
from storyfolders.api.sites import router as sites_router
from storyfolders.api.sort import router as sort_router
from storyfolders.config import Settings
from storyfolders.database import create_engine
from storyfolders.exceptions import InternalServerError, UnusableRootError
from storyfolders.filesystem.defaults_store import DefaultsStore
from storyfolders.filesystem.folder_manager import FolderManager
from storyfolders.models.base import Base
from storyfolders.services.event_service import EventChannel
from storyfolders.services.reconcile_service import Reconciler
from storyfolders.services.shadow_service import ShadowManager, cast_shadows
from storyfolders.services.site_service import get_or_create_default_site, get_sites
from storyfolders.services.sort_service import story_folder_sort_organizer

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)


async def reconcile_all_sites(app: FastAPI) -> int:
    """Reconcile every site, then refresh the shadow snapshot.

    Returns the number of sites whose records changed.
    """
    changed = 0
    async with app.state.reconcile_lock, app.state.session_factory() as session:
        site_uuids = [site.uuid for site in await get_sites(session)]
        for site_uuid in site_uuids:
            reconciler = Reconciler(
                session, app.state.folder_manager, site_uuid, events=app.state.events
            )
            result = await reconciler.process()
            if result is not None and result.changed:
                changed += 1
        await cast_shadows(session, app.state.shadow_manager)
    return changed


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    _configure_logging(settings.debug)
    logger.info("Starting story folders (debug=%s)", settings.debug)

    try:
        folder_manager = FolderManager(root=settings.root_dir, fallback=settings.fallback_root_dir)
    except UnusableRootError as exc:
        logger.critical("No usable root folder: %s. Set ROOT_DIR to a writable directory.", exc)
        raise
    app.state.folder_manager = folder_manager
    logger.info("Managing folders under %s", folder_manager.root)

    # Ensure database directory exists
    db_url = settings.database_url
    if db_url.startswith("sqlite"):
        db_path = db_url.split("///", 1)[-1] if "///" in db_url else None
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    try:
        engine, session_factory = create_engine(settings)
        app.state.engine = engine
        app.state.session_factory = session_factory
    except Exception as exc:
        logger.critical(
            "Failed to initialize database: %s. Check database path and permissions.", exc
        )
        raise

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as exc:
        logger.critical("Failed to create database schema: %s.", exc)
        raise

    app.state.events = EventChannel()
    app.state.reconcile_lock = asyncio.Lock()
    app.state.folder_sort = story_folder_sort_organizer(DefaultsStore(settings.defaults_path))
    app.state.shadow_manager = ShadowManager(
        DefaultsStore(settings.shared_defaults_path), settings.shared_dir
    )

    try:
        async with session_factory() as session:
            site = await get_or_create_default_site(session, folder_manager, settings)
            logger.info("Default site %s (%s)", site.uuid, site.url)
    except Exception as exc:
        logger.critical("Failed to ensure default site: %s.", exc)
        raise

    if settings.reconcile_on_startup:
        try:
            changed = await reconcile_all_sites(app)
            logger.info("Startup reconcile changed %d sites", changed)
        except Exception as exc:
            logger.critical("Failed to reconcile story folders: %s.", exc)
            raise

    yield

    app.state.events.clear()
    try:
        await engine.dispose()
    except Exception as exc:
        logger.error("Error during engine disposal: %s", exc, exc_info=True)

    logger.info("Story folders stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    docs_enabled = settings.debug or settings.expose_docs

    app = FastAPI(
        title="Story Folders",
        description="Keeps story folders on disk and their records in sync",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.settings = settings

    app.include_router(health_router)
    app.include_router(sites_router)
    app.include_router(folders_router)
    app.include_router(reconcile_router)
    app.include_router(sort_router)

    # Global exception handlers

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.exception_handler(OSError)
    async def os_error_handler(request: Request, exc: OSError) -> JSONResponse:
        if isinstance(exc, (ConnectionError, TimeoutError)):
            raise exc
        logger.error("OSError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Storage operation failed"},
        )

    @app.exception_handler(InternalServerError)
    async def internal_server_error_handler(
        request: Request, exc: InternalServerError
    ) -> JSONResponse:
        logger.error(
            "InternalServerError in %s %s: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.error("ValueError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        message = str(exc) or "Invalid value"
        return JSONResponse(
            status_code=422,
            content={"detail": message},
        )

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        logger.error(
            "OperationalError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Database temporarily unavailable"},
        )

    return app


app = create_app()


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "storyfolders.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
