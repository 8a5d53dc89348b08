import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from filerelay.api.routers import downloads as downloads_router
from filerelay.api.routers import files as files_router
from filerelay.api.routers import status as status_router
from filerelay.api.routers import uploads as uploads_router
from filerelay.core.config import Settings, get_settings
from filerelay.core.errors import RelayError
from filerelay.core.logging import setup_logging
from filerelay.services.registry import FileRegistry
from filerelay.services.relay import Clock, RelayService
from filerelay.services.storage import StorageService, build_storage_service
from filerelay.tasks.scheduler import ExpiryScheduler

logger = logging.getLogger(__name__)


def build_relay_service(
    settings: Settings,
    scheduler: ExpiryScheduler,
    clock: Clock = time.time,
) -> RelayService:
    storage = build_storage_service(settings)
    registry = FileRegistry(
        storage,
        scheduler,
        grace_period=settings.expiry_grace_seconds,
    )
    return RelayService(registry, storage, settings=settings, clock=clock)


async def purge_orphaned_blobs(storage: StorageService) -> None:
    removed = await storage.purge()
    if removed:
        logger.info("Removed %d orphaned blobs left by a previous run", removed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    scheduler = ExpiryScheduler(settings.max_parallel_cleanups)
    relay_service = build_relay_service(settings, scheduler)
    if settings.purge_on_startup:
        scheduler.set_startup_hook(lambda: purge_orphaned_blobs(relay_service.storage))
    app.state.scheduler = scheduler
    app.state.relay_service = relay_service

    await scheduler.start()
    logger.info(
        "File relay ready (storage=%s, lifetime=%ss)",
        settings.storage_backend,
        settings.file_lifetime_seconds,
    )
    yield
    relay_service.registry.clear()
    await scheduler.stop()


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)
    app = FastAPI(
        debug=settings.debug,
        title="File Relay API",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RelayError, relay_error_handler)

    app.include_router(status_router.router)
    app.include_router(uploads_router.router)
    app.include_router(files_router.router)
    app.include_router(downloads_router.router)

    return app


app = create_app()
