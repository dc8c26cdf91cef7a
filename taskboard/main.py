import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from taskboard.core.config import Settings, settings as default_settings
from taskboard.core.errors import NotFoundError, StorageError, ValidationError
from taskboard.core.specs import SpecRepository
from taskboard.core.store import TaskStore
from taskboard.routers import export, health, live, specs, tasks
from taskboard.services.broadcaster import Broadcaster
from taskboard.services.notifier import ChangeNotifier
from taskboard.services.task_service import TaskService

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    store = TaskStore(settings.TASKS_FILE)
    spec_repo = SpecRepository(settings.SPECS_DIR)
    service = TaskService(store, spec_repo, backfill_topics=settings.BACKFILL_TOPICS)
    broadcaster = Broadcaster(store.list_all)
    notifier = ChangeNotifier(
        settings.TASKS_FILE,
        broadcaster.broadcast,
        debounce_ms=settings.DEBOUNCE_MS,
        polling=settings.WATCH_POLLING,
    )
    # écritures de ce processus: push même si la surveillance du fichier est KO
    store.add_listener(notifier.poke)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # crée tasks.json ([]) s'il n'existe pas encore
        await run_in_threadpool(store.list_all)
        notifier.start()
        logger.info("Task store at %s, specs in %s", settings.TASKS_FILE, settings.SPECS_DIR)
        yield
        notifier.stop()

    app = FastAPI(
        title="Taskboard API",
        version="0.4.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.specs = spec_repo
    app.state.service = service
    app.state.broadcaster = broadcaster
    app.state.notifier = notifier

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ============ ERREURS ============

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content={"detail": str(exc), "field": exc.field})

    @app.exception_handler(StorageError)
    async def storage_handler(request: Request, exc: StorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": str(exc), "retryable": True})

    # Routes
    app.include_router(health.router, prefix="/health")
    app.include_router(tasks.router)
    app.include_router(specs.router)
    app.include_router(export.router)
    app.include_router(live.router)

    # client web compilé, servi tel quel s'il existe
    if settings.CLIENT_DIST.is_dir():
        app.mount("/", StaticFiles(directory=str(settings.CLIENT_DIST), html=True), name="client")

    return app


app = create_app()
