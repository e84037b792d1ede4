"""FastAPI application factory for the birthday notification service."""

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from api.core.config import Settings, get_settings
from api.core.database import get_database_manager, init_database_manager
from api.core.dependencies import close_whatsapp_api, scheduler_jobs
from api.core.logging import setup_logging
from api.routers import birthday_router, birthday_settings_router
from api.services import BirthdayScheduler
from shared.database import DatabaseManager

logger = logging.getLogger(__name__)

SERVICE_NAME = "birthday-notifications"
VERSION = "1.0.0"

# Startup waits this long for PostgreSQL before serving; then retries in background
DB_STARTUP_TIMEOUT = 30.0


@dataclass
class Runtime:
    """Process-level state owned by the lifespan, exposed on ``app.state.runtime``."""

    started_at: float = field(default_factory=time.time)
    scheduler: BirthdayScheduler | None = None
    tasks: list[asyncio.Task] = field(default_factory=list)

    @property
    def uptime(self) -> int:
        return int(time.time() - self.started_at)

    @property
    def scheduler_running(self) -> bool:
        return self.scheduler is not None and self.scheduler.is_running


async def _database_ok(db_manager: DatabaseManager) -> bool:
    return db_manager.is_connected and await db_manager.check_health()


async def _heartbeat(runtime: Runtime, interval: int) -> None:
    """Log uptime plus DB and scheduler health every *interval* seconds."""
    while True:
        await asyncio.sleep(interval)
        db_ok = await _database_ok(get_database_manager())
        logger.info(
            f"Heartbeat: uptime={runtime.uptime}s, db={db_ok}, "
            f"scheduler={runtime.scheduler_running}"
        )


async def _reconnect_database(db_manager: DatabaseManager) -> None:
    """Keep trying to open the pool after a failed startup, backing off to 60s."""
    delay = 5
    while not db_manager.is_connected:
        await asyncio.sleep(delay)
        try:
            await db_manager.connect()
        except Exception as e:
            delay = min(delay * 2, 60)
            logger.warning(
                f"Database still unavailable ({type(e).__name__}: {e}), next try in {delay}s"
            )
        else:
            logger.info("Database connected (background retry)")


async def _connect_database(settings: Settings, runtime: Runtime) -> DatabaseManager:
    db_manager = init_database_manager(settings.database_url, ssl=settings.database_ssl)
    try:
        await asyncio.wait_for(db_manager.connect(), timeout=DB_STARTUP_TIMEOUT)
        logger.info("Database connected")
    except Exception as e:
        # Endpoints answer 503 until the background retry succeeds
        reason = "timed out" if isinstance(e, TimeoutError) else f"{type(e).__name__}: {e}"
        logger.warning(f"Database not available at startup ({reason}), retrying in background")
        runtime.tasks.append(asyncio.create_task(_reconnect_database(db_manager)))
    return db_manager


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    runtime = Runtime()
    app.state.runtime = runtime

    logger.info(f"Starting {SERVICE_NAME} API ({settings.environment})")
    db_manager = await _connect_database(settings, runtime)

    # Without a pool the scheduler's checks fail and are retried each poll
    if settings.birthday_scheduler_enabled:
        runtime.scheduler = BirthdayScheduler(
            scheduler_jobs, poll_interval=settings.birthday_scheduler_poll_interval
        )
        runtime.scheduler.start()
    else:
        logger.info("Birthday scheduler disabled by configuration")

    if settings.enable_keep_alive:
        runtime.tasks.append(
            asyncio.create_task(_heartbeat(runtime, settings.keep_alive_interval))
        )

    yield

    logger.info(f"Shutting down {SERVICE_NAME} API")
    for task in runtime.tasks:
        task.cancel()
    for task in runtime.tasks:
        with contextlib.suppress(asyncio.CancelledError):
            await task
    try:
        if runtime.scheduler is not None:
            await runtime.scheduler.stop()
        await close_whatsapp_api()
        await db_manager.disconnect()
    except Exception as e:
        logger.exception(f"Error during shutdown: {e}")


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings)

    app = FastAPI(
        title="Alumni Birthday Notifications API",
        description="Yearly birthday records, daily WhatsApp dispatch and operator overrides",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(birthday_router.router)
    app.include_router(birthday_settings_router.router)

    @app.get("/")
    async def root():
        return {"service": SERVICE_NAME, "status": "running"}

    @app.get("/health")
    async def health(request: Request):
        """Liveness: no external dependency is checked."""
        return {"status": "healthy", "uptime_seconds": request.app.state.runtime.uptime}

    @app.get("/status")
    async def status(request: Request):
        """Readiness: includes a real database round-trip and the scheduler state."""
        runtime: Runtime = request.app.state.runtime
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "environment": settings.environment,
            "uptime_seconds": runtime.uptime,
            "db_connected": await _database_ok(get_database_manager()),
            "scheduler_running": runtime.scheduler_running,
        }

    @app.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def ping():
        return "pong"

    return app
