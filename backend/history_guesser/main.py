import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .database.session import async_session, init_db
from .routers import game
from .services.engine import GameEngine
from .services.immich import ImmichClient
from .services.result_sink import SqlResultSink
from .services.sources import StaticSubjectSource
from .services.storage import FileKeyValueStore, SnapshotStore

logger = logging.getLogger(__name__)


def build_engine(settings: Settings) -> GameEngine:
    """Wire the engine to the configured collaborators."""
    if settings.IMMICH_API_URL and settings.IMMICH_API_KEY:
        subject_source = ImmichClient(settings.IMMICH_API_URL, settings.IMMICH_API_KEY)
        logger.info("Using Immich photo library at %s", settings.IMMICH_API_URL)
    else:
        subject_source = StaticSubjectSource()
        logger.info("No Immich connection configured, using the built-in catalogue")

    return GameEngine(
        subject_source=subject_source,
        snapshot_store=SnapshotStore(FileKeyValueStore(settings.SNAPSHOT_DIR)),
        settings=settings,
        result_sink=SqlResultSink(async_session),
        tick_interval=settings.TIMER_TICK_SECONDS,
    )


def create_app(engine: Optional[GameEngine] = None, init_database: bool = True) -> FastAPI:
    """Create the FastAPI application around a game engine."""
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle events for the application."""
        # Startup: Initialize database and resume any saved game
        if init_database:
            await init_db()
        if app.state.engine.restore():
            logger.info("Resumed saved game %s", app.state.engine.session.session_id)
        yield

    app = FastAPI(
        title="History Guesser",
        description="Guess where and when historical photos were taken",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.engine = engine or build_engine(settings)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify your frontend domain
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(game.router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Welcome to History Guesser API",
            "docs": "/docs",
            "health": "ok"
        }

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


logging.basicConfig(
    level=get_settings().LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)

app = create_app()
