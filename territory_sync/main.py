"""Territory Sync Gateway — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map GridSyncError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - The room session is joined on startup when ROOM_ID is set, and left on shutdown

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - A failed join at startup is logged and the gateway still serves health probes;
      readiness stays 503 until a room is joined
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from territory_sync.api.error_handlers import register_error_handlers
from territory_sync.api.routes import health, room
from territory_sync.config import get_settings
from territory_sync.core.errors import GridSyncError
from territory_sync.infrastructure.observability import setup_logging
from territory_sync.services.room_session import RoomSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    app.state.room_session = None
    if settings.room_id:
        room_session = RoomSession.from_settings(settings)
        app.state.room_session = room_session
        try:
            await room_session.join()
        except GridSyncError as e:
            logger.error(
                f"Room join failed: {e.message}",
                extra={"room_id": settings.room_id, "error_code": e.code},
            )
    else:
        logger.warning("ROOM_ID not set; gateway started without a room")
    logger.info("Territory Sync gateway started")
    yield
    logger.info("Territory Sync gateway shutting down")
    if app.state.room_session is not None:
        await app.state.room_session.leave()


app = FastAPI(
    title="Territory Sync Gateway", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(room.router)

register_error_handlers(app)
