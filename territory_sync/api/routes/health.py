"""Health & Readiness Probes — liveness and push-channel readiness.

Invariants:
    - GET /health/ always returns 200 if the process is up (liveness)
    - GET /health/ready returns 503 unless a room is joined AND the push channel is CONNECTED

Design Decisions:
    - Separate liveness/readiness: a reconnecting channel should take the instance out
      of rotation without restarting it
"""

import logging
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from territory_sync.core.domain_types import ConnectionState

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """Basic liveness probe. Returns 200 if the process is up."""
    return {
        "status": "healthy",
        "service": "territory-sync",
        "version": "1.0.0",
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness probe: joined room and live push channel."""
    room = getattr(request.app.state, "room_session", None)
    if room is None or not room.joined:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "reason": "no_room_joined"},
        )
    state = room.manager.state
    if state != ConnectionState.CONNECTED:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "reason": "push_channel_" + state.value,
            },
        )
    return {"status": "ready", "checks": {"push_channel": state.value}}
