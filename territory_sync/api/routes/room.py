"""Room Routes — board state, player actions, and the live state feed for the joined room.

Invariants:
    - Every route resolves the RoomSession from app.state; no joined room → 409
      PRECONDITION_FAILED ("No world loaded")
    - Actions return 200 when applied, 202 when skipped (another action in flight);
      a failed action raises its mapped GridSyncError (uniform error envelope)
    - Routes never touch the Store directly except to read it

Design Decisions:
    - One process, one room session: the surrounding application owns identity, the
      gateway only exposes what the session already does
    - StreamingResponse for SSE, as the rest of the API does
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from territory_sync.core.domain_types import ActionStatus
from territory_sync.core.errors import ErrorContext, PreconditionError
from territory_sync.schemas.actions import ActionResponse, CoordinatesBody
from territory_sync.services.action_coordinator import NO_ROOM, ActionResult
from territory_sync.services.room_session import RoomSession
from territory_sync.api.routes.room_stream_helpers import (
    SSE_HEADERS, store_view_events,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/room", tags=["room"])


def get_room_session(request: Request) -> RoomSession:
    room = getattr(request.app.state, "room_session", None)
    if room is None or not room.joined:
        raise PreconditionError(NO_ROOM, ErrorContext(user_message=NO_ROOM))
    return room


def _action_response(result: ActionResult) -> JSONResponse:
    if result.status == ActionStatus.FAILED and result.error is not None:
        raise result.error
    code = (
        status.HTTP_202_ACCEPTED if result.status == ActionStatus.SKIPPED
        else status.HTTP_200_OK
    )
    return JSONResponse(status_code=code, content=result.to_dict())


@router.get("/state")
async def get_state(room: RoomSession = Depends(get_room_session)):
    """Current board, world metadata, and session flags."""
    return {
        **room.store.to_view(),
        "connectionState": room.manager.state.value,
    }


@router.post("/capture", response_model=ActionResponse)
async def capture(
    body: CoordinatesBody, room: RoomSession = Depends(get_room_session),
):
    return _action_response(await room.coordinator.request_capture(body.coords))


@router.post("/defend", response_model=ActionResponse)
async def defend(
    body: CoordinatesBody, room: RoomSession = Depends(get_room_session),
):
    return _action_response(await room.coordinator.request_defend(body.coords))


@router.post("/reset", response_model=ActionResponse)
async def reset(room: RoomSession = Depends(get_room_session)):
    """Room-wide reset. Completion shows up on the stream as isResetting=false."""
    return _action_response(await room.coordinator.request_reset())


@router.get("/stream")
async def stream_state(room: RoomSession = Depends(get_room_session)):
    """SSE feed of Store views, one event per observed change."""

    async def event_generator():
        try:
            async for line in store_view_events(room.store):
                yield line
        except asyncio.CancelledError:
            logger.info(
                "Client disconnected from room stream",
                extra={"room_id": room.session.room_id},
            )
            return

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
