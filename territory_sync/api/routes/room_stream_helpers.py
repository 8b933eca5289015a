"""Room Stream Helpers — SSE formatting and the Store-change event feed.

Invariants:
    - The first event is always the current view; later events only follow a version bump
    - The Store listener is removed when the generator closes (client disconnect)
    - Idle streams emit an SSE comment every keepalive interval

Design Decisions:
    - asyncio.Event as the wakeup: the listener runs inside Store mutations and must not
      block, so it only flags; the generator reads the latest view when it wakes
      (intermediate versions may coalesce, the Store itself never does)
"""

import asyncio
import json
import logging
from typing import AsyncIterator

from territory_sync.core.board_store import BoardStore

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}
KEEPALIVE = ": keepalive\n\n"


def sse_line(event: dict) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


def state_event(store: BoardStore) -> dict:
    return {"type": "state", "data": store.to_view()}


async def store_view_events(
    store: BoardStore, keepalive_seconds: float = 15.0,
) -> AsyncIterator[str]:
    """Yield one SSE line per observed Store version."""
    changed = asyncio.Event()
    remove = store.add_listener(lambda _store: changed.set())
    try:
        last_version = store.version
        yield sse_line(state_event(store))
        while True:
            try:
                await asyncio.wait_for(changed.wait(), keepalive_seconds)
            except asyncio.TimeoutError:
                yield KEEPALIVE
                continue
            changed.clear()
            if store.version == last_version:
                continue
            last_version = store.version
            yield sse_line(state_event(store))
    finally:
        remove()
