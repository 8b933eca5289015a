"""Message Dispatcher — decodes raw push payloads and routes each to exactly one Store call.

Invariants:
    - dispatch() never raises: a malformed payload or unknown tag produces exactly one
      DecodeError report and leaves the Store untouched
    - Routing is synchronous and in call order; no reordering, batching, or coalescing
    - Board events → BoardStore.replace_board (WORLD_RESET also confirms a pending reset);
      TEAMS_CHANGED → BoardStore.replace_teams
    - Self-origin events are applied like any other: the broadcast is the authoritative
      confirmation and overwrites any local prediction

Design Decisions:
    - Apply, don't filter, self-origin events: a full-snapshot overwrite is idempotent,
      so the local actor's own broadcast cannot double-apply, and the local actor's own
      WORLD_RESET must reach the Store to clear the resetting flag
    - Explicit dict from EventKind to route method: every mapping visible in one place
      (ADR: no getattr magic)
"""

import logging
from typing import Callable

from pydantic import ValidationError as SchemaValidationError

from territory_sync.core.board import InboundEvent
from territory_sync.core.board_store import BoardStore
from territory_sync.core.domain_types import EventKind
from territory_sync.core.errors import DecodeError, ErrorContext
from territory_sync.core.session_context import SessionContext
from territory_sync.schemas.events import decode_event

logger = logging.getLogger(__name__)

DecodeReporter = Callable[[DecodeError], None]

_PREVIEW_CHARS = 200


class MessageDispatcher:
    """Routes decoded push events into the BoardStore."""

    def __init__(
        self,
        session: SessionContext,
        store: BoardStore,
        on_decode_error: DecodeReporter | None = None,
    ):
        self._session = session
        self._store = store
        self._on_decode_error = on_decode_error
        self._decode_errors = 0
        self._routes: dict[EventKind, Callable[[InboundEvent], None]] = {
            EventKind.SQUARE_CAPTURED: self._apply_board,
            EventKind.SQUARE_DEFENDED: self._apply_board,
            EventKind.WORLD_RESET: self._apply_reset,
            EventKind.TEAMS_CHANGED: self._apply_teams,
        }

    @property
    def decode_errors(self) -> int:
        return self._decode_errors

    def dispatch(self, raw: str | bytes) -> InboundEvent | None:
        """Decode and apply one payload. Returns the event, or None if dropped."""
        try:
            event = decode_event(raw)
        except SchemaValidationError as e:
            self._report(raw, e)
            return None

        if self._session.is_self(event.actor_id):
            logger.debug(
                "Applying self-origin %s as confirmation", event.kind.value,
                extra={"event_kind": event.kind.value},
            )
        self._routes[event.kind](event)
        return event

    # --- Routes -----------------------------------------------------------------

    def _apply_board(self, event: InboundEvent) -> None:
        self._store.replace_board(event.board)

    def _apply_reset(self, event: InboundEvent) -> None:
        self._store.replace_board(event.board, confirms_reset=True)

    def _apply_teams(self, event: InboundEvent) -> None:
        self._store.replace_teams(event.teams)

    # --- Reporting --------------------------------------------------------------

    def _report(self, raw: str | bytes, exc: SchemaValidationError) -> None:
        self._decode_errors += 1
        first = exc.errors()[0] if exc.error_count() else {}
        preview = raw[:_PREVIEW_CHARS]
        if isinstance(preview, bytes):
            preview = preview.decode("utf-8", errors="replace")
        error = DecodeError(
            f"Dropped inbound payload: {first.get('msg', 'invalid payload')}",
            ErrorContext(
                room_id=self._session.room_id,
                debug_info={"errors": exc.error_count(), "preview": preview},
            ),
        )
        logger.warning(
            error.message,
            extra={"room_id": self._session.room_id, "error_code": error.code},
        )
        if self._on_decode_error is not None:
            try:
                self._on_decode_error(error)
            except Exception as e:
                logger.error("Decode reporter failed: %s", e, exc_info=True)
