"""Action Coordinator — user intents → Action API calls, with admission control and reconciliation.

Invariants:
    - Preconditions (authenticated actor, loaded room) are checked before anything else;
      a failure sets the error slot, raises PreconditionError, and sends nothing
    - At most one PendingAction per session; while one exists, or while a reset awaits
      its broadcast, new requests are silent no-ops (ActionStatus.SKIPPED)
    - The outcome of a sent call is always awaited before processing clears; every path
      (success, failure, unexpected error, cancellation) clears pending and processing
    - Capture/defend are optimistic: the prediction is in the Store before the call returns
    - Failure rolls the cell back only if it still holds the prediction; a broadcast that
      replaced it meanwhile is authoritative and stays
    - Reset never applies the HTTP response: resetting clears when the WORLD_RESET
      snapshot is applied, or when the fallback reload is applied after the timeout
    - A fallback reload that fails for any reason clears resetting and sets the error slot
    - No automatic retry: the user re-triggers the action

Design Decisions:
    - One reconciliation policy (optimistic) for cell actions, broadcast confirmation for
      the room-wide reset; self-origin broadcasts are applied by the dispatcher, which is
      idempotent with the optimistic prediction (ADR: never mix policies per action kind)
    - Error mapping table per action kind: messages match what players already know
      from the web client
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable

from territory_sync.core.board import BoardSnapshot, Cell, PendingAction
from territory_sync.core.board_store import BoardStore
from territory_sync.core.domain_types import ActionKind, ActionStatus, Coordinates
from territory_sync.core.errors import (
    ActionApiError, ActionFailedError, ErrorContext, GridSyncError,
    NotFoundError, PreconditionError, ValidationError,
)
from territory_sync.core.session_context import SessionContext
from territory_sync.infrastructure.action_api import ResilientActionApiClient

logger = logging.getLogger(__name__)

_INVALID_MOVE = {
    ActionKind.CAPTURE: "Invalid move! You can only capture adjacent squares.",
    ActionKind.DEFEND: "Invalid move! You can only defend your own squares.",
    ActionKind.RESET: "Invalid move! This world cannot be reset right now.",
}
_NOT_FOUND = {
    ActionKind.CAPTURE: ("Square", "Square not found."),
    ActionKind.DEFEND: ("Square", "Square not found."),
    ActionKind.RESET: ("World", "World not found."),
}
_GENERIC = {
    ActionKind.CAPTURE: "Failed to capture square. Please try again.",
    ActionKind.DEFEND: "Failed to defend square. Please try again.",
    ActionKind.RESET: "Failed to reset world. Please try again.",
}
_INVALID_STATUSES = frozenset({400, 409, 422})

NOT_AUTHENTICATED = "Please login first"
NO_ROOM = "No world loaded"
RESET_UNCONFIRMED = "World reset could not be confirmed. Please reload."


@dataclass(frozen=True)
class ActionResult:
    """Terminal outcome of one request_* call."""
    kind: ActionKind
    status: ActionStatus
    error: GridSyncError | None = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "status": self.status.value,
            "error": None if self.error is None else {
                "code": self.error.code,
                "message": self.error.user_message,
                "category": self.error.category.value,
            },
        }


class ActionCoordinator:
    """Serializes mutating actions for one session and reconciles them with the Store."""

    def __init__(
        self,
        session: SessionContext,
        store: BoardStore,
        api: ResilientActionApiClient,
        *,
        max_defense_bonus: int = 3,
        reset_confirm_timeout_seconds: float = 10.0,
    ):
        self._session = session
        self._store = store
        self._api = api
        self._max_defense_bonus = max_defense_bonus
        self._reset_confirm_timeout = reset_confirm_timeout_seconds
        self._pending: PendingAction | None = None
        self._reset_watch: asyncio.Task | None = None

    @property
    def pending(self) -> PendingAction | None:
        return self._pending

    @property
    def busy(self) -> bool:
        return self._pending is not None or self._store.is_resetting

    async def request_capture(self, coords: Coordinates) -> ActionResult:
        return await self._submit_cell_action(ActionKind.CAPTURE, coords)

    async def request_defend(self, coords: Coordinates) -> ActionResult:
        return await self._submit_cell_action(ActionKind.DEFEND, coords)

    async def request_reset(self) -> ActionResult:
        """Room-wide reset. Success leaves resetting set until the broadcast lands."""
        kind = ActionKind.RESET
        self._check_preconditions(kind)
        if self.busy:
            return self._skipped(kind)

        self._begin(PendingAction(kind=kind))
        self._store.set_resetting(True)
        try:
            await self._api.reset(self._session.room_id, self._session.actor_id)
        except asyncio.CancelledError:
            self._store.set_resetting(False)
            raise
        except Exception as e:
            self._store.set_resetting(False)
            return self._failed(kind, e)
        finally:
            self._finish()

        self._watch_reset_confirmation()
        logger.info(
            "Reset accepted; awaiting WORLD_RESET broadcast",
            extra=self._log_extra(kind),
        )
        return ActionResult(kind, ActionStatus.APPLIED)

    async def aclose(self) -> None:
        """Stop the reset-confirmation watch (room leave)."""
        watch, self._reset_watch = self._reset_watch, None
        if watch is not None and not watch.done():
            watch.cancel()
            await asyncio.gather(watch, return_exceptions=True)

    # --- Cell actions -----------------------------------------------------------

    async def _submit_cell_action(
        self, kind: ActionKind, coords: Coordinates,
    ) -> ActionResult:
        self._check_preconditions(kind)
        if self.busy:
            return self._skipped(kind)

        x, y = coords
        original = self._store.cell_at(x, y)
        if original is None:
            return self._failed(kind, NotFoundError(
                "Square", f"({x}, {y})", self._context(kind, _NOT_FOUND[kind][1]),
            ))

        self._begin(PendingAction(kind=kind, target=(x, y)))
        prediction = self._predict(kind, original)
        self._store.upsert_cell(prediction)
        call: Callable[..., Awaitable[Cell | BoardSnapshot]] = (
            self._api.capture if kind == ActionKind.CAPTURE else self._api.defend
        )
        try:
            outcome = await call(self._session.room_id, x, y, self._session.actor_id)
        except asyncio.CancelledError:
            self._rollback(original, prediction)
            raise
        except Exception as e:
            self._rollback(original, prediction)
            return self._failed(kind, e)
        else:
            self._reconcile(outcome)
            return ActionResult(kind, ActionStatus.APPLIED)
        finally:
            self._finish()

    def _predict(self, kind: ActionKind, cell: Cell) -> Cell:
        if kind == ActionKind.CAPTURE:
            return replace(cell, owner_id=self._session.actor_id)
        return replace(
            cell,
            defense_bonus=min(cell.defense_bonus + 1, self._max_defense_bonus),
        )

    def _reconcile(self, outcome: Cell | BoardSnapshot) -> None:
        if isinstance(outcome, BoardSnapshot):
            self._store.replace_board(outcome)
        else:
            self._store.upsert_cell(outcome)

    def _rollback(self, original: Cell, prediction: Cell) -> None:
        current = self._store.cell_at(original.x, original.y)
        if current == prediction:
            self._store.upsert_cell(original)
        else:
            logger.info(
                "Prediction for (%d, %d) superseded by broadcast; no rollback",
                original.x, original.y,
            )

    # --- Reset confirmation -----------------------------------------------------

    def _watch_reset_confirmation(self) -> None:
        if self._reset_watch is not None and not self._reset_watch.done():
            self._reset_watch.cancel()
        self._reset_watch = asyncio.create_task(self._confirm_reset_or_reload())

    async def _confirm_reset_or_reload(self) -> None:
        """Fallback when WORLD_RESET never arrives: reload the board and apply it."""
        await asyncio.sleep(self._reset_confirm_timeout)
        if not self._store.is_resetting:
            return
        logger.warning(
            "No WORLD_RESET within %ss; reloading board", self._reset_confirm_timeout,
            extra=self._log_extra(ActionKind.RESET),
        )
        try:
            snapshot = await self._api.get_board(self._session.room_id)
        except ActionApiError as e:
            logger.error("Board reload after reset failed: %s", e.message)
            self._abandon_reset()
            return
        except Exception as e:
            logger.error(
                "Unexpected failure reloading board after reset: %s", e,
                exc_info=True, extra=self._log_extra(ActionKind.RESET),
            )
            self._abandon_reset()
            return
        if self._store.is_resetting:
            self._store.replace_board(snapshot, confirms_reset=True)

    def _abandon_reset(self) -> None:
        self._store.set_resetting(False)
        self._store.set_error(RESET_UNCONFIRMED)

    # --- Bookkeeping ------------------------------------------------------------

    def _check_preconditions(self, kind: ActionKind) -> None:
        if not self._session.is_authenticated:
            message = NOT_AUTHENTICATED
        elif not self._store.is_loaded:
            message = NO_ROOM
        else:
            return
        self._store.set_error(message)
        raise PreconditionError(message, self._context(kind))

    def _begin(self, pending: PendingAction) -> None:
        self._pending = pending
        self._store.set_error(None)
        self._store.set_processing(True)

    def _finish(self) -> None:
        self._pending = None
        self._store.set_processing(False)

    def _skipped(self, kind: ActionKind) -> ActionResult:
        logger.debug("%s skipped: another action in flight", kind.value)
        return ActionResult(kind, ActionStatus.SKIPPED)

    def _failed(self, kind: ActionKind, exc: Exception) -> ActionResult:
        error = self._map_error(kind, exc)
        self._store.set_error(error.user_message)
        logger.warning(
            "%s failed: %s", kind.value, error.message,
            extra={**self._log_extra(kind), "error_code": error.code},
        )
        return ActionResult(kind, ActionStatus.FAILED, error)

    def _map_error(self, kind: ActionKind, exc: Exception) -> GridSyncError:
        """Action API failure → invalid move | not found | server message | generic."""
        if isinstance(exc, GridSyncError) and not isinstance(exc, ActionApiError):
            return exc
        if not isinstance(exc, ActionApiError):
            logger.error("Unexpected error during %s: %s", kind.value, exc, exc_info=True)
            return ActionFailedError(str(exc), self._context(kind, _GENERIC[kind]))

        if exc.status_code in _INVALID_STATUSES:
            return ValidationError(
                exc.server_message or exc.message,
                self._context(kind, _INVALID_MOVE[kind]),
            )
        if exc.status_code == 404:
            resource, message = _NOT_FOUND[kind]
            return NotFoundError(
                resource, self._session.room_id, self._context(kind, message),
            )
        if exc.server_message:
            return ActionFailedError(
                exc.message, self._context(kind, exc.server_message),
            )
        return ActionFailedError(exc.message, self._context(kind, _GENERIC[kind]))

    def _context(self, kind: ActionKind, user_message: str | None = None) -> ErrorContext:
        return ErrorContext(
            room_id=self._session.room_id,
            actor_id=self._session.actor_id,
            action=kind.value,
            user_message=user_message,
        )

    def _log_extra(self, kind: ActionKind) -> dict:
        return {
            "room_id": self._session.room_id,
            "actor_id": self._session.actor_id,
            "action": kind.value,
        }
