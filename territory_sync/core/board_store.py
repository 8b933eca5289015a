"""Board Store — the single canonical in-memory board plus transient session flags.

Invariants:
    - Exactly one BoardSnapshot is current; replace_board swaps it in one assignment,
      so readers never observe a half-applied snapshot
    - upsert_cell never inserts: an unknown (x, y) is a reported no-op, since the
      cell set is fixed when the room is joined
    - defense_bonus is clamped on the way in; every stored Cell is within bounds
    - Only MessageDispatcher and ActionCoordinator call mutating methods
    - version increases by one on every mutation; listeners run after the change

Design Decisions:
    - Plain class, no IO, no async (ADR: functional core). Single-threaded event loop
      makes each synchronous method atomic with respect to other coroutines
    - Listener failures are logged, never propagated: presentation must not be able
      to corrupt or block the writer path
    - Error slot holds one human-readable message, overwritten by the next outcome
"""

import logging
from typing import Callable

from territory_sync.core.board import (
    BoardSnapshot, Cell, TeamMeta, WorldMeta, clamp_cell,
)

logger = logging.getLogger(__name__)

StoreListener = Callable[["BoardStore"], None]


class BoardStore:
    """Canonical board state for one room session."""

    def __init__(self, max_defense_bonus: int = 3):
        self._max_defense_bonus = max_defense_bonus
        self._listeners: list[StoreListener] = []
        self._board = BoardSnapshot.empty()
        self._world: WorldMeta | None = None
        self._processing = False
        self._resetting = False
        self._error: str | None = None
        self._connected = False
        self._connection_error: str | None = None
        self._inconsistencies = 0
        self._version = 0

    # --- Read side --------------------------------------------------------------

    @property
    def board(self) -> BoardSnapshot:
        return self._board

    @property
    def world(self) -> WorldMeta | None:
        return self._world

    @property
    def is_loaded(self) -> bool:
        return self._world is not None

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def is_resetting(self) -> bool:
        return self._resetting

    @property
    def error_message(self) -> str | None:
        return self._error

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def connection_error(self) -> str | None:
        return self._connection_error

    @property
    def inconsistencies(self) -> int:
        """Count of upsert_cell calls that named a cell not on the board."""
        return self._inconsistencies

    @property
    def version(self) -> int:
        return self._version

    def cell_at(self, x: int, y: int) -> Cell | None:
        return self._board.get(x, y)

    def to_view(self) -> dict:
        """JSON-safe view for presentation (gateway state + SSE feed)."""
        world = self._world
        return {
            "version": self._version,
            "world": None if world is None else {
                "id": world.id,
                "slug": world.slug,
                "name": world.name,
                "boardSize": world.board_size,
                "teams": [
                    {
                        "id": t.id, "name": t.name, "color": t.color,
                        "memberIds": list(t.member_ids),
                    }
                    for t in world.teams
                ],
            },
            "board": self._board.to_list(),
            "isProcessing": self._processing,
            "isResetting": self._resetting,
            "errorMessage": self._error,
            "connected": self._connected,
            "connectionError": self._connection_error,
        }

    # --- Listeners --------------------------------------------------------------

    def add_listener(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _changed(self) -> None:
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error("Store listener failed: %s", e, exc_info=True)

    # --- Write side -------------------------------------------------------------

    def load(self, world: WorldMeta, snapshot: BoardSnapshot) -> None:
        """Room join: install metadata and the initial snapshot, clear flags."""
        self._world = world
        self._board = snapshot.clamped(self._max_defense_bonus)
        self._processing = False
        self._resetting = False
        self._error = None
        self._changed()

    def replace_board(
        self, snapshot: BoardSnapshot, confirms_reset: bool = False,
    ) -> bool:
        """Swap in a whole new snapshot. Returns False when no room is loaded.

        confirms_reset: the snapshot is the authoritative result of a room reset,
        so the resetting flag clears in the same step.
        """
        if self._world is None:
            logger.warning("Dropped board replacement: no room loaded")
            return False
        self._board = snapshot.clamped(self._max_defense_bonus)
        if confirms_reset:
            self._resetting = False
        self._changed()
        return True

    def upsert_cell(self, cell: Cell) -> bool:
        """Replace the cell with the same (x, y). Unknown identity: report, no-op."""
        if cell.coords not in self._board:
            self._inconsistencies += 1
            logger.warning(
                "upsert_cell for unknown cell (%d, %d) ignored",
                cell.x, cell.y,
                extra={"error_code": "CELL_NOT_ON_BOARD"},
            )
            return False
        self._board = self._board.with_cell(
            clamp_cell(cell, self._max_defense_bonus),
        )
        self._changed()
        return True

    def replace_teams(self, teams: tuple[TeamMeta, ...]) -> bool:
        """Swap the team roster of the loaded world."""
        world = self._world
        if world is None:
            logger.warning("Dropped team roster: no room loaded")
            return False
        self._world = WorldMeta(
            id=world.id, slug=world.slug, name=world.name,
            board_size=world.board_size, teams=tuple(teams),
        )
        self._changed()
        return True

    def set_processing(self, value: bool) -> None:
        self._processing = value
        self._changed()

    def set_resetting(self, value: bool) -> None:
        self._resetting = value
        self._changed()

    def set_error(self, message: str | None) -> None:
        self._error = message
        self._changed()

    def set_connectivity(self, connected: bool, error: str | None = None) -> None:
        """Connectivity indicator, fed by the ConnectionManager."""
        self._connected = connected
        self._connection_error = error
        self._changed()

    def reset(self) -> None:
        """Room leave: discard the snapshot, metadata, and every flag."""
        self._board = BoardSnapshot.empty()
        self._world = None
        self._processing = False
        self._resetting = False
        self._error = None
        self._connected = False
        self._connection_error = None
        self._changed()
