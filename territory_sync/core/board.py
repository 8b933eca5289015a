"""Board Values — immutable Cell, BoardSnapshot, world metadata, and PendingAction.

Invariants:
    - Cell identity is (x, y); a Cell never changes, a new value replaces it
    - BoardSnapshot is always whole: built once, never field-merged with another
    - defense_bonus is within [0, max] once clamp_cell() has run
    - PendingAction target is None exactly when kind is RESET

Design Decisions:
    - Frozen dataclasses: readers can hold a Cell or snapshot without risking
      lost updates (ADR: Store hands out values, never mutable handles)
    - Snapshot keeps cells in a dict keyed by coordinates: O(1) identity lookup,
      insertion order preserved for stable rendering
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from territory_sync.core.domain_types import (
    ActionKind, Coordinates, EventKind,
)


@dataclass(frozen=True)
class Cell:
    """Single addressable board position with ownership and defense."""
    x: int
    y: int
    owner_id: str | None = None
    defense_bonus: int = 0

    @property
    def coords(self) -> Coordinates:
        return (self.x, self.y)

    def to_dict(self) -> dict:
        return {
            "x": self.x,
            "y": self.y,
            "ownerId": self.owner_id,
            "defenseBonus": self.defense_bonus,
        }


def clamp_cell(cell: Cell, max_defense_bonus: int) -> Cell:
    """Return cell with defense_bonus bounded to [0, max_defense_bonus]."""
    bounded = max(0, min(cell.defense_bonus, max_defense_bonus))
    if bounded == cell.defense_bonus:
        return cell
    return replace(cell, defense_bonus=bounded)


class BoardSnapshot:
    """Complete board state at one instant, keyed by coordinates."""

    __slots__ = ("_cells",)

    def __init__(self, cells: Iterable[Cell] = ()):
        indexed: dict[Coordinates, Cell] = {}
        for cell in cells:
            indexed[cell.coords] = cell
        self._cells: Mapping[Coordinates, Cell] = MappingProxyType(indexed)

    @classmethod
    def empty(cls) -> "BoardSnapshot":
        return cls(())

    def get(self, x: int, y: int) -> Cell | None:
        return self._cells.get((x, y))

    def __contains__(self, coords: object) -> bool:
        return coords in self._cells

    def __iter__(self) -> Iterator[Cell]:
        return iter(self._cells.values())

    def __len__(self) -> int:
        return len(self._cells)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BoardSnapshot):
            return NotImplemented
        return dict(self._cells) == dict(other._cells)

    def __repr__(self) -> str:
        return f"BoardSnapshot({len(self)} cells)"

    def with_cell(self, cell: Cell) -> "BoardSnapshot":
        """New snapshot with one cell replaced. Caller checks identity exists."""
        return BoardSnapshot(
            cell if existing.coords == cell.coords else existing
            for existing in self
        )

    def clamped(self, max_defense_bonus: int) -> "BoardSnapshot":
        return BoardSnapshot(clamp_cell(c, max_defense_bonus) for c in self)

    def to_list(self) -> list[dict]:
        return [c.to_dict() for c in self]


@dataclass(frozen=True)
class TeamMeta:
    """Team roster entry, carried verbatim from the Action API."""
    id: str
    name: str
    color: str
    member_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorldMeta:
    """World metadata loaded at room join. Never persisted by this engine."""
    id: str
    slug: str
    name: str
    board_size: int
    teams: tuple[TeamMeta, ...] = ()


@dataclass(frozen=True)
class PendingAction:
    """The single in-flight mutating action of a session."""
    kind: ActionKind
    target: Coordinates | None = None
    submitted_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


@dataclass(frozen=True)
class InboundEvent:
    """One decoded push event. board is set for board kinds, teams for roster kinds."""
    kind: EventKind
    board: BoardSnapshot | None = None
    teams: tuple[TeamMeta, ...] | None = None
    actor_id: str | None = None
    timestamp: float | None = None
