"""Board Factory — small boards, worlds, and identities shared across tests."""

from territory_sync.core.board import BoardSnapshot, Cell, TeamMeta, WorldMeta
from territory_sync.core.domain_types import ActorId, RoomId

ROOM = RoomId("alpha")
ME = ActorId("u-me")
RIVAL = ActorId("u-rival")


def make_board(size: int = 2, owners: dict | None = None, bonus: dict | None = None) -> BoardSnapshot:
    """size × size board; owners maps (x, y) → owner id, bonus maps (x, y) → defense."""
    owners = owners or {}
    bonus = bonus or {}
    return BoardSnapshot(
        Cell(x, y, owner_id=owners.get((x, y)), defense_bonus=bonus.get((x, y), 0))
        for y in range(size) for x in range(size)
    )


def make_world(size: int = 2) -> WorldMeta:
    return WorldMeta(
        id="1", slug=ROOM, name="Alpha", board_size=size,
        teams=(TeamMeta("t1", "Red", "#f00", (ME,)),),
    )


def wire_board(board: BoardSnapshot) -> list[dict]:
    """Board as the Action API and push server send it."""
    return [
        {
            "id": i + 1, "worldSlug": ROOM, "x": c.x, "y": c.y,
            "owner": None if c.owner_id is None else {"id": c.owner_id, "username": c.owner_id},
            "defenseBonus": c.defense_bonus,
        }
        for i, c in enumerate(board)
    ]
