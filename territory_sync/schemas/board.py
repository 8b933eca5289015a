"""Board Schemas — pydantic models for cells, teams, and worlds as the Action API sends them.

Invariants:
    - Every payload converts into a core/ value (Cell, TeamMeta, WorldMeta)
    - A cell's owner may arrive as ownerId or as an owner object; both yield owner_id
    - Unknown fields (id, worldSlug, createdAt, ...) are ignored, never rejected

Design Decisions:
    - extra="ignore": the Action API adds fields freely; the engine only carries
      what the board needs (ADR: tolerant reader)
    - Ids coerced to str: the engine compares ids, never interprets them
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from territory_sync.core.board import BoardSnapshot, Cell, TeamMeta, WorldMeta


def _id_or_none(v: Any) -> Any:
    if v is None or isinstance(v, str):
        return v
    return str(v)


class CellPayload(BaseModel):
    """Square on the wire."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    x: int
    y: int
    owner_id: str | None = Field(None, alias="ownerId")
    defense_bonus: int = Field(0, alias="defenseBonus")

    @model_validator(mode="before")
    @classmethod
    def lift_owner_object(cls, data: Any) -> Any:
        """{"owner": {"id": ...}} → {"ownerId": ...} when ownerId is absent."""
        if isinstance(data, dict) and "ownerId" not in data and "owner_id" not in data:
            owner = data.get("owner")
            if isinstance(owner, dict):
                return {**data, "ownerId": owner.get("id")}
        return data

    @field_validator("owner_id", mode="before")
    @classmethod
    def coerce_owner_id(cls, v: Any) -> Any:
        return _id_or_none(v)

    def to_cell(self) -> Cell:
        return Cell(
            x=self.x, y=self.y,
            owner_id=self.owner_id, defense_bonus=self.defense_bonus,
        )


class TeamPayload(BaseModel):
    """Team roster entry on the wire."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    name: str
    color: str
    member_ids: list[str] = Field(default_factory=list, alias="memberIds")

    @model_validator(mode="before")
    @classmethod
    def lift_members(cls, data: Any) -> Any:
        """members[].user.id → memberIds when memberIds is absent."""
        if isinstance(data, dict) and "memberIds" not in data and "member_ids" not in data:
            members = data.get("members")
            if isinstance(members, list):
                ids = [
                    (m.get("user") or {}).get("id")
                    for m in members if isinstance(m, dict)
                ]
                return {**data, "memberIds": [i for i in ids if i is not None]}
        return data

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _id_or_none(v)

    @field_validator("member_ids", mode="before")
    @classmethod
    def coerce_member_ids(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [_id_or_none(i) for i in v]
        return v

    def to_team(self) -> TeamMeta:
        return TeamMeta(
            id=self.id, name=self.name, color=self.color,
            member_ids=tuple(self.member_ids),
        )


class WorldPayload(BaseModel):
    """World metadata on the wire (GET world)."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    slug: str
    name: str
    board_size: int = Field(alias="boardSize")
    teams: list[TeamPayload] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _id_or_none(v)

    def to_world(self) -> WorldMeta:
        return WorldMeta(
            id=self.id, slug=self.slug, name=self.name,
            board_size=self.board_size,
            teams=tuple(t.to_team() for t in self.teams),
        )


_BOARD_ADAPTER = TypeAdapter(list[CellPayload])


def parse_snapshot(data: Any) -> BoardSnapshot:
    """Validate a list of wire cells into a BoardSnapshot. Raises pydantic.ValidationError."""
    return BoardSnapshot(p.to_cell() for p in _BOARD_ADAPTER.validate_python(data))


def parse_cell(data: Any) -> Cell:
    return CellPayload.model_validate(data).to_cell()


def parse_world(data: Any) -> WorldMeta:
    return WorldPayload.model_validate(data).to_world()
