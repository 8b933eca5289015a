"""Event Schemas — closed, tagged union of push-channel payloads.

Invariants:
    - The tag set is closed: SQUARE_CAPTURED, SQUARE_DEFENDED, WORLD_RESET carry a full
      board; TEAMS_CHANGED carries a team roster. Any other tag fails validation
    - A board event without a board fails validation (never a partial merge)
    - decode_event raises pydantic.ValidationError for every malformed input
      (bad JSON, non-object, unknown tag, bad field): one failure type for the dispatcher

Design Decisions:
    - Discriminated union on "type": pydantic selects the variant in one pass and
      reports union_tag_invalid for unknown tags
    - actorId and playerId both accepted: older push servers name the actor playerId
"""

from typing import Annotated, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from territory_sync.core.board import BoardSnapshot, InboundEvent
from territory_sync.core.domain_types import EventKind
from territory_sync.schemas.board import CellPayload, TeamPayload


class _EventBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    actor_id: str | None = Field(
        None, validation_alias=AliasChoices("actorId", "playerId"),
    )
    timestamp: float | None = None

    @field_validator("actor_id", mode="before")
    @classmethod
    def coerce_actor_id(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)


class BoardEventPayload(_EventBase):
    """Board-replacing event: the payload is the whole authoritative board."""
    type: Literal["SQUARE_CAPTURED", "SQUARE_DEFENDED", "WORLD_RESET"]
    board: list[CellPayload]

    def to_event(self) -> InboundEvent:
        return InboundEvent(
            kind=EventKind(self.type),
            board=BoardSnapshot(c.to_cell() for c in self.board),
            actor_id=self.actor_id,
            timestamp=self.timestamp,
        )


class TeamsEventPayload(_EventBase):
    """Membership-changed event: the payload is the whole team roster."""
    type: Literal["TEAMS_CHANGED"]
    teams: list[TeamPayload]

    def to_event(self) -> InboundEvent:
        return InboundEvent(
            kind=EventKind.TEAMS_CHANGED,
            teams=tuple(t.to_team() for t in self.teams),
            actor_id=self.actor_id,
            timestamp=self.timestamp,
        )


InboundPayload = Annotated[
    Union[BoardEventPayload, TeamsEventPayload],
    Field(discriminator="type"),
]

_EVENT_ADAPTER = TypeAdapter(InboundPayload)


def decode_event(raw: str | bytes) -> InboundEvent:
    """Parse one raw push payload into a typed InboundEvent."""
    return _EVENT_ADAPTER.validate_json(raw).to_event()
