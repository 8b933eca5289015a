"""Session Context — explicit per-session identity passed into every service.

Invariants:
    - Immutable after construction: a new room or a new login means a new context
    - actor_id None means "not authenticated" (actions fail their precondition)

Design Decisions:
    - Frozen dataclass over module-level globals: the surrounding application owns
      identity and hands it in at construction (ADR: no ambient session state)
"""

from dataclasses import dataclass

from territory_sync.core.domain_types import ActorId, RoomId


@dataclass(frozen=True)
class SessionContext:
    """Who is acting, in which room, against which service."""

    room_id: RoomId
    actor_id: ActorId | None
    base_url: str

    @property
    def is_authenticated(self) -> bool:
        return self.actor_id is not None

    def is_self(self, actor_id: str | None) -> bool:
        """Whether an event's originating actor is this session."""
        return actor_id is not None and actor_id == self.actor_id
