"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - RoomId, ActorId wrap str: never pass bare strings through service signatures
    - Coordinates are (x, y) int pairs; identity of a Cell on the board
    - All valid states encoded as Enums: no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders (push payloads are JSON)
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

RoomId = NewType("RoomId", str)     # world slug on the Action API
ActorId = NewType("ActorId", str)   # external user id from the Auth Service

Coordinates = tuple[int, int]


# ─── Enums ───────────────────────────────────────────────────────

class ConnectionState(str, Enum):
    """Push-channel lifecycle states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class ActionKind(str, Enum):
    """Mutating user intents. Reset is room-wide and has no target."""
    CAPTURE = "capture"
    DEFEND = "defend"
    RESET = "reset"


class EventKind(str, Enum):
    """Closed tag set of inbound push events."""
    SQUARE_CAPTURED = "SQUARE_CAPTURED"
    SQUARE_DEFENDED = "SQUARE_DEFENDED"
    WORLD_RESET = "WORLD_RESET"
    TEAMS_CHANGED = "TEAMS_CHANGED"


class ActionStatus(str, Enum):
    """Terminal outcome of a coordinator request."""
    APPLIED = "applied"
    SKIPPED = "skipped"     # admission control rejected it (another action in flight)
    FAILED = "failed"
