"""Error Hierarchy — typed, categorized exceptions for all synchronization failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Action errors (Precondition, Validation, NotFound, ActionFailed) surface through
      the BoardStore error slot; their user_message is what the slot shows
    - Transport and Decode errors are local/transient: logged and reported, never
      raised past the dispatch boundary
    - to_response() produces the REST envelope shared by every gateway error

Design Decisions:
    - Single hierarchy with GridSyncError base: gateway handler catches all (ADR: uniform error shape)
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    EXTERNAL_API = "external_api"
    TRANSPORT = "transport"
    DECODE = "decode"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    room_id: str | None = None
    actor_id: str | None = None
    action: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None


class GridSyncError(Exception):
    """Base exception for all territory-sync errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    @property
    def user_message(self) -> str:
        """Human-readable text for the BoardStore error slot."""
        return self.context.user_message or self.message

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.user_message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "room_id": self.context.room_id,
                    "action": self.context.action,
                },
            }
        }


# ─── Action Errors (surface in the error slot) ──────────────────

class PreconditionError(GridSyncError):
    """No authenticated local actor or no loaded room."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "PRECONDITION_FAILED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 409,
        )


class ValidationError(GridSyncError):
    """The authoritative source rejected the move as illegal."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_MOVE", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, context, 400,
        )


class NotFoundError(GridSyncError):
    """Stale coordinates or unknown room."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.WARNING, context, 404,
        )
        self.resource_type = resource_type


class ActionFailedError(GridSyncError):
    """Action failed for any other reason. The user must re-trigger it."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "ACTION_FAILED", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, context, 502,
        )


# ─── Infrastructure Errors ──────────────────────────────────────

class ActionApiError(GridSyncError):
    """Action API call failed. Mapped into an action error by the coordinator."""
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        server_message: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Action API error ({status_code or 'network'}): {message}",
            "ACTION_API_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, context, 502,
        )
        self.status_code = status_code
        self.server_message = server_message


class TransportError(GridSyncError):
    """Connect, handshake, or heartbeat failure on the push channel."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "TRANSPORT_ERROR", ErrorCategory.TRANSPORT,
            ErrorSeverity.WARNING, context, 503,
        )


class HandshakeRejectedError(TransportError):
    """The push server refused the credentials. Fatal for the current open()."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(message, context)
        self.code = "HANDSHAKE_REJECTED"
        self.severity = ErrorSeverity.ERROR


class DecodeError(GridSyncError):
    """Inbound payload is malformed or carries an unknown tag."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "DECODE_ERROR", ErrorCategory.DECODE,
            ErrorSeverity.WARNING, context, 400,
        )
