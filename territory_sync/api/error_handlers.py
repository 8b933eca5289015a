"""Error Handlers — global exception handlers for the session gateway.

Invariants:
    - Every error response has the same envelope: {"error": {code, message, category, severity, ...}}
    - GridSyncError → its own http_status and to_response(); message is the
      user-facing text the BoardStore error slot shows
    - RequestValidationError → 400 with field-level details
    - Exception (catch-all) → 500, never leaks internal details

Design Decisions:
    - Action outcomes the user caused (precondition, invalid move, not found) log
      at WARNING; upstream and internal failures at ERROR
    - Registered from main.py in one call so the app module stays a wiring list
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from territory_sync.core.errors import ErrorCategory, ErrorSeverity, GridSyncError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GridSyncError, handle_grid_sync_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)


def error_envelope(
    code: str,
    message: str,
    category: ErrorCategory,
    severity: ErrorSeverity,
    **extra,
) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "category": category.value,
            "severity": severity.value,
            **extra,
        },
    }


async def handle_grid_sync_error(request: Request, exc: GridSyncError) -> JSONResponse:
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        "%s %s failed: %s", request.method, request.url.path, exc.message,
        extra={
            "error_code": exc.code,
            "room_id": exc.context.room_id,
            "actor_id": exc.context.actor_id,
            "action": exc.context.action,
        },
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(loc) for loc in e["loc"]),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in exc.errors()
    ]
    logger.warning(
        "Rejected request body on %s: %d field error(s)",
        request.url.path, len(details),
        extra={"error_code": "VALIDATION_ERROR"},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_envelope(
            "VALIDATION_ERROR", "Invalid request data",
            ErrorCategory.VALIDATION, ErrorSeverity.ERROR,
            details=details,
        ),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: never leaks internal details."""
    logger.error(
        "Unhandled exception on %s: %s", request.url.path, exc,
        exc_info=True, extra={"error_code": "INTERNAL_ERROR"},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope(
            "INTERNAL_ERROR", "An unexpected error occurred",
            ErrorCategory.INTERNAL, ErrorSeverity.CRITICAL,
        ),
    )
