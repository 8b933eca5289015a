"""Resilient Action API Client — wraps httpx.AsyncClient with timeouts, read retries, and error mapping.

Invariants:
    - Mutating calls (capture, defend, reset) are sent exactly once: never retried
    - Reads (board, world): transient failures retried with exponential backoff + jitter
    - Every failure mapped to ActionApiError (core/errors.py) carrying the HTTP status
      and the server's message field, when present
    - Responses validated through schemas/ before leaving this module

Design Decisions:
    - Wrapper over raw client: isolates HTTP concerns from the ActionCoordinator
      (ADR: single responsibility)
    - ±25% jitter on backoff: prevents thundering herd when a whole room reconnects
    - Credentials: the session cookie rides on every request (httpx cookie jar)
"""

import asyncio
import json
import logging
import random
from typing import Any, Callable

import httpx
from pydantic import ValidationError as SchemaValidationError

from territory_sync.core.board import BoardSnapshot, Cell, WorldMeta
from territory_sync.core.errors import ActionApiError, ErrorContext
from territory_sync.schemas.board import parse_cell, parse_snapshot, parse_world

logger = logging.getLogger(__name__)


def _server_message(response: httpx.Response) -> str | None:
    """Extract {"message": ...} or {"error": {"message": ...}} from an error body."""
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(body, dict):
        return None
    message = body.get("message")
    if message is None and isinstance(body.get("error"), dict):
        message = body["error"].get("message")
    return message if isinstance(message, str) and message else None


class ResilientActionApiClient:
    """Action API calls for one service endpoint."""

    def __init__(
        self,
        base_url: str,
        session_cookie: str | None = None,
        timeout_seconds: float = 15.0,
        max_read_retries: int = 2,
        base_delay_ms: int = 250,
        max_delay_ms: int = 4000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        cookies = {"token": session_cookie} if session_cookie else None
        self.client = httpx.AsyncClient(
            base_url=base_url,
            cookies=cookies,
            timeout=timeout_seconds,
            transport=transport,
        )
        self.max_read_retries = max_read_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def aclose(self) -> None:
        await self.client.aclose()

    # --- Mutations --------------------------------------------------------------

    async def capture(
        self, room_id: str, x: int, y: int, actor_id: str | None = None,
    ) -> Cell | BoardSnapshot:
        body = await self._post(
            f"/api/worlds/{room_id}/actions/capture",
            self._coords_body(x, y, actor_id),
            ErrorContext(room_id=room_id, actor_id=actor_id, action="capture"),
        )
        return self._cell_or_snapshot(body, "capture")

    async def defend(
        self, room_id: str, x: int, y: int, actor_id: str | None = None,
    ) -> Cell | BoardSnapshot:
        body = await self._post(
            f"/api/worlds/{room_id}/actions/defend",
            self._coords_body(x, y, actor_id),
            ErrorContext(room_id=room_id, actor_id=actor_id, action="defend"),
        )
        return self._cell_or_snapshot(body, "defend")

    async def reset(
        self, room_id: str, actor_id: str | None = None,
    ) -> BoardSnapshot | None:
        """Reset the world. Returns the snapshot when the server sends one."""
        body = await self._post(
            f"/api/worlds/{room_id}/reset",
            {"actorId": actor_id} if actor_id else None,
            ErrorContext(room_id=room_id, actor_id=actor_id, action="reset"),
        )
        if isinstance(body, list):
            return self._validated(parse_snapshot, body, "reset")
        return None

    # --- Reads ------------------------------------------------------------------

    async def get_board(self, room_id: str) -> BoardSnapshot:
        body = await self._get(
            f"/api/worlds/{room_id}/board",
            ErrorContext(room_id=room_id, action="get_board"),
        )
        return self._validated(parse_snapshot, body, "get_board")

    async def get_world(self, room_id: str) -> WorldMeta:
        body = await self._get(
            f"/api/worlds/{room_id}",
            ErrorContext(room_id=room_id, action="get_world"),
        )
        return self._validated(parse_world, body, "get_world")

    # --- Internals --------------------------------------------------------------

    @staticmethod
    def _coords_body(x: int, y: int, actor_id: str | None) -> dict:
        body: dict[str, Any] = {"x": x, "y": y}
        if actor_id:
            body["actorId"] = actor_id
        return body

    def _cell_or_snapshot(self, body: Any, action: str) -> Cell | BoardSnapshot:
        if isinstance(body, list):
            return self._validated(parse_snapshot, body, action)
        return self._validated(parse_cell, body, action)

    @staticmethod
    def _validated(parse: Callable[[Any], Any], body: Any, action: str):
        try:
            return parse(body)
        except SchemaValidationError as e:
            raise ActionApiError(
                f"Malformed {action} response: {e.error_count()} error(s)",
                context=ErrorContext(action=action),
            )

    async def _post(self, path: str, payload: dict | None, context: ErrorContext) -> Any:
        """Single attempt: mutating calls are never retried."""
        try:
            response = await self.client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._status_error(e, context)
        except httpx.TimeoutException:
            raise ActionApiError("Request timed out", context=context)
        except httpx.HTTPError as e:
            raise ActionApiError(f"Network error: {e}", context=context)
        logger.info(
            "Action API %s -> %d", path, response.status_code,
            extra={"room_id": context.room_id, "action": context.action},
        )
        return self._json_or_none(response)

    async def _get(self, path: str, context: ErrorContext) -> Any:
        for attempt in range(self.max_read_retries + 1):
            try:
                response = await self.client.get(path)
                response.raise_for_status()
                return self._json_or_none(response)
            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500 or attempt >= self.max_read_retries:
                    raise self._status_error(e, context)
                await self._wait_before_retry(e, attempt)
            except httpx.HTTPError as e:
                if attempt >= self.max_read_retries:
                    raise ActionApiError(
                        f"Transient failure after {self.max_read_retries} retries: {e}",
                        context=context,
                    )
                await self._wait_before_retry(e, attempt)

    async def _wait_before_retry(self, e: Exception, attempt: int) -> None:
        delay = self._backoff(attempt)
        logger.warning(
            f"Transient Action API error, retry after {delay}ms: {e}",
            extra={"attempt": attempt + 1},
        )
        await asyncio.sleep(delay / 1000)

    @staticmethod
    def _status_error(e: httpx.HTTPStatusError, context: ErrorContext) -> ActionApiError:
        return ActionApiError(
            f"HTTP {e.response.status_code}",
            status_code=e.response.status_code,
            server_message=_server_message(e.response),
            context=context,
        )

    @staticmethod
    def _json_or_none(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except (json.JSONDecodeError, ValueError):
            raise ActionApiError(
                "Response body is not JSON", status_code=response.status_code,
            )

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311
