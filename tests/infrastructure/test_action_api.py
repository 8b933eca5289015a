"""Resilient Action API Client — paths, credentials, retries, and error mapping.

Tests cover:
    - Mutations POST once, never retried, responses parsed into core values
    - Reads retried on 5xx/transport errors, never on 4xx
    - Every failure surfaces as ActionApiError with status and server message
"""

import json

import httpx
import pytest

from territory_sync.core.board import BoardSnapshot, Cell
from territory_sync.core.errors import ActionApiError
from territory_sync.infrastructure.action_api import ResilientActionApiClient

from tests.board_factory import make_board, wire_board


def _client(handler, **kwargs) -> ResilientActionApiClient:
    return ResilientActionApiClient(
        "http://api.test", session_cookie="cookie-1",
        base_delay_ms=1, max_delay_ms=2,
        transport=httpx.MockTransport(handler), **kwargs,
    )


async def test_capture_posts_coordinates_with_session_cookie():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        return httpx.Response(200, json={"x": 1, "y": 0, "owner": {"id": "u1"}, "defenseBonus": 0})

    api = _client(handler)
    cell = await api.capture("alpha", 1, 0, "u1")
    await api.aclose()

    assert cell == Cell(1, 0, "u1", 0)
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/api/worlds/alpha/actions/capture"
    assert json.loads(seen[0].content) == {"x": 1, "y": 0, "actorId": "u1"}
    assert "token=cookie-1" in seen[0].headers["cookie"]


async def test_defend_may_return_full_board():
    board = make_board(owners={(0, 0): "u1"})

    def handler(request):
        assert request.url.path == "/api/worlds/alpha/actions/defend"
        return httpx.Response(200, json=wire_board(board))

    api = _client(handler)
    result = await api.defend("alpha", 0, 0)
    await api.aclose()
    assert isinstance(result, BoardSnapshot)
    assert result == board


async def test_mutation_error_is_not_retried_and_keeps_server_message():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"message": "Not adjacent"})

    api = _client(handler)
    with pytest.raises(ActionApiError) as exc_info:
        await api.capture("alpha", 1, 1)
    await api.aclose()
    assert len(calls) == 1
    assert exc_info.value.status_code == 400
    assert exc_info.value.server_message == "Not adjacent"


async def test_mutation_server_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, json={"error": {"message": "maintenance"}})

    api = _client(handler)
    with pytest.raises(ActionApiError) as exc_info:
        await api.reset("alpha")
    await api.aclose()
    assert len(calls) == 1
    assert exc_info.value.server_message == "maintenance"


async def test_mutation_timeout_maps_to_action_api_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    api = _client(handler)
    with pytest.raises(ActionApiError) as exc_info:
        await api.capture("alpha", 0, 0)
    await api.aclose()
    assert exc_info.value.status_code is None
    assert "timed out" in exc_info.value.message


async def test_reset_with_empty_body_returns_none():
    api = _client(lambda request: httpx.Response(204))
    assert await api.reset("alpha") is None
    await api.aclose()


async def test_get_board_retries_transient_failures():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503)
        if len(calls) == 2:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json=wire_board(make_board()))

    api = _client(handler)
    board = await api.get_board("alpha")
    await api.aclose()
    assert len(calls) == 3
    assert board == make_board()


async def test_get_world_not_found_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, json={"message": "World not found"})

    api = _client(handler)
    with pytest.raises(ActionApiError) as exc_info:
        await api.get_world("missing")
    await api.aclose()
    assert len(calls) == 1
    assert exc_info.value.status_code == 404


async def test_get_board_gives_up_after_max_retries():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    api = _client(handler, max_read_retries=1)
    with pytest.raises(ActionApiError):
        await api.get_board("alpha")
    await api.aclose()
    assert len(calls) == 2


async def test_malformed_response_body_maps_to_action_api_error():
    api = _client(lambda request: httpx.Response(200, json={"nope": True}))
    with pytest.raises(ActionApiError) as exc_info:
        await api.capture("alpha", 0, 0)
    await api.aclose()
    assert "Malformed capture response" in exc_info.value.message


def test_backoff_stays_within_jitter_bounds():
    api = ResilientActionApiClient("http://api.test", base_delay_ms=100, max_delay_ms=1000)
    for attempt in range(6):
        delay = api._backoff(attempt)
        cap = min(1000, (2 ** attempt) * 100)
        assert cap * 0.75 <= delay <= cap * 1.25
