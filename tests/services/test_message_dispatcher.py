"""Message Dispatcher — decode, route, and report.

Invariants:
    - Each valid event reaches exactly one Store route
    - Malformed payloads produce exactly one DecodeError and leave the Store untouched
    - Self-origin events are applied (authoritative confirmation)
"""

import json

import pytest

from territory_sync.core.domain_types import EventKind
from territory_sync.services.message_dispatcher import MessageDispatcher

from tests.board_factory import ME, RIVAL, make_board, wire_board


@pytest.fixture
def reports():
    return []


@pytest.fixture
def dispatcher(session, loaded_store, reports):
    return MessageDispatcher(session, loaded_store, on_decode_error=reports.append)


def _event(kind: str, board=None, actor=RIVAL, **extra) -> str:
    payload = {"type": kind, "playerId": actor, "timestamp": 1, **extra}
    if board is not None:
        payload["board"] = wire_board(board)
    return json.dumps(payload)


def test_square_captured_replaces_board(dispatcher, loaded_store):
    board = make_board(owners={(1, 1): RIVAL})
    event = dispatcher.dispatch(_event("SQUARE_CAPTURED", board))
    assert event.kind == EventKind.SQUARE_CAPTURED
    assert loaded_store.board == board


def test_square_defended_replaces_board(dispatcher, loaded_store):
    board = make_board(owners={(0, 0): RIVAL}, bonus={(0, 0): 2})
    dispatcher.dispatch(_event("SQUARE_DEFENDED", board))
    assert loaded_store.cell_at(0, 0).defense_bonus == 2


def test_world_reset_confirms_pending_reset(dispatcher, loaded_store):
    loaded_store.replace_board(make_board(owners={(0, 0): RIVAL}))
    loaded_store.set_resetting(True)
    dispatcher.dispatch(_event("WORLD_RESET", make_board()))
    assert not loaded_store.is_resetting
    assert loaded_store.board == make_board()


def test_board_event_does_not_clear_resetting(dispatcher, loaded_store):
    loaded_store.set_resetting(True)
    dispatcher.dispatch(_event("SQUARE_CAPTURED", make_board(owners={(0, 1): RIVAL})))
    assert loaded_store.is_resetting


def test_teams_changed_replaces_roster(dispatcher, loaded_store):
    board = loaded_store.board
    dispatcher.dispatch(json.dumps({
        "type": "TEAMS_CHANGED",
        "teams": [{"id": "t9", "name": "Blue", "color": "#00f", "memberIds": [RIVAL]}],
    }))
    assert [t.id for t in loaded_store.world.teams] == ["t9"]
    assert loaded_store.board == board


def test_self_origin_event_is_applied(dispatcher, loaded_store):
    board = make_board(owners={(1, 0): ME})
    dispatcher.dispatch(_event("SQUARE_CAPTURED", board, actor=ME))
    assert loaded_store.board == board


def test_events_apply_in_call_order(dispatcher, loaded_store):
    e1 = make_board(owners={(0, 0): RIVAL})
    e2 = make_board(owners={(0, 0): RIVAL, (1, 0): RIVAL})
    e3 = make_board(owners={(0, 0): ME})
    for board in (e1, e2, e3):
        dispatcher.dispatch(_event("SQUARE_CAPTURED", board))
    assert loaded_store.board == e3


@pytest.mark.parametrize("raw", [
    "{not json",
    json.dumps({"type": "SQUARE_EXPLODED", "board": []}),
    json.dumps({"type": "SQUARE_CAPTURED"}),
    json.dumps({"type": "TEAMS_CHANGED", "teams": "many"}),
])
def test_malformed_payload_reports_once_and_leaves_store(dispatcher, loaded_store, reports, raw):
    version = loaded_store.version
    board = loaded_store.board
    assert dispatcher.dispatch(raw) is None
    assert len(reports) == 1
    assert reports[0].code == "DECODE_ERROR"
    assert dispatcher.decode_errors == 1
    assert loaded_store.version == version
    assert loaded_store.board == board


def test_decode_error_then_valid_event_still_applies(dispatcher, loaded_store, reports):
    dispatcher.dispatch(b"\xff\xfe")
    board = make_board(owners={(1, 1): RIVAL})
    dispatcher.dispatch(_event("SQUARE_CAPTURED", board).encode())
    assert len(reports) == 1
    assert loaded_store.board == board


def test_failing_reporter_does_not_raise(session, loaded_store):
    def reporter(_error):
        raise RuntimeError("metrics down")

    dispatcher = MessageDispatcher(session, loaded_store, on_decode_error=reporter)
    assert dispatcher.dispatch("nope") is None
    assert dispatcher.decode_errors == 1
