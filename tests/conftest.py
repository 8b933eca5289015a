"""Root conftest — shared test configuration and Store fixtures."""

import os

import pytest

# Tests never join a real room or read a developer's session cookie
os.environ.pop("ROOM_ID", None)
os.environ.pop("SESSION_COOKIE", None)
os.environ.setdefault("LOG_FORMAT", "text")

from territory_sync.core.board_store import BoardStore  # noqa: E402
from territory_sync.core.session_context import SessionContext  # noqa: E402

from tests.board_factory import ME, ROOM, make_board, make_world  # noqa: E402


@pytest.fixture
def session():
    return SessionContext(room_id=ROOM, actor_id=ME, base_url="http://test")


@pytest.fixture
def anonymous_session():
    return SessionContext(room_id=ROOM, actor_id=None, base_url="http://test")


@pytest.fixture
def store():
    return BoardStore(max_defense_bonus=3)


@pytest.fixture
def loaded_store(store):
    store.load(make_world(), make_board())
    return store
