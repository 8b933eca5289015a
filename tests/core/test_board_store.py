"""Board Store — canonical snapshot, flags, listeners.

Tests cover:
    - replace_board swaps the whole snapshot and bumps version once
    - upsert_cell replaces a known cell and never inserts an unknown one
    - Reset confirmation clears resetting only when the snapshot says so
    - Listener failures never reach the writer
"""

from territory_sync.core.board import Cell, TeamMeta

from tests.board_factory import make_board, make_world


def test_new_store_is_not_loaded(store):
    assert not store.is_loaded
    assert len(store.board) == 0
    assert store.cell_at(0, 0) is None


def test_load_installs_world_and_board(store):
    store.load(make_world(), make_board())
    assert store.is_loaded
    assert store.world.slug == "alpha"
    assert len(store.board) == 4


def test_replace_board_swaps_whole_snapshot(loaded_store):
    before = loaded_store.version
    new_board = make_board(owners={(0, 0): "u1", (1, 1): "u2"})
    assert loaded_store.replace_board(new_board)
    assert loaded_store.board == new_board
    assert loaded_store.version == before + 1


def test_replace_board_clamps_defense_bonus(loaded_store):
    loaded_store.replace_board(make_board(bonus={(0, 0): 10}))
    assert loaded_store.cell_at(0, 0).defense_bonus == 3


def test_replace_board_without_room_is_dropped(store):
    assert not store.replace_board(make_board())
    assert len(store.board) == 0


def test_upsert_cell_replaces_known_cell(loaded_store):
    assert loaded_store.upsert_cell(Cell(1, 0, owner_id="u1", defense_bonus=1))
    assert loaded_store.cell_at(1, 0) == Cell(1, 0, "u1", 1)
    assert loaded_store.cell_at(0, 0) == Cell(0, 0)


def test_upsert_unknown_cell_is_reported_no_op(loaded_store):
    before = loaded_store.board
    version = loaded_store.version
    assert not loaded_store.upsert_cell(Cell(9, 9, owner_id="u1"))
    assert loaded_store.board == before
    assert len(loaded_store.board) == 4
    assert loaded_store.inconsistencies == 1
    assert loaded_store.version == version


def test_confirming_snapshot_clears_resetting(loaded_store):
    loaded_store.set_resetting(True)
    loaded_store.replace_board(make_board(owners={(0, 0): "u1"}))
    assert loaded_store.is_resetting
    loaded_store.replace_board(make_board(), confirms_reset=True)
    assert not loaded_store.is_resetting


def test_replace_teams_keeps_world_identity(loaded_store):
    loaded_store.replace_teams((TeamMeta("t2", "Blue", "#00f", ("u9",)),))
    assert loaded_store.world.slug == "alpha"
    assert [t.name for t in loaded_store.world.teams] == ["Blue"]


def test_listener_failure_does_not_block_mutation(loaded_store):
    seen = []

    def broken(_store):
        raise RuntimeError("render crashed")

    loaded_store.add_listener(broken)
    loaded_store.add_listener(lambda s: seen.append(s.version))
    loaded_store.set_error("boom")
    assert loaded_store.error_message == "boom"
    assert seen == [loaded_store.version]


def test_removed_listener_is_not_called(loaded_store):
    seen = []
    remove = loaded_store.add_listener(lambda s: seen.append(s.version))
    remove()
    remove()
    loaded_store.set_processing(True)
    assert seen == []


def test_reset_clears_everything(loaded_store):
    loaded_store.set_processing(True)
    loaded_store.set_error("x")
    loaded_store.set_connectivity(True)
    loaded_store.reset()
    assert not loaded_store.is_loaded
    assert len(loaded_store.board) == 0
    assert not loaded_store.is_processing
    assert loaded_store.error_message is None
    assert not loaded_store.connected


def test_to_view_is_json_shaped(loaded_store):
    loaded_store.set_connectivity(False, "Missed heartbeat")
    view = loaded_store.to_view()
    assert view["world"]["boardSize"] == 2
    assert view["world"]["teams"][0]["memberIds"] == ["u-me"]
    assert view["board"][0] == {"x": 0, "y": 0, "ownerId": None, "defenseBonus": 0}
    assert view["connectionError"] == "Missed heartbeat"
    assert view["isResetting"] is False
