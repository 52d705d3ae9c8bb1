from __future__ import annotations

from dataclasses import replace

import pytest

from prop_sheet.errors import EmptyConditionSetError
from prop_sheet.interaction import RowInteractionStore, Selection
from prop_sheet.rows import DerivedStats, StatRow


def _row(**overrides: object) -> StatRow:
    fields: dict[str, object] = {
        "player_id": "p1",
        "market": "player_points",
        "line": 24.5,
        "game_id": "g1",
        "hits": 6,
        "attempts": 10,
        "default_condition_ids": ("t1",),
    }
    fields.update(overrides)
    return StatRow(**fields)  # type: ignore[arg-type]


KEY = "p1-player_points-g1"


def _store(*rows: StatRow) -> RowInteractionStore:
    store = RowInteractionStore()
    store.sync_rows(rows or (_row(),))
    return store


def test_sync_initializes_default_state() -> None:
    store = _store()
    state = store.get(KEY)

    assert state is not None
    assert state.selection == Selection(market="player_points", line=24.5, condition_ids=("t1",))
    assert state.stats.hit_rate == pytest.approx(0.6)
    assert state.is_modified is False
    assert state.phase == "default"
    assert len(store) == 1
    assert KEY in store


def test_stage_then_commit() -> None:
    store = _store()
    seq = store.stage(KEY, Selection("player_points", 26.5, ("t1",)))

    staged = store.get(KEY)
    assert staged is not None
    assert staged.is_recalculating
    assert staged.is_modified
    assert staged.selection.line == 26.5

    assert store.commit(KEY, seq, DerivedStats(attempts=10, hits=3)) is True
    committed = store.get(KEY)
    assert committed is not None
    assert committed.phase == "committed"
    assert committed.stats.hits == 3
    assert store.modified_keys() == [KEY]


def test_only_latest_sequence_commits() -> None:
    store = _store()
    first = store.stage(KEY, Selection("player_points", 25.5, ("t1",)))
    second = store.stage(KEY, Selection("player_points", 26.5, ("t1",)))

    assert store.commit(KEY, first, DerivedStats(attempts=10, hits=9)) is False
    assert store.rollback(KEY, first, "late failure") is False
    assert store.commit(KEY, second, DerivedStats(attempts=10, hits=2)) is True
    assert store.commit(KEY, second, DerivedStats(attempts=10, hits=1)) is False

    state = store.get(KEY)
    assert state is not None
    assert state.selection.line == 26.5
    assert state.stats.hits == 2


def test_rollback_restores_defaults_when_never_committed() -> None:
    store = _store()
    first = store.stage(KEY, Selection("player_points", 25.5, ("t1",)))
    second = store.stage(KEY, Selection("player_points", 26.5, ("t1",)))
    assert first < second

    assert store.rollback(KEY, second, "timeout") is True
    state = store.get(KEY)
    assert state is not None
    assert state.selection.line == 24.5
    assert state.stats.hits == 6
    assert state.is_modified is False
    assert state.phase == "rolled_back"
    assert state.last_error == "timeout"


def test_rollback_restores_last_committed_selection() -> None:
    store = _store()
    seq = store.stage(KEY, Selection("player_points", 25.5, ("t1",)))
    store.commit(KEY, seq, DerivedStats(attempts=10, hits=4))

    seq = store.stage(KEY, Selection("player_points", 28.5, ("t1", "t2")))
    assert store.rollback(KEY, seq, "boom") is True

    state = store.get(KEY)
    assert state is not None
    assert state.selection == Selection("player_points", 25.5, ("t1",))
    assert state.stats.hits == 4
    assert state.is_modified is True


def test_stage_rejects_emptying_the_condition_set() -> None:
    store = _store()
    with pytest.raises(EmptyConditionSetError):
        store.stage(KEY, Selection("player_points", 24.5, ()))
    state = store.get(KEY)
    assert state is not None
    assert state.is_modified is False
    assert state.seq == 0


def test_rows_without_conditions_can_change_market() -> None:
    store = _store(_row(default_condition_ids=()))
    seq = store.stage(KEY, Selection("player_rebounds", 8.5))
    assert seq == 1


def test_sync_keeps_modified_rows_verbatim() -> None:
    store = _store(_row(), _row(player_id="p2"))
    seq = store.stage(KEY, Selection("player_points", 26.5, ("t1",)))
    store.commit(KEY, seq, DerivedStats(attempts=10, hits=3))
    before = store.get(KEY)

    store.sync_rows([_row(hits=10, line=30.5), _row(player_id="p3")])

    assert store.get(KEY) == before
    assert store.get("p2-player_points-g1") is None
    fresh = store.get("p3-player_points-g1")
    assert fresh is not None
    assert fresh.is_modified is False


def test_sync_reinitializes_unmodified_rows_from_new_defaults() -> None:
    store = _store()
    store.sync_rows([_row(hits=8, line=25.5)])
    state = store.get(KEY)
    assert state is not None
    assert state.selection.line == 25.5
    assert state.stats.hits == 8


def test_clear_restores_defaults_and_invalidates_in_flight_results() -> None:
    store = _store()
    seq = store.stage(KEY, Selection("player_points", 26.5, ("t1",)))

    cleared = store.clear(KEY)
    assert cleared.is_modified is False
    assert cleared.selection.line == 24.5
    assert cleared.seq == seq + 1
    assert store.commit(KEY, seq, DerivedStats(attempts=10, hits=1)) is False


def test_states_view_is_read_only() -> None:
    store = _store()
    with pytest.raises(TypeError):
        store.states[KEY] = replace(store.states[KEY], is_modified=True)  # type: ignore[index]


def test_unknown_keys_raise() -> None:
    store = _store()
    with pytest.raises(KeyError):
        store.stage("missing", Selection("player_points", 1.5))
    with pytest.raises(KeyError):
        store.clear("missing")


def test_sequence_numbers_keep_increasing_after_a_row_leaves_and_returns() -> None:
    store = _store()
    old_seq = store.stage(KEY, Selection("player_points", 25.5, ("t1",)))

    store.sync_rows([])
    assert store.get(KEY) is None
    store.sync_rows([_row()])
    new_seq = store.stage(KEY, Selection("player_points", 30.5, ("t1",)))

    assert new_seq > old_seq
    assert store.commit(KEY, old_seq, DerivedStats(attempts=10, hits=9)) is False
    assert store.commit(KEY, new_seq, DerivedStats(attempts=10, hits=1)) is True
    state = store.get(KEY)
    assert state is not None
    assert state.selection.line == 30.5
    assert state.stats.hits == 1


def test_is_latest_tracks_phase_and_sequence() -> None:
    store = _store()
    assert store.is_latest(KEY, 0) is False

    seq = store.stage(KEY, Selection("player_points", 25.5, ("t1",)))
    state = store.get(KEY)
    assert state is not None and state.phase == "recalculating"
    assert store.is_latest(KEY, seq) is True
    assert store.is_latest(KEY, seq - 1) is False
    assert store.is_latest("missing", seq) is False

    store.rollback(KEY, seq, "boom")
    state = store.get(KEY)
    assert state is not None and state.phase == "rolled_back"
    assert store.is_latest(KEY, seq) is False


def test_rollback_after_refresh_restores_the_new_defaults() -> None:
    store = _store()
    seq = store.stage(KEY, Selection("player_points", 25.5, ("t1",)))

    store.sync_rows([_row(hits=8)])
    assert store.rollback(KEY, seq, "boom") is True

    state = store.get(KEY)
    assert state is not None
    assert state.is_modified is False
    assert state.selection.line == 24.5
    assert state.stats.hits == 8
