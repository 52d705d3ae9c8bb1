from __future__ import annotations

from dataclasses import replace
from datetime import date

import pytest

from prop_sheet.filters import (
    FilterState,
    active_filter_count,
    apply_filters,
    normalize_filter_state,
    passes,
)
from prop_sheet.interaction import RowInteractionState
from prop_sheet.markets import default_markets
from prop_sheet.rows import DerivedStats, StatRow


def _row(**overrides: object) -> StatRow:
    fields: dict[str, object] = {
        "player_id": "p1",
        "market": "player_points",
        "line": 24.5,
        "game_id": "g1",
        "game_date": "2026-01-10",
        "hits": 9,
        "attempts": 10,
        "matchup_rank": 25,
        "best_price": -115,
    }
    fields.update(overrides)
    return StatRow(**fields)  # type: ignore[arg-type]


def test_default_state_accepts_strong_priced_row() -> None:
    row = _row()
    assert passes(row, FilterState(), price=row.best_price)


def test_priceless_rows_follow_hide_no_price_only() -> None:
    row = _row(best_price=None)
    assert not passes(row, FilterState(), price=None)
    assert passes(row, FilterState(hide_no_price=False), price=None)


@pytest.mark.parametrize(("price", "expected"), [(-250, True), (-300, False), (300, False)])
def test_odds_range(price: int, expected: bool) -> None:
    assert passes(_row(), FilterState(), price=price) is expected


def test_hit_rate_uses_selected_time_window() -> None:
    row = _row(window_hit_rates={"last_10_pct": 0.7, "season_pct": 0.85})
    assert not passes(row, FilterState(), price=-115)
    assert passes(row, FilterState(time_window="season_pct"), price=-115)
    assert passes(row, FilterState(min_hit_rate=None), price=-115)


def test_modified_rows_filter_on_derived_rate_and_selected_market() -> None:
    row = _row(window_hit_rates={"last_10_pct": 0.5})
    state = RowInteractionState.from_row(row)
    modified = replace(
        state,
        selection=replace(state.selection, market="player_rebounds"),
        stats=DerivedStats(attempts=10, hits=9),
        is_modified=True,
    )

    assert not passes(row, FilterState(), state, price=-115)
    assert passes(row, FilterState(), modified, price=-115)
    assert not passes(
        row, FilterState(markets=frozenset({"player_points"})), modified, price=-115
    )


def test_grade_matchup_and_flags() -> None:
    row = _row(injury_status="Out", is_back_to_back=True, trend_tags=frozenset({"hot"}))
    state = FilterState(min_hit_rate=None)

    assert passes(row, replace(state, grades=frozenset({"A"})), price=-115, grade="A")
    assert not passes(row, replace(state, grades=frozenset({"A"})), price=-115, grade="B")
    assert not passes(row, replace(state, grades=frozenset({"A"})), price=-115)
    assert passes(row, replace(state, matchup="favorable"), price=-115)
    assert not passes(row, replace(state, matchup="unfavorable"), price=-115)
    assert not passes(row, replace(state, hide_injured=True), price=-115)
    assert not passes(row, replace(state, hide_back_to_back=True), price=-115)
    assert passes(row, replace(state, trends=frozenset({"hot", "cold"})), price=-115)
    assert not passes(row, replace(state, trends=frozenset({"cold"})), price=-115)


def test_date_scope() -> None:
    row = _row()
    today = FilterState(date_scope="today", as_of=date(2026, 1, 10))
    tomorrow = FilterState(date_scope="tomorrow", as_of=date(2026, 1, 10))
    assert passes(row, today, price=-115)
    assert not passes(row, tomorrow, price=-115)


def test_apply_filters_is_idempotent() -> None:
    rows = [
        _row(game_id="g1"),
        _row(game_id="g2", hits=5),
        _row(game_id="g3", best_price=None),
        _row(game_id="g4", best_price=-400),
        _row(game_id="g5", hits=8),
    ]
    state = FilterState()
    once = apply_filters(rows, state)
    twice = apply_filters(once, state)

    assert [row.game_id for row in once] == ["g1", "g5"]
    assert twice == once


def test_apply_filters_uses_price_and_grade_maps() -> None:
    row = _row(best_price=None)
    state = FilterState(grades=frozenset({"A"}))
    assert apply_filters([row], state) == []
    assert apply_filters(
        [row], state, prices={row.row_key: -110}, grades={row.row_key: "A"}
    ) == [row]


def test_normalize_filter_state() -> None:
    state = FilterState(
        min_hit_rate=1.5,
        odds_floor=200,
        odds_ceiling=-100,
        trends=frozenset({"HOT"}),
    )
    normalized = normalize_filter_state(state, sheet="injury_impact")

    assert normalized.markets == default_markets("injury_impact")
    assert normalized.min_hit_rate == 1.0
    assert (normalized.odds_floor, normalized.odds_ceiling) == (-100, 200)
    assert normalized.trends == frozenset({"hot"})
    assert normalize_filter_state(normalized, sheet="injury_impact") == normalized


def test_active_filter_count() -> None:
    base = normalize_filter_state(FilterState(), sheet="hit_rates")
    assert active_filter_count(base, sheet="hit_rates") == 0
    narrowed = replace(base, hide_injured=True, markets=frozenset({"player_points"}))
    assert active_filter_count(narrowed, sheet="hit_rates") == 2
