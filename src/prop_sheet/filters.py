"""Filter state and the AND-composed row predicates."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date
from typing import Literal

from prop_sheet.interaction import RowInteractionState
from prop_sheet.markets import SheetKind, default_markets, matchup_quality
from prop_sheet.rows import StatRow
from prop_sheet.time_utils import DateScope, scope_dates

TimeWindow = Literal["last_5_pct", "last_10_pct", "last_20_pct", "season_pct"]
MatchupFilter = Literal["all", "favorable", "neutral", "unfavorable"]

DEFAULT_MIN_HIT_RATE = 0.80
DEFAULT_ODDS_FLOOR = -250
DEFAULT_ODDS_CEILING = 250


@dataclass(frozen=True)
class FilterState:
    """User-controlled filters for one sheet."""

    time_window: TimeWindow = "last_10_pct"
    min_hit_rate: float | None = DEFAULT_MIN_HIT_RATE
    odds_floor: int | None = DEFAULT_ODDS_FLOOR
    odds_ceiling: int | None = DEFAULT_ODDS_CEILING
    markets: frozenset[str] = frozenset()
    matchup: MatchupFilter = "all"
    grades: frozenset[str] = frozenset()
    hide_injured: bool = False
    hide_back_to_back: bool = False
    hide_no_price: bool = True
    trends: frozenset[str] = frozenset()
    date_scope: DateScope = "all"
    as_of: date | None = None


def normalize_filter_state(state: FilterState, *, sheet: SheetKind) -> FilterState:
    """Replace degenerate values with safe defaults."""
    markets = state.markets or default_markets(sheet)
    min_hit_rate = state.min_hit_rate
    if min_hit_rate is not None:
        min_hit_rate = max(0.0, min(min_hit_rate, 1.0))
    floor, ceiling = state.odds_floor, state.odds_ceiling
    if floor is not None and ceiling is not None and floor > ceiling:
        floor, ceiling = ceiling, floor
    return replace(
        state,
        markets=frozenset(markets),
        min_hit_rate=min_hit_rate,
        odds_floor=floor,
        odds_ceiling=ceiling,
        grades=frozenset(state.grades),
        trends=frozenset(trend.lower() for trend in state.trends),
    )


def active_filter_count(state: FilterState, *, sheet: SheetKind) -> int:
    """Number of filters that differ from the sheet defaults."""
    defaults = FilterState()
    return sum(
        [
            bool(state.markets) and frozenset(state.markets) != default_markets(sheet),
            state.min_hit_rate != defaults.min_hit_rate,
            state.odds_floor != defaults.odds_floor or state.odds_ceiling != defaults.odds_ceiling,
            state.matchup != "all",
            bool(state.grades),
            state.hide_injured,
            state.hide_back_to_back,
            bool(state.trends),
            state.date_scope != defaults.date_scope,
        ]
    )


def _market_ok(market: str, state: FilterState) -> bool:
    if not state.markets:
        return True
    return market in state.markets


def _hit_rate_ok(
    row: StatRow, state: FilterState, interaction: RowInteractionState | None
) -> bool:
    if state.min_hit_rate is None or state.min_hit_rate <= 0:
        return True
    if interaction is not None and interaction.is_modified:
        rate = interaction.stats.hit_rate
    else:
        rate = row.window_hit_rate(state.time_window)
    if rate is None:
        return False
    return rate >= state.min_hit_rate


def _odds_range_ok(price: int | None, state: FilterState) -> bool:
    # priceless rows are governed by hide_no_price only
    if price is None:
        return True
    if state.odds_floor is not None and price < state.odds_floor:
        return False
    if state.odds_ceiling is not None and price > state.odds_ceiling:
        return False
    return True


def _matchup_ok(row: StatRow, state: FilterState) -> bool:
    if state.matchup == "all":
        return True
    return matchup_quality(row.matchup_rank) == state.matchup


def _grade_ok(grade: str | None, state: FilterState) -> bool:
    if not state.grades:
        return True
    return grade is not None and grade in state.grades


def _trend_ok(row: StatRow, state: FilterState) -> bool:
    if not state.trends:
        return True
    return bool(row.trend_tags & state.trends)


def _date_ok(row: StatRow, state: FilterState) -> bool:
    if state.date_scope == "all":
        return True
    dates = scope_dates(state.date_scope, as_of=state.as_of)
    return dates is None or row.game_date in dates


def passes(
    row: StatRow,
    state: FilterState,
    interaction: RowInteractionState | None = None,
    *,
    price: int | None = None,
    grade: str | None = None,
) -> bool:
    """True when every active predicate accepts the row."""
    market = interaction.selection.market if interaction is not None else row.market
    if not _market_ok(market, state):
        return False
    if not _hit_rate_ok(row, state, interaction):
        return False
    if not _odds_range_ok(price, state):
        return False
    if state.hide_no_price and price is None:
        return False
    if not _matchup_ok(row, state):
        return False
    if not _grade_ok(grade, state):
        return False
    if state.hide_injured and row.is_injured:
        return False
    if state.hide_back_to_back and row.is_back_to_back:
        return False
    if not _trend_ok(row, state):
        return False
    return _date_ok(row, state)


def apply_filters(
    rows: Iterable[StatRow],
    state: FilterState,
    *,
    prices: Mapping[str, int | None] | None = None,
    grades: Mapping[str, str] | None = None,
    interactions: Mapping[str, RowInteractionState] | None = None,
) -> list[StatRow]:
    """Filter rows without touching any shared state."""
    prices = prices or {}
    grades = grades or {}
    interactions = interactions or {}
    return [
        row
        for row in rows
        if passes(
            row,
            state,
            interactions.get(row.row_key),
            price=prices.get(row.row_key, row.best_price),
            grade=grades.get(row.row_key),
        )
    ]
