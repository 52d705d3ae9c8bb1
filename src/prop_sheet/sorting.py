"""Stable sort controller: pinned rows, modified rows, then everything else."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Literal

from prop_sheet.filters import FilterState, passes
from prop_sheet.interaction import RowInteractionState
from prop_sheet.odds_math import american_to_decimal
from prop_sheet.prices import PriceLookup, resolve_price
from prop_sheet.rows import StatRow
from prop_sheet.scoring import ConfidenceScore, ScoringContext, ScoringProfile, score

SortKey = Literal[
    "confidence",
    "hit_rate",
    "boost",
    "games",
    "price",
    "line",
    "avg_stat",
    "matchup",
    "player",
]
SortDirection = Literal["asc", "desc"]
RowBucket = Literal["pinned", "modified", "normal"]

LEXICAL_SORT_KEYS: frozenset[str] = frozenset({"player"})


def default_direction(key: SortKey) -> SortDirection:
    return "asc" if key in LEXICAL_SORT_KEYS else "desc"


@dataclass(frozen=True)
class SortState:
    key: SortKey = "hit_rate"
    direction: SortDirection = "desc"

    def toggle(self, key: SortKey) -> SortState:
        """Flip direction for the active key; a new key starts at its default."""
        if key == self.key:
            return SortState(key=key, direction="asc" if self.direction == "desc" else "desc")
        return SortState(key=key, direction=default_direction(key))


class PinSet:
    """Ordered set of row keys with an open editor; insertion order is render order."""

    def __init__(self, keys: Iterable[str] = ()) -> None:
        self._keys: dict[str, None] = dict.fromkeys(keys)

    def pin(self, key: str) -> None:
        self._keys.setdefault(key, None)

    def unpin(self, key: str) -> None:
        self._keys.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)


@dataclass(frozen=True)
class RankedRow:
    row: StatRow
    effective_row: StatRow
    state: RowInteractionState | None
    score: ConfidenceScore
    price: int | None
    bucket: RowBucket

    @property
    def key(self) -> str:
        return self.row.row_key


SortValue = float | str | None


def _player_value(item: RankedRow, window: str) -> SortValue:
    name = item.row.player_name.strip().lower()
    return name or None


def _hit_rate_value(item: RankedRow, window: str) -> SortValue:
    return item.effective_row.window_hit_rate(window)


def _games_value(item: RankedRow, window: str) -> SortValue:
    return float(item.effective_row.attempts)


def _matchup_value(item: RankedRow, window: str) -> SortValue:
    rank = item.row.matchup_rank
    return float(rank) if rank is not None else None


SORT_VALUES: Mapping[str, Callable[[RankedRow, str], SortValue]] = {
    "confidence": lambda item, window: item.score.value,
    "hit_rate": _hit_rate_value,
    "boost": lambda item, window: item.effective_row.boost,
    "games": _games_value,
    "price": lambda item, window: american_to_decimal(item.price),
    "line": lambda item, window: item.effective_row.line,
    "avg_stat": lambda item, window: item.effective_row.stat("primary").conditional,
    "matchup": _matchup_value,
    "player": _player_value,
}


def effective_row(row: StatRow, state: RowInteractionState | None) -> StatRow:
    """Row as currently selected: derived stats replace the source sample once modified."""
    if state is None or not state.is_modified:
        return row
    return row.with_derived(
        state.stats,
        market=state.selection.market,
        line=state.selection.line,
    )


def _sort_bucket(
    items: list[RankedRow],
    key: SortKey,
    direction: SortDirection,
    *,
    window: str,
    sink_priceless: bool,
) -> list[RankedRow]:
    value_for = SORT_VALUES[key]
    present: list[tuple[SortValue, RankedRow]] = []
    missing: list[RankedRow] = []
    for item in items:
        value = value_for(item, window)
        if value is None:
            missing.append(item)
        else:
            present.append((value, item))
    # sorted() stays stable with reverse=True, so ties keep source order
    ordered = [
        item
        for _, item in sorted(present, key=lambda pair: pair[0], reverse=direction == "desc")
    ]
    ordered.extend(missing)
    if sink_priceless:
        ordered = [item for item in ordered if item.price is not None] + [
            item for item in ordered if item.price is None
        ]
    return ordered


def order_rows(
    rows: Iterable[StatRow],
    filter_state: FilterState,
    interaction_states: Mapping[str, RowInteractionState],
    pin_set: PinSet,
    sort_key: SortKey,
    sort_dir: SortDirection,
    *,
    profile: ScoringProfile,
    price_lookup: PriceLookup | None = None,
) -> list[RankedRow]:
    """Score, filter, partition and sort rows into render order."""
    pinned: dict[str, RankedRow] = {}
    modified: list[RankedRow] = []
    normal: list[RankedRow] = []
    seen: set[str] = set()
    for row in rows:
        key = row.row_key
        if key in seen:
            continue
        seen.add(key)
        state = interaction_states.get(key)
        current = effective_row(row, state)
        price = resolve_price(row, price_lookup)
        confidence = score(
            current,
            profile,
            context=ScoringContext(price=price, time_window=filter_state.time_window),
        )
        if not passes(row, filter_state, state, price=price, grade=confidence.grade):
            continue
        if key in pin_set:
            bucket: RowBucket = "pinned"
        elif state is not None and state.is_modified:
            bucket = "modified"
        else:
            bucket = "normal"
        item = RankedRow(
            row=row,
            effective_row=current,
            state=state,
            score=confidence,
            price=price,
            bucket=bucket,
        )
        if bucket == "pinned":
            pinned[key] = item
        elif bucket == "modified":
            modified.append(item)
        else:
            normal.append(item)

    sink_priceless = not filter_state.hide_no_price
    window = filter_state.time_window
    ordered = [pinned[key] for key in pin_set if key in pinned]
    ordered.extend(
        _sort_bucket(modified, sort_key, sort_dir, window=window, sink_priceless=sink_priceless)
    )
    ordered.extend(
        _sort_bucket(normal, sort_key, sort_dir, window=window, sink_priceless=sink_priceless)
    )
    return ordered
