"""Immutable StatRow model and tolerant source-row parsing."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from prop_sheet.errors import MalformedRowError
from prop_sheet.markets import STAT_FAMILIES
from prop_sheet.util.parsing import (
    safe_bool,
    safe_float,
    safe_int,
    safe_str,
    str_tuple,
    to_price,
)

logger = logging.getLogger(__name__)

GAME_ENTITY = "game"

TIME_WINDOWS: tuple[str, ...] = ("last_5_pct", "last_10_pct", "last_20_pct", "season_pct")

FAMILY_PAYLOAD_PREFIX: dict[str, str] = {
    "primary": "avg_stat",
    "minutes": "minutes",
    "usage": "usage",
    "shot_volume": "fga",
    "three_volume": "fg3a",
    "rebounds": "reb",
    "playmaking": "passes",
    "potential_assists": "potential_ast",
}

HEALTHY_STATUSES = frozenset({"", "active", "available"})


@dataclass(frozen=True)
class StatTriple:
    """Overall vs conditional average for one stat family."""

    overall: float | None = None
    conditional: float | None = None

    @property
    def boost(self) -> float | None:
        if self.overall is None or self.conditional is None:
            return None
        return self.conditional - self.overall


@dataclass(frozen=True)
class DerivedStats:
    """Derived sample metrics for one (market, line, condition set) selection."""

    attempts: int = 0
    hits: int = 0
    avg_conditional: float | None = None
    avg_overall: float | None = None
    boost_pct: float | None = None

    def __post_init__(self) -> None:
        if self.hits < 0 or self.attempts < self.hits:
            raise MalformedRowError(
                f"derived stats require attempts >= hits >= 0 (hits={self.hits}, "
                f"attempts={self.attempts})"
            )

    @property
    def hit_rate(self) -> float | None:
        if self.attempts <= 0:
            return None
        return self.hits / self.attempts

    @property
    def boost(self) -> float | None:
        return StatTriple(self.avg_overall, self.avg_conditional).boost

    @classmethod
    def from_row(cls, row: StatRow) -> DerivedStats:
        primary = row.stat("primary")
        return cls(
            attempts=row.attempts,
            hits=row.hits,
            avg_conditional=primary.conditional,
            avg_overall=primary.overall,
            boost_pct=row.boost_pct,
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> DerivedStats:
        """Build derived stats from a recompute response (`{"stats": {...}}` or flat)."""
        body = payload.get("stats", payload)
        if not isinstance(body, Mapping):
            raise MalformedRowError("recompute payload stats must be an object")
        attempts = safe_int(_first(body, "games", "attempts")) or 0
        hits = safe_int(body.get("hits"))
        if hits is None:
            rate = safe_float(_first(body, "hit_rate", "hitRate"))
            hits = round(rate * attempts) if rate is not None else 0
        return cls(
            attempts=attempts,
            hits=hits,
            avg_conditional=safe_float(_first(body, "avg_stat", "avgStat", "avg_stat_when_out")),
            avg_overall=safe_float(_first(body, "avg_stat_overall", "avgStatOverall")),
            boost_pct=safe_float(_first(body, "stat_boost_pct", "statBoostPct")),
        )


@dataclass(frozen=True)
class StatRow:
    """One scoreable (player-or-game, market, line) observation."""

    player_id: str | None
    market: str
    line: float
    game_id: str
    event_id: str = ""
    game_date: str = ""
    player_name: str = ""
    team_abbr: str = ""
    storage_id: str | None = None
    selection_id: str | None = None
    hits: int = 0
    attempts: int = 0
    stats: Mapping[str, StatTriple] = field(default_factory=dict)
    window_hit_rates: Mapping[str, float] = field(default_factory=dict)
    matchup_rank: int | None = None
    injury_status: str | None = None
    hit_streak: int = 0
    best_price: int | None = None
    is_back_to_back: bool = False
    trend_tags: frozenset[str] = frozenset()
    default_condition_ids: tuple[str, ...] = ()
    teammate_minutes: float | None = None
    boost_pct: float | None = None

    def __post_init__(self) -> None:
        if not self.market:
            raise MalformedRowError("row is missing a market")
        if self.hits < 0 or self.attempts < self.hits:
            raise MalformedRowError(
                f"row {self.row_key} requires attempts >= hits >= 0 "
                f"(hits={self.hits}, attempts={self.attempts})"
            )

    @property
    def entity_id(self) -> str:
        return self.player_id or GAME_ENTITY

    @property
    def row_key(self) -> str:
        return logical_row_key(self.entity_id, self.market, self.game_id)

    @property
    def hit_rate(self) -> float | None:
        """Hits over attempts; None means no data, never zero."""
        if self.attempts <= 0:
            return None
        return self.hits / self.attempts

    def window_hit_rate(self, window: str) -> float | None:
        rate = self.window_hit_rates.get(window)
        if rate is not None:
            return rate
        return self.hit_rate

    def stat(self, family: str) -> StatTriple:
        return self.stats.get(family, StatTriple())

    @property
    def edge(self) -> float | None:
        """Conditional average minus the line."""
        conditional = self.stat("primary").conditional
        if conditional is None:
            return None
        return conditional - self.line

    @property
    def boost(self) -> float | None:
        return self.stat("primary").boost

    @property
    def is_injured(self) -> bool:
        return safe_str(self.injury_status).lower() not in HEALTHY_STATUSES

    def with_derived(
        self,
        derived: DerivedStats,
        *,
        market: str | None = None,
        line: float | None = None,
    ) -> StatRow:
        """Return a copy carrying recomputed stats (and optionally a new market/line)."""
        stats = dict(self.stats)
        stats["primary"] = StatTriple(derived.avg_overall, derived.avg_conditional)
        return replace(
            self,
            market=market or self.market,
            line=self.line if line is None else line,
            hits=derived.hits,
            attempts=derived.attempts,
            stats=stats,
            boost_pct=derived.boost_pct,
            window_hit_rates={},
        )


def logical_row_key(entity_id: str, market: str, game_id: str) -> str:
    return f"{entity_id}-{market}-{game_id}"


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None and value != "":
            return value
    return None


def _entity(payload: Mapping[str, Any]) -> str | None:
    player_id = safe_str(payload.get("player_id"))
    if player_id:
        return player_id
    # storage rows carry `ent` for every market; only player markets set `player`
    if payload.get("player") and payload.get("ent") is not None:
        return safe_str(payload.get("ent")) or None
    return None


def _stat_triples(payload: Mapping[str, Any]) -> dict[str, StatTriple]:
    triples: dict[str, StatTriple] = {}
    nested = payload.get("stats")
    for family in STAT_FAMILIES:
        if isinstance(nested, Mapping) and isinstance(nested.get(family), Mapping):
            raw = nested[family]
            triple = StatTriple(
                overall=safe_float(raw.get("overall")),
                conditional=safe_float(raw.get("conditional")),
            )
        else:
            prefix = FAMILY_PAYLOAD_PREFIX[family]
            conditional_keys = [f"{prefix}_conditional", f"{prefix}_when_out"]
            if family == "primary":
                conditional_keys.append(prefix)
            triple = StatTriple(
                overall=safe_float(payload.get(f"{prefix}_overall")),
                conditional=safe_float(_first(payload, *conditional_keys)),
            )
        if triple.overall is not None or triple.conditional is not None:
            triples[family] = triple
    return triples


def _window_rates(payload: Mapping[str, Any]) -> dict[str, float]:
    rates: dict[str, float] = {}
    for window in TIME_WINDOWS:
        rate = safe_float(payload.get(window))
        if rate is not None:
            rates[window] = rate
    return rates


def _decode(payload: Any) -> Mapping[str, Any]:
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise MalformedRowError(f"row is not valid JSON: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise MalformedRowError("row must be an object")
    return payload


def parse_stat_row(payload: Any, *, storage_id: str | None = None) -> StatRow:
    """Parse one source payload; raises MalformedRowError on unusable input."""
    body = _decode(payload)
    market = safe_str(_first(body, "market", "mkt"))
    line = safe_float(_first(body, "line", "ln"))
    if line is None:
        raise MalformedRowError(f"row for market={market or '?'} is missing a numeric line")

    attempts = safe_int(_first(body, "attempts", "games", "games_with_teammate_out"))
    hits = safe_int(body.get("hits"))
    if hits is None and attempts:
        rate = safe_float(body.get("hit_rate"))
        hits = round(rate * attempts) if rate is not None else 0

    event_id = safe_str(_first(body, "event_id", "eid"))
    trend = body.get("trend_tags", body.get("trend"))
    dvp_rank = safe_int(_first(body, "matchup_rank", "dvp_rank"))

    return StatRow(
        player_id=_entity(body),
        market=market,
        line=line,
        game_id=safe_str(_first(body, "game_id", "event_id", "eid")),
        event_id=event_id,
        game_date=safe_str(body.get("game_date"))[:10],
        player_name=safe_str(_first(body, "player_name", "player")),
        team_abbr=safe_str(_first(body, "team_abbr", "team")),
        storage_id=storage_id or (safe_str(_first(body, "sid", "storage_id")) or None),
        selection_id=safe_str(_first(body, "odds_selection_id", "selection_id")) or None,
        hits=hits or 0,
        attempts=attempts or 0,
        stats=_stat_triples(body),
        window_hit_rates=_window_rates(body),
        matchup_rank=dvp_rank,
        injury_status=safe_str(body.get("injury_status")) or None,
        hit_streak=max(0, safe_int(body.get("hit_streak")) or 0),
        best_price=to_price(_first(body, "best_price", "over_odds")),
        is_back_to_back=safe_bool(body.get("is_back_to_back")),
        trend_tags=frozenset(tag.lower() for tag in str_tuple(trend)),
        default_condition_ids=str_tuple(
            _first(body, "condition_ids", "teammate_ids", "default_teammate_id")
        ),
        teammate_minutes=safe_float(
            _first(body, "teammate_minutes", "default_teammate_avg_minutes")
        ),
        boost_pct=safe_float(body.get("stat_boost_pct")),
    )


def parse_stat_rows(payloads: Iterable[Any]) -> tuple[list[StatRow], int]:
    """Parse a row set, skipping malformed rows instead of failing the refresh."""
    rows: list[StatRow] = []
    skipped = 0
    for index, payload in enumerate(payloads):
        try:
            rows.append(parse_stat_row(payload))
        except MalformedRowError as exc:
            skipped += 1
            logger.warning("skipping malformed row #%d: %s", index, exc)
    return rows, skipped


def parse_storage_rows(payloads: Mapping[str, Any]) -> tuple[list[StatRow], int]:
    """Parse a storage-id keyed row mapping, attaching each key as the storage id."""
    rows: list[StatRow] = []
    skipped = 0
    for storage_id, payload in payloads.items():
        if payload is None:
            continue
        try:
            rows.append(parse_stat_row(payload, storage_id=str(storage_id)))
        except MalformedRowError as exc:
            skipped += 1
            logger.warning("skipping malformed row sid=%s: %s", storage_id, exc)
    return rows, skipped
