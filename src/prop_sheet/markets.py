"""Market catalog, key-stat lookup table and matchup buckets."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Literal

SheetKind = Literal["hit_rates", "injury_impact"]
MatchupQuality = Literal["favorable", "neutral", "unfavorable"]

STAT_FAMILIES: tuple[str, ...] = (
    "primary",
    "minutes",
    "usage",
    "shot_volume",
    "three_volume",
    "rebounds",
    "playmaking",
    "potential_assists",
)

MARKET_LABELS: dict[str, str] = {
    "player_points": "Points",
    "player_rebounds": "Rebounds",
    "player_assists": "Assists",
    "player_points_rebounds_assists": "Pts + Reb + Ast",
    "player_points_rebounds": "Pts + Reb",
    "player_points_assists": "Pts + Ast",
    "player_rebounds_assists": "Reb + Ast",
    "player_threes_made": "3-Pointers",
    "player_steals": "Steals",
    "player_blocks": "Blocks",
    "player_blocks_steals": "Blk + Stl",
    "player_turnovers": "Turnovers",
}

MARKET_SHORT_LABELS: dict[str, str] = {
    "player_points": "PTS",
    "player_rebounds": "REB",
    "player_assists": "AST",
    "player_points_rebounds_assists": "PRA",
    "player_points_rebounds": "P+R",
    "player_points_assists": "P+A",
    "player_rebounds_assists": "R+A",
    "player_threes_made": "3PM",
    "player_steals": "STL",
    "player_blocks": "BLK",
    "player_blocks_steals": "BLK+STL",
    "player_turnovers": "TO",
}

INJURY_IMPACT_MARKETS: tuple[str, ...] = (
    "player_points",
    "player_rebounds",
    "player_assists",
    "player_points_rebounds_assists",
    "player_points_rebounds",
    "player_points_assists",
    "player_rebounds_assists",
    "player_threes_made",
)

SHEET_DEFAULT_MARKETS: dict[str, frozenset[str]] = {
    "hit_rates": frozenset(MARKET_LABELS),
    "injury_impact": frozenset(INJURY_IMPACT_MARKETS),
}


@dataclass(frozen=True)
class KeyStat:
    """Secondary stat family surfaced next to a market."""

    label: str
    family: str


DEFAULT_KEY_STAT = KeyStat(label="FGA", family="shot_volume")

KEY_STAT_BY_MARKET: MappingProxyType[str, KeyStat] = MappingProxyType(
    {
        "player_points": DEFAULT_KEY_STAT,
        "player_threes_made": KeyStat(label="3PA", family="three_volume"),
        "player_assists": KeyStat(label="PASS", family="playmaking"),
        "player_rebounds": KeyStat(label="REB", family="rebounds"),
        "player_points_assists": KeyStat(label="POT AST", family="potential_assists"),
        "player_rebounds_assists": KeyStat(label="POT AST", family="potential_assists"),
        "player_points_rebounds": KeyStat(label="REB", family="rebounds"),
        "player_points_rebounds_assists": DEFAULT_KEY_STAT,
    }
)


def key_stat_for_market(market: str) -> KeyStat:
    return KEY_STAT_BY_MARKET.get(market, DEFAULT_KEY_STAT)


def market_label(market: str) -> str:
    return MARKET_LABELS.get(market, market)


def market_short_label(market: str) -> str:
    return MARKET_SHORT_LABELS.get(market, market)


def default_markets(sheet: SheetKind) -> frozenset[str]:
    try:
        return SHEET_DEFAULT_MARKETS[sheet]
    except KeyError as exc:
        raise ValueError(f"unknown sheet: {sheet}") from exc


def matchup_quality(rank: int | None) -> MatchupQuality | None:
    """Bucket a defense-vs-position rank (1 = toughest, 30 = easiest) into terciles."""
    if rank is None or rank < 1:
        return None
    if rank >= 21:
        return "favorable"
    if rank >= 11:
        return "neutral"
    return "unfavorable"
