"""Confidence scoring: one parameterized scorer over profile data.

A profile is a tuple of factors (each with a fixed share of 100 points) plus
the grade bands used to letter the composite. The hit-rate sheet and the
injury-impact sheet use different factors and different cut points for the
same letters; both stay data so call sites never branch on the profile.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from prop_sheet.markets import SheetKind, matchup_quality
from prop_sheet.odds_math import american_to_decimal
from prop_sheet.rows import StatRow

Grade = str
GRADES: tuple[Grade, ...] = ("A+", "A", "B+", "B", "C")

_UNSET: Any = object()


@dataclass(frozen=True)
class ScoringContext:
    """Inputs resolved outside the row (live price, selected time window)."""

    price: int | None = _UNSET
    time_window: str | None = None

    def resolve_price(self, row: StatRow) -> int | None:
        if self.price is _UNSET:
            return row.best_price
        return self.price


FactorFn = Callable[[StatRow, ScoringContext], float | None]


@dataclass(frozen=True)
class FactorSpec:
    name: str
    max_points: float
    compute: FactorFn


@dataclass(frozen=True)
class GradeBand:
    grade: Grade
    min_score: float


@dataclass(frozen=True)
class ScoringProfile:
    """Named factor set with grade thresholds."""

    name: str
    factors: tuple[FactorSpec, ...]
    grade_bands: tuple[GradeBand, ...]
    fallback_grade: Grade = "C"

    def __post_init__(self) -> None:
        total = sum(factor.max_points for factor in self.factors)
        if not math.isclose(total, 100.0):
            raise ValueError(f"profile {self.name} factor points sum to {total}, expected 100")
        cut_points = [band.min_score for band in self.grade_bands]
        if cut_points != sorted(cut_points, reverse=True):
            raise ValueError(f"profile {self.name} grade bands must be descending")

    @property
    def thresholds(self) -> dict[Grade, float]:
        return {band.grade: band.min_score for band in self.grade_bands}


@dataclass(frozen=True)
class FactorScore:
    name: str
    max_points: float
    points: float

    @property
    def weight(self) -> float:
        return self.max_points / 100.0


@dataclass(frozen=True)
class ConfidenceScore:
    value: float
    grade: Grade
    factors: tuple[FactorScore, ...]
    profile: str

    def factor(self, name: str) -> FactorScore:
        for item in self.factors:
            if item.name == name:
                return item
        raise KeyError(name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "profile": self.profile,
            "value": round(self.value, 2),
            "grade": self.grade,
            "factors": [
                {
                    "name": item.name,
                    "weight": item.weight,
                    "max_points": item.max_points,
                    "points": round(item.points, 2),
                }
                for item in self.factors
            ],
        }


def _clamp(value: float | None, upper: float) -> float:
    if value is None or not math.isfinite(value):
        return 0.0
    return max(0.0, min(value, upper))


def grade_for(value: float, bands: tuple[GradeBand, ...], *, fallback: Grade = "C") -> Grade:
    for band in bands:
        if value >= band.min_score:
            return band.grade
    return fallback


def score(
    row: StatRow,
    profile: ScoringProfile,
    *,
    context: ScoringContext | None = None,
) -> ConfidenceScore:
    """Score one row; never raises for missing inputs."""
    ctx = context or ScoringContext()
    factors: list[FactorScore] = []
    for spec in profile.factors:
        points = _clamp(spec.compute(row, ctx), spec.max_points)
        factors.append(FactorScore(name=spec.name, max_points=spec.max_points, points=points))
    value = _clamp(sum(item.points for item in factors), 100.0)
    return ConfidenceScore(
        value=value,
        grade=grade_for(value, profile.grade_bands, fallback=profile.fallback_grade),
        factors=tuple(factors),
        profile=profile.name,
    )


# Hit-rate sheet factors.


def _window_rate(row: StatRow, ctx: ScoringContext) -> float | None:
    if ctx.time_window:
        return row.window_hit_rate(ctx.time_window)
    return row.hit_rate


def _hit_rate_points(row: StatRow, ctx: ScoringContext) -> float | None:
    rate = _window_rate(row, ctx)
    if rate is None:
        return None
    return min(rate, 1.0) * 40.0


def _edge_points(row: StatRow, ctx: ScoringContext) -> float | None:
    edge = row.edge
    if edge is None:
        return None
    return edge * 4.0


MATCHUP_POINTS = {"favorable": 20.0, "neutral": 12.0, "unfavorable": 4.0}


def _matchup_points(row: StatRow, ctx: ScoringContext) -> float | None:
    bucket = matchup_quality(row.matchup_rank)
    if bucket is None:
        return None
    return MATCHUP_POINTS[bucket]


def _streak_points(row: StatRow, ctx: ScoringContext) -> float | None:
    return row.hit_streak * 2.0


# (min decimal odds, points); +100 or better scores highest.
ODDS_VALUE_BANDS: tuple[tuple[float, float], ...] = (
    (2.0, 10.0),
    (1.83, 8.0),
    (1.67, 6.0),
    (1.5, 4.0),
)


def _odds_points(row: StatRow, ctx: ScoringContext) -> float | None:
    decimal_odds = american_to_decimal(ctx.resolve_price(row))
    if decimal_odds is None:
        return None
    for floor, points in ODDS_VALUE_BANDS:
        if decimal_odds >= floor:
            return points
    return 2.0


# Injury-impact sheet factors.


def _injury_hit_rate_points(row: StatRow, ctx: ScoringContext) -> float | None:
    rate = row.hit_rate
    if rate is None:
        return None
    return rate * 35.0


def _sample_size_points(row: StatRow, ctx: ScoringContext) -> float | None:
    # Games beyond 10 add no more confidence.
    return min(row.attempts, 10) / 10.0 * 25.0


def _stat_boost_points(row: StatRow, ctx: ScoringContext) -> float | None:
    boost = row.boost
    if boost is None or boost <= 0:
        return 0.0
    return min(boost * 4.0, 20.0)


def _teammate_impact_points(row: StatRow, ctx: ScoringContext) -> float | None:
    minutes = row.teammate_minutes
    if minutes is None:
        return None
    return min(minutes, 35.0) / 35.0 * 20.0


HIT_RATE_PROFILE = ScoringProfile(
    name="hit_rate",
    factors=(
        FactorSpec("hit_rate", 40.0, _hit_rate_points),
        FactorSpec("edge", 20.0, _edge_points),
        FactorSpec("matchup", 20.0, _matchup_points),
        FactorSpec("hit_streak", 10.0, _streak_points),
        FactorSpec("odds_value", 10.0, _odds_points),
    ),
    grade_bands=(
        GradeBand("A+", 90.0),
        GradeBand("A", 80.0),
        GradeBand("B+", 70.0),
        GradeBand("B", 60.0),
    ),
)

INJURY_IMPACT_PROFILE = ScoringProfile(
    name="injury_impact",
    factors=(
        FactorSpec("hit_rate", 35.0, _injury_hit_rate_points),
        FactorSpec("sample_size", 25.0, _sample_size_points),
        FactorSpec("stat_boost", 20.0, _stat_boost_points),
        FactorSpec("teammate_impact", 20.0, _teammate_impact_points),
    ),
    grade_bands=(
        GradeBand("A+", 85.0),
        GradeBand("A", 75.0),
        GradeBand("B+", 65.0),
        GradeBand("B", 55.0),
    ),
)

SHEET_PROFILES: dict[str, ScoringProfile] = {
    "hit_rates": HIT_RATE_PROFILE,
    "injury_impact": INJURY_IMPACT_PROFILE,
}


def profile_for_sheet(sheet: SheetKind) -> ScoringProfile:
    try:
        return SHEET_PROFILES[sheet]
    except KeyError as exc:
        raise ValueError(f"unknown sheet: {sheet}") from exc
