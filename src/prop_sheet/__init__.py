"""Opportunity scoring and stable ranking engine for prop cheat sheets."""

from prop_sheet.audit import audit_duplicate_entities, audit_duplicate_rows
from prop_sheet.filters import FilterState, apply_filters, passes
from prop_sheet.rows import StatRow, parse_stat_row, parse_stat_rows
from prop_sheet.scoring import (
    HIT_RATE_PROFILE,
    INJURY_IMPACT_PROFILE,
    ConfidenceScore,
    ScoringProfile,
    score,
)
from prop_sheet.sorting import PinSet, SortState, order_rows

__all__ = [
    "ConfidenceScore",
    "FilterState",
    "HIT_RATE_PROFILE",
    "INJURY_IMPACT_PROFILE",
    "PinSet",
    "ScoringProfile",
    "SortState",
    "StatRow",
    "apply_filters",
    "audit_duplicate_entities",
    "audit_duplicate_rows",
    "order_rows",
    "parse_stat_row",
    "parse_stat_rows",
    "passes",
    "score",
]
