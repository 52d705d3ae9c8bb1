"""Duplicate-identity audits over storage rows and entity cards.

Storage assigns one identifier per stored row, but the same logical row
(event, entity, market, line) can end up stored under several identifiers.
Every audit here is read-only; duplicates are reported, never repaired.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from prop_sheet.rows import StatRow
from prop_sheet.util.parsing import safe_int, safe_str

logger = logging.getLogger(__name__)


def logical_id(row: StatRow) -> str:
    """`event|entity|market|line`; game-level markets share the `game` entity."""
    event_id = row.event_id or row.game_id
    return f"{event_id}|{row.entity_id}|{row.market}|{row.line:g}"


@dataclass(frozen=True)
class DuplicateGroup:
    logical_id: str
    rows: tuple[StatRow, ...]

    @property
    def identifiers(self) -> tuple[str, ...]:
        return tuple(row.storage_id or "" for row in self.rows)

    @property
    def size(self) -> int:
        return len(self.rows)

    @property
    def market(self) -> str:
        return self.rows[0].market

    def to_dict(self) -> dict[str, Any]:
        first = self.rows[0]
        return {
            "logical_id": self.logical_id,
            "event_id": first.event_id or first.game_id,
            "entity_id": first.entity_id,
            "market": first.market,
            "line": first.line,
            "player_name": first.player_name,
            "team_abbr": first.team_abbr,
            "identifiers": list(self.identifiers),
        }


@dataclass(frozen=True)
class DuplicateAuditReport:
    groups: tuple[DuplicateGroup, ...]
    total_logical_rows: int
    total_identifiers: int
    market: str | None = None

    @property
    def wasted_identifiers(self) -> int:
        return self.total_identifiers - self.total_logical_rows

    @property
    def efficiency(self) -> float:
        if self.total_identifiers <= 0:
            return 1.0
        return self.total_logical_rows / self.total_identifiers

    @property
    def efficiency_pct(self) -> float:
        return round(self.efficiency * 100.0, 1)

    @property
    def avg_identifiers_per_row(self) -> float:
        if self.total_logical_rows <= 0:
            return 0.0
        return self.total_identifiers / self.total_logical_rows

    @property
    def has_duplicates(self) -> bool:
        return bool(self.groups)

    def to_dict(self, *, top_n: int | None = None) -> dict[str, Any]:
        groups = self.groups if top_n is None else self.groups[:top_n]
        return {
            "market": self.market,
            "duplicate_groups": len(self.groups),
            "total_logical_rows": self.total_logical_rows,
            "total_identifiers": self.total_identifiers,
            "wasted_identifiers": self.wasted_identifiers,
            "efficiency_pct": self.efficiency_pct,
            "avg_identifiers_per_row": round(self.avg_identifiers_per_row, 2),
            "groups": [group.to_dict() for group in groups],
        }


def audit_duplicate_rows(
    rows: Iterable[StatRow], *, market: str | None = None
) -> DuplicateAuditReport:
    """Group stored rows by logical identity and report groups with several identifiers."""
    buckets: dict[str, list[StatRow]] = {}
    total = 0
    for row in rows:
        if market and row.market != market:
            continue
        if not row.storage_id:
            logger.warning("row %s has no storage identifier; excluded from audit", row.row_key)
            continue
        total += 1
        buckets.setdefault(logical_id(row), []).append(row)

    duplicates = [
        DuplicateGroup(logical_id=key, rows=tuple(items))
        for key, items in buckets.items()
        if len(items) > 1
    ]
    duplicates.sort(key=lambda group: group.size, reverse=True)
    return DuplicateAuditReport(
        groups=tuple(duplicates),
        total_logical_rows=len(buckets),
        total_identifiers=total,
        market=market,
    )


@dataclass(frozen=True)
class RankedIndexCheck:
    market: str
    group_size: int
    found: tuple[str, ...]

    @property
    def found_count(self) -> int:
        return len(self.found)

    @property
    def visible_duplicates(self) -> bool:
        """More than one identifier of the same logical row would be listed."""
        return self.found_count > 1


def cross_check_ranked_index(group: DuplicateGroup, ranked_ids: Iterable[str]) -> RankedIndexCheck:
    wanted = set(group.identifiers)
    found = tuple(item for item in ranked_ids if item in wanted)
    return RankedIndexCheck(market=group.market, group_size=len(wanted), found=found)


@dataclass(frozen=True)
class EntityCard:
    entity_id: str
    name: str
    team: str = ""
    position: str = ""
    identifier_count: int = 0


def parse_entity_cards(payload: Any) -> list[EntityCard]:
    """Accept `{entity_id: card}` or a list of cards carrying `entity_id`."""
    if isinstance(payload, Mapping):
        items = [(str(key), value) for key, value in payload.items()]
    elif isinstance(payload, list):
        items = [
            (safe_str(value.get("entity_id") or value.get("ent")), value)
            for value in payload
            if isinstance(value, Mapping)
        ]
    else:
        raise ValueError("entity cards must be an object or a list")
    cards: list[EntityCard] = []
    for entity_id, card in items:
        if not entity_id or not isinstance(card, Mapping):
            continue
        cards.append(
            EntityCard(
                entity_id=entity_id,
                name=safe_str(card.get("name")),
                team=safe_str(card.get("team")),
                position=safe_str(card.get("position")),
                identifier_count=safe_int(card.get("sids")) or 0,
            )
        )
    return cards


@dataclass(frozen=True)
class EntityAuditReport:
    groups: tuple[tuple[str, tuple[EntityCard, ...]], ...]
    total_entities: int
    unique_names: int

    @property
    def extra_entities(self) -> int:
        return sum(len(cards) - 1 for _, cards in self.groups)

    @property
    def efficiency(self) -> float:
        if self.total_entities <= 0:
            return 1.0
        return (self.total_entities - self.extra_entities) / self.total_entities

    @property
    def efficiency_pct(self) -> float:
        return round(self.efficiency * 100.0, 1)

    def to_dict(self, *, top_n: int | None = None) -> dict[str, Any]:
        groups = self.groups if top_n is None else self.groups[:top_n]
        return {
            "total_entities": self.total_entities,
            "unique_names": self.unique_names,
            "names_with_multiple_entities": len(self.groups),
            "extra_entities": self.extra_entities,
            "efficiency_pct": self.efficiency_pct,
            "groups": [
                {
                    "name": name,
                    "entities": [
                        {
                            "entity_id": card.entity_id,
                            "team": card.team,
                            "position": card.position,
                            "identifiers": card.identifier_count,
                        }
                        for card in cards
                    ],
                }
                for name, cards in groups
            ],
        }


def audit_duplicate_entities(cards: Iterable[EntityCard]) -> EntityAuditReport:
    """Report display names that resolve to more than one entity id."""
    by_name: dict[str, list[EntityCard]] = {}
    seen: set[str] = set()
    for card in cards:
        if card.entity_id in seen:
            continue
        seen.add(card.entity_id)
        if card.name:
            by_name.setdefault(card.name, []).append(card)
    groups = [(name, tuple(items)) for name, items in by_name.items() if len(items) > 1]
    groups.sort(key=lambda pair: len(pair[1]), reverse=True)
    return EntityAuditReport(
        groups=tuple(groups),
        total_entities=len(seen),
        unique_names=len(by_name),
    )
