"""Best-available price lookup keyed by odds selection id."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from prop_sheet.rows import StatRow
from prop_sheet.util.parsing import to_price


class PriceLookup(Protocol):
    def best_price(self, selection_id: str) -> int | None: ...


@dataclass(frozen=True)
class BestQuote:
    price: int
    book: str = ""


@dataclass(frozen=True)
class SelectionOdds:
    best_over: BestQuote | None = None
    best_under: BestQuote | None = None

    @property
    def has_price(self) -> bool:
        return self.best_over is not None or self.best_under is not None


def _quote(value: Any) -> BestQuote | None:
    if not isinstance(value, Mapping):
        return None
    price = to_price(value.get("price"))
    if price is None:
        return None
    return BestQuote(price=price, book=str(value.get("book", "") or ""))


@dataclass(frozen=True)
class PriceBook:
    """In-memory snapshot of best over/under quotes per selection id."""

    selections: Mapping[str, SelectionOdds] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> PriceBook:
        selections: dict[str, SelectionOdds] = {}
        for selection_id, odds in payload.items():
            if not isinstance(odds, Mapping):
                continue
            selections[str(selection_id)] = SelectionOdds(
                best_over=_quote(odds.get("best_over")),
                best_under=_quote(odds.get("best_under")),
            )
        return cls(selections=selections)

    def best_price(self, selection_id: str) -> int | None:
        odds = self.selections.get(selection_id)
        if odds is None or odds.best_over is None:
            return None
        return odds.best_over.price


def resolve_price(row: StatRow, lookup: PriceLookup | None) -> int | None:
    """Live price when a lookup is wired, else the price carried on the row."""
    if lookup is None:
        return row.best_price
    if not row.selection_id:
        return None
    return lookup.best_price(row.selection_id)
