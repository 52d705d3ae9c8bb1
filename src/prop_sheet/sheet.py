"""Cheat-sheet session: row source -> interaction store -> filter -> score -> sort."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from prop_sheet.filters import FilterState, active_filter_count, normalize_filter_state
from prop_sheet.interaction import RowInteractionStore
from prop_sheet.markets import SheetKind
from prop_sheet.prices import PriceLookup
from prop_sheet.recompute import Recompute, RecomputeCoordinator
from prop_sheet.rows import DerivedStats, StatRow, parse_stat_rows
from prop_sheet.scoring import ScoringProfile, profile_for_sheet
from prop_sheet.sorting import PinSet, RankedRow, SortKey, SortState, order_rows
from prop_sheet.sources import RowStore

logger = logging.getLogger(__name__)


class RowSource(Protocol):
    async def fetch_rows(self) -> Sequence[Any]: ...


class SnapshotSheetSource:
    """Adapts a row store to the async row-source interface for one sheet."""

    def __init__(self, store: RowStore, sport: str, sheet: SheetKind) -> None:
        self.store = store
        self.sport = sport
        self.sheet = sheet

    async def fetch_rows(self) -> Sequence[Any]:
        return await asyncio.to_thread(self.store.load_sheet_rows, self.sport, self.sheet)


class StatsBackend(Protocol):
    def recompute_stats(
        self,
        sport: str,
        entity_id: str,
        condition_ids: tuple[str, ...],
        market: str,
        line: float,
    ) -> DerivedStats: ...


class BackendRecompute:
    """Runs a blocking recompute backend off the event loop for one sport."""

    def __init__(self, backend: StatsBackend, sport: str) -> None:
        self.backend = backend
        self.sport = sport

    async def __call__(
        self,
        entity_id: str,
        condition_ids: tuple[str, ...],
        market: str,
        line: float,
    ) -> DerivedStats:
        return await asyncio.to_thread(
            self.backend.recompute_stats, self.sport, entity_id, condition_ids, market, line
        )


@dataclass(frozen=True)
class RefreshSummary:
    rows: int
    skipped: int
    modified_kept: int


class CheatSheet:
    def __init__(
        self,
        source: RowSource,
        *,
        sheet: SheetKind,
        recompute: Recompute | None = None,
        price_lookup: PriceLookup | None = None,
        filters: FilterState | None = None,
        sort: SortState | None = None,
    ) -> None:
        self.source = source
        self.sheet = sheet
        self.profile: ScoringProfile = profile_for_sheet(sheet)
        self.price_lookup = price_lookup
        self.store = RowInteractionStore()
        self.pins = PinSet()
        self.sort = sort or SortState()
        self.filters = normalize_filter_state(filters or FilterState(), sheet=sheet)
        self._rows: list[StatRow] = []
        self._coordinator = (
            RecomputeCoordinator(self.store, recompute) if recompute is not None else None
        )

    @property
    def rows(self) -> list[StatRow]:
        return list(self._rows)

    @property
    def coordinator(self) -> RecomputeCoordinator:
        if self._coordinator is None:
            raise RuntimeError(f"sheet {self.sheet} has no recompute operation configured")
        return self._coordinator

    async def refresh(self) -> RefreshSummary:
        """Replace the row set wholesale; RowSourceError propagates to the caller."""
        payloads = await self.source.fetch_rows()
        rows, skipped = parse_stat_rows(payloads)
        self.store.sync_rows(rows)
        self._rows = rows
        for key in list(self.pins):
            if key not in self.store:
                self.pins.unpin(key)
        summary = RefreshSummary(
            rows=len(rows),
            skipped=skipped,
            modified_kept=len(self.store.modified_keys()),
        )
        logger.info(
            "refreshed %s sheet rows=%d skipped=%d modified_kept=%d",
            self.sheet,
            summary.rows,
            summary.skipped,
            summary.modified_kept,
        )
        return summary

    def set_filters(self, state: FilterState) -> FilterState:
        self.filters = normalize_filter_state(state, sheet=self.sheet)
        return self.filters

    @property
    def active_filters(self) -> int:
        return active_filter_count(self.filters, sheet=self.sheet)

    def toggle_sort(self, key: SortKey) -> SortState:
        self.sort = self.sort.toggle(key)
        return self.sort

    def open_editor(self, key: str) -> None:
        if key not in self.store:
            raise KeyError(f"unknown row key: {key}")
        self.pins.pin(key)

    def close_editor(self, key: str) -> None:
        self.pins.unpin(key)

    def view(self) -> list[RankedRow]:
        return order_rows(
            self._rows,
            self.filters,
            self.store.states,
            self.pins,
            self.sort.key,
            self.sort.direction,
            profile=self.profile,
            price_lookup=self.price_lookup,
        )
