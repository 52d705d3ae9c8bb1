"""Optimistic recompute coordinator (stage -> recompute -> commit | rollback)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Literal, Protocol

import httpx

from prop_sheet.errors import PropSheetError
from prop_sheet.interaction import RowInteractionStore, Selection
from prop_sheet.rows import DerivedStats

logger = logging.getLogger(__name__)

OutcomeStatus = Literal["committed", "rolled_back", "stale", "rejected"]

# Failures that roll the row back instead of reaching the caller.
RECOMPUTE_FAILURES: tuple[type[Exception], ...] = (
    PropSheetError,
    ValueError,
    TimeoutError,
    httpx.HTTPError,
)


@dataclass(frozen=True)
class RecomputeFailure:
    """Failure value a recompute transport may return instead of raising."""

    reason: str


class Recompute(Protocol):
    async def __call__(
        self,
        entity_id: str,
        condition_ids: tuple[str, ...],
        market: str,
        line: float,
    ) -> DerivedStats | RecomputeFailure: ...


@dataclass(frozen=True)
class RecomputeOutcome:
    key: str
    seq: int
    status: OutcomeStatus
    error: str | None = None


class RecomputeCoordinator:
    """Drives row selector changes through the external recompute operation."""

    def __init__(self, store: RowInteractionStore, recompute: Recompute) -> None:
        self.store = store
        self._recompute = recompute

    async def select_market(self, key: str, market: str, line: float) -> RecomputeOutcome:
        current = self._current(key)
        return await self._run(key, replace(current, market=market, line=line))

    async def select_line(self, key: str, line: float) -> RecomputeOutcome:
        current = self._current(key)
        return await self._run(key, replace(current, line=line))

    async def toggle_condition(self, key: str, condition_id: str) -> RecomputeOutcome:
        current = self._current(key)
        if condition_id in current.condition_ids:
            ids = tuple(item for item in current.condition_ids if item != condition_id)
        else:
            ids = (*current.condition_ids, condition_id)
        return await self.set_conditions(key, ids)

    async def set_conditions(self, key: str, condition_ids: tuple[str, ...]) -> RecomputeOutcome:
        current = self._current(key)
        if not condition_ids:
            state = self.store.get(key)
            logger.debug("rejected empty condition set for row %s", key)
            return RecomputeOutcome(key=key, seq=state.seq if state else 0, status="rejected")
        return await self._run(key, replace(current, condition_ids=tuple(condition_ids)))

    def reset(self, key: str) -> None:
        self.store.clear(key)

    def _current(self, key: str) -> Selection:
        state = self.store.get(key)
        if state is None:
            raise KeyError(f"unknown row key: {key}")
        return state.selection

    async def _run(self, key: str, selection: Selection) -> RecomputeOutcome:
        seq = self.store.stage(key, selection)
        state = self.store.get(key)
        entity_id = state.entity_id if state is not None else ""
        try:
            result = await self._recompute(
                entity_id,
                selection.condition_ids,
                selection.market,
                selection.line,
            )
        except RECOMPUTE_FAILURES as exc:
            result = RecomputeFailure(reason=str(exc) or exc.__class__.__name__)

        if isinstance(result, RecomputeFailure):
            if self.store.rollback(key, seq, result.reason):
                logger.warning("recompute failed for row %s; rolled back: %s", key, result.reason)
                return RecomputeOutcome(
                    key=key, seq=seq, status="rolled_back", error=result.reason
                )
            logger.debug("discarding stale recompute failure for row %s seq=%d", key, seq)
            return RecomputeOutcome(key=key, seq=seq, status="stale", error=result.reason)

        if self.store.commit(key, seq, result):
            return RecomputeOutcome(key=key, seq=seq, status="committed")
        logger.debug("discarding stale recompute result for row %s seq=%d", key, seq)
        return RecomputeOutcome(key=key, seq=seq, status="stale")
