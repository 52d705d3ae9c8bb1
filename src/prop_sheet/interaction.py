"""Per-row interaction state with a narrow stage/commit/rollback/clear API.

The store is the only writer of the row-key -> state map. Every staged change
bumps the row's sequence number; `commit` and `rollback` apply only when the
caller holds the latest number, so superseded recompute results fall through.
The last committed snapshot is held only while a change is staged.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Literal

from prop_sheet.errors import EmptyConditionSetError
from prop_sheet.rows import DerivedStats, StatRow

RowPhase = Literal["default", "recalculating", "committed", "rolled_back"]


@dataclass(frozen=True)
class Selection:
    market: str
    line: float
    condition_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class RowInteractionState:
    key: str
    entity_id: str
    selection: Selection
    stats: DerivedStats
    is_modified: bool = False
    phase: RowPhase = "default"
    seq: int = 0
    last_error: str | None = None

    @property
    def is_recalculating(self) -> bool:
        return self.phase == "recalculating"

    @classmethod
    def from_row(cls, row: StatRow) -> RowInteractionState:
        return cls(
            key=row.row_key,
            entity_id=row.entity_id,
            selection=Selection(
                market=row.market,
                line=row.line,
                condition_ids=row.default_condition_ids,
            ),
            stats=DerivedStats.from_row(row),
        )


@dataclass(frozen=True)
class _CommittedSnapshot:
    selection: Selection
    stats: DerivedStats
    is_modified: bool


class RowInteractionStore:
    """Owned map of row key -> RowInteractionState."""

    def __init__(self) -> None:
        self._states: dict[str, RowInteractionState] = {}
        self._defaults: dict[str, RowInteractionState] = {}
        self._snapshots: dict[str, _CommittedSnapshot] = {}
        # survives sync_rows so a row that leaves and returns never reuses a number
        self._seqs: dict[str, int] = {}

    @property
    def states(self) -> Mapping[str, RowInteractionState]:
        return MappingProxyType(self._states)

    def get(self, key: str) -> RowInteractionState | None:
        return self._states.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._states

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[str]:
        return iter(self._states)

    def modified_keys(self) -> list[str]:
        return [key for key, state in self._states.items() if state.is_modified]

    def sync_rows(self, rows: Iterable[StatRow]) -> None:
        """Reconcile against a fresh row set.

        Modified rows keep their state verbatim; unmodified rows are re-initialized
        from the new defaults; rows absent from the set are dropped.
        """
        states: dict[str, RowInteractionState] = {}
        defaults: dict[str, RowInteractionState] = {}
        for row in rows:
            key = row.row_key
            if key in defaults:
                continue
            default = RowInteractionState.from_row(row)
            defaults[key] = default
            existing = self._states.get(key)
            if existing is not None and existing.is_modified:
                states[key] = existing
            else:
                states[key] = replace(default, seq=self._seqs.get(key, 0))
        self._states = states
        self._defaults = defaults
        self._snapshots = {
            key: snapshot for key, snapshot in self._snapshots.items() if key in states
        }

    def _next_seq(self, key: str) -> int:
        seq = self._seqs.get(key, 0) + 1
        self._seqs[key] = seq
        return seq

    def _require(self, key: str) -> RowInteractionState:
        state = self._states.get(key)
        if state is None:
            raise KeyError(f"unknown row key: {key}")
        return state

    def stage(self, key: str, selection: Selection) -> int:
        """Apply a selection optimistically and return its sequence number."""
        current = self._require(key)
        if current.selection.condition_ids and not selection.condition_ids:
            raise EmptyConditionSetError(f"row {key} must keep at least one condition selected")
        if key not in self._snapshots:
            self._snapshots[key] = _CommittedSnapshot(
                selection=current.selection,
                stats=current.stats,
                is_modified=current.is_modified,
            )
        seq = self._next_seq(key)
        self._states[key] = replace(
            current,
            selection=selection,
            is_modified=True,
            phase="recalculating",
            seq=seq,
            last_error=None,
        )
        return seq

    def is_latest(self, key: str, seq: int) -> bool:
        state = self._states.get(key)
        return state is not None and state.is_recalculating and state.seq == seq

    def commit(self, key: str, seq: int, stats: DerivedStats) -> bool:
        if not self.is_latest(key, seq):
            return False
        current = self._states[key]
        self._snapshots.pop(key, None)
        self._states[key] = replace(current, stats=stats, phase="committed", last_error=None)
        return True

    def rollback(self, key: str, seq: int, error: str) -> bool:
        if not self.is_latest(key, seq):
            return False
        current = self._states[key]
        snapshot = self._snapshots.pop(key, None)
        default = self._defaults.get(key)
        if snapshot is None:
            restored = current
        elif not snapshot.is_modified and default is not None:
            # unmodified rows fall back to the latest source defaults
            restored = replace(
                current,
                selection=default.selection,
                stats=default.stats,
                is_modified=False,
            )
        else:
            restored = replace(
                current,
                selection=snapshot.selection,
                stats=snapshot.stats,
                is_modified=snapshot.is_modified,
            )
        self._states[key] = replace(restored, phase="rolled_back", last_error=error)
        return True

    def clear(self, key: str) -> RowInteractionState:
        """Reset a row to its source defaults; any in-flight result becomes stale."""
        current = self._require(key)
        default = self._defaults.get(key)
        if default is None:
            raise KeyError(f"no defaults recorded for row key: {key}")
        self._snapshots.pop(key, None)
        state = replace(default, seq=self._next_seq(key))
        self._states[key] = state
        return state
