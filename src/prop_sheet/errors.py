"""Error types for sheet scoring, recompute and audit flows."""

from __future__ import annotations


class PropSheetError(RuntimeError):
    """Base error for prop-sheet operations."""


class MalformedRowError(PropSheetError, ValueError):
    """Raised when a source payload cannot be turned into a StatRow."""


class RowSourceError(PropSheetError):
    """Raised when a whole row-set fetch fails."""


class RecomputeError(PropSheetError):
    """Raised by recompute transports when derived stats cannot be produced."""


class EmptyConditionSetError(PropSheetError, ValueError):
    """Raised when a selection would leave no conditions selected."""


class CLIError(PropSheetError):
    """User-facing CLI error."""
