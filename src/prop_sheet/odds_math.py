"""Shared odds conversion helpers."""

from __future__ import annotations


def american_to_decimal(price: int | None) -> float | None:
    """Convert American odds to decimal odds."""
    if price is None:
        return None
    if price > 0:
        return 1.0 + (price / 100.0)
    if price < 0:
        return 1.0 + (100.0 / abs(price))
    return None


def format_american(price: int | None) -> str:
    if price is None:
        return "-"
    return f"+{price}" if price > 0 else str(price)
