"""Eastern-time date helpers for sheet date scopes."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from typing import Literal
from zoneinfo import ZoneInfo

ET_ZONE = ZoneInfo("America/New_York")

DateScope = Literal["today", "tomorrow", "all"]

# Most NBA slates have tipped off by 8pm ET.
LATE_SLATE_HOUR_ET = 20


def utc_now() -> datetime:
    """Return current UTC time with second precision."""
    return datetime.now(UTC).replace(microsecond=0)


def et_now(now: datetime | None = None) -> datetime:
    current = now or utc_now()
    if current.tzinfo is None:
        current = current.replace(tzinfo=UTC)
    return current.astimezone(ET_ZONE)


def et_today(now: datetime | None = None) -> date:
    """Return the current calendar date in the league's schedule timezone."""
    return et_now(now).date()


def smart_default_date_scope(now: datetime | None = None) -> DateScope:
    """Default to tomorrow's slate once today's games have likely started."""
    return "tomorrow" if et_now(now).hour >= LATE_SLATE_HOUR_ET else "today"


def scope_dates(scope: DateScope, *, as_of: date | None = None) -> frozenset[str] | None:
    """Resolve a date scope to ISO dates; None means every date is in scope."""
    if scope == "all":
        return None
    base = as_of or et_today()
    if scope == "tomorrow":
        base = base + timedelta(days=1)
    return frozenset({base.isoformat()})
