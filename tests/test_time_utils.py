from __future__ import annotations

from datetime import UTC, date, datetime

from prop_sheet.time_utils import et_today, scope_dates, smart_default_date_scope


def test_et_today_uses_eastern_calendar_date() -> None:
    assert et_today(datetime(2026, 1, 10, 3, 0, tzinfo=UTC)) == date(2026, 1, 9)
    assert et_today(datetime(2026, 1, 10, 17, 0, tzinfo=UTC)) == date(2026, 1, 10)


def test_smart_default_switches_to_tomorrow_after_eight_pm_et() -> None:
    # 01:30 UTC is 20:30 ET the previous evening.
    assert smart_default_date_scope(datetime(2026, 1, 10, 1, 30, tzinfo=UTC)) == "tomorrow"
    assert smart_default_date_scope(datetime(2026, 1, 10, 17, 0, tzinfo=UTC)) == "today"


def test_naive_datetimes_are_treated_as_utc() -> None:
    assert smart_default_date_scope(datetime(2026, 1, 10, 1, 30)) == "tomorrow"


def test_scope_dates() -> None:
    as_of = date(2026, 1, 9)
    assert scope_dates("all", as_of=as_of) is None
    assert scope_dates("today", as_of=as_of) == frozenset({"2026-01-09"})
    assert scope_dates("tomorrow", as_of=as_of) == frozenset({"2026-01-10"})
