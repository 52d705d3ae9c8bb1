"""CLI entrypoint for prop-sheet audits and ranked sheets."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Any

from prop_sheet.audit import (
    DuplicateAuditReport,
    audit_duplicate_entities,
    audit_duplicate_rows,
    cross_check_ranked_index,
)
from prop_sheet.errors import CLIError, RowSourceError
from prop_sheet.filters import FilterState
from prop_sheet.markets import (
    default_markets,
    key_stat_for_market,
    market_label,
    market_short_label,
)
from prop_sheet.odds_math import format_american
from prop_sheet.recompute import RecomputeOutcome
from prop_sheet.runtime_config import (
    current_runtime_config,
    load_runtime_config,
    set_current_runtime_config,
)
from prop_sheet.settings import Settings
from prop_sheet.sheet import BackendRecompute, CheatSheet, SnapshotSheetSource
from prop_sheet.sorting import SORT_VALUES, RankedRow, SortState, default_direction
from prop_sheet.sources import HTTPRowSource, RowSnapshotStore, RowStore
from prop_sheet.time_utils import smart_default_date_scope


def _parse_csv(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_runtime()
    if getattr(args, "base_url", ""):
        settings = settings.model_copy(update={"source_base_url": args.base_url})
    return settings


@contextmanager
def _open_store(args: argparse.Namespace) -> Iterator[RowStore]:
    if args.source == "file":
        yield RowSnapshotStore(current_runtime_config().data_dir)
        return
    with HTTPRowSource(_settings(args)) as client:
        yield client


def _top_n(args: argparse.Namespace) -> int:
    top = int(args.top) if args.top else current_runtime_config().audit_top_n
    if top <= 0:
        raise CLIError("--top must be positive")
    return top


def _print_row_report(
    report: DuplicateAuditReport, *, sport: str, top: int, skipped: int
) -> None:
    scope = report.market or "all"
    print(f"sport={sport} market={scope} rows={report.total_identifiers} skipped={skipped}")
    if not report.has_duplicates:
        print("duplicate_groups=0")
    else:
        print(f"duplicate_groups={len(report.groups)}")
        for group in report.groups[:top]:
            first = group.rows[0]
            print(
                f"logical_id={group.logical_id} market={first.market} line={first.line:g} "
                f"entity={first.entity_id} count={group.size}"
            )
            if first.player_id:
                print(f"  player={first.player_name} team={first.team_abbr}")
            for index, identifier in enumerate(group.identifiers, start=1):
                print(f"  {index}. {identifier}")
        if len(report.groups) > top:
            print(f"... and {len(report.groups) - top} more duplicate groups")
    print(
        f"total_logical_rows={report.total_logical_rows} "
        f"total_identifiers={report.total_identifiers} "
        f"wasted_identifiers={report.wasted_identifiers} "
        f"efficiency_pct={report.efficiency_pct:.1f} "
        f"avg_identifiers_per_row={report.avg_identifiers_per_row:.2f}"
    )


def _cmd_audit_rows(args: argparse.Namespace) -> int:
    top = _top_n(args)
    with _open_store(args) as store:
        rows, skipped = store.load_rows(args.sport)
        report = audit_duplicate_rows(rows, market=args.market or None)
        check = None
        if report.has_duplicates:
            largest = report.groups[0]
            ranked_ids = store.load_ranked_index(args.sport, largest.market)
            check = cross_check_ranked_index(largest, ranked_ids)

    if args.json_output:
        payload: dict[str, Any] = {"sport": args.sport, "skipped": skipped}
        payload.update(report.to_dict(top_n=top))
        if check is not None:
            payload["ranked_index"] = {
                "market": check.market,
                "found": check.found_count,
                "group_size": check.group_size,
                "visible_duplicates": check.visible_duplicates,
            }
        print(json.dumps(payload, sort_keys=True, indent=2))
        return 0

    _print_row_report(report, sport=args.sport, top=top, skipped=skipped)
    if check is not None:
        print(
            f"ranked_index market={check.market} found={check.found_count}/{check.group_size} "
            f"visible_duplicates={str(check.visible_duplicates).lower()}"
        )
    return 0


def _cmd_audit_entities(args: argparse.Namespace) -> int:
    top = _top_n(args)
    with _open_store(args) as store:
        cards = store.load_entity_cards(args.sport, args.market)
    report = audit_duplicate_entities(cards)

    if args.json_output:
        payload = {"sport": args.sport, "market": args.market}
        payload.update(report.to_dict(top_n=top))
        print(json.dumps(payload, sort_keys=True, indent=2))
        return 0

    print(f"sport={args.sport} market={args.market} entities={report.total_entities}")
    print(f"names_with_multiple_entities={len(report.groups)}")
    for name, group in report.groups[:top]:
        print(f"name={name} entities={len(group)}")
        for card in group:
            print(
                f"  {card.entity_id} team={card.team or 'N/A'} "
                f"position={card.position or 'N/A'} identifiers={card.identifier_count}"
            )
    if len(report.groups) > top:
        print(f"... and {len(report.groups) - top} more")
    print(
        f"unique_names={report.unique_names} extra_entities={report.extra_entities} "
        f"efficiency_pct={report.efficiency_pct:.1f}"
    )
    return 0


def _filter_state(args: argparse.Namespace, settings: Settings) -> FilterState:
    markets = frozenset(_parse_csv(args.markets))
    unknown = markets - default_markets(args.sheet) if markets else frozenset()
    if unknown:
        raise CLIError(f"unsupported markets for {args.sheet}: {','.join(sorted(unknown))}")
    date_scope = args.date_scope
    if date_scope == "auto":
        date_scope = smart_default_date_scope()
    return FilterState(
        time_window=args.time_window or settings.time_window,
        min_hit_rate=settings.min_hit_rate if args.min_hit_rate is None else args.min_hit_rate,
        odds_floor=settings.odds_floor if args.odds_floor is None else args.odds_floor,
        odds_ceiling=settings.odds_ceiling if args.odds_ceiling is None else args.odds_ceiling,
        markets=markets,
        matchup=args.matchup,
        grades=frozenset(_parse_csv(args.grades)),
        hide_injured=bool(args.hide_injured),
        hide_back_to_back=bool(args.hide_back_to_back),
        hide_no_price=not bool(args.show_no_price),
        trends=frozenset(_parse_csv(args.trends)),
        date_scope=date_scope,
        as_of=date.fromisoformat(args.as_of) if args.as_of else None,
    )


def _ranked_payload(rank: int, item: RankedRow) -> dict[str, Any]:
    row = item.effective_row
    key_stat = key_stat_for_market(row.market)
    return {
        "rank": rank,
        "key": item.key,
        "player": row.player_name,
        "team": row.team_abbr,
        "market": row.market,
        "market_label": market_label(row.market),
        "line": row.line,
        "hit_rate": row.hit_rate,
        "games": row.attempts,
        "price": item.price,
        "key_stat": {
            "label": key_stat.label,
            "conditional": row.stat(key_stat.family).conditional,
        },
        "score": item.score.to_dict(),
    }


def _cmd_rank(args: argparse.Namespace) -> int:
    if args.limit <= 0:
        raise CLIError("--limit must be positive")
    settings = _settings(args)
    filters = _filter_state(args, settings)
    direction = args.direction or default_direction(args.sort)
    with _open_store(args) as store:
        price_book = store.load_price_book(args.sport)
        sheet = CheatSheet(
            SnapshotSheetSource(store, args.sport, args.sheet),
            sheet=args.sheet,
            price_lookup=price_book,
            filters=filters,
            sort=SortState(key=args.sort, direction=direction),
        )
        summary = asyncio.run(sheet.refresh())
    ranked = sheet.view()
    shown = ranked[: args.limit]

    if args.json_output:
        payload = {
            "sport": args.sport,
            "sheet": args.sheet,
            "rows": summary.rows,
            "skipped": summary.skipped,
            "matched": len(ranked),
            "active_filters": sheet.active_filters,
            "sort": {"key": sheet.sort.key, "direction": sheet.sort.direction},
            "ranked": [_ranked_payload(index, item) for index, item in enumerate(shown, start=1)],
        }
        print(json.dumps(payload, sort_keys=True, indent=2))
        return 0

    print(
        f"sport={args.sport} sheet={args.sheet} rows={summary.rows} skipped={summary.skipped} "
        f"matched={len(ranked)} active_filters={sheet.active_filters} "
        f"sort={sheet.sort.key}:{sheet.sort.direction}"
    )
    for index, item in enumerate(shown, start=1):
        row = item.effective_row
        rate = row.window_hit_rate(filters.time_window)
        rate_text = f"{rate:.3f}" if rate is not None else "-"
        key_stat = key_stat_for_market(row.market)
        key_value = row.stat(key_stat.family).conditional
        key_text = f"{key_value:.1f}" if key_value is not None else "-"
        print(
            f"{index}. {row.player_name or row.entity_id} {market_short_label(row.market)} "
            f"{row.line:g} hit_rate={rate_text} score={item.score.value:.1f} "
            f"grade={item.score.grade} price={format_american(item.price)} "
            f"{key_stat.label}={key_text}"
        )
    return 0


def _find_row_key(sheet: CheatSheet, player_id: str, market: str) -> str:
    for row in sheet.rows:
        if row.player_id == player_id and (not market or row.market == market):
            return row.row_key
    scope = f" market={market}" if market else ""
    raise CLIError(f"no {sheet.sheet} row for player={player_id}{scope}")


async def _run_what_if(
    sheet: CheatSheet, args: argparse.Namespace, condition_ids: tuple[str, ...]
) -> tuple[str, list[RecomputeOutcome]]:
    await sheet.refresh()
    key = _find_row_key(sheet, args.player_id, args.market)
    sheet.open_editor(key)
    outcomes: list[RecomputeOutcome] = []
    if args.line is not None:
        outcomes.append(await sheet.coordinator.select_line(key, args.line))
    if condition_ids:
        outcomes.append(await sheet.coordinator.set_conditions(key, condition_ids))
    return key, outcomes


def _cmd_what_if(args: argparse.Namespace) -> int:
    if args.source != "http":
        raise CLIError("what-if recomputes through the row API; pass --source http")
    condition_ids = tuple(_parse_csv(args.teammates))
    if args.line is None and not condition_ids:
        raise CLIError("what-if needs --line or --teammates")
    open_filters = FilterState(
        min_hit_rate=None, odds_floor=None, odds_ceiling=None, hide_no_price=False
    )
    with HTTPRowSource(_settings(args)) as client:
        sheet = CheatSheet(
            SnapshotSheetSource(client, args.sport, args.sheet),
            sheet=args.sheet,
            recompute=BackendRecompute(client, args.sport),
            filters=open_filters,
        )
        key, outcomes = asyncio.run(_run_what_if(sheet, args, condition_ids))
    item = next((ranked for ranked in sheet.view() if ranked.key == key), None)
    state = sheet.store.get(key)
    conditions = list(state.selection.condition_ids) if state is not None else []

    if args.json_output:
        payload: dict[str, Any] = {
            "sport": args.sport,
            "sheet": args.sheet,
            "key": key,
            "conditions": conditions,
            "outcomes": [
                {"status": outcome.status, "seq": outcome.seq, "error": outcome.error}
                for outcome in outcomes
            ],
            "row": _ranked_payload(1, item) if item is not None else None,
        }
        print(json.dumps(payload, sort_keys=True, indent=2))
        return 0

    for outcome in outcomes:
        suffix = f" error={outcome.error}" if outcome.error else ""
        print(f"recompute status={outcome.status} seq={outcome.seq}{suffix}")
    if item is not None:
        row = item.effective_row
        rate_text = f"{row.hit_rate:.3f}" if row.hit_rate is not None else "-"
        print(
            f"{row.player_name or row.entity_id} {market_short_label(row.market)} {row.line:g} "
            f"conditions={','.join(conditions) or '-'} "
            f"hit_rate={rate_text} games={row.attempts} "
            f"score={item.score.value:.1f} grade={item.score.grade}"
        )
    return 0


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default="", help="Runtime config TOML path")
    parser.add_argument("--data-dir", default="", help="Snapshot data directory")
    parser.add_argument("--source", choices=("file", "http"), default="file")
    parser.add_argument("--base-url", default="")
    parser.add_argument("--json", dest="json_output", action="store_true")
    parser.add_argument("--verbose", action="store_true")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="prop-sheet")
    subparsers = parser.add_subparsers(dest="command")

    audit_rows = subparsers.add_parser(
        "audit-rows", help="Report storage identifiers that share a logical row"
    )
    audit_rows.set_defaults(func=_cmd_audit_rows)
    audit_rows.add_argument("sport")
    audit_rows.add_argument("market", nargs="?", default="")
    audit_rows.add_argument("--top", type=int, default=0)
    _add_common(audit_rows)

    audit_entities = subparsers.add_parser(
        "audit-entities", help="Report player names that map to several entity ids"
    )
    audit_entities.set_defaults(func=_cmd_audit_entities)
    audit_entities.add_argument("sport")
    audit_entities.add_argument("market")
    audit_entities.add_argument("--top", type=int, default=0)
    _add_common(audit_entities)

    rank = subparsers.add_parser("rank", help="Score, filter and rank a cheat sheet")
    rank.set_defaults(func=_cmd_rank)
    rank.add_argument("sport")
    rank.add_argument("--sheet", choices=("hit_rates", "injury_impact"), default="hit_rates")
    rank.add_argument("--markets", default="")
    rank.add_argument(
        "--time-window",
        choices=("last_5_pct", "last_10_pct", "last_20_pct", "season_pct"),
        default="",
    )
    rank.add_argument("--min-hit-rate", type=float, default=None)
    rank.add_argument("--odds-floor", type=int, default=None)
    rank.add_argument("--odds-ceiling", type=int, default=None)
    rank.add_argument(
        "--matchup", choices=("all", "favorable", "neutral", "unfavorable"), default="all"
    )
    rank.add_argument("--grades", default="")
    rank.add_argument("--hide-injured", action="store_true")
    rank.add_argument("--hide-back-to-back", action="store_true")
    rank.add_argument("--show-no-price", action="store_true")
    rank.add_argument("--trends", default="")
    rank.add_argument("--date-scope", choices=("auto", "today", "tomorrow", "all"), default="all")
    rank.add_argument("--as-of", default="", help="Schedule date (YYYY-MM-DD) for date scopes")
    rank.add_argument("--sort", choices=tuple(SORT_VALUES), default="hit_rate")
    rank.add_argument("--direction", choices=("asc", "desc"), default="")
    rank.add_argument("--limit", type=int, default=25)
    _add_common(rank)

    what_if = subparsers.add_parser(
        "what-if", help="Recompute one row for a line or teammates-out selection"
    )
    what_if.set_defaults(func=_cmd_what_if)
    what_if.add_argument("sport")
    what_if.add_argument("player_id")
    what_if.add_argument(
        "--sheet", choices=("hit_rates", "injury_impact"), default="injury_impact"
    )
    what_if.add_argument("--market", default="")
    what_if.add_argument("--line", type=float, default=None)
    what_if.add_argument("--teammates", default="", help="Comma-separated teammate ids")
    _add_common(what_if)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    func = getattr(args, "func", None)
    if func is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config_path = Path(args.config).expanduser() if args.config else None
    try:
        runtime_config = load_runtime_config(config_path)
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    runtime_config = runtime_config.with_path_overrides(
        data_dir=Path(args.data_dir) if args.data_dir else None
    )
    try:
        set_current_runtime_config(runtime_config)
        try:
            return int(func(args))
        except (CLIError, RowSourceError, FileNotFoundError, ValueError) as exc:
            print(str(exc), file=sys.stderr)
            return 2
    finally:
        set_current_runtime_config(None)


if __name__ == "__main__":
    raise SystemExit(main())
