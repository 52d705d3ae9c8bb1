from __future__ import annotations

import logging
from typing import Any

import pytest

from prop_sheet.audit import (
    audit_duplicate_entities,
    audit_duplicate_rows,
    cross_check_ranked_index,
    logical_id,
    parse_entity_cards,
)
from prop_sheet.rows import StatRow, parse_storage_rows


def _stored(eid: str, ent: str, player: str | None, market: str, line: float) -> dict[str, Any]:
    return {"eid": eid, "ent": ent, "player": player, "mkt": market, "ln": line}


def _storage_rows() -> list[StatRow]:
    rows, skipped = parse_storage_rows(
        {
            "s1": _stored("e1", "p1", "Jalen Brunson", "player_points", 24.5),
            "s2": _stored("e1", "p1", "Jalen Brunson", "player_points", 24.5),
            "s3": _stored("e1", "p2", "Josh Hart", "player_points", 11.5),
            "s4": _stored("e2", "e2", None, "spread", -3.5),
            "s5": _stored("e1", "p1", "Jalen Brunson", "player_points", 25.5),
        }
    )
    assert skipped == 0
    return rows


def test_five_identifiers_four_logical_rows() -> None:
    report = audit_duplicate_rows(_storage_rows())

    assert len(report.groups) == 1
    group = report.groups[0]
    assert group.logical_id == "e1|p1|player_points|24.5"
    assert group.identifiers == ("s1", "s2")
    assert report.total_logical_rows == 4
    assert report.total_identifiers == 5
    assert report.wasted_identifiers == 1
    assert report.efficiency == pytest.approx(0.8)
    assert report.efficiency_pct == 80.0
    assert report.avg_identifiers_per_row == pytest.approx(1.25)


def test_game_markets_share_the_game_entity() -> None:
    rows = _storage_rows()
    assert logical_id(rows[3]) == "e2|game|spread|-3.5"


def test_whole_number_lines_format_without_decimal() -> None:
    row = StatRow(player_id="p1", market="player_points", line=25.0, game_id="g1", event_id="e1")
    assert logical_id(row) == "e1|p1|player_points|25"


def test_market_scope_and_empty_input() -> None:
    report = audit_duplicate_rows(_storage_rows(), market="spread")
    assert report.total_identifiers == 1
    assert report.has_duplicates is False

    empty = audit_duplicate_rows([])
    assert empty.efficiency == 1.0
    assert empty.avg_identifiers_per_row == 0.0
    assert empty.groups == ()


def test_groups_sorted_largest_first() -> None:
    payload = {f"a{index}": _stored("e1", "p1", "A", "player_points", 1.5) for index in range(2)}
    payload.update(
        {f"b{index}": _stored("e1", "p2", "B", "player_points", 2.5) for index in range(3)}
    )
    rows, _ = parse_storage_rows(payload)
    report = audit_duplicate_rows(rows)
    assert [group.size for group in report.groups] == [3, 2]
    assert report.to_dict(top_n=1)["duplicate_groups"] == 2
    assert len(report.to_dict(top_n=1)["groups"]) == 1


def test_rows_without_identifier_are_excluded(caplog: pytest.LogCaptureFixture) -> None:
    row = StatRow(player_id="p1", market="player_points", line=1.5, game_id="g1")
    with caplog.at_level(logging.WARNING, logger="prop_sheet.audit"):
        report = audit_duplicate_rows([row])
    assert report.total_identifiers == 0
    assert "no storage identifier" in caplog.text


def test_cross_check_ranked_index() -> None:
    group = audit_duplicate_rows(_storage_rows()).groups[0]
    check = cross_check_ranked_index(group, ["s9", "s2", "s3", "s1"])

    assert check.market == "player_points"
    assert check.found == ("s2", "s1")
    assert check.group_size == 2
    assert check.visible_duplicates is True
    assert cross_check_ranked_index(group, ["s1"]).visible_duplicates is False


def test_duplicate_entities_by_display_name() -> None:
    cards = parse_entity_cards(
        {
            "a": {"name": "Josh Allen", "team": "BUF", "sids": "4"},
            "b": {"name": "Josh Allen", "team": "BUF"},
            "c": {"name": "Joe Burrow", "team": "CIN"},
            "d": {"name": "Josh Allen"},
            "e": {"team": "KC"},
        }
    )
    report = audit_duplicate_entities(cards)

    assert report.total_entities == 5
    assert report.unique_names == 2
    assert len(report.groups) == 1
    name, group = report.groups[0]
    assert name == "Josh Allen"
    assert [card.entity_id for card in group] == ["a", "b", "d"]
    assert group[0].identifier_count == 4
    assert report.extra_entities == 2
    assert report.efficiency_pct == 60.0


def test_parse_entity_cards_accepts_lists_and_rejects_scalars() -> None:
    cards = parse_entity_cards(
        [{"entity_id": "a", "name": "X"}, {"ent": "b", "name": "X"}, "junk"]
    )
    assert [card.entity_id for card in cards] == ["a", "b"]
    with pytest.raises(ValueError):
        parse_entity_cards("nope")
