from __future__ import annotations

from pathlib import Path

import pytest

from prop_sheet.runtime_config import DEFAULT_CONFIG_PATH, load_runtime_config


def _write_config(tmp_path: Path, lines: list[str]) -> Path:
    config_path = tmp_path / "runtime.toml"
    config_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return config_path


def test_load_runtime_config_resolves_relative_paths(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        [
            "[paths]",
            'data_dir = "snapshots"',
            "",
            "[source]",
            'base_url = "http://rows.test/api"',
            "max_attempts = 0",
            'key_files = "A.ignore, B"',
            "",
            "[sheet]",
            "min_hit_rate = 0.7",
            'odds_floor = "-200"',
            'time_window = "last_5_pct"',
        ],
    )

    config = load_runtime_config(config_path)

    assert config.config_path == config_path.resolve()
    assert config.data_dir == (tmp_path / "snapshots").resolve()
    assert config.source_base_url == "http://rows.test/api"
    assert config.source_max_attempts == 1
    assert config.source_key_files == ("A.ignore", "B")
    assert config.audit_top_n == 20
    assert config.sheet_min_hit_rate == 0.7
    assert config.sheet_odds_floor == -200
    assert config.sheet_odds_ceiling == 250
    assert config.sheet_time_window == "last_5_pct"


def test_path_overrides_replace_data_dir(tmp_path: Path) -> None:
    config = load_runtime_config(_write_config(tmp_path, []))
    assert config.with_path_overrides() is config
    overridden = config.with_path_overrides(data_dir=tmp_path / "other")
    assert overridden.data_dir == (tmp_path / "other").resolve()


@pytest.mark.parametrize(
    "lines, message",
    [
        (["[sheet]", 'time_window = "last_3_pct"'], "time_window"),
        (["sheet = 3"], "must be a table"),
        (["[paths"], "invalid runtime config TOML"),
    ],
)
def test_invalid_runtime_config_raises(tmp_path: Path, lines: list[str], message: str) -> None:
    with pytest.raises(RuntimeError, match=message):
        load_runtime_config(_write_config(tmp_path, lines))


def test_missing_runtime_config_raises(tmp_path: Path) -> None:
    with pytest.raises(RuntimeError, match="not found"):
        load_runtime_config(tmp_path / "missing.toml")


def test_default_runtime_config_data_dir_is_outside_repo_config() -> None:
    config = load_runtime_config(DEFAULT_CONFIG_PATH)
    assert config.data_dir == (DEFAULT_CONFIG_PATH.parent / ".." / "data" / "prop_sheet").resolve()
