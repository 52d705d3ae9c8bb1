"""Runtime configuration loader (config-first, flag-overrides)."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "runtime.toml"
DEFAULT_LOCAL_OVERRIDE_PATH = Path(__file__).resolve().parents[2] / "config" / "runtime.local.toml"

_TIME_WINDOWS = ("last_5_pct", "last_10_pct", "last_20_pct", "season_pct")


@dataclass(frozen=True)
class RuntimeConfig:
    """Materialized runtime configuration."""

    config_path: Path
    data_dir: Path
    source_base_url: str
    source_timeout_s: float
    source_max_attempts: int
    source_key_files: tuple[str, ...]
    audit_top_n: int
    sheet_min_hit_rate: float
    sheet_odds_floor: int
    sheet_odds_ceiling: int
    sheet_time_window: str

    def with_path_overrides(self, *, data_dir: Path | None = None) -> RuntimeConfig:
        """Return copy with explicit CLI path overrides applied."""
        if data_dir is None:
            return self
        return replace(self, data_dir=data_dir.expanduser().resolve())


_CURRENT_RUNTIME_CONFIG: RuntimeConfig | None = None


def set_current_runtime_config(config: RuntimeConfig | None) -> None:
    global _CURRENT_RUNTIME_CONFIG
    _CURRENT_RUNTIME_CONFIG = config


def current_runtime_config() -> RuntimeConfig:
    config = _CURRENT_RUNTIME_CONFIG
    if config is not None:
        return config
    loaded = load_runtime_config()
    set_current_runtime_config(loaded)
    return loaded


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in overlay.items():
        existing = out.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            out[key] = _deep_merge(existing, value)
        else:
            out[key] = value
    return out


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        payload = tomllib.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise RuntimeError(f"failed reading runtime config: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise RuntimeError(f"invalid runtime config TOML: {path}") from exc
    if not isinstance(payload, dict):
        raise RuntimeError(f"runtime config root must be a table: {path}")
    return payload


def _as_table(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise RuntimeError(f"runtime config section [{key}] must be a table")
    return value


def _as_str(value: Any, *, default: str) -> str:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped:
            return stripped
    return default


def _as_int(value: Any, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _as_float(value: Any, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default


def _as_csv_list(values: Any, *, default: tuple[str, ...]) -> tuple[str, ...]:
    if isinstance(values, list):
        cleaned = [str(value).strip() for value in values if str(value).strip()]
        return tuple(cleaned) if cleaned else default
    if isinstance(values, str):
        cleaned = [part.strip() for part in values.split(",") if part.strip()]
        return tuple(cleaned) if cleaned else default
    return default


def _as_time_window(value: Any, *, default: str) -> str:
    window = _as_str(value, default=default)
    if window not in _TIME_WINDOWS:
        raise RuntimeError(f"runtime config [sheet] time_window must be one of {_TIME_WINDOWS}")
    return window


def _resolve_path(raw: Any, *, default: str, base_dir: Path) -> Path:
    value = _as_str(raw, default=default)
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return path


def load_runtime_config(config_path: Path | None = None) -> RuntimeConfig:
    """Load runtime config from `config/runtime.toml` plus optional local override."""
    source = (config_path or DEFAULT_CONFIG_PATH).expanduser().resolve()
    if not source.exists():
        raise RuntimeError(f"runtime config file not found: {source}")

    payload = _read_toml(source)
    if source == DEFAULT_CONFIG_PATH and DEFAULT_LOCAL_OVERRIDE_PATH.exists():
        payload = _deep_merge(payload, _read_toml(DEFAULT_LOCAL_OVERRIDE_PATH))

    paths = _as_table(payload, "paths")
    row_source = _as_table(payload, "source")
    audit = _as_table(payload, "audit")
    sheet = _as_table(payload, "sheet")
    base_dir = source.parent

    return RuntimeConfig(
        config_path=source,
        data_dir=_resolve_path(
            paths.get("data_dir"),
            default="../data/prop_sheet",
            base_dir=base_dir,
        ),
        source_base_url=_as_str(
            row_source.get("base_url"),
            default="http://127.0.0.1:8787/api/v1",
        ),
        source_timeout_s=_as_float(row_source.get("timeout_s"), default=10.0),
        source_max_attempts=max(1, _as_int(row_source.get("max_attempts"), default=4)),
        source_key_files=_as_csv_list(
            row_source.get("key_files"),
            default=("PROP_SHEET_API_KEY.ignore", "PROP_SHEET_API_KEY"),
        ),
        audit_top_n=max(1, _as_int(audit.get("top_n"), default=20)),
        sheet_min_hit_rate=_as_float(sheet.get("min_hit_rate"), default=0.80),
        sheet_odds_floor=_as_int(sheet.get("odds_floor"), default=-250),
        sheet_odds_ceiling=_as_int(sheet.get("odds_ceiling"), default=250),
        sheet_time_window=_as_time_window(sheet.get("time_window"), default="last_10_pct"),
    )
