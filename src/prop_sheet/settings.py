"""Application settings for prop-sheet."""

import os
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from prop_sheet.runtime_config import current_runtime_config


class Settings(BaseSettings):
    """Runtime settings for row sources and sheet defaults."""

    model_config = SettingsConfigDict(
        env_prefix="PROP_SHEET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    source_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("PROP_SHEET_API_KEY", "PROP_SHEET_SOURCE_API_KEY"),
    )
    source_base_url: str = "http://127.0.0.1:8787/api/v1"
    source_timeout_s: float = 10.0
    source_max_attempts: int = 4
    source_key_file_candidates: str = "PROP_SHEET_API_KEY,PROP_SHEET_API_KEY.ignore"
    min_hit_rate: float = 0.80
    odds_floor: int = -250
    odds_ceiling: int = 250
    time_window: str = "last_10_pct"

    @staticmethod
    def _parse_key_file(path: Path, *, allowed_names: set[str]) -> str:
        try:
            raw = path.read_text(encoding="utf-8").strip()
        except OSError:
            return ""
        if not raw:
            return ""
        first_line = raw.splitlines()[0].strip()
        if not first_line:
            return ""
        if "=" in first_line:
            key_name, value = first_line.split("=", 1)
            if key_name.strip().upper() not in allowed_names:
                return ""
            return value.strip().strip('"').strip("'")
        return first_line.strip().strip('"').strip("'")

    @classmethod
    def from_runtime(cls) -> "Settings":
        """Construct settings from runtime config + direct secret env/key-file fallback."""
        runtime = current_runtime_config()
        config_root = runtime.config_path.parent.resolve()

        resolved_key = (
            os.environ.get("PROP_SHEET_API_KEY", "").strip()
            or os.environ.get("PROP_SHEET_SOURCE_API_KEY", "").strip()
        )
        if not resolved_key:
            for candidate in runtime.source_key_files:
                candidate_path = Path(candidate).expanduser()
                path = (
                    candidate_path
                    if candidate_path.is_absolute()
                    else (config_root / candidate_path).resolve()
                )
                if not path.exists() or not path.is_file():
                    continue
                parsed = cls._parse_key_file(
                    path,
                    allowed_names={"PROP_SHEET_API_KEY", "PROP_SHEET_SOURCE_API_KEY"},
                )
                if parsed:
                    resolved_key = parsed
                    break

        return cls(
            source_api_key=resolved_key,
            source_base_url=runtime.source_base_url,
            source_timeout_s=runtime.source_timeout_s,
            source_max_attempts=runtime.source_max_attempts,
            source_key_file_candidates=",".join(runtime.source_key_files),
            min_hit_rate=runtime.sheet_min_hit_rate,
            odds_floor=runtime.sheet_odds_floor,
            odds_ceiling=runtime.sheet_odds_ceiling,
            time_window=runtime.sheet_time_window,
        )
