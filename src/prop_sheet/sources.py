"""Row sources: on-disk snapshots and the HTTP row API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, Protocol

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from prop_sheet.audit import EntityCard, parse_entity_cards
from prop_sheet.errors import MalformedRowError, RecomputeError, RowSourceError
from prop_sheet.prices import PriceBook
from prop_sheet.rows import DerivedStats, StatRow, parse_stat_rows, parse_storage_rows
from prop_sheet.settings import Settings
from prop_sheet.util.parsing import safe_str

logger = logging.getLogger(__name__)


class RowStore(Protocol):
    def load_rows(self, sport: str) -> tuple[list[StatRow], int]: ...

    def load_ranked_index(self, sport: str, market: str) -> list[str]: ...

    def load_entity_cards(self, sport: str, market: str) -> list[EntityCard]: ...

    def load_sheet_rows(self, sport: str, sheet: str) -> list[Any]: ...

    def load_price_book(self, sport: str) -> PriceBook | None: ...


def rows_from_payload(payload: Any) -> tuple[list[StatRow], int]:
    """Storage payloads are `{sid: row}` maps; plain lists carry `sid` per row."""
    if isinstance(payload, Mapping):
        body = payload.get("rows", payload)
        if isinstance(body, Mapping):
            return parse_storage_rows(body)
        payload = body
    if isinstance(payload, list):
        return parse_stat_rows(payload)
    raise RowSourceError("row payload must be an object keyed by storage id or a list")


def sheet_rows_from_payload(payload: Any) -> list[Any]:
    if isinstance(payload, Mapping):
        payload = payload.get("rows", payload.get("data"))
    if not isinstance(payload, list):
        raise RowSourceError("sheet payload must be a list of rows")
    return payload


def ranked_ids_from_payload(payload: Any) -> list[str]:
    if isinstance(payload, Mapping):
        payload = payload.get("ids", payload.get("members"))
    if not isinstance(payload, list):
        raise RowSourceError("ranked index payload must be a list of identifiers")
    ids: list[str] = []
    for item in payload:
        # sorted-set dumps may carry [member, score] pairs
        if isinstance(item, list) and item:
            item = item[0]
        value = safe_str(item)
        if value:
            ids.append(value)
    return ids


class RowSnapshotStore:
    """Reads JSON snapshots laid out per sport under a data directory.

    `<root>/<sport>/rows.json` maps storage id -> row, `ranked/<market>.json` lists
    ranked identifiers, `entities/<market>.json` holds entity cards,
    `sheets/<sheet>.json` holds sheet rows and `odds.json` best quotes per selection.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def _sport_dir(self, sport: str) -> Path:
        return self.root / sport

    def _read_json(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise RowSourceError(f"snapshot not found: {path}") from exc
        except OSError as exc:
            raise RowSourceError(f"failed reading snapshot: {path}") from exc
        except json.JSONDecodeError as exc:
            raise RowSourceError(f"invalid snapshot JSON: {path}") from exc

    def load_rows(self, sport: str) -> tuple[list[StatRow], int]:
        return rows_from_payload(self._read_json(self._sport_dir(sport) / "rows.json"))

    def load_ranked_index(self, sport: str, market: str) -> list[str]:
        path = self._sport_dir(sport) / "ranked" / f"{market}.json"
        if not path.exists():
            return []
        return ranked_ids_from_payload(self._read_json(path))

    def load_entity_cards(self, sport: str, market: str) -> list[EntityCard]:
        path = self._sport_dir(sport) / "entities" / f"{market}.json"
        try:
            return parse_entity_cards(self._read_json(path))
        except ValueError as exc:
            raise RowSourceError(f"{path}: {exc}") from exc

    def load_sheet_rows(self, sport: str, sheet: str) -> list[Any]:
        path = self._sport_dir(sport) / "sheets" / f"{sheet}.json"
        return sheet_rows_from_payload(self._read_json(path))

    def load_price_book(self, sport: str) -> PriceBook | None:
        path = self._sport_dir(sport) / "odds.json"
        if not path.exists():
            return None
        payload = self._read_json(path)
        if not isinstance(payload, Mapping):
            raise RowSourceError(f"odds snapshot must be an object: {path}")
        return PriceBook.from_payload(payload)


MAX_RETRY_AFTER_S = 60.0
MAX_BACKOFF_S = 30.0


class RowAPIStatusError(RuntimeError):
    """Row API answered 429 or 5xx; the request is worth repeating."""

    def __init__(self, path: str, response: httpx.Response) -> None:
        self.path = path
        self.response = response
        super().__init__(f"row API {path} returned {response.status_code}")

    @property
    def status_code(self) -> int:
        return self.response.status_code


def _retry_after_seconds(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After", "").strip()
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=UTC)
    return max(0.0, (retry_at - datetime.now(UTC)).total_seconds())


def _row_api_wait(retry_state) -> float:
    """Honor the row API's Retry-After, else back off exponentially."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(exc, RowAPIStatusError):
        delay = _retry_after_seconds(exc.response)
        if delay is not None:
            return min(delay, MAX_RETRY_AFTER_S)
    return min(2.0 ** (retry_state.attempt_number - 1), MAX_BACKOFF_S)


def _wire_id(value: str) -> int | str:
    # the row API keys players and teammates by numeric id
    return int(value) if value.isdigit() else value


class HTTPRowSource:
    """Thin HTTP client around the row API."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.BaseTransport | None = None,
        wait=_row_api_wait,
    ) -> None:
        self.settings = settings
        self._base_url = settings.source_base_url.rstrip("/")
        self._wait = wait
        headers = {}
        if settings.source_api_key:
            headers["Authorization"] = f"Bearer {settings.source_api_key}"
        self._http = httpx.Client(
            timeout=settings.source_timeout_s,
            headers=headers,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> HTTPRowSource:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        body: Mapping[str, Any] | None = None,
        allow_missing: bool = False,
    ) -> Any:
        url = f"{self._base_url}/{path.lstrip('/')}"
        response: httpx.Response | None = None
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self.settings.source_max_attempts),
                retry=retry_if_exception_type(RowAPIStatusError),
                wait=self._wait,
                reraise=True,
            ):
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    if attempt_number > 1:
                        logger.info("row API %s %s attempt %d", method, path, attempt_number)
                    response = self._http.request(method, url, json=body)
                    if response.status_code == 429 or response.status_code >= 500:
                        raise RowAPIStatusError(path, response)
                    if allow_missing and response.status_code == 404:
                        return None
                    response.raise_for_status()
        except RowAPIStatusError as exc:
            raise RowSourceError(
                f"{path} failed with status {exc.status_code} after retries"
            ) from exc
        except httpx.HTTPError as exc:
            raise RowSourceError(f"{path} failed with transport error: {exc}") from exc
        if response is None:
            raise RowSourceError(f"{path} failed without a response")
        try:
            return response.json()
        except ValueError as exc:
            raise RowSourceError(f"{path} returned invalid JSON") from exc

    def _get(self, path: str, *, allow_missing: bool = False) -> Any:
        return self._request("GET", path, allow_missing=allow_missing)

    def recompute_stats(
        self,
        sport: str,
        entity_id: str,
        condition_ids: tuple[str, ...],
        market: str,
        line: float,
    ) -> DerivedStats:
        """Derived stats for the games where every selected teammate sat out."""
        if not condition_ids:
            raise RecomputeError("at least one teammate must be selected")
        path = f"/{sport}/injury-impact/stats"
        body = {
            "playerId": _wire_id(entity_id),
            "teammateIds": [_wire_id(item) for item in condition_ids],
            "market": market,
            "line": line,
        }
        try:
            payload = self._request("POST", path, body=body)
            if not isinstance(payload, Mapping):
                raise MalformedRowError(f"{path} returned a non-object payload")
            return DerivedStats.from_payload(payload)
        except (RowSourceError, MalformedRowError) as exc:
            raise RecomputeError(str(exc)) from exc

    def load_rows(self, sport: str) -> tuple[list[StatRow], int]:
        return rows_from_payload(self._get(f"/{sport}/rows"))

    def load_ranked_index(self, sport: str, market: str) -> list[str]:
        payload = self._get(f"/{sport}/ranked/{market}", allow_missing=True)
        if payload is None:
            return []
        return ranked_ids_from_payload(payload)

    def load_entity_cards(self, sport: str, market: str) -> list[EntityCard]:
        path = f"/{sport}/entities/{market}"
        try:
            return parse_entity_cards(self._get(path))
        except ValueError as exc:
            raise RowSourceError(f"{path}: {exc}") from exc

    def load_sheet_rows(self, sport: str, sheet: str) -> list[Any]:
        return sheet_rows_from_payload(self._get(f"/{sport}/sheets/{sheet}"))

    def load_price_book(self, sport: str) -> PriceBook | None:
        payload = self._get(f"/{sport}/odds", allow_missing=True)
        if payload is None:
            return None
        if not isinstance(payload, Mapping):
            raise RowSourceError("odds payload must be an object")
        return PriceBook.from_payload(payload)
