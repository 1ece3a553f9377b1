"""Google Sheets v4 implementation of the RowStore facade."""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import Any
from urllib.error import URLError
from urllib.parse import quote

from loguru import logger

from offerflow.core.config_loader import get_google_sheets_config
from offerflow.core.errors import ConfigError, StoreError, truncate_body
from offerflow.core.http_client import send_request
from offerflow.core.offer_schema import CellInput, SheetCell, as_cell
from offerflow.core.row_store import CellWrite, SheetTable
from offerflow.tools.kernel.google_auth import get_google_access_token

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
DEFAULT_TIMEOUT_SEC = 15
STORE_BODY_LIMIT = 600
HEADER_BACKGROUND = "#f1f3f4"
SPREADSHEET_ID_HINT = "Set google_sheets.spreadsheet_id in config/config.json."


def _column_letters(one_based_index: int) -> str:
    if one_based_index <= 0:
        raise ValueError("one_based_index must be >= 1")
    out: list[str] = []
    value = one_based_index
    while value > 0:
        value, remainder = divmod(value - 1, 26)
        out.append(chr(ord("A") + remainder))
    return "".join(reversed(out))


def _a1(sheet: str, suffix: str = "") -> str:
    escaped = sheet.replace("'", "''")
    return f"'{escaped}'!{suffix}" if suffix else f"'{escaped}'"


def _cell_a1(sheet: str, row_number: int, column_index: int) -> str:
    return _a1(sheet, f"{_column_letters(column_index + 1)}{row_number}")


def _spreadsheet_url(spreadsheet_id: str) -> str:
    return f"{SHEETS_API_BASE}/{quote(spreadsheet_id, safe='')}"


def _build_values_get_url(spreadsheet_id: str, range_name: str) -> str:
    return f"{_spreadsheet_url(spreadsheet_id)}/values/{quote(range_name, safe='')}"


def _build_values_update_url(spreadsheet_id: str, range_name: str) -> str:
    return f"{_build_values_get_url(spreadsheet_id, range_name)}?valueInputOption=RAW"


def _build_values_batch_update_url(spreadsheet_id: str) -> str:
    return f"{_spreadsheet_url(spreadsheet_id)}/values:batchUpdate"


def _build_batch_update_url(spreadsheet_id: str) -> str:
    return f"{_spreadsheet_url(spreadsheet_id)}:batchUpdate"


def _build_sheet_metadata_url(spreadsheet_id: str) -> str:
    fields = quote("sheets(properties(sheetId,title,hidden,gridProperties(columnCount)))", safe="")
    return f"{_spreadsheet_url(spreadsheet_id)}?fields={fields}"


def _request_json(
    method: str,
    url: str,
    headers: dict[str, str],
    payload: dict[str, Any] | None,
    timeout_sec: float,
) -> dict[str, Any]:
    request_headers = dict(headers)
    body = None
    if payload is not None:
        request_headers["Content-Type"] = "application/json"
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    try:
        response = send_request(method, url, headers=request_headers, body=body, timeout_sec=timeout_sec)
    except (URLError, TimeoutError) as exc:
        raise StoreError(f"Google Sheets network error: {exc}") from exc
    if not response.ok:
        raise StoreError(
            f"Google Sheets HTTP {response.status}: {truncate_body(response.text, STORE_BODY_LIMIT)}"
        )
    data = response.json()
    if not isinstance(data, dict):
        raise StoreError("Google Sheets response must be a JSON object.")
    return data


def hex_to_rgb(color: str) -> dict[str, float]:
    value = color.strip().lstrip("#")
    if len(value) != 6:
        raise ValueError(f"Expected #rrggbb color, got {color!r}")
    red, green, blue = (int(value[idx : idx + 2], 16) / 255.0 for idx in (0, 2, 4))
    return {"red": red, "green": green, "blue": blue}


def _hyperlink_formula(url: str, text: str) -> str:
    return '=HYPERLINK("{}","{}")'.format(url.replace('"', '""'), text.replace('"', '""'))


def cell_data(cell: SheetCell) -> dict[str, Any]:
    """CellData for appendCells: plain strings, optional note, optional link formula."""
    if cell.link:
        value: dict[str, Any] = {"formulaValue": _hyperlink_formula(cell.link, cell.text)}
    else:
        value = {"stringValue": cell.text}
    data: dict[str, Any] = {"userEnteredValue": value}
    if cell.note:
        data["note"] = cell.note
    return data


def _grid_range(sheet_id: int, row_number: int, column_index: int) -> dict[str, int]:
    return {
        "sheetId": sheet_id,
        "startRowIndex": row_number - 1,
        "endRowIndex": row_number,
        "startColumnIndex": column_index,
        "endColumnIndex": column_index + 1,
    }


class GoogleSheetsRowStore:
    """RowStore over one spreadsheet. Every backend failure raises StoreError."""

    def __init__(
        self,
        spreadsheet_id: str,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        token_provider: Callable[[], dict[str, Any]] = get_google_access_token,
    ) -> None:
        if not spreadsheet_id or not spreadsheet_id.strip():
            raise ConfigError("Missing Google spreadsheet id.", hint=SPREADSHEET_ID_HINT)
        self._spreadsheet_id = spreadsheet_id.strip()
        self._timeout_sec = timeout_sec
        self._token_provider = token_provider
        self._sheets: dict[str, dict[str, Any]] | None = None

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "GoogleSheetsRowStore":
        block = get_google_sheets_config(config)
        spreadsheet_id = block.get("spreadsheet_id")
        if not isinstance(spreadsheet_id, str) or not spreadsheet_id.strip():
            raise ConfigError("Missing google_sheets.spreadsheet_id.", hint=SPREADSHEET_ID_HINT)
        return cls(spreadsheet_id, timeout_sec=float(block.get("timeout_sec", DEFAULT_TIMEOUT_SEC)))

    def _headers(self) -> dict[str, str]:
        token = self._token_provider()
        if not token.get("ok"):
            raise StoreError(f"Google auth failed: {token.get('error')}")
        return {"Authorization": f"Bearer {token['access_token']}", "Accept": "application/json"}

    def _get(self, url: str) -> dict[str, Any]:
        return _request_json("GET", url, self._headers(), None, self._timeout_sec)

    def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        return _request_json("POST", url, self._headers(), payload, self._timeout_sec)

    def _put(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        return _request_json("PUT", url, self._headers(), payload, self._timeout_sec)

    def _batch_update(self, requests: list[dict[str, Any]]) -> dict[str, Any]:
        return self._post(_build_batch_update_url(self._spreadsheet_id), {"requests": requests})

    def _sheet_properties(self, *, refresh: bool = False) -> dict[str, dict[str, Any]]:
        if self._sheets is None or refresh:
            payload = self._get(_build_sheet_metadata_url(self._spreadsheet_id))
            sheets: dict[str, dict[str, Any]] = {}
            for item in payload.get("sheets") or []:
                props = item.get("properties") if isinstance(item, dict) else None
                if isinstance(props, dict) and isinstance(props.get("title"), str):
                    sheets[props["title"]] = props
            self._sheets = sheets
        return self._sheets

    def _sheet_id(self, name: str) -> int:
        props = self._sheet_properties().get(name)
        if props is None:
            props = self._sheet_properties(refresh=True).get(name)
        if props is None or not isinstance(props.get("sheetId"), int):
            raise StoreError(f"Sheet tab not found: {name}")
        return int(props["sheetId"])

    def _column_count(self, name: str) -> int:
        props = self._sheet_properties().get(name) or {}
        grid = props.get("gridProperties") if isinstance(props.get("gridProperties"), dict) else {}
        count = grid.get("columnCount")
        return int(count) if isinstance(count, int) else 0

    def _read_header(self, name: str) -> list[str]:
        payload = self._get(_build_values_get_url(self._spreadsheet_id, _a1(name, "1:1")))
        values = payload.get("values")
        first = values[0] if isinstance(values, list) and values else []
        return [str(value) if value is not None else "" for value in first]

    def _write_header(self, name: str, start_column: int, names: Sequence[str]) -> None:
        end_column = start_column + len(names) - 1
        missing_columns = end_column - self._column_count(name)
        if missing_columns > 0:
            self._batch_update(
                [
                    {
                        "appendDimension": {
                            "sheetId": self._sheet_id(name),
                            "dimension": "COLUMNS",
                            "length": missing_columns,
                        }
                    }
                ]
            )
            self._sheet_properties(refresh=True)
        range_name = _a1(name, f"{_column_letters(start_column)}1:{_column_letters(end_column)}1")
        self._put(_build_values_update_url(self._spreadsheet_id, range_name), {"values": [list(names)]})

    def ensure_sheet(self, name: str, headers: Sequence[str], *, hidden: bool = False) -> bool:
        created = False
        if name not in self._sheet_properties():
            self._batch_update(
                [
                    {
                        "addSheet": {
                            "properties": {
                                "title": name,
                                "hidden": hidden,
                                "gridProperties": {"frozenRowCount": 1},
                            }
                        }
                    }
                ]
            )
            self._sheet_properties(refresh=True)
            created = True
            logger.info("created sheet {}", name)

        current = self._read_header(name)
        if not any(value.strip() for value in current):
            self._write_header(name, 1, headers)
            self._format_header(name, len(headers))
        else:
            self.ensure_columns(name, headers)
        return created

    def _format_header(self, name: str, width: int) -> None:
        self._batch_update(
            [
                {
                    "repeatCell": {
                        "range": {
                            "sheetId": self._sheet_id(name),
                            "startRowIndex": 0,
                            "endRowIndex": 1,
                            "startColumnIndex": 0,
                            "endColumnIndex": width,
                        },
                        "cell": {
                            "userEnteredFormat": {
                                "textFormat": {"bold": True},
                                "backgroundColor": hex_to_rgb(HEADER_BACKGROUND),
                            }
                        },
                        "fields": "userEnteredFormat(textFormat,backgroundColor)",
                    }
                }
            ]
        )

    def read_table(self, name: str) -> SheetTable:
        payload = self._get(_build_values_get_url(self._spreadsheet_id, _a1(name)))
        values = payload.get("values")
        rows = values if isinstance(values, list) else []
        table_rows = [[str(value) if value is not None else "" for value in row] for row in rows if isinstance(row, list)]
        if not table_rows:
            return SheetTable(name=name)
        return SheetTable(name=name, header=table_rows[0], rows=table_rows[1:])

    def append_rows(self, name: str, rows: Sequence[Sequence[CellInput]]) -> None:
        if not rows:
            return
        body = {
            "appendCells": {
                "sheetId": self._sheet_id(name),
                "rows": [{"values": [cell_data(as_cell(value)) for value in row]} for row in rows],
                "fields": "userEnteredValue,note",
            }
        }
        self._batch_update([body])
        logger.debug("appended {} rows to {}", len(rows), name)

    def ensure_columns(self, name: str, columns: Sequence[str]) -> list[str]:
        header = self._read_header(name)
        existing = {value.strip() for value in header if value.strip()}
        missing: list[str] = []
        for column in columns:
            clean = column.strip()
            if clean and clean not in existing and clean not in missing:
                missing.append(clean)
        if missing:
            self._write_header(name, len(header) + 1, missing)
            logger.info("added columns to {}: {}", name, ", ".join(missing))
        return header + missing

    def write_cells(self, name: str, writes: Sequence[CellWrite]) -> None:
        if not writes:
            return
        data = [
            {"range": _cell_a1(name, write.row_number, write.column_index), "values": [[write.value]]}
            for write in writes
        ]
        self._post(
            _build_values_batch_update_url(self._spreadsheet_id),
            {"valueInputOption": "RAW", "data": data},
        )

    def set_backgrounds(self, name: str, cells: Sequence[tuple[int, int]], color: str) -> None:
        if not cells:
            return
        sheet_id = self._sheet_id(name)
        rgb = hex_to_rgb(color)
        requests = [
            {
                "repeatCell": {
                    "range": _grid_range(sheet_id, row_number, column_index),
                    "cell": {"userEnteredFormat": {"backgroundColor": rgb}},
                    "fields": "userEnteredFormat.backgroundColor",
                }
            }
            for row_number, column_index in cells
        ]
        self._batch_update(requests)
