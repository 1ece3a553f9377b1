from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

import pytest

from offerflow.core.config_loader import clear_config_cache
from offerflow.core.errors import StoreError
from offerflow.core.offer_schema import CellInput, as_cell
from offerflow.core.row_store import CellWrite, SheetTable
from offerflow.core.state_store import CacheStore, PropertyStore


class MemoryRowStore:
    """In-memory RowStore. Sheet grids include the header as row 1."""

    def __init__(self) -> None:
        self.sheets: dict[str, list[list[str]]] = {}
        self.hidden: dict[str, bool] = {}
        self.notes: dict[tuple[str, int, int], str] = {}
        self.links: dict[tuple[str, int, int], str] = {}
        self.backgrounds: dict[tuple[str, int, int], str] = {}

    def _grid(self, name: str) -> list[list[str]]:
        if name not in self.sheets:
            raise StoreError(f"Sheet tab not found: {name}")
        return self.sheets[name]

    def ensure_sheet(self, name: str, headers: Sequence[str], *, hidden: bool = False) -> bool:
        created = name not in self.sheets
        if created:
            self.sheets[name] = []
            self.hidden[name] = hidden
        grid = self.sheets[name]
        if not grid:
            grid.append(list(headers))
        elif not any(str(value).strip() for value in grid[0]):
            grid[0] = list(headers)
        else:
            self.ensure_columns(name, headers)
        return created

    def read_table(self, name: str) -> SheetTable:
        grid = self._grid(name)
        if not grid:
            return SheetTable(name=name)
        return SheetTable(name=name, header=list(grid[0]), rows=[list(row) for row in grid[1:]])

    def append_rows(self, name: str, rows: Sequence[Sequence[CellInput]]) -> None:
        grid = self._grid(name)
        for row in rows:
            row_number = len(grid) + 1
            cells = [as_cell(value) for value in row]
            for col_idx, cell in enumerate(cells):
                if cell.note:
                    self.notes[(name, row_number, col_idx)] = cell.note
                if cell.link:
                    self.links[(name, row_number, col_idx)] = cell.link
            grid.append([cell.text for cell in cells])

    def ensure_columns(self, name: str, columns: Sequence[str]) -> list[str]:
        grid = self._grid(name)
        if not grid:
            grid.append([])
        header = grid[0]
        existing = {value.strip() for value in header if value.strip()}
        for column in columns:
            clean = column.strip()
            if clean and clean not in existing:
                header.append(clean)
                existing.add(clean)
        return list(header)

    def write_cells(self, name: str, writes: Sequence[CellWrite]) -> None:
        grid = self._grid(name)
        for write in writes:
            row = grid[write.row_number - 1]
            while len(row) <= write.column_index:
                row.append("")
            row[write.column_index] = write.value

    def set_backgrounds(self, name: str, cells: Sequence[tuple[int, int]], color: str) -> None:
        for row_number, column_index in cells:
            self.backgrounds[(name, row_number, column_index)] = color

    def data_rows(self, name: str) -> list[dict[str, str]]:
        table = self.read_table(name)
        return [table.row_dict(idx) for idx in range(len(table.rows))]


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("OFFERFLOW_CONFIG_PATH", str(tmp_path / "no-config.json"))
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture()
def write_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    def _write(payload: dict) -> Path:
        path = tmp_path / "config.json"
        path.write_text(json.dumps(payload), encoding="utf-8")
        monkeypatch.setenv("OFFERFLOW_CONFIG_PATH", str(path))
        clear_config_cache()
        return path

    return _write


@pytest.fixture()
def memory_store() -> MemoryRowStore:
    return MemoryRowStore()


@pytest.fixture()
def properties(tmp_path: Path) -> PropertyStore:
    return PropertyStore(tmp_path / "state.db")


@pytest.fixture()
def cache_store(tmp_path: Path) -> CacheStore:
    return CacheStore(tmp_path / "state.db")


@pytest.fixture()
def ft_properties(properties: PropertyStore) -> PropertyStore:
    properties.set_all({"FT_CLIENT_ID": "client-id", "FT_CLIENT_SECRET": "client-secret"})
    return properties
