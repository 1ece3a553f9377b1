"""Row-store facade over a spreadsheet-like backend."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from .offer_schema import CellInput

HEADER_ROW = 1
DATA_START_ROW = 2


@dataclass
class SheetTable:
    """Header plus data rows of one sheet. `rows[i]` lives at sheet row `i + 2`."""

    name: str
    header: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)

    def column_index(self, *names: str) -> int | None:
        """0-based index of the first header matching one of `names`."""
        cleaned = [str(value or "").strip() for value in self.header]
        for name in names:
            if name in cleaned:
                return cleaned.index(name)
        return None

    def cell(self, row_index: int, column_index: int) -> str:
        row = self.rows[row_index]
        if column_index < len(row):
            value = row[column_index]
            return "" if value is None else str(value)
        return ""

    def column_values(self, column_index: int) -> list[str]:
        return [self.cell(idx, column_index) for idx in range(len(self.rows))]

    def row_dict(self, row_index: int) -> dict[str, str]:
        out: dict[str, str] = {}
        for col_idx, name in enumerate(self.header):
            key = str(name or "").strip()
            if key:
                out[key] = self.cell(row_index, col_idx)
        return out

    @staticmethod
    def row_number(row_index: int) -> int:
        return row_index + DATA_START_ROW


@dataclass(frozen=True)
class CellWrite:
    row_number: int
    column_index: int
    value: str


class RowStore(Protocol):
    """Operations the core needs from the spreadsheet backend.

    Row numbers are 1-based sheet rows; column indexes are 0-based.
    """

    def ensure_sheet(self, name: str, headers: Sequence[str], *, hidden: bool = False) -> bool:
        """Create the sheet if missing and make sure its header starts with `headers`.

        Returns True when the sheet was created.
        """
        ...

    def read_table(self, name: str) -> SheetTable: ...

    def append_rows(self, name: str, rows: Sequence[Sequence[CellInput]]) -> None: ...

    def ensure_columns(self, name: str, columns: Sequence[str]) -> list[str]:
        """Append missing header columns and return the resulting header."""
        ...

    def write_cells(self, name: str, writes: Sequence[CellWrite]) -> None: ...

    def set_backgrounds(self, name: str, cells: Sequence[tuple[int, int]], color: str) -> None: ...
