"""Workbook-level operations on top of a RowStore."""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from .ai_logs import AiLogRow
from .errors import ConfigError
from .job_schema import JOB_COLUMNS, JOBS_SHEET, LOG_COLUMNS, LOGS_SHEET, SEEDED_JOB_ROWS, JobConfig, parse_job_rows
from .offer_schema import (
    EXCLUSION_COLUMNS,
    EXCLUSIONS_SHEET,
    IMPORT_COLUMNS,
    IMPORT_SHEET,
    OFFER_COLUMNS,
    OFFER_ID_COLUMN_ALIASES,
    OFFERS_SHEET,
    OfferRow,
)
from .exclusions import ExclusionRules, load_exclusions
from .row_store import CellWrite, RowStore, SheetTable

HIGHLIGHT_COLOR = "#d9ead3"
INIT_HINT = "Run `offerflow init` to create the workbook sheets."


class OfferRepository:
    """Offres, Import, Exclusions, Jobs and Logs sheets of one workbook."""

    def __init__(self, store: RowStore) -> None:
        self._store = store

    @property
    def store(self) -> RowStore:
        return self._store

    def ensure_workbook(self) -> dict[str, bool]:
        """Create missing sheets; seed the stock AI jobs into an empty Jobs sheet."""
        created = {
            OFFERS_SHEET: self._store.ensure_sheet(OFFERS_SHEET, OFFER_COLUMNS),
            EXCLUSIONS_SHEET: self._store.ensure_sheet(EXCLUSIONS_SHEET, EXCLUSION_COLUMNS),
            IMPORT_SHEET: self._store.ensure_sheet(IMPORT_SHEET, IMPORT_COLUMNS, hidden=True),
            JOBS_SHEET: self._store.ensure_sheet(JOBS_SHEET, JOB_COLUMNS),
            LOGS_SHEET: self._store.ensure_sheet(LOGS_SHEET, LOG_COLUMNS),
        }
        jobs = self._store.read_table(JOBS_SHEET)
        if not any(any(str(cell or "").strip() for cell in row) for row in jobs.rows):
            self._store.append_rows(JOBS_SHEET, [list(row) for row in SEEDED_JOB_ROWS])
            logger.info("seeded {} AI jobs into {}", len(SEEDED_JOB_ROWS), JOBS_SHEET)
        return created

    def read_offers(self) -> SheetTable:
        return self._store.read_table(OFFERS_SHEET)

    def offer_id_column(self, table: SheetTable) -> int:
        index = table.column_index(*OFFER_ID_COLUMN_ALIASES)
        if index is None:
            raise ConfigError(f"Column offre_ID not found in {OFFERS_SHEET}.", hint=INIT_HINT)
        return index

    def load_known_ids(self) -> set[str]:
        table = self.read_offers()
        if not table.rows:
            return set()
        index = self.offer_id_column(table)
        return {value.strip() for value in table.column_values(index) if value.strip()}

    def load_exclusion_rules(self) -> ExclusionRules:
        table = self._store.read_table(EXCLUSIONS_SHEET)
        return load_exclusions(table.rows)

    def append_offer_rows(self, rows: Sequence[OfferRow]) -> None:
        if rows:
            self._store.append_rows(OFFERS_SHEET, [row.to_cells() for row in rows])

    def append_raw_imports(self, records: Sequence[tuple[str, str]]) -> None:
        if records:
            self._store.append_rows(IMPORT_SHEET, [[offer_id, raw_json] for offer_id, raw_json in records])

    def load_raw_imports(self) -> dict[str, str]:
        table = self._store.read_table(IMPORT_SHEET)
        out: dict[str, str] = {}
        for idx in range(len(table.rows)):
            offer_id = table.cell(idx, 0).strip()
            if offer_id:
                out[offer_id] = table.cell(idx, 1)
        return out

    def ensure_offer_columns(self, columns: Sequence[str]) -> list[str]:
        return self._store.ensure_columns(OFFERS_SHEET, columns)

    def load_jobs(self) -> dict[str, JobConfig]:
        table = self._store.read_table(JOBS_SHEET)
        return parse_job_rows(table.rows)

    def write_offer_cells(self, writes: Sequence[CellWrite]) -> None:
        if writes:
            self._store.write_cells(OFFERS_SHEET, writes)

    def highlight_offer_cells(self, cells: Sequence[tuple[int, int]]) -> None:
        if cells:
            self._store.set_backgrounds(OFFERS_SHEET, cells, HIGHLIGHT_COLOR)

    def append_log_row(self, row: AiLogRow, *, log_payloads: bool = True) -> None:
        self._store.append_rows(LOGS_SHEET, [row.to_values(log_payloads=log_payloads)])
