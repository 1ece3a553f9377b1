"""Declarative AI jobs run against the persisted offer rows."""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from time import monotonic
from typing import Any

from loguru import logger

from .ai_logs import AiLogRow, LogStatus, new_request_id
from .config_loader import AiSettings
from .errors import ConfigError, ParseError
from .job_schema import JobConfig
from .llm_client import MISSING_API_KEY_HINT, LlmClient
from .offer_repository import OfferRepository
from .prompt_cache import CachedPromptResult, PromptCache, build_prompt_cache_key
from .row_store import CellWrite, SheetTable
from .templating import render_template

ROW_NAMESPACE = "RowData"
RAW_IMPORT_KEY = "RawImport.raw_json"
LEGACY_ROW_NAMESPACE = "Offres"
LEGACY_RAW_IMPORT_KEY = "Import.raw_json"

SKIP_ALREADY_FILLED = "FILL_IF_EMPTY: already filled"
SKIP_DRY_RUN = "DRY_RUN"
FLAG_CACHE_HIT = "CACHE_HIT"
FLAG_WEB_SEARCH = "WEB_SEARCH"
FLAG_WEB_SEARCH_FALLBACK = "WEB_SEARCH_FALLBACK"

COMPLETION_JOB_KEY = "completion"
COMMERCIAL_SCORE_JOB_KEY = "commercial_score"
KEYWORDS_JOB_KEY = "keywords"

COMMERCIAL_SCORE_FIELDS = {
    "Score commercial": "score",
    "Keywords +": "keywords_positive",
    "Keywords -": "keywords_negative",
    "Explication": "explanation",
}
KEYWORDS_NEGATIVE_FIELDS = {
    "Keywords - Intitule": "intitule",
    "Keywords - Description": "description",
    "Keywords - EntrepriseNom": "entrepriseNom",
    "Keywords - EntrepriseAPropos": "entrepriseAPropos",
}

_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)?")


@dataclass(frozen=True)
class RowOk:
    log: AiLogRow
    writes: tuple[CellWrite, ...] = ()
    highlights: tuple[tuple[int, int], ...] = ()
    cache_hit: bool = False


@dataclass(frozen=True)
class RowSkip:
    reason: str
    log: AiLogRow


@dataclass(frozen=True)
class RowError:
    kind: str
    message: str
    log: AiLogRow


RowOutcome = RowOk | RowSkip | RowError


def _strip_code_fences(text: str) -> str:
    raw = text.replace("```json", "```").replace("```JSON", "```")
    return raw.strip("`").strip()


def _loads_object(candidate: str) -> dict[str, Any] | None:
    try:
        payload = json.loads(candidate)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def _first_balanced_object(raw: str) -> dict[str, Any] | None:
    for start_idx, ch in enumerate(raw):
        if ch != "{":
            continue
        depth = 0
        for end_idx in range(start_idx, len(raw)):
            token = raw[end_idx]
            if token == "{":
                depth += 1
            elif token == "}":
                depth -= 1
                if depth == 0:
                    payload = _loads_object(raw[start_idx : end_idx + 1])
                    if payload is not None:
                        return payload
                    break
    return None


def extract_json_object(text: str | None) -> dict[str, Any]:
    """Best-effort extraction of the JSON object in a model reply."""
    raw = (text or "").strip()
    if not raw:
        raise ParseError("Empty response.")

    payload = _loads_object(raw)
    if payload is not None:
        return payload

    unfenced = _strip_code_fences(raw)
    payload = _loads_object(unfenced)
    if payload is not None:
        return payload

    start = unfenced.find("{")
    end = unfenced.rfind("}")
    if 0 <= start < end:
        payload = _loads_object(unfenced[start : end + 1])
        if payload is not None:
            return payload

    payload = _first_balanced_object(unfenced)
    if payload is not None:
        return payload
    raise ParseError("No JSON object found in response.")


def parse_number(text: str | None) -> float:
    raw = (text or "").strip()
    if not raw:
        raise ParseError("Empty number.")
    match = _NUMBER_RE.search(raw)
    if not match:
        raise ParseError(f"No number found: {raw[:80]}")
    value = float(match.group(0).replace(",", "."))
    if not math.isfinite(value):
        raise ParseError(f"Invalid number: {match.group(0)}")
    return value


def format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(value)


def cell_text(value: Any) -> str:
    """Render a parsed JSON value as spreadsheet cell text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return format_number(float(value))
    if isinstance(value, list):
        return ", ".join(cell_text(item) for item in value if item not in (None, ""))
    return json.dumps(value, ensure_ascii=False)


def _list_text(value: Any) -> str:
    if not isinstance(value, list):
        return ""
    return cell_text(value)


def json_target_value(job_key: str, target: str, parsed: Mapping[str, Any]) -> str:
    """Value for one target column. Two stock jobs use bespoke field names."""
    if job_key == COMMERCIAL_SCORE_JOB_KEY and target in COMMERCIAL_SCORE_FIELDS:
        value = parsed.get(COMMERCIAL_SCORE_FIELDS[target])
        if target in ("Keywords +", "Keywords -"):
            return _list_text(value)
        return cell_text(value)
    if job_key == KEYWORDS_JOB_KEY and target in KEYWORDS_NEGATIVE_FIELDS:
        negatives = parsed.get("keywords_negative")
        if not isinstance(negatives, dict):
            return ""
        return _list_text(negatives.get(KEYWORDS_NEGATIVE_FIELDS[target]))
    return cell_text(parsed.get(target))


def build_row_variables(header: Sequence[str], row: Mapping[str, str], raw_json: str) -> dict[str, str]:
    variables: dict[str, str] = {}
    for name in header:
        column = str(name or "").strip()
        if not column:
            continue
        value = row.get(column, "")
        variables[f"{ROW_NAMESPACE}.{column}"] = value
        variables[f"{LEGACY_ROW_NAMESPACE}.{column}"] = value
    variables[RAW_IMPORT_KEY] = raw_json
    variables[LEGACY_RAW_IMPORT_KEY] = raw_json
    return variables


def _is_blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


@dataclass
class _JobStats:
    rows: int = 0
    ok: int = 0
    skipped: int = 0
    errors: int = 0
    cache_hits: int = 0
    cells_written: int = 0
    error_samples: list[str] = field(default_factory=list)


class JobRunner:
    """Runs one AI job (or every enabled job) over the Offres sheet.

    Each row produces exactly one audit log row. Row-level failures become
    ERROR log rows; only configuration problems abort a run.
    """

    def __init__(
        self,
        repository: OfferRepository,
        *,
        settings: AiSettings,
        prompt_cache: PromptCache,
        llm_client: LlmClient | None = None,
    ) -> None:
        self._repository = repository
        self._settings = settings
        self._cache = prompt_cache
        self._llm = llm_client or LlmClient(settings)

    def _log_row(
        self,
        job: JobConfig,
        *,
        offre_id: str,
        row_number: int,
        status: LogStatus,
        request_id: str,
        prompt: str = "",
        response_text: str = "",
        input_tokens: int | None = None,
        output_tokens: int | None = None,
        total_tokens: int | None = None,
        duration_ms: int = 0,
        message: str = "",
    ) -> AiLogRow:
        return AiLogRow(
            job_key=job.job_key,
            offre_id=offre_id,
            row_number=row_number,
            model=self._settings.model,
            status=status,
            prompt_rendered=prompt,
            response_text=response_text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
            duration_ms=duration_ms,
            error_message=message,
            request_id=request_id,
        )

    def _complete(self, job: JobConfig, prompt: str, cache_key: str) -> tuple[CachedPromptResult, list[str], bool]:
        cached = self._cache.get(cache_key)
        if cached is not None:
            flags = [FLAG_CACHE_HIT]
            if cached.used_web_search:
                flags.append(FLAG_WEB_SEARCH)
            if cached.web_search_fallback:
                flags.append(FLAG_WEB_SEARCH_FALLBACK)
            return cached, flags, True

        result = self._llm.call(prompt, rate_limit_override_ms=job.rate_limit_ms)
        flags = []
        if result.used_web_search:
            flags.append(FLAG_WEB_SEARCH)
        if result.web_search_fallback:
            flags.append(FLAG_WEB_SEARCH_FALLBACK)
        fresh = CachedPromptResult(
            text=result.text,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            total_tokens=result.total_tokens,
            used_web_search=result.used_web_search,
            web_search_fallback=result.web_search_fallback,
        )
        self._cache.set(cache_key, fresh)
        return fresh, flags, False

    def _distribute(
        self,
        job: JobConfig,
        parsed: Any,
        *,
        row_values: dict[int, str],
        columns: Mapping[str, int],
        row_number: int,
    ) -> tuple[list[CellWrite], list[tuple[int, int]]]:
        writes: list[CellWrite] = []
        highlights: list[tuple[int, int]] = []
        for target in job.target_columns:
            column = columns.get(target)
            if column is None:
                continue
            was_empty = _is_blank(row_values.get(column))
            if job.write_strategy == "fill_if_empty" and not was_empty:
                continue

            if job.output_mode == "json":
                value = json_target_value(job.job_key, target, parsed)
            elif job.output_mode == "number":
                value = format_number(parsed)
            else:
                value = parsed

            writes.append(CellWrite(row_number=row_number, column_index=column, value=value))
            row_values[column] = value
            if job.job_key == COMPLETION_JOB_KEY and was_empty and not _is_blank(value):
                highlights.append((row_number, column))
        return writes, highlights

    def process_row(
        self,
        job: JobConfig,
        *,
        table: SheetTable,
        row_index: int,
        offre_id: str,
        columns: Mapping[str, int],
        raw_imports: Mapping[str, str],
        dry_run: bool,
    ) -> RowOutcome:
        row_number = table.row_number(row_index)
        row_values = {idx: table.cell(row_index, idx) for idx in columns.values()}

        if job.write_strategy == "fill_if_empty":
            present = [columns[name] for name in job.target_columns if name in columns]
            if all(not _is_blank(row_values.get(idx)) for idx in present):
                log = self._log_row(
                    job,
                    offre_id=offre_id,
                    row_number=row_number,
                    status="SKIP",
                    request_id=new_request_id(),
                    message=SKIP_ALREADY_FILLED,
                )
                return RowSkip(reason=SKIP_ALREADY_FILLED, log=log)

        variables = build_row_variables(table.header, table.row_dict(row_index), raw_imports.get(offre_id, ""))
        prompt = render_template(job.prompt_template, variables)
        request_id = new_request_id()

        if dry_run:
            log = self._log_row(
                job,
                offre_id=offre_id,
                row_number=row_number,
                status="SKIP",
                request_id=request_id,
                prompt=prompt,
                message=SKIP_DRY_RUN,
            )
            return RowSkip(reason=SKIP_DRY_RUN, log=log)

        cache_key = build_prompt_cache_key(
            model=self._settings.model,
            temperature=self._settings.temperature,
            max_output_tokens=self._settings.max_output_tokens,
            output_mode=job.output_mode,
            schema_json=job.schema_json,
            prompt=prompt,
        )
        started = monotonic()
        response_text = ""
        try:
            result, flags, cache_hit = self._complete(job, prompt, cache_key)
            response_text = result.text
            if job.output_mode == "json":
                parsed: Any = extract_json_object(response_text)
            elif job.output_mode == "number":
                parsed = parse_number(response_text)
            else:
                parsed = response_text.strip()
            writes, highlights = self._distribute(
                job,
                parsed,
                row_values=row_values,
                columns=columns,
                row_number=row_number,
            )
        except Exception as exc:
            # One failing row never aborts the job; it leaves an ERROR log row.
            message = str(exc) or type(exc).__name__
            logger.warning("job={} row={} failed: {}: {}", job.job_key, row_number, type(exc).__name__, message)
            return RowError(
                kind=type(exc).__name__,
                message=message,
                log=self._log_row(
                    job,
                    offre_id=offre_id,
                    row_number=row_number,
                    status="ERROR",
                    request_id=request_id,
                    prompt=prompt,
                    response_text=response_text,
                    duration_ms=int((monotonic() - started) * 1000),
                    message=message,
                ),
            )

        log = self._log_row(
            job,
            offre_id=offre_id,
            row_number=row_number,
            status="OK",
            request_id=request_id,
            prompt=prompt,
            response_text=response_text,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            total_tokens=result.total_tokens,
            duration_ms=int((monotonic() - started) * 1000),
            message=" |".join(flags),
        )
        return RowOk(log=log, writes=tuple(writes), highlights=tuple(highlights), cache_hit=cache_hit)

    def _apply(self, outcome: RowOutcome, stats: _JobStats) -> None:
        self._repository.append_log_row(outcome.log, log_payloads=self._settings.log_payloads)
        if isinstance(outcome, RowOk):
            stats.ok += 1
            stats.cache_hits += int(outcome.cache_hit)
            stats.cells_written += len(outcome.writes)
            self._repository.write_offer_cells(outcome.writes)
            self._repository.highlight_offer_cells(outcome.highlights)
        elif isinstance(outcome, RowSkip):
            stats.skipped += 1
        else:
            stats.errors += 1
            if len(stats.error_samples) < 5:
                stats.error_samples.append(f"row {outcome.log.row_number}: {outcome.kind}: {outcome.message}")

    def run_job(self, job_key: str, *, dry_run: bool | None = None) -> dict[str, Any]:
        """Run one job over every row with an offre_ID and return a summary."""
        effective_dry_run = self._settings.dry_run if dry_run is None else bool(dry_run)
        if not effective_dry_run and not self._settings.api_key:
            raise ConfigError("OPENAI_API_KEY is missing.", hint=MISSING_API_KEY_HINT)

        jobs = self._repository.load_jobs()
        job = jobs.get(job_key)
        if job is None:
            raise ConfigError(f"Unknown AI job: {job_key}.", hint="Run `offerflow jobs list` to see configured jobs.")

        raw_imports = self._repository.load_raw_imports()
        self._repository.ensure_offer_columns(job.target_columns)
        table = self._repository.read_offers()
        stats = _JobStats()
        summary: dict[str, Any] = {"ok": True, "job_key": job.job_key, "dry_run": effective_dry_run}
        if not table.rows:
            summary.update(_summary_counts(stats))
            return summary

        id_column = self._repository.offer_id_column(table)
        columns = {
            str(name or "").strip(): idx
            for idx, name in reversed(list(enumerate(table.header)))
            if str(name or "").strip()
        }

        started = monotonic()
        for row_index in range(len(table.rows)):
            offre_id = table.cell(row_index, id_column).strip()
            if not offre_id:
                continue
            stats.rows += 1
            outcome = self.process_row(
                job,
                table=table,
                row_index=row_index,
                offre_id=offre_id,
                columns=columns,
                raw_imports=raw_imports,
                dry_run=effective_dry_run,
            )
            self._apply(outcome, stats)

        elapsed_ms = int((monotonic() - started) * 1000)
        logger.info(
            "job={} rows={} ok={} skipped={} errors={} cacheHits={} cells={} in {}ms",
            job.job_key,
            stats.rows,
            stats.ok,
            stats.skipped,
            stats.errors,
            stats.cache_hits,
            stats.cells_written,
            elapsed_ms,
        )
        summary.update(_summary_counts(stats))
        summary["elapsed_ms"] = elapsed_ms
        return summary

    def run_all_enabled(self, *, dry_run: bool | None = None) -> dict[str, Any]:
        """Run every enabled job in table order; jobs share no state."""
        jobs = self._repository.load_jobs()
        results = [self.run_job(job.job_key, dry_run=dry_run) for job in jobs.values() if job.enabled]
        return {"ok": True, "jobs": results}


def _summary_counts(stats: _JobStats) -> dict[str, Any]:
    return {
        "rows": stats.rows,
        "ok_rows": stats.ok,
        "skipped": stats.skipped,
        "errors": stats.errors,
        "cache_hits": stats.cache_hits,
        "cells_written": stats.cells_written,
        "error_samples": list(stats.error_samples),
    }
