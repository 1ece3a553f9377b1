"""Shared runtime facade for the CLI, the daemon and the control panel."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from threading import RLock
from typing import Any

from loguru import logger

from offerflow.core.config_loader import (
    get_ai_settings,
    get_google_sheets_config,
    get_schedule_config,
    get_search_settings,
    get_state_db_path,
    load_config_or_empty,
)
from offerflow.core.errors import ConfigError, OfferflowError
from offerflow.core.ingestion import run_ingestion
from offerflow.core.job_runner import JobRunner
from offerflow.core.llm_client import LlmClient
from offerflow.core.offer_repository import OfferRepository
from offerflow.core.prompt_cache import PromptCache
from offerflow.core.row_store import RowStore
from offerflow.core.secrets import FT_APPLICATIONS_URL, get_secrets, set_secrets
from offerflow.core.state_store import CacheStore, PropertyStore
from offerflow.tools.kernel.france_travail import OfferSearchClient, TokenCache
from offerflow.tools.kernel.google_auth import google_oauth_settings
from offerflow.tools.kernel.google_sheets_store import GoogleSheetsRowStore


class RuntimeService:
    """Single owner of the stores and clients behind every entrypoint.

    Collaborators are built lazily from config. Tests (or embedding code) may
    inject any of them through the constructor.
    """

    def __init__(
        self,
        *,
        config: dict[str, Any] | None = None,
        row_store: RowStore | None = None,
        properties: Any | None = None,
        cache: Any | None = None,
        search_client: Any | None = None,
        llm_client: LlmClient | None = None,
    ) -> None:
        self._lock = RLock()
        self._config = config
        self._row_store = row_store
        self._properties = properties
        self._cache = cache
        self._search_client = search_client
        self._llm_client = llm_client

    def config(self) -> dict[str, Any]:
        return self._config if self._config is not None else load_config_or_empty()

    def properties(self) -> Any:
        with self._lock:
            if self._properties is None:
                self._properties = PropertyStore(get_state_db_path(self.config()))
            return self._properties

    def cache(self) -> Any:
        with self._lock:
            if self._cache is None:
                self._cache = CacheStore(get_state_db_path(self.config()))
            return self._cache

    def row_store(self) -> RowStore:
        with self._lock:
            if self._row_store is None:
                self._row_store = GoogleSheetsRowStore.from_config(self.config())
            return self._row_store

    def repository(self) -> OfferRepository:
        return OfferRepository(self.row_store())

    def search_client(self) -> Any:
        if self._search_client is not None:
            return self._search_client
        settings = get_search_settings(self.config())
        return OfferSearchClient(settings, TokenCache(self.cache(), settings))

    def job_runner(self) -> JobRunner:
        settings = get_ai_settings(self.properties(), self.config())
        return JobRunner(
            self.repository(),
            settings=settings,
            prompt_cache=PromptCache(self.cache(), ttl_sec=settings.prompt_cache_ttl_sec),
            llm_client=self._llm_client,
        )

    @staticmethod
    def _guard(source: str, action: Callable[[], dict[str, Any]]) -> dict[str, Any]:
        try:
            out = action()
        except ConfigError as exc:
            logger.error("{} failed: {}", source, exc)
            return {"ok": False, "source": source, "error": exc.message, "hint": exc.hint}
        except OfferflowError as exc:
            logger.error("{} failed: {}", source, exc)
            return {"ok": False, "source": source, "error": str(exc)}
        out.setdefault("source", source)
        return out

    def health(self) -> dict[str, Any]:
        """Local readiness checks; nothing here calls a remote API."""
        config = self.config()
        checks: list[dict[str, Any]] = []

        try:
            properties = self.properties()
            properties.get("__health__")
            properties_ok = True
        except (sqlite3.Error, OSError):
            properties = None
            properties_ok = False
        checks.append({"key": "properties", "label": "Property store", "ok": properties_ok})

        try:
            self.cache().get("__health__")
            cache_ok = True
        except (sqlite3.Error, OSError):
            cache_ok = False
        checks.append({"key": "cache", "label": "Cache store", "ok": cache_ok})

        checks.append(
            {
                "key": "secrets",
                "label": "Secrets FT_CLIENT_ID / FT_CLIENT_SECRET",
                "ok": properties is not None and get_secrets(properties) is not None,
                "help": FT_APPLICATIONS_URL,
            }
        )
        checks.append(
            {
                "key": "openai",
                "label": "OPENAI_API_KEY",
                "ok": properties is not None and bool(get_ai_settings(properties, config).api_key),
            }
        )

        sheets = get_google_sheets_config(config)
        spreadsheet_id = sheets.get("spreadsheet_id")
        checks.append(
            {
                "key": "spreadsheet",
                "label": "google_sheets.spreadsheet_id",
                "ok": self._row_store is not None or (isinstance(spreadsheet_id, str) and bool(spreadsheet_id.strip())),
            }
        )
        if self._row_store is None:
            missing = google_oauth_settings(config)["missing"]
            checks.append(
                {"key": "google_oauth", "label": "Google OAuth settings", "ok": not missing, "missing": missing}
            )

        issues = [item["label"] for item in checks if not item["ok"]]
        out: dict[str, Any] = {"ok": not issues, "source": "runtime_service", "checks": checks, "issues": issues}
        if issues:
            out["error"] = f"Health check: {len(issues)} issue(s): " + "; ".join(issues)
        return out

    def init_workbook(self) -> dict[str, Any]:
        def action() -> dict[str, Any]:
            created = self.repository().ensure_workbook()
            return {"ok": True, "created": created}

        return self._guard("init_workbook", action)

    def ingest(self, *, days: int | None = None, keywords: str | None = None) -> dict[str, Any]:
        def action() -> dict[str, Any]:
            window = days if days is not None else get_search_settings(self.config()).published_since_days
            return run_ingestion(
                repository=self.repository(),
                search_client=self.search_client(),
                properties=self.properties(),
                days=window,
                keywords=keywords,
            )

        return self._guard("ingest", action)

    def list_jobs(self) -> dict[str, Any]:
        def action() -> dict[str, Any]:
            jobs = self.repository().load_jobs()
            return {
                "ok": True,
                "jobs": [
                    {
                        "job_key": job.job_key,
                        "enabled": job.enabled,
                        "output_mode": job.output_mode,
                        "write_strategy": job.write_strategy,
                        "target_columns": list(job.target_columns),
                        "rate_limit_ms": job.rate_limit_ms,
                    }
                    for job in jobs.values()
                ],
            }

        return self._guard("list_jobs", action)

    def run_job(self, *, job_key: str, dry_run: bool | None = None) -> dict[str, Any]:
        return self._guard("run_job", lambda: self.job_runner().run_job(job_key, dry_run=dry_run))

    def run_all_enabled_jobs(self, *, dry_run: bool | None = None) -> dict[str, Any]:
        return self._guard("run_all_enabled_jobs", lambda: self.job_runner().run_all_enabled(dry_run=dry_run))

    def set_secrets(
        self,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        openai_api_key: str | None = None,
    ) -> dict[str, Any]:
        def action() -> dict[str, Any]:
            updated = set_secrets(
                self.properties(),
                client_id=client_id,
                client_secret=client_secret,
                openai_api_key=openai_api_key,
            )
            if not updated:
                raise ConfigError("No secret given.", hint="Pass --client-id, --client-secret or --openai-api-key.")
            return {"ok": True, "updated": updated}

        return self._guard("set_secrets", action)

    def run_scheduled(self) -> dict[str, Any]:
        """The daily trigger: ingest the configured window, then optionally run enabled jobs."""
        schedule = get_schedule_config(self.config())
        ingest = self.ingest(days=schedule["window_days"])
        out: dict[str, Any] = {"ok": bool(ingest.get("ok")), "source": "scheduled_run", "ingest": ingest}
        if ingest.get("ok") and schedule["run_jobs_after_ingest"]:
            jobs = self.run_all_enabled_jobs()
            out["jobs"] = jobs
            out["ok"] = bool(jobs.get("ok"))
        return out


_RUNTIME_SERVICE: RuntimeService | None = None


def get_runtime_service() -> RuntimeService:
    global _RUNTIME_SERVICE
    if _RUNTIME_SERVICE is None:
        _RUNTIME_SERVICE = RuntimeService()
    return _RUNTIME_SERVICE


def reset_runtime_service() -> None:
    global _RUNTIME_SERVICE
    _RUNTIME_SERVICE = None
