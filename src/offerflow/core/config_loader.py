"""Load and query offerflow JSON config files."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("config/config.json")
DEFAULT_STATE_DB_PATH = "state/offerflow.db"

DEFAULT_SEARCH_KEYWORDS = "travailleur social"
DEFAULT_PUBLISHED_SINCE_DAYS = 1
DEFAULT_PAGE_SIZE = 150
DEFAULT_MAX_PAGES = 20
DEFAULT_OAUTH_TOKEN_URL = "https://entreprise.pole-emploi.fr/connexion/oauth2/access_token?realm=/partenaire"
DEFAULT_OFFERS_SEARCH_URL = "https://api.francetravail.io/partenaire/offresdemploi/v2/offres/search"
DEFAULT_OAUTH_SCOPE = "api_offresdemploiv2 o2dsoffre"
DEFAULT_TOKEN_CACHE_TTL_SEC = 50 * 60
DEFAULT_SEARCH_TIMEOUT_SEC = 30

DEFAULT_OPENAI_MODEL = "gpt-5.2"
DEFAULT_OPENAI_TEMPERATURE = 0.2
DEFAULT_OPENAI_MAX_OUTPUT_TOKENS = 400
DEFAULT_OPENAI_REQUEST_TIMEOUT_MS = 90_000
DEFAULT_OPENAI_RATE_LIMIT_MS = 800
DEFAULT_PROMPT_CACHE_TTL_SEC = 6 * 60 * 60

MIN_OPENAI_MAX_OUTPUT_TOKENS = 16
MIN_OPENAI_REQUEST_TIMEOUT_MS = 5_000

# Property-store keys that override the `openai` config block.
PROP_OPENAI_API_KEY = "OPENAI_API_KEY"
PROP_OPENAI_MODEL = "OPENAI_MODEL"
PROP_OPENAI_TEMPERATURE = "OPENAI_TEMPERATURE"
PROP_OPENAI_MAX_OUTPUT_TOKENS = "OPENAI_MAX_OUTPUT_TOKENS"
PROP_OPENAI_REQUEST_TIMEOUT_MS = "OPENAI_REQUEST_TIMEOUT_MS"
PROP_OPENAI_RATE_LIMIT_MS = "OPENAI_RATE_LIMIT_MS"
PROP_OPENAI_DRY_RUN = "OPENAI_DRY_RUN"
PROP_OPENAI_LOG_PAYLOADS = "OPENAI_LOG_PAYLOADS"

_TRUTHY_RE = re.compile(r"^(1|true|yes|y|on)$", re.IGNORECASE)
_CONFIG_CACHE: dict[Path, tuple[int, dict[str, Any]]] = {}


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[3]


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    """Resolve config path against repo root.

    Priority:
    1. explicit function argument
    2. `OFFERFLOW_CONFIG_PATH` environment variable
    3. default `config/config.json`
    """
    raw_path: str | Path | None = config_path or os.getenv("OFFERFLOW_CONFIG_PATH")
    candidate = Path(raw_path) if raw_path else DEFAULT_CONFIG_PATH
    if not candidate.is_absolute():
        candidate = _repo_root() / candidate
    return candidate.resolve()


def resolve_repo_path(raw_path: str | Path) -> Path:
    candidate = Path(raw_path)
    if not candidate.is_absolute():
        candidate = _repo_root() / candidate
    return candidate.resolve()


def load_config(config_path: str | Path | None = None, *, use_cache: bool = True) -> dict[str, Any]:
    """Load config JSON as a dictionary."""
    resolved = resolve_config_path(config_path)
    if not resolved.exists():
        raise FileNotFoundError(f"Config file not found: {resolved}")

    mtime_ns = resolved.stat().st_mtime_ns
    if use_cache and resolved in _CONFIG_CACHE:
        cached_mtime_ns, cached_payload = _CONFIG_CACHE[resolved]
        if cached_mtime_ns == mtime_ns:
            return cached_payload

    try:
        payload = json.loads(resolved.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in config file: {resolved}") from exc

    if not isinstance(payload, dict):
        raise ValueError(f"Config root must be a JSON object: {resolved}")

    _CONFIG_CACHE[resolved] = (mtime_ns, payload)
    return payload


def load_config_or_empty() -> dict[str, Any]:
    """Load the active config, treating a missing file as an empty config."""
    try:
        return load_config()
    except FileNotFoundError:
        return {}


def clear_config_cache() -> None:
    """Clear in-memory config cache."""
    _CONFIG_CACHE.clear()


def _section(config: dict[str, Any] | None, name: str) -> dict[str, Any]:
    payload = config if config is not None else load_config_or_empty()
    block = payload.get(name)
    return block if isinstance(block, dict) else {}


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value.strip():
        try:
            return int(float(value.strip()))
        except ValueError:
            return default
    return default


def _as_float(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str) and value.strip():
        return bool(_TRUTHY_RE.match(value.strip()))
    return default


def _as_text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


@dataclass(frozen=True)
class SearchSettings:
    keywords: str = DEFAULT_SEARCH_KEYWORDS
    published_since_days: int = DEFAULT_PUBLISHED_SINCE_DAYS
    page_size: int = DEFAULT_PAGE_SIZE
    max_pages: int = DEFAULT_MAX_PAGES
    oauth_token_url: str = DEFAULT_OAUTH_TOKEN_URL
    search_url: str = DEFAULT_OFFERS_SEARCH_URL
    oauth_scope: str = DEFAULT_OAUTH_SCOPE
    token_cache_ttl_sec: int = DEFAULT_TOKEN_CACHE_TTL_SEC
    timeout_sec: int = DEFAULT_SEARCH_TIMEOUT_SEC


@dataclass(frozen=True)
class AiSettings:
    api_key: str = ""
    model: str = DEFAULT_OPENAI_MODEL
    temperature: float = DEFAULT_OPENAI_TEMPERATURE
    max_output_tokens: int = DEFAULT_OPENAI_MAX_OUTPUT_TOKENS
    request_timeout_ms: int = DEFAULT_OPENAI_REQUEST_TIMEOUT_MS
    rate_limit_ms: int = DEFAULT_OPENAI_RATE_LIMIT_MS
    dry_run: bool = False
    log_payloads: bool = True
    prompt_cache_ttl_sec: int = DEFAULT_PROMPT_CACHE_TTL_SEC


def get_search_settings(config: dict[str, Any] | None = None) -> SearchSettings:
    """Return offer-search settings from the `search` block with defaults applied."""
    block = _section(config, "search")
    return SearchSettings(
        keywords=_as_text(block.get("keywords"), DEFAULT_SEARCH_KEYWORDS),
        published_since_days=max(1, _as_int(block.get("published_since_days"), DEFAULT_PUBLISHED_SINCE_DAYS)),
        page_size=max(1, _as_int(block.get("page_size"), DEFAULT_PAGE_SIZE)),
        max_pages=max(1, _as_int(block.get("max_pages"), DEFAULT_MAX_PAGES)),
        oauth_token_url=_as_text(block.get("oauth_token_url"), DEFAULT_OAUTH_TOKEN_URL),
        search_url=_as_text(block.get("search_url"), DEFAULT_OFFERS_SEARCH_URL),
        oauth_scope=_as_text(block.get("oauth_scope"), DEFAULT_OAUTH_SCOPE),
        token_cache_ttl_sec=max(1, _as_int(block.get("token_cache_ttl_sec"), DEFAULT_TOKEN_CACHE_TTL_SEC)),
        timeout_sec=max(1, _as_int(block.get("timeout_sec"), DEFAULT_SEARCH_TIMEOUT_SEC)),
    )


def get_ai_settings(
    properties: Any | None = None,
    config: dict[str, Any] | None = None,
) -> AiSettings:
    """Resolve OpenAI settings.

    Each option is read from the property store first, then the `openai`
    config block, then the built-in default. `properties` may be any object
    exposing `get(key) -> str | None`.
    """
    block = _section(config, "openai")

    def pick(prop_key: str, config_key: str) -> Any:
        if properties is not None:
            value = properties.get(prop_key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return block.get(config_key)

    return AiSettings(
        api_key=_as_text(pick(PROP_OPENAI_API_KEY, "api_key"), ""),
        model=_as_text(pick(PROP_OPENAI_MODEL, "model"), DEFAULT_OPENAI_MODEL),
        temperature=_as_float(pick(PROP_OPENAI_TEMPERATURE, "temperature"), DEFAULT_OPENAI_TEMPERATURE),
        max_output_tokens=max(
            MIN_OPENAI_MAX_OUTPUT_TOKENS,
            _as_int(pick(PROP_OPENAI_MAX_OUTPUT_TOKENS, "max_output_tokens"), DEFAULT_OPENAI_MAX_OUTPUT_TOKENS),
        ),
        request_timeout_ms=max(
            MIN_OPENAI_REQUEST_TIMEOUT_MS,
            _as_int(pick(PROP_OPENAI_REQUEST_TIMEOUT_MS, "request_timeout_ms"), DEFAULT_OPENAI_REQUEST_TIMEOUT_MS),
        ),
        rate_limit_ms=max(0, _as_int(pick(PROP_OPENAI_RATE_LIMIT_MS, "rate_limit_ms"), DEFAULT_OPENAI_RATE_LIMIT_MS)),
        dry_run=_as_bool(pick(PROP_OPENAI_DRY_RUN, "dry_run"), False),
        log_payloads=_as_bool(pick(PROP_OPENAI_LOG_PAYLOADS, "log_payloads"), True),
        prompt_cache_ttl_sec=max(0, _as_int(block.get("prompt_cache_ttl_sec"), DEFAULT_PROMPT_CACHE_TTL_SEC)),
    )


def get_google_sheets_config(config: dict[str, Any] | None = None) -> dict[str, Any]:
    return _section(config, "google_sheets")


def get_state_db_path(config: dict[str, Any] | None = None) -> Path:
    block = _section(config, "state")
    return resolve_repo_path(_as_text(block.get("db_path"), DEFAULT_STATE_DB_PATH))


def get_logging_config(config: dict[str, Any] | None = None) -> dict[str, Any]:
    block = _section(config, "logging")
    log_file = block.get("file")
    return {
        "level": _as_text(block.get("level"), "INFO").upper(),
        "file": resolve_repo_path(log_file) if isinstance(log_file, str) and log_file.strip() else None,
    }


def get_schedule_config(config: dict[str, Any] | None = None) -> dict[str, Any]:
    block = _section(config, "schedule")
    return {
        "daily_time": _as_text(block.get("daily_time"), "00:00"),
        "window_days": max(1, _as_int(block.get("window_days"), DEFAULT_PUBLISHED_SINCE_DAYS)),
        "run_jobs_after_ingest": _as_bool(block.get("run_jobs_after_ingest"), False),
    }
