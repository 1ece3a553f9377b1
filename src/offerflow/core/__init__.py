"""Core ingestion, exclusion-rule and AI job logic for offerflow."""

from .config_loader import (
    AiSettings,
    SearchSettings,
    clear_config_cache,
    get_ai_settings,
    get_google_sheets_config,
    get_logging_config,
    get_schedule_config,
    get_search_settings,
    get_state_db_path,
    load_config,
    load_config_or_empty,
    resolve_config_path,
)
from .errors import AuthError, ConfigError, LlmCallError, OfferflowError, ParseError, SearchError, StoreError
from .exclusions import (
    ExclusionCandidate,
    ExclusionRule,
    ExclusionRules,
    is_excluded,
    load_exclusions,
    matches_any_rule,
    normalize_text,
    parse_rule,
)
from .ingestion import normalize_window_days, run_ingestion
from .job_runner import JobRunner, RowError, RowOk, RowSkip
from .llm_client import LlmClient, LlmResult
from .log import setup_logger
from .offer_repository import OfferRepository
from .offer_schema import Offer, build_offer_row, compute_etp_percent, map_offer, offer_public_url
from .prompt_cache import CachedPromptResult, PromptCache, build_prompt_cache_key
from .row_store import CellWrite, RowStore, SheetTable
from .secrets import FtSecrets, ensure_secrets, get_secrets, set_secrets
from .state_store import CacheStore, PropertyStore
from .templating import render_template

__all__ = [
    "AiSettings",
    "AuthError",
    "CacheStore",
    "CachedPromptResult",
    "CellWrite",
    "ConfigError",
    "ExclusionCandidate",
    "ExclusionRule",
    "ExclusionRules",
    "FtSecrets",
    "JobRunner",
    "LlmCallError",
    "LlmClient",
    "LlmResult",
    "Offer",
    "OfferRepository",
    "OfferflowError",
    "ParseError",
    "PromptCache",
    "PropertyStore",
    "RowError",
    "RowOk",
    "RowSkip",
    "RowStore",
    "SearchError",
    "SearchSettings",
    "SheetTable",
    "StoreError",
    "build_offer_row",
    "build_prompt_cache_key",
    "clear_config_cache",
    "compute_etp_percent",
    "ensure_secrets",
    "get_ai_settings",
    "get_google_sheets_config",
    "get_logging_config",
    "get_schedule_config",
    "get_search_settings",
    "get_secrets",
    "get_state_db_path",
    "is_excluded",
    "load_config",
    "load_config_or_empty",
    "load_exclusions",
    "map_offer",
    "matches_any_rule",
    "normalize_text",
    "normalize_window_days",
    "offer_public_url",
    "parse_rule",
    "render_template",
    "resolve_config_path",
    "run_ingestion",
    "set_secrets",
    "setup_logger",
]
