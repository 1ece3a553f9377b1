import json
from pathlib import Path

import pytest

from offerflow.core.config_loader import (
    DEFAULT_OPENAI_MODEL,
    clear_config_cache,
    get_ai_settings,
    get_logging_config,
    get_schedule_config,
    get_search_settings,
    get_state_db_path,
    load_config,
    load_config_or_empty,
    resolve_config_path,
)


def _write_json(path: Path, payload: dict) -> None:
    path.write_text(json.dumps(payload), encoding="utf-8")


def test_resolve_config_path_uses_env_var(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    config_path = tmp_path / "custom.json"
    _write_json(config_path, {"ok": True})
    monkeypatch.setenv("OFFERFLOW_CONFIG_PATH", str(config_path))

    assert resolve_config_path() == config_path.resolve()


def test_resolve_config_path_prefers_explicit_argument(tmp_path: Path):
    explicit = tmp_path / "explicit.json"
    assert resolve_config_path(explicit) == explicit.resolve()


def test_load_config_reads_json_file(tmp_path: Path):
    config_path = tmp_path / "config.json"
    _write_json(config_path, {"search": {"keywords": "educateur"}})

    payload = load_config(config_path)
    assert payload["search"]["keywords"] == "educateur"


def test_load_config_missing_file_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.json")


def test_load_config_rejects_invalid_json(tmp_path: Path):
    config_path = tmp_path / "config.json"
    config_path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid JSON"):
        load_config(config_path)


def test_load_config_rejects_non_object_root(tmp_path: Path):
    config_path = tmp_path / "config.json"
    _write_json(config_path, [1, 2, 3])  # type: ignore[arg-type]
    with pytest.raises(ValueError, match="JSON object"):
        load_config(config_path)


def test_load_config_or_empty_treats_missing_file_as_empty():
    assert load_config_or_empty() == {}


def test_load_config_cache_can_be_cleared(tmp_path: Path):
    config_path = tmp_path / "config.json"
    _write_json(config_path, {"search": {"keywords": "a"}})
    first = load_config(config_path)
    assert load_config(config_path) is first

    clear_config_cache()
    assert load_config(config_path) is not first


def test_search_settings_defaults():
    settings = get_search_settings({})
    assert settings.keywords == "travailleur social"
    assert settings.published_since_days == 1
    assert settings.page_size == 150
    assert settings.max_pages == 20
    assert settings.token_cache_ttl_sec == 3000


def test_search_settings_overrides_and_clamps():
    settings = get_search_settings(
        {"search": {"keywords": "  moniteur educateur ", "published_since_days": "7", "page_size": 0, "max_pages": -3}}
    )
    assert settings.keywords == "moniteur educateur"
    assert settings.published_since_days == 7
    assert settings.page_size == 1
    assert settings.max_pages == 1


def test_search_settings_read_active_config(write_config):
    write_config({"search": {"max_pages": 4}})
    assert get_search_settings().max_pages == 4


def test_ai_settings_property_store_overrides_config():
    properties = {"OPENAI_MODEL": "gpt-test", "OPENAI_DRY_RUN": "yes", "OPENAI_RATE_LIMIT_MS": "  "}
    settings = get_ai_settings(
        properties,
        {"openai": {"api_key": "cfg-key", "model": "cfg-model", "rate_limit_ms": 50, "max_output_tokens": 4}},
    )
    assert settings.model == "gpt-test"
    assert settings.api_key == "cfg-key"
    assert settings.dry_run is True
    assert settings.rate_limit_ms == 50
    assert settings.max_output_tokens == 16


def test_ai_settings_defaults():
    settings = get_ai_settings(None, {})
    assert settings.api_key == ""
    assert settings.model == DEFAULT_OPENAI_MODEL
    assert settings.temperature == 0.2
    assert settings.max_output_tokens == 400
    assert settings.request_timeout_ms == 90_000
    assert settings.rate_limit_ms == 800
    assert settings.dry_run is False
    assert settings.log_payloads is True


def test_ai_settings_timeout_has_floor():
    settings = get_ai_settings({"OPENAI_REQUEST_TIMEOUT_MS": "10"}, {})
    assert settings.request_timeout_ms == 5_000


def test_schedule_config_defaults():
    assert get_schedule_config({}) == {"daily_time": "00:00", "window_days": 1, "run_jobs_after_ingest": False}


def test_logging_and_state_paths_resolve(tmp_path: Path):
    db_path = tmp_path / "state" / "x.db"
    config = {"state": {"db_path": str(db_path)}, "logging": {"level": "debug"}}
    assert get_state_db_path(config) == db_path.resolve()
    logging_cfg = get_logging_config(config)
    assert logging_cfg["level"] == "DEBUG"
    assert logging_cfg["file"] is None
