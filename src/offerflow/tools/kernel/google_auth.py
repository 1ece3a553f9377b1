"""Google OAuth refresh-token flow for the Sheets row store."""

from __future__ import annotations

import json
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from urllib.error import URLError
from urllib.parse import urlencode

from loguru import logger

from offerflow.core.config_loader import get_google_sheets_config, load_config_or_empty, resolve_repo_path
from offerflow.core.http_client import HttpResponse, send_request

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
DEFAULT_TOKEN_PATH = "state/google_token.json"
DEFAULT_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
DEFAULT_TIMEOUT_SEC = 15
EXPIRY_SKEW_SEC = 60
CONFIG_PREFIX = "google_sheets.oauth"


def _iso_utc(epoch: int | None = None) -> str:
    moment = datetime.fromtimestamp(epoch, tz=UTC) if epoch is not None else datetime.now(tz=UTC)
    return moment.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _clean_text(value: Any) -> str | None:
    return value.strip() if isinstance(value, str) and value.strip() else None


def google_oauth_settings(config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Settings from `google_sheets.oauth`, plus the list of missing required fields."""
    sheets = get_google_sheets_config(config if config is not None else load_config_or_empty())
    block = sheets.get("oauth") if isinstance(sheets.get("oauth"), dict) else {}

    scopes = block.get("scopes")
    settings: dict[str, Any] = {
        "client_id": _clean_text(block.get("client_id")),
        "client_secret": _clean_text(block.get("client_secret")),
        "refresh_token": _clean_text(block.get("refresh_token")),
        "token_uri": _clean_text(block.get("token_uri")) or DEFAULT_TOKEN_URI,
        "scopes": [scope for scope in scopes if isinstance(scope, str) and scope.strip()]
        if isinstance(scopes, list)
        else list(DEFAULT_SCOPES),
        "token_path": resolve_repo_path(_clean_text(block.get("token_path")) or DEFAULT_TOKEN_PATH),
        "timeout_sec": int(block.get("timeout_sec", DEFAULT_TIMEOUT_SEC)),
    }

    missing: list[str] = []
    if not block:
        missing.append(CONFIG_PREFIX)
    if not settings["client_id"]:
        missing.append(f"{CONFIG_PREFIX}.client_id")
    if not settings["client_secret"]:
        missing.append(f"{CONFIG_PREFIX}.client_secret")
    settings["missing"] = missing
    return settings


def _read_token_file(token_path: Path) -> dict[str, Any]:
    if not token_path.exists():
        return {}
    try:
        payload = json.loads(token_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _write_token_file(token_path: Path, token_payload: dict[str, Any]) -> None:
    token_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = token_path.with_name(f"{token_path.name}.tmp")
    temp_path.write_text(json.dumps(token_payload, indent=2), encoding="utf-8")
    temp_path.replace(token_path)


def _token_is_usable(token_payload: dict[str, Any], skew_sec: int = EXPIRY_SKEW_SEC) -> bool:
    if not _clean_text(token_payload.get("access_token")):
        return False
    expires_epoch = token_payload.get("expires_at_epoch")
    if not isinstance(expires_epoch, int):
        return False
    return expires_epoch > int(time.time()) + skew_sec


def _provider_error(response: HttpResponse) -> tuple[str, str]:
    error_code = "google_oauth_http_error"
    message = f"OAuth token request failed with HTTP {response.status}."
    payload = response.json()
    if isinstance(payload, dict):
        error_code = _clean_text(payload.get("error")) or error_code
        message = _clean_text(payload.get("error_description")) or message
    if "invalid_grant" in error_code.lower():
        message = "Refresh token is invalid or expired. Re-authentication is required."
    return message, error_code


def _refresh_access_token(settings: dict[str, Any], refresh_token: str) -> dict[str, Any]:
    form = {
        "client_id": settings["client_id"],
        "client_secret": settings["client_secret"],
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    }
    if settings["scopes"]:
        form["scope"] = " ".join(settings["scopes"])

    try:
        response = send_request(
            "POST",
            settings["token_uri"],
            headers={"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"},
            body=urlencode(form).encode("utf-8"),
            timeout_sec=settings["timeout_sec"],
        )
    except (URLError, TimeoutError):
        return {"ok": False, "error": "OAuth token request failed due to network error.", "error_code": "network_error"}

    if not response.ok:
        message, error_code = _provider_error(response)
        return {"ok": False, "error": message, "error_code": error_code}

    payload = response.json()
    if not isinstance(payload, dict):
        return {"ok": False, "error": "OAuth token response was not a JSON object.", "error_code": "invalid_response"}

    access_token = _clean_text(payload.get("access_token"))
    expires_in = payload.get("expires_in")
    if not access_token:
        return {"ok": False, "error": "OAuth token response missing access token.", "error_code": "invalid_response"}
    if not isinstance(expires_in, int) or expires_in <= 0:
        return {"ok": False, "error": "OAuth token response missing expires_in.", "error_code": "invalid_response"}

    return {
        "ok": True,
        "access_token": access_token,
        "expires_in": expires_in,
        "refresh_token": payload.get("refresh_token"),
        "token_type": payload.get("token_type"),
        "scope": payload.get("scope"),
    }


def _error_payload(message: str, *, error_code: str | None = None) -> dict[str, Any]:
    return {
        "ok": False,
        "source": "google_oauth_error",
        "error": message,
        "error_code": error_code,
    }


def get_google_access_token(*, force_refresh: bool = False, config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a usable Sheets access token, refreshing and persisting it when needed."""
    settings = google_oauth_settings(config)
    if settings["missing"]:
        return _error_payload(
            "Missing Google OAuth config fields: " + ", ".join(settings["missing"]),
            error_code="config_missing",
        )

    token_path: Path = settings["token_path"]
    token_state = _read_token_file(token_path)
    if not force_refresh and _token_is_usable(token_state):
        return {
            "ok": True,
            "source": "google_oauth_cache",
            "access_token": token_state["access_token"],
            "expires_at": token_state.get("expires_at"),
            "error": None,
        }

    refresh_token = _clean_text(token_state.get("refresh_token")) or settings["refresh_token"]
    if not refresh_token:
        return _error_payload(
            f"No refresh token available. Configure {CONFIG_PREFIX}.refresh_token.",
            error_code="refresh_token_missing",
        )

    refreshed = _refresh_access_token(settings, refresh_token)
    if not refreshed.get("ok"):
        return _error_payload(
            str(refreshed.get("error") or "OAuth token refresh failed."),
            error_code=refreshed.get("error_code"),
        )

    expires_epoch = int(time.time()) + int(refreshed["expires_in"])
    next_state = {
        "access_token": refreshed["access_token"],
        "refresh_token": _clean_text(refreshed.get("refresh_token")) or refresh_token,
        "token_type": refreshed.get("token_type") or "Bearer",
        "scope": refreshed.get("scope"),
        "expires_at": _iso_utc(expires_epoch),
        "expires_at_epoch": expires_epoch,
        "updated_at": _iso_utc(),
    }
    try:
        _write_token_file(token_path, next_state)
    except OSError:
        return _error_payload("Failed to persist Google token state.", error_code="token_persist_failed")

    logger.debug("refreshed Google access token (expires {})", next_state["expires_at"])
    return {
        "ok": True,
        "source": "google_oauth_refreshed",
        "access_token": next_state["access_token"],
        "expires_at": next_state["expires_at"],
        "error": None,
    }
