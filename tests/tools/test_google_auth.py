import importlib
import json
import time
from pathlib import Path
from urllib.error import URLError

import pytest

from offerflow.core.http_client import HttpResponse
from offerflow.tools.kernel.google_auth import get_google_access_token, google_oauth_settings

module = importlib.import_module("offerflow.tools.kernel.google_auth")


@pytest.fixture()
def configured_google_oauth(write_config, tmp_path: Path):
    token_path = tmp_path / "google_token.json"
    config_path = write_config(
        {
            "google_sheets": {
                "spreadsheet_id": "sheet-123",
                "oauth": {
                    "token_path": str(token_path),
                    "client_id": "test-client-id",
                    "client_secret": "test-client-secret",
                    "refresh_token": "refresh-config-token",
                    "token_uri": "https://oauth2.googleapis.com/token",
                    "scopes": ["https://www.googleapis.com/auth/spreadsheets"],
                    "timeout_sec": 12,
                },
            }
        }
    )
    return {"token_path": token_path, "config_path": config_path}


def test_get_google_access_token_missing_config(write_config):
    write_config({"google_sheets": {"spreadsheet_id": "sheet-123"}})

    out = get_google_access_token()
    assert out["ok"] is False
    assert out["source"] == "google_oauth_error"
    assert out["error_code"] == "config_missing"


def test_google_oauth_settings_lists_missing_fields():
    settings = google_oauth_settings({"google_sheets": {"oauth": {"client_id": "x"}}})
    assert settings["missing"] == ["google_sheets.oauth.client_secret"]
    assert settings["token_uri"] == "https://oauth2.googleapis.com/token"
    assert settings["scopes"] == ["https://www.googleapis.com/auth/spreadsheets"]


def test_get_google_access_token_uses_cached_token(configured_google_oauth, monkeypatch: pytest.MonkeyPatch):
    token_path = configured_google_oauth["token_path"]
    token_path.write_text(
        json.dumps(
            {
                "access_token": "cached-token",
                "refresh_token": "refresh-file-token",
                "expires_at": "2099-01-01T00:00:00Z",
                "expires_at_epoch": int(time.time()) + 3600,
            }
        ),
        encoding="utf-8",
    )

    def fail_refresh(settings, refresh_token):
        raise AssertionError("refresh must not be called")

    monkeypatch.setattr(module, "_refresh_access_token", fail_refresh)
    out = get_google_access_token()
    assert out["ok"] is True
    assert out["source"] == "google_oauth_cache"
    assert out["access_token"] == "cached-token"


def test_get_google_access_token_refreshes_and_persists(configured_google_oauth, monkeypatch: pytest.MonkeyPatch):
    token_path = configured_google_oauth["token_path"]
    token_path.write_text(
        json.dumps({"access_token": "old", "refresh_token": "refresh-file-token", "expires_at_epoch": 10}),
        encoding="utf-8",
    )
    seen: dict = {}

    def fake_refresh(settings, refresh_token):
        seen["refresh_token"] = refresh_token
        seen["timeout_sec"] = settings["timeout_sec"]
        return {"ok": True, "access_token": "new-token", "expires_in": 3600, "token_type": "Bearer"}

    monkeypatch.setattr(module, "_refresh_access_token", fake_refresh)
    out = get_google_access_token()

    assert out["ok"] is True
    assert out["source"] == "google_oauth_refreshed"
    assert out["access_token"] == "new-token"
    assert seen == {"refresh_token": "refresh-file-token", "timeout_sec": 12}

    state = json.loads(token_path.read_text(encoding="utf-8"))
    assert state["access_token"] == "new-token"
    assert state["refresh_token"] == "refresh-file-token"
    assert state["expires_at_epoch"] > int(time.time())


def test_get_google_access_token_uses_config_refresh_token(configured_google_oauth, monkeypatch: pytest.MonkeyPatch):
    seen: dict = {}

    def fake_refresh(settings, refresh_token):
        seen["refresh_token"] = refresh_token
        return {"ok": True, "access_token": "new-token", "expires_in": 3600}

    monkeypatch.setattr(module, "_refresh_access_token", fake_refresh)
    out = get_google_access_token(force_refresh=True)

    assert out["ok"] is True
    assert seen["refresh_token"] == "refresh-config-token"
    assert configured_google_oauth["token_path"].exists()


def test_get_google_access_token_refresh_failure(configured_google_oauth, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(
        module,
        "_refresh_access_token",
        lambda settings, refresh_token: {"ok": False, "error": "Refresh token is invalid", "error_code": "invalid_grant"},
    )
    out = get_google_access_token()
    assert out["ok"] is False
    assert out["error_code"] == "invalid_grant"
    assert out["error"] == "Refresh token is invalid"


def test_get_google_access_token_without_refresh_token(write_config, tmp_path: Path):
    write_config(
        {
            "google_sheets": {
                "oauth": {
                    "token_path": str(tmp_path / "google_token.json"),
                    "client_id": "id",
                    "client_secret": "secret",
                }
            }
        }
    )
    out = get_google_access_token()
    assert out["ok"] is False
    assert out["error_code"] == "refresh_token_missing"


def test_refresh_access_token_maps_invalid_grant(monkeypatch: pytest.MonkeyPatch):
    settings = google_oauth_settings({"google_sheets": {"oauth": {"client_id": "id", "client_secret": "secret"}}})
    monkeypatch.setattr(
        module,
        "send_request",
        lambda *args, **kwargs: HttpResponse(400, '{"error": "invalid_grant", "error_description": "Bad Request"}'),
    )

    out = module._refresh_access_token(settings, "refresh")
    assert out["ok"] is False
    assert out["error_code"] == "invalid_grant"
    assert "Re-authentication is required" in out["error"]


def test_refresh_access_token_network_error(monkeypatch: pytest.MonkeyPatch):
    settings = google_oauth_settings({"google_sheets": {"oauth": {"client_id": "id", "client_secret": "secret"}}})

    def fake_send(*args, **kwargs):
        raise URLError("offline")

    monkeypatch.setattr(module, "send_request", fake_send)
    out = module._refresh_access_token(settings, "refresh")
    assert out == {"ok": False, "error": "OAuth token request failed due to network error.", "error_code": "network_error"}


def test_refresh_access_token_success_posts_form(monkeypatch: pytest.MonkeyPatch):
    settings = google_oauth_settings({"google_sheets": {"oauth": {"client_id": "id", "client_secret": "secret"}}})
    seen: dict = {}

    def fake_send(method, url, *, headers=None, body=None, timeout_sec=30):
        seen.update({"method": method, "url": url, "body": body.decode("utf-8")})
        return HttpResponse(200, '{"access_token": "abc", "expires_in": 3599, "token_type": "Bearer"}')

    monkeypatch.setattr(module, "send_request", fake_send)
    out = module._refresh_access_token(settings, "refresh")

    assert out["ok"] is True
    assert out["access_token"] == "abc"
    assert seen["method"] == "POST"
    assert seen["url"] == "https://oauth2.googleapis.com/token"
    assert "grant_type=refresh_token" in seen["body"]
    assert "refresh_token=refresh" in seen["body"]
