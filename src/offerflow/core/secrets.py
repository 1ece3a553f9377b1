"""France Travail / OpenAI credentials kept in the property store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .config_loader import PROP_OPENAI_API_KEY
from .errors import ConfigError

PROP_FT_CLIENT_ID = "FT_CLIENT_ID"
PROP_FT_CLIENT_SECRET = "FT_CLIENT_SECRET"
FT_APPLICATIONS_URL = "https://francetravail.io/compte/applications/"

MISSING_SECRETS_HINT = (
    "Run `offerflow secrets set --client-id <id> --client-secret <secret>` "
    f"(credentials: {FT_APPLICATIONS_URL})."
)


@dataclass(frozen=True)
class FtSecrets:
    client_id: str
    client_secret: str


def get_secrets(properties: Any) -> FtSecrets | None:
    client_id = (properties.get(PROP_FT_CLIENT_ID) or "").strip()
    client_secret = (properties.get(PROP_FT_CLIENT_SECRET) or "").strip()
    if not client_id or not client_secret:
        return None
    return FtSecrets(client_id=client_id, client_secret=client_secret)


def ensure_secrets(properties: Any) -> FtSecrets:
    secrets = get_secrets(properties)
    if secrets is None:
        raise ConfigError("France Travail secrets are missing.", hint=MISSING_SECRETS_HINT)
    return secrets


def set_secrets(
    properties: Any,
    *,
    client_id: str | None = None,
    client_secret: str | None = None,
    openai_api_key: str | None = None,
) -> list[str]:
    """Store the given credentials and return the keys written."""
    values: dict[str, str] = {}
    if client_id is not None:
        if not client_id.strip():
            raise ConfigError("FT_CLIENT_ID is empty.")
        values[PROP_FT_CLIENT_ID] = client_id.strip()
    if client_secret is not None:
        if not client_secret.strip():
            raise ConfigError("FT_CLIENT_SECRET is empty.")
        values[PROP_FT_CLIENT_SECRET] = client_secret.strip()
    if openai_api_key is not None:
        if not openai_api_key.strip():
            raise ConfigError("OPENAI_API_KEY is empty.")
        values[PROP_OPENAI_API_KEY] = openai_api_key.strip()
    if values:
        properties.set_all(values)
    return sorted(values)
