"""Error taxonomy shared by ingestion and enrichment."""

from __future__ import annotations

OFFERS_BODY_LIMIT = 600
LLM_BODY_LIMIT = 800


def truncate_body(body: str | None, limit: int, *, empty: str = "(empty body)") -> str:
    text = body or ""
    return text[:limit] if text else empty


class OfferflowError(Exception):
    """Base class for run-aborting failures."""


def _http_error_message(label: str, status: int, body: str) -> str:
    # Status 0 marks a transport failure with no HTTP response.
    kind = f"HTTP {status}" if status else "(no response)"
    return f"{label} {kind}: {truncate_body(body, OFFERS_BODY_LIMIT)}"


class AuthError(OfferflowError):
    def __init__(self, status: int, body: str = "") -> None:
        self.status = int(status)
        self.body = body or ""
        super().__init__(_http_error_message("OAuth token error", self.status, self.body))


class SearchError(OfferflowError):
    def __init__(self, status: int, body: str = "") -> None:
        self.status = int(status)
        self.body = body or ""
        super().__init__(_http_error_message("Offer search error", self.status, self.body))


class ConfigError(OfferflowError):
    """Missing secrets, sheets or columns. `hint` tells the user how to fix it."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        self.message = message
        self.hint = hint
        super().__init__(f"{message} {hint}" if hint else message)


class LlmCallError(OfferflowError):
    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        self.status = status
        self.body = body or ""
        super().__init__(message)

    @classmethod
    def from_http(cls, status: int, body: str) -> "LlmCallError":
        return cls(
            f"OpenAI HTTP {status}: {truncate_body(body, LLM_BODY_LIMIT, empty='(empty)')}",
            status=status,
            body=body,
        )


class ParseError(OfferflowError):
    """Model output could not be parsed for the job's output mode."""


class StoreError(OfferflowError):
    """Row-store backend failure (spreadsheet API, auth, bad payload)."""
