"""Append-only audit rows for AI job attempts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal
from uuid import uuid4

MAX_PAYLOAD_CHARS = 45_000
TRUNCATED_MARKER = "…(truncated)"
HIDDEN_PAYLOAD = "(hidden)"

LogStatus = Literal["OK", "ERROR", "SKIP"]


def new_request_id() -> str:
    return str(uuid4())


def _iso_now() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def truncate_payload(text: str | None, limit: int = MAX_PAYLOAD_CHARS) -> str:
    value = text or ""
    if len(value) <= limit:
        return value
    return value[:limit] + TRUNCATED_MARKER


def _optional(value: int | None) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True)
class AiLogRow:
    job_key: str
    offre_id: str
    row_number: int
    model: str
    status: LogStatus
    prompt_rendered: str = ""
    response_text: str = ""
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    duration_ms: int = 0
    error_message: str = ""
    request_id: str = ""
    timestamp: str = ""

    def to_values(self, *, log_payloads: bool = True) -> list[str]:
        """Values in LOG_COLUMNS order."""
        if log_payloads:
            prompt = truncate_payload(self.prompt_rendered)
            response = truncate_payload(self.response_text)
        else:
            prompt = HIDDEN_PAYLOAD
            response = HIDDEN_PAYLOAD
        return [
            self.timestamp or _iso_now(),
            self.job_key,
            self.offre_id,
            str(self.row_number),
            self.request_id or new_request_id(),
            self.model,
            prompt,
            response,
            _optional(self.input_tokens),
            _optional(self.output_tokens),
            _optional(self.total_tokens),
            str(int(self.duration_ms)),
            self.status,
            self.error_message,
        ]
