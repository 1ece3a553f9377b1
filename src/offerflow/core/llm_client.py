"""OpenAI text client with throttling, retry/backoff and web-search fallback."""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from time import sleep
from typing import Any

from loguru import logger

from .config_loader import AiSettings
from .errors import ConfigError, LlmCallError
from .providers import WEB_SEARCH_TOOL, call_openai_responses, extract_output_text, extract_usage

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_BACKOFF_MS = 600
JITTER_RANGE = (0.8, 1.2)
RETRYABLE_STATUS_CODES = frozenset({408, 429})

_TIMEOUT_RE = re.compile(r"timed out|timeout|exceeded maximum execution time", re.IGNORECASE)
_TOOL_ISSUE_RE = re.compile(r"tool|web_search|unsupported|not allowed|not authorized|invalid", re.IGNORECASE)

MISSING_API_KEY_HINT = "Run `offerflow secrets set --openai-api-key <key>` or set openai.api_key in config."


@dataclass(frozen=True)
class LlmResult:
    text: str
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    used_web_search: bool = False
    web_search_fallback: bool = False
    attempts: int = 1


def _exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        chain.append(current)
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return chain


def is_retryable_llm_error(exc: BaseException) -> bool:
    """Retry only on 408/429/5xx statuses or timeout-looking failures."""
    status = getattr(exc, "status", None)
    if isinstance(status, int) and (status in RETRYABLE_STATUS_CODES or 500 <= status <= 599):
        return True
    for current in _exception_chain(exc):
        if isinstance(current, TimeoutError):
            return True
        if _TIMEOUT_RE.search(str(current)):
            return True
    return False


def looks_like_tool_issue(exc: BaseException) -> bool:
    return bool(_TOOL_ISSUE_RE.search(str(exc)))


def _jittered_ms(base_ms: float) -> float:
    return base_ms * random.uniform(*JITTER_RANGE)


class LlmClient:
    def __init__(
        self,
        settings: AiSettings,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_backoff_ms: int = DEFAULT_BASE_BACKOFF_MS,
    ) -> None:
        self._settings = settings
        self._max_attempts = max(1, int(max_attempts))
        self._base_backoff_ms = max(0, int(base_backoff_ms))

    @property
    def settings(self) -> AiSettings:
        return self._settings

    def _base_payload(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self._settings.model,
            "input": prompt,
            "temperature": self._settings.temperature,
            "max_output_tokens": self._settings.max_output_tokens,
        }

    def _send_once(self, payload: dict[str, Any]) -> dict[str, Any]:
        return call_openai_responses(
            api_key=self._settings.api_key,
            payload=payload,
            timeout_sec=max(5.0, self._settings.request_timeout_ms / 1000.0),
        )

    def _send_with_retry(self, payload: dict[str, Any]) -> tuple[dict[str, Any], int]:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return self._send_once(payload), attempt
            except LlmCallError as exc:
                if attempt >= self._max_attempts or not is_retryable_llm_error(exc):
                    raise
                delay_ms = _jittered_ms(self._base_backoff_ms * 2 ** (attempt - 1))
                logger.warning(
                    "openai attempt {}/{} failed ({}); retrying in {:.0f}ms",
                    attempt,
                    self._max_attempts,
                    exc,
                    delay_ms,
                )
                if delay_ms > 0:
                    sleep(delay_ms / 1000.0)
        raise RuntimeError("OpenAI retry loop exited unexpectedly.")

    def call(
        self,
        prompt: str,
        *,
        rate_limit_override_ms: int | None = None,
        use_web_search: bool = False,
    ) -> LlmResult:
        """Throttle, send `prompt`, and return text plus usage.

        With `use_web_search`, a tool-related failure is retried once without
        the tool and reported through `web_search_fallback`.
        """
        if not self._settings.api_key:
            raise ConfigError("OPENAI_API_KEY is missing.", hint=MISSING_API_KEY_HINT)

        delay_ms = rate_limit_override_ms if rate_limit_override_ms is not None else self._settings.rate_limit_ms
        delay_ms = max(0, int(delay_ms))
        if delay_ms > 0:
            sleep(delay_ms / 1000.0)

        base_payload = self._base_payload(prompt)
        fallback = False
        if use_web_search:
            try:
                raw, attempts = self._send_with_retry({**base_payload, "tools": [dict(WEB_SEARCH_TOOL)]})
            except LlmCallError as exc:
                if not looks_like_tool_issue(exc):
                    raise
                logger.info("web search tool rejected ({}); retrying without it", exc)
                raw, attempts = self._send_with_retry(base_payload)
                fallback = True
        else:
            raw, attempts = self._send_with_retry(base_payload)

        usage = extract_usage(raw)
        return LlmResult(
            text=extract_output_text(raw),
            input_tokens=usage["input_tokens"],
            output_tokens=usage["output_tokens"],
            total_tokens=usage["total_tokens"],
            used_web_search=use_web_search,
            web_search_fallback=fallback,
            attempts=attempts,
        )
