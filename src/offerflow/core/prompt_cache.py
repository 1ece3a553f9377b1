"""Content-addressed cache of rendered prompt -> model response."""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass
from typing import Any

from loguru import logger

from .config_loader import DEFAULT_PROMPT_CACHE_TTL_SEC

PROMPT_CACHE_PREFIX = "ai:prompt:"
PROMPT_CACHE_KEY_VERSION = 1


def build_prompt_cache_key(
    *,
    model: str,
    temperature: float,
    max_output_tokens: int,
    output_mode: str,
    schema_json: str | None,
    prompt: str,
) -> str:
    """Namespaced SHA-256 of every parameter that can change the model output."""
    canonical = json.dumps(
        {
            "v": PROMPT_CACHE_KEY_VERSION,
            "model": model,
            "temperature": temperature,
            "maxOutputTokens": max_output_tokens,
            "outputMode": output_mode,
            "schemaJson": schema_json or "",
            "prompt": prompt,
        },
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return PROMPT_CACHE_PREFIX + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


@dataclass(frozen=True)
class CachedPromptResult:
    text: str
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    used_web_search: bool = False
    web_search_fallback: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CachedPromptResult":
        return cls(
            text=str(payload.get("text") or ""),
            input_tokens=_optional_int(payload.get("input_tokens")),
            output_tokens=_optional_int(payload.get("output_tokens")),
            total_tokens=_optional_int(payload.get("total_tokens")),
            used_web_search=bool(payload.get("used_web_search")),
            web_search_fallback=bool(payload.get("web_search_fallback")),
        )


class PromptCache:
    """Best-effort wrapper around a cache store.

    Reads return None on any storage or decoding failure; writes never raise.
    """

    def __init__(self, cache_store: Any, *, ttl_sec: int = DEFAULT_PROMPT_CACHE_TTL_SEC) -> None:
        self._store = cache_store
        self._ttl_sec = int(ttl_sec)

    def get(self, key: str) -> CachedPromptResult | None:
        try:
            raw = self._store.get(key)
            if not raw:
                return None
            payload = json.loads(raw)
        except Exception as exc:
            logger.debug("prompt cache read failed for {}: {}", key, exc)
            return None
        if not isinstance(payload, dict):
            return None
        return CachedPromptResult.from_payload(payload)

    def set(self, key: str, value: CachedPromptResult) -> bool:
        if self._ttl_sec <= 0:
            return False
        try:
            self._store.put(key, json.dumps(asdict(value), ensure_ascii=False), self._ttl_sec)
        except Exception as exc:
            logger.debug("prompt cache write failed for {}: {}", key, exc)
            return False
        return True
