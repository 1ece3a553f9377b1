"""OpenAI Responses API adapter."""

from __future__ import annotations

import json
from http.client import HTTPException
from typing import Any
from urllib.error import URLError

from ..errors import LlmCallError
from ..http_client import send_request

OPENAI_RESPONSES_URL = "https://api.openai.com/v1/responses"
WEB_SEARCH_TOOL = {"type": "web_search_preview"}


def extract_output_text(payload: dict[str, Any]) -> str:
    """`output_text` when present, else the text fragments of `output[].content[]`."""
    direct = payload.get("output_text")
    if direct is not None:
        return str(direct)
    output = payload.get("output")
    if not isinstance(output, list):
        return ""
    parts: list[str] = []
    for item in output:
        content = item.get("content") if isinstance(item, dict) else None
        if not isinstance(content, list):
            continue
        for fragment in content:
            text = fragment.get("text") if isinstance(fragment, dict) else None
            if text:
                parts.append(str(text))
    return "\n".join(parts)


def extract_usage(payload: dict[str, Any]) -> dict[str, int | None]:
    usage = payload.get("usage")
    usage = usage if isinstance(usage, dict) else {}

    def pick(key: str) -> int | None:
        value = usage.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return int(value)

    return {
        "input_tokens": pick("input_tokens"),
        "output_tokens": pick("output_tokens"),
        "total_tokens": pick("total_tokens"),
    }


def call_openai_responses(
    *,
    api_key: str,
    payload: dict[str, Any],
    timeout_sec: float,
    base_url: str = OPENAI_RESPONSES_URL,
) -> dict[str, Any]:
    """POST one Responses request and return the parsed JSON body.

    Raises `LlmCallError` for non-2xx statuses, network failures, timeouts
    and bodies that are not a JSON object.
    """
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    try:
        response = send_request("POST", base_url, headers=headers, body=body, timeout_sec=timeout_sec)
    except TimeoutError as exc:
        raise LlmCallError(f"OpenAI request timed out: {exc}") from exc
    except URLError as exc:
        raise LlmCallError(f"OpenAI network error: {exc.reason}") from exc
    except (OSError, HTTPException) as exc:
        raise LlmCallError(f"OpenAI connection error: {type(exc).__name__}: {exc}") from exc

    if not response.ok:
        raise LlmCallError.from_http(response.status, response.text)

    parsed = response.json()
    if not isinstance(parsed, dict):
        raise LlmCallError("OpenAI response was not valid JSON.", status=response.status, body=response.text)
    return parsed
