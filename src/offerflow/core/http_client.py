"""Blocking HTTP primitive returning status and body for every response."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any
from urllib.error import HTTPError
from urllib.request import Request, urlopen


@dataclass(frozen=True)
class HttpResponse:
    status: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any | None:
        """Parsed body, or None when the body is empty or not JSON."""
        if not self.text:
            return None
        try:
            return json.loads(self.text)
        except json.JSONDecodeError:
            return None


def send_request(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    body: bytes | None = None,
    timeout_sec: float = 30,
) -> HttpResponse:
    """Send one request.

    Non-2xx responses are returned, not raised. Network failures and timeouts
    (`URLError`, `TimeoutError`) propagate to the caller.
    """
    request = Request(url, data=body, headers=dict(headers or {}), method=method.upper())
    try:
        with urlopen(request, timeout=timeout_sec) as response:
            status = int(getattr(response, "status", 200) or 200)
            text = response.read().decode("utf-8", errors="replace")
    except HTTPError as exc:
        try:
            text = exc.read().decode("utf-8", errors="replace")
        except Exception:
            text = ""
        return HttpResponse(status=int(exc.code), text=text)
    return HttpResponse(status=status, text=text)
