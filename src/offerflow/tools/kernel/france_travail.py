"""France Travail "Offres d'emploi v2" client: OAuth token cache and paged search."""

from __future__ import annotations

import json
from http.client import HTTPException
from typing import Any
from urllib.error import URLError
from urllib.parse import urlencode

from loguru import logger

from offerflow.core.config_loader import SearchSettings
from offerflow.core.errors import AuthError, SearchError
from offerflow.core.http_client import HttpResponse, send_request
from offerflow.core.offer_schema import Offer, map_offer
from offerflow.core.secrets import FtSecrets

TOKEN_CACHE_KEY = "FT_OAUTH_TOKEN_JSON"
RESULT_LIST_KEYS = ("resultats", "results", "offres")


def _transport_error_text(exc: BaseException) -> str:
    reason = exc.reason if isinstance(exc, URLError) else exc
    return f"{type(exc).__name__}: {reason}"


class TokenCache:
    """Client-credentials bearer token, cached for less than its real lifetime."""

    def __init__(self, cache_store: Any, settings: SearchSettings) -> None:
        self._cache = cache_store
        self._settings = settings

    def _cached_token(self) -> str | None:
        raw = self._cache.get(TOKEN_CACHE_KEY)
        if not raw:
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            return None
        token = payload.get("access_token") if isinstance(payload, dict) else None
        return token if isinstance(token, str) and token else None

    def get_token(self, secrets: FtSecrets) -> str:
        cached = self._cached_token()
        if cached:
            return cached

        form = urlencode(
            {
                "grant_type": "client_credentials",
                "client_id": secrets.client_id,
                "client_secret": secrets.client_secret,
                "scope": self._settings.oauth_scope,
            }
        ).encode("utf-8")
        try:
            response = send_request(
                "POST",
                self._settings.oauth_token_url,
                headers={"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"},
                body=form,
                timeout_sec=self._settings.timeout_sec,
            )
        except (OSError, HTTPException) as exc:
            raise AuthError(0, _transport_error_text(exc)) from exc
        payload = response.json()
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not response.ok or not isinstance(token, str) or not token:
            raise AuthError(response.status, response.text)

        self._cache.put(TOKEN_CACHE_KEY, json.dumps({"access_token": token}), self._settings.token_cache_ttl_sec)
        logger.debug("obtained France Travail access token (cached {}s)", self._settings.token_cache_ttl_sec)
        return token

    def clear(self) -> None:
        self._cache.remove(TOKEN_CACHE_KEY)


def _extract_results(payload: Any) -> list[Any]:
    if not isinstance(payload, dict):
        return []
    for key in RESULT_LIST_KEYS:
        value = payload.get(key)
        if value:
            return value if isinstance(value, list) else []
    return []


class OfferSearchClient:
    def __init__(self, settings: SearchSettings, token_cache: TokenCache) -> None:
        self._settings = settings
        self._tokens = token_cache

    def _build_search_url(self, *, keywords: str, published_since_days: int, start: int, end: int) -> str:
        query = urlencode(
            {
                "motsCles": keywords,
                "publieeDepuis": str(published_since_days),
                "range": f"{start}-{end}",
            }
        )
        return f"{self._settings.search_url}?{query}"

    def _get(self, url: str, token: str) -> HttpResponse:
        try:
            return send_request(
                "GET",
                url,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                timeout_sec=self._settings.timeout_sec,
            )
        except (OSError, HTTPException) as exc:
            raise SearchError(0, _transport_error_text(exc)) from exc

    def _search_page(self, secrets: FtSecrets, url: str) -> list[Offer]:
        response = self._get(url, self._tokens.get_token(secrets))
        if response.status == 401:
            # Stale token: drop it and retry this page exactly once.
            logger.info("offer search returned 401; refreshing token and retrying once")
            self._tokens.clear()
            response = self._get(url, self._tokens.get_token(secrets))

        if not response.ok:
            raise SearchError(response.status, response.text)

        offers: list[Offer] = []
        for item in _extract_results(response.json()):
            offer = map_offer(item)
            if offer is not None:
                offers.append(offer)
        return offers

    def search_offers_paged(
        self,
        secrets: FtSecrets,
        *,
        keywords: str | None = None,
        published_since_days: int | None = None,
    ) -> list[Offer]:
        """Fetch every page up to `max_pages`, stopping at the first empty or short page."""
        page_size = self._settings.page_size
        query_keywords = keywords if keywords is not None else self._settings.keywords
        days = published_since_days if published_since_days is not None else self._settings.published_since_days

        offers: list[Offer] = []
        start = 0
        for page in range(self._settings.max_pages):
            url = self._build_search_url(
                keywords=query_keywords,
                published_since_days=days,
                start=start,
                end=start + page_size - 1,
            )
            page_offers = self._search_page(secrets, url)
            logger.debug("search page {} range={}-{} -> {} offers", page + 1, start, start + page_size - 1, len(page_offers))
            if not page_offers:
                break
            offers.extend(page_offers)
            if len(page_offers) < page_size:
                break
            start += page_size
        return offers
