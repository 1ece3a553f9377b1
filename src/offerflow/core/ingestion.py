"""Offer ingestion: fetch, dedup, exclude, transform and persist."""

from __future__ import annotations

from datetime import datetime
from time import monotonic
from typing import Any

from loguru import logger

from .errors import ConfigError
from .exclusions import ExclusionCandidate, is_excluded
from .offer_repository import OfferRepository
from .offer_schema import OfferRow, build_offer_row
from .secrets import ensure_secrets

SUPPORTED_WINDOW_DAYS = (1, 3, 7, 14, 31)
WINDOW_DAY_ALIASES = {30: 31}
MENU_WINDOW_DAYS = (1, 7, 31)


def normalize_window_days(days: Any) -> int:
    """Map a requested window onto one the offers API accepts (30 -> 31)."""
    try:
        value = int(days)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid day window: {days!r}.") from None
    value = WINDOW_DAY_ALIASES.get(value, value)
    if value not in SUPPORTED_WINDOW_DAYS:
        allowed = ", ".join(str(item) for item in SUPPORTED_WINDOW_DAYS)
        raise ConfigError(f"Unsupported day window: {days}.", hint=f"Use one of {allowed}.")
    return value


def _format_summary(*, days: int, counts: dict[str, int], elapsed_ms: int) -> str:
    return (
        f"window={days}d fetched={counts['fetched']} dedupSkipped={counts['dedup_skipped']} "
        f"excludedSkipped={counts['excluded_skipped']} added={counts['inserted']} in {elapsed_ms}ms"
    )


def run_ingestion(
    *,
    repository: OfferRepository,
    search_client: Any,
    properties: Any,
    days: Any,
    keywords: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Run one ingestion pass over the last `days` days of offers.

    Every failure before the final batch append aborts the run with nothing
    written. `search_client` is anything exposing `search_offers_paged`.
    """
    window_days = normalize_window_days(days)
    secrets = ensure_secrets(properties)
    repository.ensure_workbook()
    known_ids = repository.load_known_ids()
    rules = repository.load_exclusion_rules()

    started = monotonic()
    fetched = search_client.search_offers_paged(
        secrets,
        keywords=keywords,
        published_since_days=window_days,
    )

    counts = {"fetched": len(fetched), "dedup_skipped": 0, "excluded_skipped": 0, "inserted": 0}
    rows: list[OfferRow] = []
    raw_records: list[tuple[str, str]] = []
    for offer in fetched:
        if offer.id in known_ids:
            counts["dedup_skipped"] += 1
            continue

        raw_json = offer.raw_json()
        candidate = ExclusionCandidate(
            title=offer.intitule,
            company=offer.entreprise_nom,
            description=offer.description,
            raw=raw_json,
            contract_type=offer.type_contrat_libelle,
        )
        if is_excluded(candidate, rules):
            # The id is left unregistered; a repeat in the same batch is evaluated again.
            counts["excluded_skipped"] += 1
            continue

        rows.append(build_offer_row(offer, now=now))
        raw_records.append((offer.id, raw_json))
        known_ids.add(offer.id)

    repository.append_offer_rows(rows)
    repository.append_raw_imports(raw_records)
    counts["inserted"] = len(rows)

    elapsed_ms = int((monotonic() - started) * 1000)
    summary = _format_summary(days=window_days, counts=counts, elapsed_ms=elapsed_ms)
    logger.info(summary)
    return {
        "ok": True,
        "summary": summary,
        "counts": counts,
        "elapsed_ms": elapsed_ms,
        "window_days": window_days,
    }
