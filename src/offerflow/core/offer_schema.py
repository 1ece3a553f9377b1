"""Offer model and the Offres / Import / Exclusions sheet contracts."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

OFFERS_SHEET = "Offres"
EXCLUSIONS_SHEET = "Exclusions"
IMPORT_SHEET = "Import"

OFFER_COLUMNS = (
    "Date",
    "Poste",
    "Résumé",
    "Entreprise",
    "Contact",
    "CP",
    "Contrat",
    "ETP",
    "Email",
    "Téléphone",
    "À propos",
    "offre_ID",
)
OFFER_ID_COLUMN = "offre_ID"
OFFER_ID_COLUMN_ALIASES = ("offre_ID", "offre_id")

EXCLUSION_COLUMNS = (
    "Exclure si intitulé contient / match",
    "Exclure si entreprise contient / match",
    "Exclure si description contient / match",
    "Exclure si JSON brut contient / match",
    "Exclure si contrat contient / match",
)

IMPORT_COLUMNS = ("offre_id", "raw_json")

OFFER_PUBLIC_URL_TEMPLATE = "https://candidat.francetravail.fr/offres/recherche/detail/{offer_id}"
UNTITLED_OFFER = "(sans intitulé)"
RESUME_NOTE_PREFIX = "Description:\n"
FULL_TIME_HOURS_PER_WEEK = 35

_HOURS_PER_WEEK_RE = re.compile(r"(\d{1,2}(?:[.,]\d+)?)\s*H\s*/?\s*semaine", re.IGNORECASE)
_AGENCY_CONTACT_RE = re.compile(r"^Agence France", re.IGNORECASE)


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _nested(payload: dict[str, Any], parent: str, key: str) -> Any:
    block = payload.get(parent)
    if isinstance(block, dict):
        return block.get(key)
    return None


def _first_present(*values: Any) -> str:
    for value in values:
        if value is not None:
            return _coerce_text(value)
    return ""


@dataclass(frozen=True)
class Offer:
    id: str
    date_creation: str = ""
    intitule: str = ""
    description: str = ""
    entreprise_nom: str = ""
    contact_nom: str = ""
    contact_email: str = ""
    contact_telephone: str = ""
    entreprise_a_propos: str = ""
    code_postal: str = ""
    type_contrat_libelle: str = ""
    duree_travail_libelle: str = ""
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def raw_json(self) -> str:
        return json.dumps(self.raw, ensure_ascii=False)


def _clean_contact_name(raw: str) -> str:
    # Provider contacts look like "COMPANY - Mme Firstname NAME".
    value = raw.strip()
    if _AGENCY_CONTACT_RE.match(value):
        return ""
    parts = value.split(" - ")
    if len(parts) >= 2:
        return " - ".join(parts[1:]).strip()
    return value


def map_offer(item: Any) -> Offer | None:
    """Map one raw search result to an Offer. Items without an id map to None."""
    if not isinstance(item, dict):
        return None
    offer_id = _coerce_text(item.get("id")).strip()
    if not offer_id:
        return None

    return Offer(
        id=offer_id,
        date_creation=_coerce_text(item.get("dateCreation")),
        intitule=_coerce_text(item.get("intitule")),
        description=_coerce_text(item.get("description")),
        entreprise_nom=_first_present(_nested(item, "entreprise", "nom"), item.get("entrepriseNom")),
        contact_nom=_clean_contact_name(_first_present(_nested(item, "contact", "nom"), item.get("contactNom"))),
        contact_email=_first_present(_nested(item, "contact", "email"), item.get("contactEmail")),
        contact_telephone=_first_present(_nested(item, "contact", "telephone"), item.get("contactTelephone")),
        # Company "about" text comes only from entreprise.description.
        entreprise_a_propos=_coerce_text(_nested(item, "entreprise", "description")).strip(),
        code_postal=_first_present(_nested(item, "lieuTravail", "codePostal"), item.get("codePostal")),
        type_contrat_libelle=_coerce_text(item.get("typeContratLibelle")),
        duree_travail_libelle=_coerce_text(item.get("dureeTravailLibelle")),
        raw=item,
    )


def offer_public_url(offer_id: str) -> str:
    return OFFER_PUBLIC_URL_TEMPLATE.format(offer_id=quote(offer_id, safe=""))


def first_line(text: str | None) -> str:
    value = (text or "").replace("\r\n", "\n")
    return value.split("\n", 1)[0].strip()


def parse_hours_per_week(label: str | None) -> float | None:
    match = _HOURS_PER_WEEK_RE.search(label or "")
    if not match:
        return None
    try:
        return float(match.group(1).replace(",", "."))
    except ValueError:
        return None


def compute_etp_percent(label: str | None) -> str:
    """`"35H/semaine"` -> `"100%"`; blank when no weekly hours are found."""
    hours = parse_hours_per_week(label)
    if hours is None:
        return ""
    # Half-up, not banker's rounding.
    percent = int(hours / FULL_TIME_HOURS_PER_WEEK * 100 + 0.5)
    return f"{percent}%"


def parse_offer_date(value: str | None, *, now: datetime | None = None) -> datetime:
    """Parse an ISO-8601 creation date, falling back to `now` when invalid."""
    fallback = now or datetime.now(tz=UTC)
    raw = (value or "").strip()
    if not raw:
        return fallback
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return fallback


@dataclass(frozen=True)
class SheetCell:
    """One spreadsheet cell: display text plus optional note and hyperlink."""

    text: str = ""
    note: str | None = None
    link: str | None = None


CellInput = str | SheetCell


def as_cell(value: CellInput) -> SheetCell:
    return value if isinstance(value, SheetCell) else SheetCell(text=_coerce_text(value))


@dataclass(frozen=True)
class OfferRow:
    offer_id: str
    date: str
    title: str
    title_url: str
    resume: str
    resume_note: str
    company: str
    contact: str
    postal_code: str
    contract_type: str
    etp: str
    email: str
    phone: str
    about: str
    about_note: str

    def to_cells(self) -> list[SheetCell]:
        """Cells in OFFER_COLUMNS order."""
        return [
            SheetCell(self.date),
            SheetCell(self.title, link=self.title_url),
            SheetCell(self.resume, note=self.resume_note),
            SheetCell(self.company),
            SheetCell(self.contact),
            SheetCell(self.postal_code),
            SheetCell(self.contract_type),
            SheetCell(self.etp),
            SheetCell(self.email),
            SheetCell(self.phone),
            SheetCell(first_line(self.about), note=self.about_note or None),
            SheetCell(self.offer_id),
        ]


def build_offer_row(offer: Offer, *, now: datetime | None = None) -> OfferRow:
    description = offer.description
    return OfferRow(
        offer_id=offer.id,
        date=parse_offer_date(offer.date_creation, now=now).date().isoformat(),
        title=offer.intitule or UNTITLED_OFFER,
        title_url=offer_public_url(offer.id),
        resume=first_line(description),
        resume_note=RESUME_NOTE_PREFIX + description,
        company=offer.entreprise_nom,
        contact=offer.contact_nom,
        postal_code=offer.code_postal,
        contract_type=offer.type_contrat_libelle,
        etp=compute_etp_percent(offer.duree_travail_libelle),
        email=offer.contact_email,
        phone=offer.contact_telephone,
        about=offer.entreprise_a_propos,
        about_note=offer.entreprise_a_propos,
    )
