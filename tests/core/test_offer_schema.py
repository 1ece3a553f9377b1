import json
from datetime import UTC, datetime

import pytest

from offerflow.core.offer_schema import (
    OFFER_COLUMNS,
    RESUME_NOTE_PREFIX,
    UNTITLED_OFFER,
    build_offer_row,
    compute_etp_percent,
    first_line,
    map_offer,
    offer_public_url,
    parse_offer_date,
)


def _item(**overrides):
    item = {
        "id": "178ABCD",
        "intitule": "Éducateur spécialisé (H/F)",
        "description": "Accompagnement de jeunes.\nTemps partiel.",
        "dateCreation": "2024-03-05T10:11:12.000Z",
        "entreprise": {"nom": "ACME", "description": "Association locale.\nFondée en 1990."},
        "contact": {"nom": "ACME - Mme Jeanne DUPONT", "email": "rh@acme.fr", "telephone": "0102030405"},
        "lieuTravail": {"codePostal": "75011", "libelle": "75 - PARIS 11"},
        "typeContratLibelle": "CDD - 6 Mois",
        "dureeTravailLibelle": "17,5 H/semaine",
    }
    item.update(overrides)
    return item


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("35H/semaine", "100%"),
        ("17,5 H/semaine", "50%"),
        ("28H/semaine Travail en journée", "80%"),
        ("24 h semaine", "69%"),
        ("Temps partiel", ""),
        ("", ""),
        (None, ""),
    ],
)
def test_compute_etp_percent(label, expected):
    assert compute_etp_percent(label) == expected


def test_map_offer_reads_nested_fields():
    offer = map_offer(_item())
    assert offer is not None
    assert offer.id == "178ABCD"
    assert offer.entreprise_nom == "ACME"
    assert offer.contact_nom == "Mme Jeanne DUPONT"
    assert offer.contact_email == "rh@acme.fr"
    assert offer.code_postal == "75011"
    assert offer.entreprise_a_propos.startswith("Association locale.")
    assert offer.raw["id"] == "178ABCD"


def test_map_offer_falls_back_to_flat_fields():
    item = _item(entreprise=None, contact=None, lieuTravail=None, entrepriseNom="Flat Co", codePostal="69001")
    offer = map_offer(item)
    assert offer is not None
    assert offer.entreprise_nom == "Flat Co"
    assert offer.code_postal == "69001"
    assert offer.contact_nom == ""
    assert offer.entreprise_a_propos == ""


def test_map_offer_drops_agency_contacts():
    offer = map_offer(_item(contact={"nom": "Agence France Travail PARIS 11"}))
    assert offer is not None
    assert offer.contact_nom == ""


@pytest.mark.parametrize("item", [None, "x", {}, {"id": "  "}, {"intitule": "no id"}])
def test_map_offer_rejects_items_without_id(item):
    assert map_offer(item) is None


def test_raw_json_keeps_provider_item():
    item = _item()
    offer = map_offer(item)
    assert json.loads(offer.raw_json()) == item


def test_offer_public_url_quotes_id():
    assert offer_public_url("178ABCD") == "https://candidat.francetravail.fr/offres/recherche/detail/178ABCD"
    assert offer_public_url("a b/c").endswith("/a%20b%2Fc")


def test_first_line_handles_crlf():
    assert first_line("  first\r\nsecond") == "first"
    assert first_line(None) == ""


def test_parse_offer_date_falls_back_to_now():
    now = datetime(2025, 1, 2, tzinfo=UTC)
    assert parse_offer_date("not a date", now=now) == now
    assert parse_offer_date("", now=now) == now
    assert parse_offer_date("2024-03-05T10:11:12Z", now=now).date().isoformat() == "2024-03-05"


def test_build_offer_row_cells():
    row = build_offer_row(map_offer(_item()))
    cells = row.to_cells()
    assert len(cells) == len(OFFER_COLUMNS)

    by_column = dict(zip(OFFER_COLUMNS, cells))
    assert by_column["Date"].text == "2024-03-05"
    assert by_column["Poste"].text == "Éducateur spécialisé (H/F)"
    assert by_column["Poste"].link == offer_public_url("178ABCD")
    assert by_column["Résumé"].text == "Accompagnement de jeunes."
    assert by_column["Résumé"].note == RESUME_NOTE_PREFIX + "Accompagnement de jeunes.\nTemps partiel."
    assert by_column["Contrat"].text == "CDD - 6 Mois"
    assert by_column["ETP"].text == "50%"
    assert by_column["À propos"].text == "Association locale."
    assert by_column["À propos"].note == "Association locale.\nFondée en 1990."
    assert by_column["offre_ID"].text == "178ABCD"


def test_build_offer_row_defaults_for_sparse_offer():
    now = datetime(2025, 6, 1, 8, 0, tzinfo=UTC)
    row = build_offer_row(map_offer({"id": "X1"}), now=now)
    assert row.date == "2025-06-01"
    assert row.title == UNTITLED_OFFER
    assert row.resume == ""
    assert row.etp == ""
    about = row.to_cells()[OFFER_COLUMNS.index("À propos")]
    assert about.note is None
