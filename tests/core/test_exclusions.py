import pytest
from hypothesis import given
from hypothesis import strategies as st

from offerflow.core.exclusions import (
    MAX_REGEX_PATTERN_CHARS,
    ExclusionCandidate,
    ExclusionRules,
    is_excluded,
    load_exclusions,
    matches_any_rule,
    normalize_text,
    parse_rule,
)

FRENCH_TEXT = st.text(alphabet="aAeEéÉèÈàÀçÇôÔïÏ -'\t\nxyzXYZ", max_size=40)
WORDS = st.text(alphabet="abcdeéèxyz", min_size=1, max_size=6)


def test_normalize_text_strips_accents_case_and_spacing():
    assert normalize_text("  Éducateur   Spécialisé\n") == "educateur specialise"
    assert normalize_text(None) == ""


@pytest.mark.parametrize("raw", ["", "   ", None])
def test_parse_rule_blank_is_none(raw):
    assert parse_rule(raw) is None


def test_literal_rule_is_accent_and_case_insensitive():
    rule = parse_rule("éducateur")
    assert rule is not None
    assert rule.is_regex is False
    assert matches_any_rule("Poste d'EDUCATEUR spécialisé", [rule])
    assert not matches_any_rule("Moniteur", [rule])


def test_regex_rule_with_flags():
    rule = parse_rule("/^cdd\\b/i")
    assert rule is not None
    assert rule.is_regex is True
    assert matches_any_rule("CDD de 6 mois", [rule])
    assert not matches_any_rule("Un CDD", [rule])


def test_regex_rule_also_tests_normalized_text():
    rule = parse_rule("/educateur specialise/")
    assert matches_any_rule("Éducateur   Spécialisé", [rule])


def test_invalid_regex_falls_back_to_literal():
    rule = parse_rule("/[unclosed/")
    assert rule is not None
    assert rule.is_regex is False
    assert matches_any_rule("pattern /[unclosed/ inside", [rule])


def test_unknown_regex_flag_falls_back_to_literal():
    rule = parse_rule("/abc/q")
    assert rule is not None
    assert rule.is_regex is False
    assert not matches_any_rule("abc", [rule])
    assert matches_any_rule("xx /abc/q", [rule])


def test_oversized_regex_falls_back_to_literal():
    rule = parse_rule("/" + "a" * (MAX_REGEX_PATTERN_CHARS + 1) + "/")
    assert rule is not None
    assert rule.is_regex is False


def test_no_rules_never_match():
    assert matches_any_rule("anything", []) is False


def test_load_exclusions_two_column_sheet_feeds_title_and_company():
    rules = load_exclusions([["stage", "acme"], ["", None], ["alternance"]])
    assert [rule.raw for rule in rules.title] == ["stage", "alternance"]
    assert [rule.raw for rule in rules.company] == ["acme"]
    assert rules.description == ()
    assert rules.raw == ()
    assert rules.contract_type == ()
    assert rules.rule_count() == 3


def test_load_exclusions_five_columns():
    rules = load_exclusions([["", "", "bénévole", '/"typeContrat":\\s*"MIS"/', "intérim"]])
    assert len(rules.description) == 1
    assert len(rules.raw) == 1
    assert rules.raw[0].is_regex is True
    assert len(rules.contract_type) == 1


def test_is_excluded_checks_each_field_against_its_own_rules():
    rules = load_exclusions([["stage", "acme", "", '/"typeContrat":\\s*"MIS"/', "interim"]])

    assert is_excluded(ExclusionCandidate(title="Stage éducateur"), rules)
    assert is_excluded(ExclusionCandidate(company="ACME Services"), rules)
    assert is_excluded(ExclusionCandidate(raw='{"typeContrat": "MIS"}'), rules)
    assert is_excluded(ExclusionCandidate(contract_type="Contrat à durée indéterminée"), rules) is False
    assert is_excluded(ExclusionCandidate(contract_type="Mission intérimaire"), rules)
    # A title rule does not apply to the company field.
    assert not is_excluded(ExclusionCandidate(title="Educateur", company="Stage Corp"), rules)


@given(FRENCH_TEXT)
def test_normalize_text_is_idempotent(text):
    once = normalize_text(text)
    assert normalize_text(once) == once


@given(st.text(max_size=60))
def test_parse_rule_never_raises(raw):
    rule = parse_rule(raw)
    if raw.strip():
        assert rule is not None
        assert rule.raw == raw.strip()
    else:
        assert rule is None


@given(st.lists(WORDS, max_size=4), st.lists(WORDS, max_size=4), FRENCH_TEXT)
def test_adding_rules_never_unexcludes(base, extra, title):
    before = ExclusionRules(title=tuple(parse_rule(word) for word in base))
    after = ExclusionRules(title=tuple(parse_rule(word) for word in base + extra))
    candidate = ExclusionCandidate(title=title)
    if is_excluded(candidate, before):
        assert is_excluded(candidate, after)
