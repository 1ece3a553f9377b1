"""Exclusion rules: literal (accent-insensitive) or `/regex/flags` matchers."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

MAX_REGEX_PATTERN_CHARS = 500

_COMBINING_MARKS_RE = re.compile("[\u0300-\u036f]")
_WHITESPACE_RE = re.compile(r"\s+")

# JS-style flags accepted in `/pattern/flags`. `g` and `y` have no meaning for a
# single containment test and are ignored.
_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    "u": 0,
    "g": 0,
    "y": 0,
}


def normalize_text(text: str | None) -> str:
    """Trim, lowercase, strip accents and collapse whitespace."""
    value = (text or "").strip().lower()
    value = unicodedata.normalize("NFD", value)
    value = _COMBINING_MARKS_RE.sub("", value)
    return _WHITESPACE_RE.sub(" ", value).strip()


@dataclass(frozen=True)
class ExclusionRule:
    raw: str
    is_regex: bool
    regex: re.Pattern[str] | None = None
    normalized_needle: str = ""

    def matches(self, text: str, normalized: str) -> bool:
        if self.is_regex and self.regex is not None:
            return bool(self.regex.search(text) or self.regex.search(normalized))
        if self.normalized_needle:
            return self.normalized_needle in normalized
        return False


def _literal_rule(raw: str) -> ExclusionRule:
    return ExclusionRule(raw=raw, is_regex=False, normalized_needle=normalize_text(raw))


def _compile_flags(flags: str) -> int | None:
    out = 0
    for flag in flags:
        if flag not in _REGEX_FLAGS:
            return None
        out |= _REGEX_FLAGS[flag]
    return out


def parse_rule(raw: str | None) -> ExclusionRule | None:
    """Parse one user-authored rule. Never raises.

    `/pattern/flags` compiles to a regex rule; anything that fails to compile
    (bad pattern, unknown flag, oversized pattern) falls back to a literal rule
    over the whole string.
    """
    value = (raw or "").strip()
    if not value:
        return None

    last_slash = value.rfind("/")
    if value.startswith("/") and last_slash > 0:
        pattern = value[1:last_slash]
        flags = _compile_flags(value[last_slash + 1 :])
        if flags is None or len(pattern) > MAX_REGEX_PATTERN_CHARS:
            return _literal_rule(value)
        try:
            regex = re.compile(pattern, flags)
        except (re.error, ValueError, OverflowError, RecursionError):
            return _literal_rule(value)
        return ExclusionRule(raw=value, is_regex=True, regex=regex)

    return _literal_rule(value)


def matches_any_rule(text: str | None, rules: Sequence[ExclusionRule]) -> bool:
    if not rules:
        return False
    raw = text or ""
    normalized = normalize_text(raw)
    return any(rule.matches(raw, normalized) for rule in rules)


@dataclass(frozen=True)
class ExclusionCandidate:
    title: str = ""
    company: str = ""
    description: str = ""
    raw: str = ""
    contract_type: str = ""


@dataclass(frozen=True)
class ExclusionRules:
    title: tuple[ExclusionRule, ...] = field(default_factory=tuple)
    company: tuple[ExclusionRule, ...] = field(default_factory=tuple)
    description: tuple[ExclusionRule, ...] = field(default_factory=tuple)
    raw: tuple[ExclusionRule, ...] = field(default_factory=tuple)
    contract_type: tuple[ExclusionRule, ...] = field(default_factory=tuple)

    def rule_count(self) -> int:
        return len(self.title) + len(self.company) + len(self.description) + len(self.raw) + len(self.contract_type)


def is_excluded(candidate: ExclusionCandidate, rules: ExclusionRules) -> bool:
    """True when any field matches its own rule set."""
    return (
        matches_any_rule(candidate.title, rules.title)
        or matches_any_rule(candidate.company, rules.company)
        or matches_any_rule(candidate.description, rules.description)
        or matches_any_rule(candidate.raw, rules.raw)
        or matches_any_rule(candidate.contract_type, rules.contract_type)
    )


def load_exclusions(rows: Iterable[Sequence[object]]) -> ExclusionRules:
    """Build rule sets from Exclusions sheet data rows.

    Columns: title, company, description, raw payload, contract type. Rows
    from older two-column sheets only feed the title and company sets.
    """
    buckets: list[list[ExclusionRule]] = [[], [], [], [], []]
    for row in rows:
        for index, bucket in enumerate(buckets):
            cell = row[index] if index < len(row) else ""
            rule = parse_rule(str(cell) if cell is not None else "")
            if rule is not None:
                bucket.append(rule)
    return ExclusionRules(
        title=tuple(buckets[0]),
        company=tuple(buckets[1]),
        description=tuple(buckets[2]),
        raw=tuple(buckets[3]),
        contract_type=tuple(buckets[4]),
    )
