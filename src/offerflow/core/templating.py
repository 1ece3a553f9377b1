"""`{{ Namespace.Key }}` prompt placeholder substitution."""

from __future__ import annotations

import re
from collections.abc import Mapping

PLACEHOLDER_RE = re.compile(r"\{\{\s*([\w.\-À-ÿ]+)\s*\}\}")


def render_template(template: str, variables: Mapping[str, str]) -> str:
    """Replace each placeholder with its value, or "" for unknown keys. Single pass."""
    return PLACEHOLDER_RE.sub(lambda match: str(variables.get(match.group(1), "") or ""), template or "")
