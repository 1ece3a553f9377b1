"""Jobs / Logs sheet contracts and the declarative AI job config."""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

JOBS_SHEET = "Jobs"
LOGS_SHEET = "Logs"

JOB_COLUMNS = (
    "job_key",
    "enabled",
    "prompt_template",
    "output_mode",
    "schema_json",
    "target_columns",
    "write_strategy",
    "rate_limit_ms",
)

LOG_COLUMNS = (
    "timestamp",
    "job_key",
    "offre_id",
    "row_number",
    "request_id",
    "model",
    "prompt_rendered",
    "response_text",
    "input_tokens",
    "output_tokens",
    "total_tokens",
    "duration_ms",
    "status",
    "error_message",
)

OutputMode = Literal["json", "text", "number"]
WriteStrategy = Literal["overwrite", "fill_if_empty"]

OUTPUT_MODES: tuple[OutputMode, ...] = ("json", "text", "number")
WRITE_STRATEGIES: tuple[WriteStrategy, ...] = ("overwrite", "fill_if_empty")
DEFAULT_OUTPUT_MODE: OutputMode = "text"
DEFAULT_WRITE_STRATEGY: WriteStrategy = "fill_if_empty"

_ENABLED_RE = re.compile(r"^(true|1|yes|y)$", re.IGNORECASE)


@dataclass(frozen=True)
class JobConfig:
    job_key: str
    enabled: bool
    prompt_template: str
    output_mode: OutputMode = DEFAULT_OUTPUT_MODE
    schema_json: str | None = None
    target_columns: tuple[str, ...] = ()
    write_strategy: WriteStrategy = DEFAULT_WRITE_STRATEGY
    rate_limit_ms: int | None = None


def _cell(row: Sequence[object], index: int) -> str:
    if index >= len(row):
        return ""
    value = row[index]
    return "" if value is None else str(value)


def parse_csv_list(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in (value or "").split(",") if part.strip())


def _parse_output_mode(value: str) -> OutputMode:
    clean = value.strip().lower()
    for mode in OUTPUT_MODES:
        if clean == mode:
            return mode
    return DEFAULT_OUTPUT_MODE


def _parse_write_strategy(value: str) -> WriteStrategy:
    clean = value.strip().lower()
    for strategy in WRITE_STRATEGIES:
        if clean == strategy:
            return strategy
    return DEFAULT_WRITE_STRATEGY


def _parse_rate_limit_ms(value: str) -> int | None:
    clean = value.strip()
    if not clean:
        return None
    try:
        parsed = float(clean.replace(",", "."))
    except ValueError:
        return None
    if not math.isfinite(parsed):
        return None
    return max(0, int(parsed))


def parse_job_row(row: Sequence[object]) -> JobConfig | None:
    """Validate one Jobs sheet row. Rows without a job key are dropped."""
    job_key = _cell(row, 0).strip()
    if not job_key:
        return None
    schema_json = _cell(row, 4).strip()
    return JobConfig(
        job_key=job_key,
        enabled=bool(_ENABLED_RE.match(_cell(row, 1).strip())),
        prompt_template=_cell(row, 2),
        output_mode=_parse_output_mode(_cell(row, 3)),
        schema_json=schema_json or None,
        target_columns=parse_csv_list(_cell(row, 5)),
        write_strategy=_parse_write_strategy(_cell(row, 6)),
        rate_limit_ms=_parse_rate_limit_ms(_cell(row, 7)),
    )


def parse_job_rows(rows: Sequence[Sequence[object]]) -> dict[str, JobConfig]:
    """Jobs keyed by job key, in table order. A repeated key keeps the later row."""
    jobs: dict[str, JobConfig] = {}
    for row in rows:
        job = parse_job_row(row)
        if job is None:
            continue
        jobs.pop(job.job_key, None)
        jobs[job.job_key] = job
    return jobs


COMPLETION_PROMPT = "\n".join(
    [
        "Tu es un assistant qui structure des offres d'emploi.",
        "Retourne STRICTEMENT un JSON (sans texte autour) avec les clés suivantes : "
        "Entreprise, Contact, Email, Téléphone, À propos, Résumé, ETP.",
        "Entreprise doit être le nom de l'entreprise (string).",
        'ETP doit être un pourcentage sous forme de texte, ex: "100%", "80%". Si inconnue, chaîne vide.',
        "Si une info est absente, mets une chaîne vide.",
        "\nDonnées brutes (JSON FT):",
        "{{RawImport.raw_json}}",
    ]
)

SCORE_PROMPT = "\n".join(
    [
        "Donne un score entre 0 et 100 (nombre uniquement) selon la qualité/pertinence de l'offre.",
        "Ne retourne rien d'autre que le nombre.",
        "\nContexte:",
        "Poste: {{RowData.Poste}}",
        "Entreprise: {{RowData.Entreprise}}",
        "Résumé: {{RowData.Résumé}}",
        "Brut: {{RawImport.raw_json}}",
    ]
)

COMMERCIAL_SCORE_PROMPT = "\n".join(
    [
        "Tu es un moteur de scoring commercial pour proposer un travailleur social indépendant.",
        "",
        "À partir du JSON brut de l'offre ci-dessous, calcule un score final borné entre 0 et 100.",
        "Le score mesure la pertinence commerciale (probabilité de vendre une prestation d'indépendant), "
        "pas l'intérêt du poste pour un candidat.",
        "",
        "Barème (appliquer dans cet ordre) :",
        "",
        "1) Temps partiel : 0 à 40 pts",
        "- ≤20%: 40",
        "- 21–30%: 32",
        "- 31–40%: 24",
        "- 41–50%: 16",
        "- non précisé: 10",
        "- >50%: 0",
        "",
        "2) Besoin difficile / morcelé : 0 à 30 pts",
        "(remplacement, urgence, complément, CDD court, difficulté)",
        "Attribuer 0 / 15 / 30 selon intensité détectée dans l'annonce.",
        "",
        "3) Type de structure : 0 à 20 pts",
        "- Institution: 0–5",
        "- Établissement local: 6–14",
        "- Petite asso / structure isolée: 15–20",
        "",
        "4) Contact exploitable : 0 à 10 pts",
        "- Email direct: 10",
        "- Email générique: 5",
        "- Aucun: 0",
        "",
        "Malus obligatoire",
        "Si l'annonce est émise par un cabinet de recrutement / intérim / intermédiaire : -40 pts.",
        "",
        "Consignes d'extraction :",
        "- Utilise les champs pertinents du JSON (ex: description, entreprise/nom, type d'employeur, contact, etc.).",
        "- Déduis le % temps partiel à partir d'indices comme \"XXH/semaine\", \"temps partiel\", \"ETP\", \"mi-temps\", etc.",
        "- Pour \"keywords\", retourne des mots/expressions COURTES réellement présentes (ou quasi mot pour mot) dans l'annonce.",
        "- Si tu ne trouves pas d'élément probant pour un critère, applique la valeur \"non précisé\" ou une intensité faible.",
        "",
        "Sortie :",
        "Retourne UNIQUEMENT un JSON valide exactement au format suivant (aucun texte autour) :",
        "",
        "{",
        '  "score": 0,',
        '  "keywords_positive": ["..."],',
        '  "keywords_negative": ["..."],',
        '  "explanation": "..."',
        "}",
        "",
        "Contraintes :",
        '- "score" doit être un entier.',
        '- "keywords_positive" et "keywords_negative": 3 à 8 éléments chacun (moins si vraiment impossible).',
        '- "explanation": UNE seule phrase, courte, qui résume les facteurs principaux (incluant le malus si appliqué).',
        "",
        "OFFRE (JSON brut) :",
        "{{RawImport.raw_json}}",
    ]
)

KEYWORDS_PROMPT = "\n".join(
    [
        "You are a keyword extraction engine.",
        "",
        "Your task is to extract NEGATIVE COMMERCIAL KEYWORDS only,",
        "indicating that a job offer is NOT suitable for placing",
        'independent social workers ("as a service").',
        "",
        "You MUST extract keywords ONLY from the following fields:",
        "- intitule",
        "- description",
        "- entrepriseNom",
        "- entrepriseAPropos",
        "",
        "Do NOT use any other fields.",
        "Do NOT infer or invent information.",
        "Do NOT rephrase freely.",
        "",
        "Rules:",
        "- Keywords must be short (1 to 4 words).",
        "- Keywords must appear explicitly or almost verbatim in the text.",
        "- No interpretation, no synonyms, no paraphrasing.",
        "- If no strong negative keyword is found, return an empty array.",
        "",
        "Negative signals include (examples, not to be added unless present):",
        "- CDI / permanent full-time roles",
        "- Large or national institutions",
        "- Recruitment agencies or intermediaries",
        "- Strong hierarchy or rigid frameworks",
        "- Exclusive employment wording",
        "",
        "Output:",
        "Return ONLY a valid JSON exactly in the following format:",
        "",
        "{",
        '  "keywords_negative": {',
        '    "intitule": ["..."],',
        '    "description": ["..."],',
        '    "entrepriseNom": ["..."],',
        '    "entrepriseAPropos": ["..."]',
        "  }",
        "}",
        "",
        "Constraints:",
        "- Each array may contain 0 to 5 elements.",
        "- Do not duplicate the same keyword across multiple fields.",
        "- If a field is missing or empty, return an empty array for that field.",
        "- Return valid JSON only. No additional text.",
        "",
        "JOB OFFER (raw JSON):",
        "{{RawImport.raw_json}}",
    ]
)

SEEDED_JOB_ROWS: tuple[tuple[str, ...], ...] = (
    (
        "completion",
        "TRUE",
        COMPLETION_PROMPT,
        "json",
        "",
        "Entreprise,Contact,Email,Téléphone,À propos,Résumé,ETP",
        "fill_if_empty",
        "",
    ),
    ("score", "TRUE", SCORE_PROMPT, "number", "", "Score", "overwrite", ""),
    (
        "commercial_score",
        "TRUE",
        COMMERCIAL_SCORE_PROMPT,
        "json",
        "",
        "Score commercial,Keywords +,Keywords -,Explication",
        "overwrite",
        "",
    ),
    (
        "keywords",
        "TRUE",
        KEYWORDS_PROMPT,
        "json",
        "",
        "Keywords - Intitule,Keywords - Description,Keywords - EntrepriseNom,Keywords - EntrepriseAPropos",
        "overwrite",
        "",
    ),
)
