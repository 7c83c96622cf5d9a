"""
Pure interaction-classification rules.

No I/O here: the classifier service fetches labels, these functions decide
which label text matters, how severe it sounds and how it is shown.
"""

import re
from collections.abc import Iterable

from core.domain.models import DrugLabel, InteractionSeverity

SERIOUS_KEYWORDS: frozenset[str] = frozenset(
    {
        "contraindicated",
        "avoid",
        "should not",
        "do not use",
        "serious",
        "severe",
        "life-threatening",
        "fatal",
        "death",
        "emergency",
        "immediate",
        "dangerous",
    }
)

MINOR_KEYWORDS: frozenset[str] = frozenset(
    {
        "caution",
        "monitor",
        "may",
        "possible",
        "potential",
        "consider",
        "adjust",
        "mild",
        "minor",
        "watch",
    }
)

# Evaluated in order; the first rule with any keyword present wins
SEVERITY_RULES: tuple[tuple[frozenset[str], InteractionSeverity], ...] = (
    (SERIOUS_KEYWORDS, InteractionSeverity.SERIOUS),
    (MINOR_KEYWORDS, InteractionSeverity.MINOR),
)

MAX_DETAIL_LENGTH = 200

_WHITESPACE = re.compile(r"\s+")
_CROSS_REFERENCE = re.compile(r"\b(see|refer to|consult)\b[^.]*\.", re.IGNORECASE)


def classify_severity(text: str) -> InteractionSeverity:
    """Map free label text to a severity tier by keyword rules."""
    normalized = text.lower()
    for keywords, severity in SEVERITY_RULES:
        if any(keyword in normalized for keyword in keywords):
            return severity
    return InteractionSeverity.NONE


def label_sections(label: DrugLabel) -> Iterable[str]:
    """Label entries in scan priority order."""
    yield from label.drug_interactions
    yield from label.warnings
    yield from label.contraindications


def find_interaction_text(labels: Iterable[DrugLabel], drug_name: str) -> str | None:
    """First label entry mentioning drug_name (case-insensitive), or None."""
    needle = drug_name.lower()
    for label in labels:
        for entry in label_sections(label):
            if needle in entry.lower():
                return entry
    return None


def clean_interaction_text(text: str, new_drug: str, saved_drug: str) -> str:
    """Condense label text into a short, self-explanatory detail line."""
    cleaned = _WHITESPACE.sub(" ", text)
    cleaned = _CROSS_REFERENCE.sub("", cleaned).strip()

    if len(cleaned) > MAX_DETAIL_LENGTH:
        cleaned = cleaned[:MAX_DETAIL_LENGTH] + "..."

    lowered = cleaned.lower()
    if new_drug.lower() not in lowered and saved_drug.lower() not in lowered:
        cleaned = f"{new_drug} and {saved_drug}: {cleaned}"

    return cleaned
