from __future__ import annotations

from collections.abc import Iterable
from typing import Any

QUALIFYING_RATINGS = frozenset({"strong", "moderate"})
QUALIFYING_SCORE = 50

# Checked in order; the first substring found in the label wins.
CRITERIA_RULES: tuple[tuple[str, str], ...] = (
    ("award", "awards"),
    ("prize", "awards"),
    ("membership", "membership"),
    ("press", "press"),
    ("media", "press"),
    ("published material", "press"),
    ("judging", "judging"),
    ("judge", "judging"),
    ("original", "original_contributions"),
    ("contribution", "original_contributions"),
    ("scholarly", "scholarly_articles"),
    ("authorship", "scholarly_articles"),
    ("publication", "scholarly_articles"),
    ("exhibition", "exhibitions"),
    ("showcase", "exhibitions"),
    ("leading", "critical_role"),
    ("critical", "critical_role"),
    ("role", "critical_role"),
    ("salary", "high_salary"),
    ("remuneration", "high_salary"),
    ("compensation", "high_salary"),
    ("commercial", "commercial_success"),
    ("success", "commercial_success"),
)

CRITERIA_KEYS: frozenset[str] = frozenset(key for _, key in CRITERIA_RULES)


def map_criteria(criteria_scores: Iterable[Any] | None) -> set[str]:
    """Translate the provider's per-criterion breakdown into internal criterion keys.

    An entry counts when its rating is "strong"/"moderate" (any case) or its numeric
    score is at least 50. Malformed entries never raise; they simply do not count.
    """
    met: set[str] = set()
    for entry in criteria_scores or []:
        if not isinstance(entry, dict):
            continue
        if not _qualifies(entry):
            continue
        key = criterion_for_label(_label(entry))
        if key:
            met.add(key)
    return met


def criterion_for_label(label: str) -> str | None:
    name = label.lower()
    if not name:
        return None
    for needle, key in CRITERIA_RULES:
        if needle in name:
            return key
    return None


def _qualifies(entry: dict[str, Any]) -> bool:
    rating = entry.get("rating")
    if isinstance(rating, str) and rating.lower() in QUALIFYING_RATINGS:
        return True
    return _numeric(entry.get("score")) >= QUALIFYING_SCORE


def _label(entry: dict[str, Any]) -> str:
    for key in ("label", "criterionName"):
        value = entry.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def _numeric(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    # NaN compares false against the threshold, which is what we want.
    return float(value)
