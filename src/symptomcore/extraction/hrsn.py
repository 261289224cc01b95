"""
Health-Related Social Need (HRSN) indicators.

A library row carries its indicator explicitly (``hrsn_mapping``) or, when it
is flagged as a Problem, gets one from the keyword table below matched against
its segment text. Symptom rows never produce an indicator.
"""
from __future__ import annotations

from symptomcore.extraction.models import SymptomMasterRecord, SymptomOrProblem
from symptomcore.extraction.normalizer import phrase_tokens

# indicator key -> display label used as the pivot row
HRSN_LABELS: dict[str, str] = {
    "housing_status": "Housing Instability",
    "food_status": "Food Insecurity",
    "financial_status": "Financial Strain",
    "transportation_needs": "Transportation Needs",
    "has_a_car": "No Reliable Vehicle",
    "utility_insecurity": "Utility Insecurity",
    "childcare_needs": "Childcare Needs",
    "elder_care_needs": "Elder Care Needs",
    "employment_status": "Unemployment",
    "education_needs": "Education Needs",
    "legal_needs": "Legal Needs",
    "social_isolation": "Social Isolation",
}

# Checked in order; the first indicator with a keyword inside the segment wins.
HRSN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "housing_status": (
        "homeless", "homelessness", "eviction", "evicted", "foreclosure", "housing instability",
        "housing insecurity", "unstable housing", "shelter", "couch surfing", "rent",
    ),
    "food_status": (
        "food insecurity", "hunger", "hungry", "food bank", "food pantry", "skip meals",
        "skipping meals", "food stamps", "snap",
    ),
    "financial_status": (
        "financial strain", "financial stress", "financial hardship", "poverty", "low income",
        "debt", "cannot afford", "can't afford", "bills",
    ),
    "has_a_car": ("no car", "no vehicle", "lost car", "without a car"),
    "transportation_needs": (
        "transportation", "no ride", "bus fare", "missed appointment", "missed appointments",
    ),
    "utility_insecurity": (
        "utility", "utilities", "shut off", "shutoff", "no heat", "no electricity", "no water",
    ),
    "childcare_needs": ("childcare", "child care", "daycare", "babysitter"),
    "elder_care_needs": ("elder care", "caregiver burden", "caring for parent", "caregiving"),
    "employment_status": ("unemployed", "unemployment", "jobless", "laid off", "lost job", "fired"),
    "education_needs": ("dropout", "dropped out", "literacy", "ged", "education"),
    "legal_needs": ("legal", "lawyer", "court", "probation", "parole", "incarceration", "jail"),
    "social_isolation": ("isolated", "isolation", "lonely", "loneliness", "lives alone", "no support"),
}

_KEYWORD_TOKENS: list[tuple[str, tuple[str, ...]]] = [
    (key, phrase_tokens(kw)) for key, kws in HRSN_KEYWORDS.items() for kw in kws
]


def _contains(haystack: tuple[str, ...], needle: tuple[str, ...]) -> bool:
    n = len(needle)
    return any(haystack[i:i + n] == needle for i in range(len(haystack) - n + 1))


def indicator_for(record: SymptomMasterRecord) -> str | None:
    """Indicator key for a library row, or None."""
    if record.hrsn_mapping:
        key = record.hrsn_mapping.strip().lower()
        return key if key in HRSN_LABELS else record.hrsn_mapping.strip()

    if record.symptom_or_problem is not SymptomOrProblem.PROBLEM:
        return None

    seg = phrase_tokens(record.symptom_segment)
    for key, kw in _KEYWORD_TOKENS:
        if kw and _contains(seg, kw):
            return key
    return None


def indicator_label(key: str | None) -> str | None:
    if not key:
        return None
    return HRSN_LABELS.get(key, key.replace("_", " ").title())
