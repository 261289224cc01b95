"""
Data model shared by the loader, normalizer, matcher and aggregator.

Reference rows (SymptomMasterRecord) and extracted events are frozen
dataclasses: the library is read-only for the lifetime of a matching run and
an event is never incremented in place. Intensity comes from counting events.
"""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping

from symptomcore.core.errors import MalformedNote, UnparseableDate


class SymptomOrProblem(str, Enum):
    SYMPTOM = "Symptom"
    PROBLEM = "Problem"

    @classmethod
    def parse(cls, value: Any) -> "SymptomOrProblem":
        text = _clean_str(value)
        if text and text.lower() == "problem":
            return cls.PROBLEM
        return cls.SYMPTOM


@dataclass(frozen=True)
class SymptomMasterRecord:
    symptom_id: str
    symptom_segment: str
    diagnosis: str | None = None
    diagnostic_category: str | None = None
    icd10_code: str | None = None
    symptom_or_problem: SymptomOrProblem = SymptomOrProblem.SYMPTOM
    hrsn_mapping: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["symptom_or_problem"] = self.symptom_or_problem.value
        return d


@dataclass(frozen=True)
class ClinicalNote:
    patient_id: str
    note_id: str
    date_of_service: date
    raw_text: str

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "ClinicalNote":
        """Build a note from a source row whose field names may vary.

        Raises MalformedNote for missing text / ids and UnparseableDate when
        the service date cannot be read.
        """
        canon = canonicalize_row(row, NOTE_FIELD_ALIASES)

        text = canon.get("raw_text")
        if not isinstance(text, str) or not text.strip():
            raise MalformedNote("note has no text")

        patient_id = _clean_str(canon.get("patient_id"))
        note_id = _clean_str(canon.get("note_id"))
        if not patient_id:
            raise MalformedNote("note has no patient_id")
        if not note_id:
            raise MalformedNote("note has no note_id")

        return cls(
            patient_id=patient_id,
            note_id=note_id,
            date_of_service=parse_date_of_service(canon.get("date_of_service")),
            raw_text=text,
        )


@dataclass(frozen=True)
class ExtractedSymptomEvent:
    patient_id: str
    note_id: str
    date_of_service: date
    symptom_id: str
    symptom_segment: str
    diagnosis: str | None
    diagnostic_category: str | None
    negated: bool
    start_offset: int
    end_offset: int
    icd10_code: str | None = None
    symptom_or_problem: SymptomOrProblem = SymptomOrProblem.SYMPTOM
    hrsn_indicator: str | None = None
    matched_text: str = ""
    clause_index: int = 0

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["date_of_service"] = self.date_of_service.isoformat()
        d["symptom_or_problem"] = self.symptom_or_problem.value
        return d


# ── Field-name canonicalization ──────────────────────────────────────────────
# Upstream producers disagree on casing and naming (Symptom_ID, symptomId,
# symp_prob, dos_date, noteText, ...). Every source row passes through one of
# these tables exactly once, at ingestion.

LIBRARY_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "symptom_id": ("symptom_id", "symptomid", "symptom_key", "id"),
    "symptom_segment": ("symptom_segment", "symptom_segments", "segment", "symptom_text", "symptom"),
    "diagnosis": ("diagnosis", "diagnosis_name", "dx"),
    "diagnostic_category": ("diagnostic_category", "diagnosis_category", "category"),
    "icd10_code": ("icd10_code", "diagnosis_icd10_code", "icd_10_code", "icd10", "icd_code", "diagnosis_code"),
    "symptom_or_problem": ("symptom_or_problem", "symp_prob", "symptom_problem_flag", "type"),
    "hrsn_mapping": ("hrsn_mapping", "hrsn_indicator", "hrsn"),
}

NOTE_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "patient_id": ("patient_id", "patientid", "patient", "mrn"),
    "note_id": ("note_id", "noteid", "id", "note_key"),
    "date_of_service": ("date_of_service", "dos_date", "dos", "service_date", "note_date", "date"),
    "raw_text": ("raw_text", "note_text", "text", "note", "notes", "body"),
}

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def canonical_field_name(name: str) -> str:
    """'Symptom_ID' / 'symptomId' / 'Symptom ID' -> 'symptom_id'."""
    s = _CAMEL_RE.sub("_", str(name).strip())
    return _NON_ALNUM_RE.sub("_", s.lower()).strip("_")


def canonicalize_row(row: Mapping[str, Any], aliases: Mapping[str, tuple[str, ...]]) -> dict[str, Any]:
    by_canon: dict[str, Any] = {}
    for key, value in row.items():
        by_canon.setdefault(canonical_field_name(key), value)

    out: dict[str, Any] = {}
    for field, names in aliases.items():
        for name in names:
            if name in by_canon and _clean_str(by_canon[name]) is not None:
                out[field] = by_canon[name]
                break
    return out


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float):
        if value != value:  # NaN from pandas
            return None
        if value.is_integer():
            value = int(value)
    text = str(value).strip()
    return text or None


# ── Dates ────────────────────────────────────────────────────────────────────

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%Y/%m/%d", "%d-%b-%Y", "%b %d, %Y")


def parse_date_of_service(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = _clean_str(value)
    if not text:
        raise UnparseableDate("date_of_service is missing")

    # ISO timestamps ("2024-01-01T10:30:00Z") keep only the date part
    if "T" in text and text[:4].isdigit():
        text = text.split("T", 1)[0]

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise UnparseableDate(f"cannot parse date_of_service {text!r}")
