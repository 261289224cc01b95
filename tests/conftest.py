from __future__ import annotations

from datetime import date

import pytest

from symptomcore.extraction.library import SymptomLibrary, load_library
from symptomcore.extraction.matcher import MatcherEngine
from symptomcore.extraction.models import ClinicalNote, ExtractedSymptomEvent, SymptomOrProblem

LIBRARY_ROWS = [
    {"Symptom_ID": "S1", "Symptom_Segment": "anxiety", "Diagnosis": "Anxiety Disorder",
     "Diagnostic_Category": "Anxiety Disorders", "ICD10_Code": "F41.1", "Symp_Prob": "Symptom"},
    {"Symptom_ID": "S2", "Symptom_Segment": "panic attacks", "Diagnosis": "Panic Disorder",
     "Diagnostic_Category": "Anxiety Disorders", "ICD10_Code": "F41.0", "Symp_Prob": "Symptom"},
    {"Symptom_ID": "S3", "Symptom_Segment": "chest pain", "Diagnosis": "Chest Pain",
     "Diagnostic_Category": "Cardiovascular", "ICD10_Code": "R07.9", "Symp_Prob": "Symptom"},
    {"Symptom_ID": "S4", "Symptom_Segment": "chest pain radiating to left arm", "Diagnosis": "Angina",
     "Diagnostic_Category": "Cardiovascular", "ICD10_Code": "I20.9", "Symp_Prob": "Symptom"},
    {"Symptom_ID": "S5", "Symptom_Segment": "pain", "Diagnosis": "Pain",
     "Diagnostic_Category": "General", "ICD10_Code": "R52", "Symp_Prob": "Symptom"},
    {"Symptom_ID": "S6", "Symptom_Segment": "homeless", "Diagnosis": "Homelessness",
     "Diagnostic_Category": "Social Determinants", "ICD10_Code": "Z59.0", "Symp_Prob": "Problem"},
    {"Symptom_ID": "S7", "Symptom_Segment": "insomnia", "Diagnosis": "Insomnia",
     "Diagnostic_Category": "Sleep", "ICD10_Code": "G47.00", "Symp_Prob": "Symptom"},
]


@pytest.fixture
def library() -> SymptomLibrary:
    return load_library(LIBRARY_ROWS)


@pytest.fixture
def engine(library) -> MatcherEngine:
    return MatcherEngine(library)


@pytest.fixture
def anxiety_library() -> SymptomLibrary:
    return load_library([{"symptom_id": "S1", "symptom_segment": "anxiety", "diagnosis": "Anxiety Disorder"}])


@pytest.fixture
def anxiety_notes() -> list[ClinicalNote]:
    return [
        ClinicalNote("P1", "N1", date(2024, 1, 1), "patient reports anxiety and anxiety again"),
        ClinicalNote("P1", "N2", date(2024, 1, 2), "patient denies anxiety"),
    ]


def note(text: str, note_id: str = "N1", day: date = date(2024, 1, 1), patient_id: str = "P1") -> ClinicalNote:
    return ClinicalNote(patient_id=patient_id, note_id=note_id, date_of_service=day, raw_text=text)


def event(
    label: str,
    day: date,
    *,
    negated: bool = False,
    patient_id: str = "P1",
    note_id: str = "N1",
    diagnosis: str | None = None,
    category: str | None = None,
    kind: SymptomOrProblem = SymptomOrProblem.SYMPTOM,
    hrsn_indicator: str | None = None,
) -> ExtractedSymptomEvent:
    return ExtractedSymptomEvent(
        patient_id=patient_id,
        note_id=note_id,
        date_of_service=day,
        symptom_id=f"id-{label}",
        symptom_segment=label,
        diagnosis=diagnosis or label.title(),
        diagnostic_category=category,
        negated=negated,
        start_offset=0,
        end_offset=len(label),
        symptom_or_problem=kind,
        hrsn_indicator=hrsn_indicator,
        matched_text=label,
    )
