# src/symptomcore/api/schemas.py
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, conint, confloat, model_validator

from symptomcore.extraction.matcher import PRESETS


class NoteIn(BaseModel):
    # empty text or a bad date is skipped with a warning, not rejected with 422
    patient_id: str = Field(..., min_length=1)
    note_id: str = Field(..., min_length=1)
    date_of_service: str
    text: str = ""

    def to_row(self) -> dict[str, Any]:
        # field names are resolved by ClinicalNote.from_mapping
        return self.model_dump()


class MatcherOptions(BaseModel):
    preset: str = Field("preserve", description=f"One of {sorted(PRESETS)}")
    negation_window: Optional[conint(strict=True, ge=1, le=20)] = None
    expand_shared_segments: Optional[bool] = None

    @model_validator(mode="after")
    def _known_preset(self) -> "MatcherOptions":
        if self.preset not in PRESETS:
            raise ValueError(f"unknown preset {self.preset!r}")
        return self


class ExtractRequest(BaseModel):
    notes: List[NoteIn] = Field(..., min_length=1)
    matcher: MatcherOptions = Field(default_factory=MatcherOptions)


class EventOut(BaseModel):
    patient_id: str
    note_id: str
    date_of_service: date
    symptom_id: str
    symptom_segment: str
    diagnosis: Optional[str] = None
    diagnostic_category: Optional[str] = None
    icd10_code: Optional[str] = None
    symptom_or_problem: str
    hrsn_indicator: Optional[str] = None
    negated: bool
    start_offset: int
    end_offset: int
    matched_text: str
    clause_index: int


class WarningOut(BaseModel):
    note_id: Optional[str] = None
    patient_id: Optional[str] = None
    code: str
    message: str


class ExtractResponse(BaseModel):
    events: List[EventOut]
    warnings: List[WarningOut]
    summary: Dict[str, Any]
    request_id: Optional[str] = None


class PivotRequest(BaseModel):
    notes: List[NoteIn] = Field(..., min_length=1)
    dimension: str = "diagnosis"
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    include_negated: bool = False
    patient_ids: Optional[List[str]] = None
    kind: Optional[Literal["Symptom", "Problem"]] = None
    max_rows: Optional[conint(ge=0)] = None
    series: List[Literal["heatmap", "bubble", "percentages"]] = Field(default_factory=list)
    matcher: MatcherOptions = Field(default_factory=MatcherOptions)

    @model_validator(mode="after")
    def _ordered_range(self) -> "PivotRequest":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self


class PivotResponse(BaseModel):
    dimension: str
    rows: List[str]
    columns: List[str]
    data: Dict[str, Dict[str, int]]
    totals: Dict[str, int]
    max_value: int
    heatmap: Optional[List[Dict[str, Any]]] = None
    bubble: Optional[List[Dict[str, Any]]] = None
    percentages: Optional[Dict[str, float]] = None
    warnings: List[WarningOut] = Field(default_factory=list)
    request_id: Optional[str] = None


class ClassifyRequest(BaseModel):
    values: List[confloat(ge=0)] = Field(..., min_length=1)
    max_value: confloat(ge=0)
    theme: str = "iridis"


class ClassifyItem(BaseModel):
    value: float
    bucket: str
    color: str
    radius: int


class ClassifyResponse(BaseModel):
    max_value: float
    theme: str
    results: List[ClassifyItem]
