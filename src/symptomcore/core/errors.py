"""
src/symptomcore/core/errors.py

Error taxonomy for extraction and aggregation.

Fatal:
    LibraryUnavailable   the reference library could not be read at all

Recoverable (per note, collected as ExtractionWarning):
    MalformedNote        missing text / identifiers
    UnparseableDate      date_of_service cannot be placed on a column

Caller errors:
    InvalidDimension     unknown pivot dimension
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


class SymptomCoreError(Exception):
    code = "SYMPTOMCORE_ERROR"

    def __init__(self, message: str = "", code: str | None = None) -> None:
        super().__init__(message or (code or self.code))
        if code:
            self.code = code


class LibraryUnavailable(SymptomCoreError):
    code = "LIBRARY_UNAVAILABLE"


class MalformedNote(SymptomCoreError):
    code = "MALFORMED_NOTE"


class UnparseableDate(SymptomCoreError):
    code = "UNPARSEABLE_DATE"


class InvalidDimension(SymptomCoreError):
    code = "INVALID_DIMENSION"


@dataclass(frozen=True)
class ExtractionWarning:
    note_id: str | None
    patient_id: str | None
    code: str
    message: str

    @classmethod
    def from_error(
        cls,
        exc: SymptomCoreError,
        note_id: str | None = None,
        patient_id: str | None = None,
    ) -> "ExtractionWarning":
        return cls(note_id=note_id, patient_id=patient_id, code=exc.code, message=str(exc))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
