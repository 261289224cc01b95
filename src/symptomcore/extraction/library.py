"""
Reference Library Loader.

Loads the curated symptom vocabulary (segment text, stable id, diagnosis,
diagnostic category, ICD-10 code, symptom/problem flag, optional HRSN mapping)
from its source of record into immutable SymptomMasterRecord rows.

Accepted sources:
  - path to a .csv / .tsv / .txt / .json file (read with pandas, all columns as text)
  - SQLAlchemy URL (table taken from ``table=``, default ``symptom_master``)
  - pandas DataFrame
  - iterable of mappings

Rows without a segment or an id are rejected (logged, not fatal). Duplicate
symptom ids keep the first row. An unreadable source raises LibraryUnavailable.
"""
from __future__ import annotations

import hashlib
import json
import logging
from functools import cached_property
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Sequence

import pandas as pd

from symptomcore import db
from symptomcore.core.errors import LibraryUnavailable
from symptomcore.extraction.models import (
    LIBRARY_FIELD_ALIASES,
    SymptomMasterRecord,
    SymptomOrProblem,
    _clean_str,
    canonicalize_row,
)

_log = logging.getLogger("symptomcore.extraction.library")

DEFAULT_TABLE = "symptom_master"

LibrarySource = str | Path | pd.DataFrame | Iterable[Mapping[str, Any]]


class SymptomLibrary(Sequence[SymptomMasterRecord]):
    """Read-only, ordered collection of reference records.

    Order is the insertion order of the source and is what breaks ties between
    equally long phrases in the matcher, so it is never re-sorted.
    """

    def __init__(self, records: Iterable[SymptomMasterRecord], rejected: int = 0) -> None:
        self._records: tuple[SymptomMasterRecord, ...] = tuple(records)
        self._by_id = {r.symptom_id: r for r in self._records}
        self.rejected = rejected

    def __getitem__(self, index):  # type: ignore[override]
        return self._records[index]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[SymptomMasterRecord]:
        return iter(self._records)

    @property
    def records(self) -> tuple[SymptomMasterRecord, ...]:
        return self._records

    @property
    def by_id(self) -> Mapping[str, SymptomMasterRecord]:
        return self._by_id

    @cached_property
    def fingerprint(self) -> str:
        """sha256 over the canonical rows; identifies the vocabulary in reports."""
        h = hashlib.sha256()
        for r in self._records:
            h.update(json.dumps(r.to_dict(), sort_keys=True, ensure_ascii=False).encode("utf-8"))
            h.update(b"\n")
        return h.hexdigest()

    def __repr__(self) -> str:
        return f"SymptomLibrary(records={len(self._records)}, rejected={self.rejected})"


# ----------------------------
# Source readers
# ----------------------------

def _read_file(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix == ".json":
        return pd.read_json(path, orient="records", dtype=False)
    if suffix in {".tsv", ".tab"}:
        return pd.read_csv(path, sep="\t", dtype=str, keep_default_na=False, encoding="utf-8-sig")
    return pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")


def _iter_raw_rows(source: LibrarySource, table: str) -> Iterable[Mapping[str, Any]]:
    if isinstance(source, pd.DataFrame):
        return source.to_dict(orient="records")

    if isinstance(source, (str, Path)):
        text_source = str(source)
        if db.is_database_url(text_source):
            return db.read_table(text_source, table).to_dict(orient="records")

        path = Path(text_source)
        if not path.exists():
            raise FileNotFoundError(f"library file not found: {path}")
        return _read_file(path).to_dict(orient="records")

    return list(source)


def _to_record(raw: Mapping[str, Any]) -> SymptomMasterRecord | None:
    canon = canonicalize_row(raw, LIBRARY_FIELD_ALIASES)

    symptom_id = _clean_str(canon.get("symptom_id"))
    segment = _clean_str(canon.get("symptom_segment"))
    if not symptom_id or not segment:
        return None

    return SymptomMasterRecord(
        symptom_id=symptom_id,
        symptom_segment=" ".join(segment.split()),
        diagnosis=_clean_str(canon.get("diagnosis")),
        diagnostic_category=_clean_str(canon.get("diagnostic_category")),
        icd10_code=_clean_str(canon.get("icd10_code")),
        symptom_or_problem=SymptomOrProblem.parse(canon.get("symptom_or_problem")),
        hrsn_mapping=_clean_str(canon.get("hrsn_mapping")),
    )


# ----------------------------
# Public API
# ----------------------------

def load(source: LibrarySource, table: str = DEFAULT_TABLE) -> list[SymptomMasterRecord]:
    return list(load_library(source, table=table))


def load_library(source: LibrarySource, table: str = DEFAULT_TABLE) -> SymptomLibrary:
    try:
        raw_rows = _iter_raw_rows(source, table)
    except Exception as e:
        _log.error("reference library unreadable: %s", e)
        raise LibraryUnavailable(f"reference library unreadable: {e}") from e

    records: list[SymptomMasterRecord] = []
    seen_ids: set[str] = set()
    rejected = 0
    duplicates = 0

    for i, raw in enumerate(raw_rows):
        if not isinstance(raw, Mapping):
            rejected += 1
            _log.warning("library row %d rejected: not a mapping", i)
            continue

        rec = _to_record(raw)
        if rec is None:
            rejected += 1
            _log.warning("library row %d rejected: missing symptom_id or symptom_segment", i)
            continue

        if rec.symptom_id in seen_ids:
            duplicates += 1
            _log.debug("library row %d skipped: duplicate symptom_id %s", i, rec.symptom_id)
            continue

        seen_ids.add(rec.symptom_id)
        records.append(rec)

    if duplicates:
        _log.info("library de-duplicated %d rows on symptom_id", duplicates)
    if not records:
        _log.warning("reference library loaded with no usable records")

    _log.info("reference library loaded: %d records, %d rejected", len(records), rejected)
    return SymptomLibrary(records, rejected=rejected)
