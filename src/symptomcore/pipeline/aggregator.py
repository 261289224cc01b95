"""
Aggregator: events -> PivotMatrix (row label x date of service).

Counting is a commutative, associative reduction held in PivotCounts, so
partial aggregates from separate batches can be merged in any order and give
the same matrix. The matrix itself is immutable; every request builds a new one.

Default view counts affirmed mentions only; negated events still define which
dates appear as columns for a row with activity.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

import pandas as pd

from symptomcore.core.errors import InvalidDimension
from symptomcore.extraction import hrsn
from symptomcore.extraction.models import ExtractedSymptomEvent, SymptomOrProblem
from symptomcore.pipeline import intensity

_log = logging.getLogger("symptomcore.pipeline.aggregator")


class Dimension(str, Enum):
    SYMPTOM_SEGMENT = "symptom_segment"
    DIAGNOSIS = "diagnosis"
    DIAGNOSTIC_CATEGORY = "diagnostic_category"
    ICD10_CODE = "icd10_code"
    HRSN = "hrsn"

    @classmethod
    def parse(cls, value: "Dimension | str") -> "Dimension":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        key = _DIMENSION_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise InvalidDimension(
                f"unknown dimension {value!r}; expected one of {[d.value for d in cls]}"
            ) from None


_DIMENSION_ALIASES = {
    "symptom": "symptom_segment",
    "segment": "symptom_segment",
    "category": "diagnostic_category",
    "diagnosis_code": "icd10_code",
    "hrsn_indicator": "hrsn",
}

_LABELERS: dict[Dimension, Callable[[ExtractedSymptomEvent], str | None]] = {
    Dimension.SYMPTOM_SEGMENT: lambda e: e.symptom_segment,
    Dimension.DIAGNOSIS: lambda e: e.diagnosis,
    Dimension.DIAGNOSTIC_CATEGORY: lambda e: e.diagnostic_category,
    Dimension.ICD10_CODE: lambda e: e.icd10_code,
    Dimension.HRSN: lambda e: hrsn.indicator_label(e.hrsn_indicator),
}


def row_label(event: ExtractedSymptomEvent, dimension: Dimension) -> str | None:
    label = _LABELERS[dimension](event)
    if label is None:
        return None
    label = str(label).strip()
    return label or None


# ----------------------------
# Filters
# ----------------------------

@dataclass(frozen=True)
class PivotFilter:
    """What part of the event stream a pivot covers."""

    dimension: Dimension
    date_range: tuple[date | None, date | None] | None = None
    include_negated: bool = False
    patient_ids: frozenset[str] | None = None
    kind: SymptomOrProblem | None = None

    def in_scope(self, event: ExtractedSymptomEvent) -> bool:
        if self.date_range is not None:
            lo, hi = self.date_range
            if lo is not None and event.date_of_service < lo:
                return False
            if hi is not None and event.date_of_service > hi:
                return False
        if self.patient_ids is not None and event.patient_id not in self.patient_ids:
            return False
        if self.kind is not None and event.symptom_or_problem is not self.kind:
            return False
        return True


# ----------------------------
# Mergeable partial aggregate
# ----------------------------

@dataclass
class PivotCounts:
    dimension: Dimension
    counts: Counter = field(default_factory=Counter)
    # every (label, date) with any in-scope event, negated included
    seen: set[tuple[str, date]] = field(default_factory=set)

    @classmethod
    def from_events(cls, events: Iterable[ExtractedSymptomEvent], flt: PivotFilter) -> "PivotCounts":
        out = cls(dimension=flt.dimension)
        out.add_events(events, flt)
        return out

    def add_events(self, events: Iterable[ExtractedSymptomEvent], flt: PivotFilter) -> None:
        if flt.dimension is not self.dimension:
            raise InvalidDimension(f"filter dimension {flt.dimension.value} != {self.dimension.value}")
        for ev in events:
            if not flt.in_scope(ev):
                continue
            label = row_label(ev, self.dimension)
            if label is None:
                continue
            key = (label, ev.date_of_service)
            self.seen.add(key)
            if flt.include_negated or not ev.negated:
                self.counts[key] += 1

    def __add__(self, other: "PivotCounts") -> "PivotCounts":
        if not isinstance(other, PivotCounts):
            return NotImplemented
        if other.dimension is not self.dimension:
            raise InvalidDimension("cannot merge partial pivots of different dimensions")
        return PivotCounts(
            dimension=self.dimension,
            counts=self.counts + other.counts,
            seen=self.seen | other.seen,
        )

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def to_matrix(self, max_rows: int | None = None) -> "PivotMatrix":
        totals: Counter = Counter()
        for (label, _), n in self.counts.items():
            totals[label] += n

        rows = sorted((lbl for lbl, n in totals.items() if n > 0), key=lambda lbl: (-totals[lbl], lbl))
        if max_rows:
            rows = rows[:max_rows]
        row_set = set(rows)

        columns = sorted({d for (lbl, d) in self.seen if lbl in row_set})
        col_labels = [d.isoformat() for d in columns]

        cells: dict[tuple[str, str], int] = {}
        for lbl in rows:
            for d, col in zip(columns, col_labels):
                cells[(lbl, col)] = self.counts.get((lbl, d), 0)

        max_value = max(cells.values(), default=0)
        return PivotMatrix(
            dimension=self.dimension,
            rows=tuple(rows),
            columns=tuple(col_labels),
            cells=cells,
            totals={lbl: totals[lbl] for lbl in rows},
            max_value=max_value,
        )


# ----------------------------
# Pivot matrix
# ----------------------------

@dataclass(frozen=True)
class PivotMatrix:
    dimension: Dimension
    rows: tuple[str, ...]
    columns: tuple[str, ...]
    cells: Mapping[tuple[str, str], int]
    totals: Mapping[str, int]
    max_value: int

    @classmethod
    def empty(cls, dimension: Dimension) -> "PivotMatrix":
        return cls(dimension=dimension, rows=(), columns=(), cells={}, totals={}, max_value=0)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    @property
    def grand_total(self) -> int:
        return sum(self.totals.values())

    def cell(self, row: str, column: str) -> int:
        return self.cells.get((row, column), 0)

    def frequency(self, row: str) -> int:
        """Number of distinct dates with activity for a row."""
        return sum(1 for col in self.columns if self.cell(row, col) > 0)

    def bucket(self, row: str, column: str) -> intensity.IntensityBucket:
        return intensity.classify(self.cell(row, column), self.max_value)

    # ── presentation contract ────────────────────────────────────

    def to_response(self) -> dict[str, Any]:
        return {
            "dimension": self.dimension.value,
            "rows": list(self.rows),
            "columns": list(self.columns),
            "data": {r: {c: self.cell(r, c) for c in self.columns} for r in self.rows},
            "totals": dict(self.totals),
            "max_value": self.max_value,
        }

    def heatmap_series(self) -> list[dict[str, Any]]:
        return [
            {"id": r, "data": [{"x": c, "y": self.cell(r, c)} for c in self.columns]}
            for r in self.rows
        ]

    def bubble_series(self) -> list[dict[str, Any]]:
        points: list[dict[str, Any]] = []
        for r in self.rows:
            freq = self.frequency(r)
            for c in self.columns:
                n = self.cell(r, c)
                if n <= 0:
                    continue
                bucket = intensity.classify(n, self.max_value)
                points.append({
                    "x": c,
                    "y": r,
                    "size": n,
                    "frequency": freq,
                    "intensity": bucket.value,
                })
        return points

    def percentages(self, decimals: int = 2) -> dict[str, float]:
        """Row share of the grand total, in percent."""
        if self.is_empty or self.grand_total == 0:
            return {}
        s = pd.Series(self.totals, dtype="float64")
        pct = (s / s.sum() * 100).round(decimals)
        return {r: float(pct[r]) for r in self.rows}

    def to_frame(self) -> pd.DataFrame:
        """Dense rows x dates DataFrame with a trailing ``total`` column."""
        df = pd.DataFrame(
            [[self.cell(r, c) for c in self.columns] for r in self.rows],
            index=pd.Index(list(self.rows), name=self.dimension.value),
            columns=list(self.columns),
            dtype="int64",
        )
        df["total"] = [self.totals[r] for r in self.rows]
        return df


# ----------------------------
# Public API
# ----------------------------

def build_pivot(
    events: Iterable[ExtractedSymptomEvent],
    dimension: Dimension | str,
    date_range: tuple[date | None, date | None] | None = None,
    *,
    include_negated: bool = False,
    patient_ids: Iterable[str] | None = None,
    kind: SymptomOrProblem | None = None,
    max_rows: int | None = None,
) -> PivotMatrix:
    flt = PivotFilter(
        dimension=Dimension.parse(dimension),
        date_range=date_range,
        include_negated=include_negated,
        patient_ids=frozenset(patient_ids) if patient_ids is not None else None,
        kind=kind,
    )
    counts = PivotCounts.from_events(events, flt)
    matrix = counts.to_matrix(max_rows=max_rows)
    _log.debug(
        "pivot built dimension=%s rows=%d columns=%d max_value=%d",
        flt.dimension.value, len(matrix.rows), len(matrix.columns), matrix.max_value,
    )
    return matrix


def merge_pivots(parts: Iterable[PivotCounts], dimension: Dimension | str,
                 max_rows: int | None = None) -> PivotMatrix:
    total = PivotCounts(dimension=Dimension.parse(dimension))
    for part in parts:
        total = total + part
    return total.to_matrix(max_rows=max_rows)
