from __future__ import annotations

from datetime import date

import pytest

from conftest import event, note
from symptomcore.core.errors import InvalidDimension
from symptomcore.extraction.matcher import MatcherEngine
from symptomcore.extraction.models import SymptomOrProblem
from symptomcore.pipeline.aggregator import (
    Dimension,
    PivotCounts,
    PivotFilter,
    PivotMatrix,
    build_pivot,
    merge_pivots,
)

D1, D2, D3 = date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)


def _events(engine, notes):
    out = []
    for n in notes:
        out.extend(engine.match_note(n))
    return out


def test_reference_scenario(anxiety_library, anxiety_notes):
    events = _events(MatcherEngine(anxiety_library), anxiety_notes)
    assert len(events) == 3

    pivot = build_pivot(events, "diagnosis")
    assert pivot.to_response() == {
        "dimension": "diagnosis",
        "rows": ["Anxiety Disorder"],
        "columns": ["2024-01-01", "2024-01-02"],
        "data": {"Anxiety Disorder": {"2024-01-01": 2, "2024-01-02": 0}},
        "totals": {"Anxiety Disorder": 2},
        "max_value": 2,
    }


def test_include_negated(anxiety_library, anxiety_notes):
    events = _events(MatcherEngine(anxiety_library), anxiety_notes)
    pivot = build_pivot(events, Dimension.DIAGNOSIS, include_negated=True)
    assert pivot.cell("Anxiety Disorder", "2024-01-02") == 1
    assert pivot.totals["Anxiety Disorder"] == 3


def test_round_trip_counting(engine):
    notes = [
        note("anxiety. anxiety; denies chest pain", "N1", D1),
        note("panic attacks and insomnia. insomnia", "N2", D2),
        note("homeless, reports pain", "N3", D2),
        note("no insomnia", "N4", D3),
    ]
    events = _events(engine, notes)
    for dim in Dimension:
        pivot = build_pivot(events, dim)
        labelled = [e for e in events if not e.negated]
        if dim is Dimension.HRSN:
            labelled = [e for e in labelled if e.hrsn_indicator]
        assert sum(pivot.cells.values()) == len(labelled)
        assert pivot.grand_total == len(labelled)
        for r in pivot.rows:
            assert sum(pivot.cell(r, c) for c in pivot.columns) == pivot.totals[r]


def test_duplicate_preservation(engine):
    events = engine.match_note(note("Anxiety noted. Anxiety persists. Anxiety again.", day=D1))
    pivot = build_pivot(events, "symptom_segment")
    assert pivot.cell("anxiety", "2024-01-01") == 3


def test_rows_ranked_by_total_then_label():
    events = [
        event("beta", D1), event("beta", D2),
        event("alpha", D1), event("alpha", D1),
        event("gamma", D2),
    ]
    pivot = build_pivot(events, "symptom_segment")
    assert pivot.rows == ("alpha", "beta", "gamma")
    assert pivot.max_value == 2


def test_no_empty_columns():
    events = [
        event("alpha", D1),
        event("beta", D2, negated=True),  # beta has no affirmed mention: no row, no column
    ]
    pivot = build_pivot(events, "symptom_segment")
    assert pivot.rows == ("alpha",)
    assert pivot.columns == ("2024-01-01",)


def test_date_range_inclusive():
    events = [event("alpha", D1), event("alpha", D2), event("alpha", D3)]
    pivot = build_pivot(events, "symptom_segment", (D2, D3))
    assert pivot.columns == ("2024-01-02", "2024-01-03")
    assert build_pivot(events, "symptom_segment", (None, D1)).columns == ("2024-01-01",)


def test_patient_and_kind_filters():
    events = [
        event("alpha", D1, patient_id="P1"),
        event("alpha", D1, patient_id="P2"),
        event("homeless", D1, patient_id="P1", kind=SymptomOrProblem.PROBLEM),
    ]
    assert build_pivot(events, "symptom_segment", patient_ids=["P2"]).totals == {"alpha": 1}
    problems = build_pivot(events, "symptom_segment", kind=SymptomOrProblem.PROBLEM)
    assert problems.rows == ("homeless",)


def test_max_rows():
    events = [event("a", D1), event("a", D1), event("b", D1), event("c", D2)]
    pivot = build_pivot(events, "symptom_segment", max_rows=1)
    assert pivot.rows == ("a",)
    assert pivot.columns == ("2024-01-01",)


def test_hrsn_dimension_uses_label():
    events = [event("homeless", D1, hrsn_indicator="housing_status"), event("anxiety", D1)]
    pivot = build_pivot(events, "hrsn")
    assert pivot.rows == ("Housing Instability",)


def test_events_without_label_are_ignored():
    events = [event("alpha", D1, category=None)]
    assert build_pivot(events, "diagnostic_category").is_empty


def test_empty_corpus_gives_empty_pivot():
    pivot = build_pivot([], "diagnosis")
    assert pivot == PivotMatrix.empty(Dimension.DIAGNOSIS)
    assert pivot.to_response()["rows"] == []
    assert pivot.max_value == 0
    assert pivot.heatmap_series() == []
    assert pivot.bubble_series() == []
    assert pivot.percentages() == {}


def test_unknown_dimension():
    with pytest.raises(InvalidDimension):
        build_pivot([], "favourite_colour")


def test_dimension_aliases():
    assert Dimension.parse("Category") is Dimension.DIAGNOSTIC_CATEGORY
    assert Dimension.parse("segment") is Dimension.SYMPTOM_SEGMENT


def test_merge_is_associative_and_order_free(engine):
    a = [note("anxiety and anxiety", "A", D1)]
    b = [note("panic attacks; denies insomnia", "B", D2)]
    c = [note("insomnia. anxiety", "C", D2)]
    flt = PivotFilter(dimension=Dimension.DIAGNOSIS)

    pa, pb, pc = (PivotCounts.from_events(_events(engine, x), flt) for x in (a, b, c))
    whole = build_pivot(_events(engine, a + b + c), Dimension.DIAGNOSIS)

    assert (pa + (pb + pc)).to_matrix() == whole
    assert ((pa + pb) + pc).to_matrix() == whole
    assert merge_pivots([pc, pa, pb], "diagnosis") == whole


def test_merge_rejects_mixed_dimensions():
    with pytest.raises(InvalidDimension):
        PivotCounts(Dimension.DIAGNOSIS) + PivotCounts(Dimension.HRSN)


def test_heatmap_series():
    pivot = build_pivot([event("alpha", D1), event("alpha", D2), event("beta", D2)], "symptom_segment")
    assert pivot.heatmap_series() == [
        {"id": "alpha", "data": [{"x": "2024-01-01", "y": 1}, {"x": "2024-01-02", "y": 1}]},
        {"id": "beta", "data": [{"x": "2024-01-01", "y": 0}, {"x": "2024-01-02", "y": 1}]},
    ]


def test_bubble_series_skips_zero_cells():
    pivot = build_pivot(
        [event("alpha", D1), event("alpha", D1), event("alpha", D2), event("beta", D2)],
        "symptom_segment",
    )
    points = pivot.bubble_series()
    assert [(p["x"], p["y"], p["size"], p["frequency"]) for p in points] == [
        ("2024-01-01", "alpha", 2, 2),
        ("2024-01-02", "alpha", 1, 2),
        ("2024-01-02", "beta", 1, 1),
    ]
    assert points[0]["intensity"] == "HIGHEST"
    assert pivot.bucket("beta", "2024-01-01").value == "LOWEST"


def test_percentages_and_frame():
    pivot = build_pivot([event("alpha", D1), event("alpha", D1), event("alpha", D2), event("beta", D2)],
                        "symptom_segment")
    assert pivot.percentages() == {"alpha": 75.0, "beta": 25.0}

    df = pivot.to_frame()
    assert list(df.columns) == ["2024-01-01", "2024-01-02", "total"]
    assert df.loc["alpha", "total"] == 3
    assert df.loc["beta", "2024-01-01"] == 0
