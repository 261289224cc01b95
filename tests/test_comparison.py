from __future__ import annotations

import json
from datetime import date

import pytest

from conftest import note
from symptomcore.extraction.matcher import MatcherEngine, preset
from symptomcore.pipeline.comparison import compare, render_markdown, save_report


def test_duplicate_modes_agree_on_segments(library):
    notes = [note("anxiety. anxiety. anxiety", "N1"), note("insomnia and pain", "N2")]
    report = compare(notes, library, "preserve", "per_note")

    assert report.notes_compared == 2
    assert report.missed_by_a == report.missed_by_b == 0
    assert report.duplicates_a == 2
    assert report.duplicates_b == 0
    assert report.events_a == 5
    assert report.events_b == 3
    assert report.precision == report.recall == report.f1 == 1.0
    assert report.most_divergent == []
    assert report.identical_notes == 1


def test_negation_difference_is_reported(library):
    notes = [
        note("denies anxiety. reports insomnia", "N1", date(2024, 1, 1)),
        note("insomnia", "N2", date(2024, 1, 2)),
    ]
    report = compare(notes, library, preset("preserve"), MatcherEngine(library, preset("no_negation")))

    assert report.missed_by_a == 1
    assert report.missed_by_b == 0
    assert report.segments_missed_by_a == {"anxiety": 1}
    assert report.categories_only_in_b == ["Anxiety Disorders"]
    assert report.diagnoses_only_in_b == ["Anxiety Disorder"]
    assert report.categories_only_in_a == []
    assert report.negated_a == 1 and report.negated_b == 0

    assert report.precision == pytest.approx(2 / 3)
    assert report.recall == 1.0
    assert report.f1 == pytest.approx(0.8)

    top = report.most_divergent[0]
    assert top.note_id == "N1"
    assert top.only_in_b == ("anxiety",)


def test_include_negated_compares_all_mentions(library):
    notes = [note("denies anxiety", "N1")]
    report = compare(notes, library, "preserve", "no_negation", include_negated=True)
    assert report.missed_by_a == report.missed_by_b == 0


def test_bad_notes_are_skipped(library):
    rows = [
        {"patient_id": "P1", "note_id": "N1", "date_of_service": "2024-01-01", "text": "anxiety"},
        {"patient_id": "P1", "note_id": "N2", "date_of_service": "not a date", "text": "anxiety"},
    ]
    report = compare(rows, library, "preserve", "per_note")
    assert report.notes_compared == 1
    assert report.notes_skipped == 1
    assert [w.code for w in report.warnings] == ["UNPARSEABLE_DATE"]


def test_most_divergent_is_capped(library):
    notes = [note(f"denies anxiety and insomnia {i}", f"N{i}") for i in range(8)]
    report = compare(notes, library, "preserve", "no_negation", top_examples=3)
    assert len(report.most_divergent) == 3
    assert len(report.note_diffs) == 8


def test_report_persistence(library, tmp_path):
    report = compare([note("denies anxiety; insomnia", "N1")], library, "preserve", "no_negation")

    paths = save_report(report, tmp_path)
    assert paths["json"].exists()
    assert json.loads(paths["latest"].read_text(encoding="utf-8")) == json.loads(
        paths["json"].read_text(encoding="utf-8")
    )
    payload = json.loads(paths["json"].read_text(encoding="utf-8"))
    assert payload["library"]["fingerprint"] == library.fingerprint
    assert payload["engine_a"]["name"] == "preserve"
    assert payload["totals"]["missed_by_a"] == 1

    save_report(report, tmp_path)
    lines = paths["log"].read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0])["library_fingerprint"] == library.fingerprint


def test_markdown_summary(library):
    report = compare([note("denies anxiety", "N1")], library, "preserve", "no_negation")
    md = render_markdown(report)
    assert "preserve vs no_negation" in md
    assert "category only in B: Anxiety Disorders" in md
    assert "| N1 |" in md


def test_note_ids_are_scoped_to_patient(library):
    notes = [note("anxiety", "1", patient_id="P1"), note("insomnia", "1", patient_id="P2")]
    report = compare(notes, library, "preserve", "per_note")

    assert report.notes_compared == 2
    assert [(d.patient_id, d.events_a) for d in report.note_diffs] == [("P1", 1), ("P2", 1)]
    assert report.events_a == report.events_b == 2


def test_skipped_note_does_not_hide_namesake(library):
    notes = [note("   ", "1", patient_id="P1"), note("insomnia", "1", patient_id="P2")]
    report = compare(notes, library, "preserve", "per_note")

    assert report.notes_compared == 1
    assert report.notes_skipped == 1
    assert [d.patient_id for d in report.note_diffs] == ["P2"]
    assert [(w.patient_id, w.code) for w in report.warnings] == [("P1", "MALFORMED_NOTE")]
