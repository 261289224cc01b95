from __future__ import annotations

import json

import pandas as pd
import pytest

from symptomcore.cli import main

LIBRARY_CSV = (
    "Symptom_ID,Symptom_Segment,Diagnosis,Diagnostic_Category\n"
    "S1,anxiety,Anxiety Disorder,Anxiety Disorders\n"
    "S2,insomnia,Insomnia,Sleep\n"
)

NOTES_CSV = (
    "patient_id,note_id,dos_date,note_text\n"
    'P1,N1,2024-01-01,"Reports anxiety; anxiety again"\n'
    'P1,N2,2024-01-02,"Denies anxiety. Insomnia."\n'
    'P2,N3,not-a-date,"anxiety"\n'
)


@pytest.fixture
def files(tmp_path):
    lib = tmp_path / "library.csv"
    lib.write_text(LIBRARY_CSV, encoding="utf-8")
    notes = tmp_path / "notes.csv"
    notes.write_text(NOTES_CSV, encoding="utf-8")
    return lib, notes


def test_extract_command(files, tmp_path):
    lib, notes = files
    out = tmp_path / "out" / "events.csv"
    main(["extract", "--library", str(lib), "--notes", str(notes), "--out", str(out)])

    df = pd.read_csv(out)
    assert list(df["note_id"]) == ["N1", "N1", "N2", "N2"]
    assert list(df["negated"]) == [False, False, True, False]


def test_pivot_command_json(files, tmp_path):
    lib, notes = files
    out = tmp_path / "pivot.json"
    main(["pivot", "--library", str(lib), "--notes", str(notes), "--dimension", "diagnosis", "--out", str(out)])

    body = json.loads(out.read_text(encoding="utf-8"))
    assert body["rows"] == ["Anxiety Disorder", "Insomnia"]
    assert body["data"]["Anxiety Disorder"] == {"2024-01-01": 2, "2024-01-02": 0}
    assert "heatmap" in body and "bubble" in body


def test_pivot_command_csv(files, tmp_path):
    lib, notes = files
    out = tmp_path / "pivot.csv"
    main(["pivot", "--library", str(lib), "--notes", str(notes), "--out", str(out), "--include-negated"])

    df = pd.read_csv(out, index_col=0)
    assert df.loc["Anxiety Disorder", "total"] == 3


def test_compare_command(files, tmp_path):
    lib, notes = files
    out_dir = tmp_path / "reports"
    main(["compare", "--library", str(lib), "--notes", str(notes), "--a", "preserve", "--b", "no_negation",
          "--out-dir", str(out_dir)])

    latest = json.loads((out_dir / "latest_comparison.json").read_text(encoding="utf-8"))
    assert latest["totals"]["notes_compared"] == 2
    assert latest["totals"]["notes_skipped"] == 1
    assert (out_dir / "comparison_log.jsonl").exists()


def test_missing_library_exits(files, tmp_path):
    _, notes = files
    with pytest.raises(SystemExit):
        main(["extract", "--library", str(tmp_path / "missing.csv"), "--notes", str(notes)])


def test_malformed_date_range_exits(files):
    lib, notes = files
    with pytest.raises(SystemExit) as exc:
        main(["pivot", "--library", str(lib), "--notes", str(notes), "--from", "01/32/2024"])
    assert str(exc.value).startswith("[ERROR]")
