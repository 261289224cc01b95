from __future__ import annotations

import argparse
import json
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from symptomcore.config import get_settings
from symptomcore.core.errors import LibraryUnavailable
from symptomcore.core.logging import setup_json_logging
from symptomcore.extraction.library import SymptomLibrary, load_library
from symptomcore.extraction.matcher import PRESETS, MatcherConfig, MatcherEngine, preset
from symptomcore.pipeline.aggregator import Dimension
from symptomcore.pipeline.batch import aggregate_corpus, extract_events
from symptomcore.pipeline.comparison import compare, save_report

EVENT_COLUMNS = [
    "patient_id", "note_id", "date_of_service", "symptom_id", "symptom_segment",
    "diagnosis", "diagnostic_category", "icd10_code", "symptom_or_problem",
    "hrsn_indicator", "negated", "start_offset", "end_offset", "matched_text", "clause_index",
]


# ----------------------------
# IO
# ----------------------------

def read_notes(path: str) -> List[Dict[str, Any]]:
    p = Path(path)
    if not p.exists():
        raise SystemExit(f"[ERROR] notes file not found: {path}")
    if p.suffix.lower() == ".json":
        df = pd.read_json(p, orient="records", dtype=False)
    elif p.suffix.lower() in {".tsv", ".tab"}:
        df = pd.read_csv(p, sep="\t", dtype=str, keep_default_na=False, encoding="utf-8-sig")
    else:
        df = pd.read_csv(p, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    return df.to_dict(orient="records")


def _load(args: argparse.Namespace) -> SymptomLibrary:
    settings = get_settings()
    try:
        return load_library(args.library or settings.LIBRARY_SOURCE, table=args.table or settings.LIBRARY_TABLE)
    except LibraryUnavailable as e:
        raise SystemExit(f"[ERROR] {e}") from e


def _config(args: argparse.Namespace, name: str | None = None) -> MatcherConfig:
    settings = get_settings()
    window = getattr(args, "negation_window", None) or settings.NEGATION_WINDOW
    return replace(preset(name or args.preset), negation_window=window, min_phrase_chars=settings.MIN_PHRASE_CHARS)


def _parse_date(value: str | None) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise SystemExit(f"[ERROR] invalid date {value!r}, expected YYYY-MM-DD") from e


# ----------------------------
# Commands
# ----------------------------

def cmd_extract(args: argparse.Namespace) -> None:
    library = _load(args)
    engine = MatcherEngine(library, _config(args))
    result = extract_events(read_notes(args.notes), engine, batch_size=args.batch_size, max_workers=args.workers)

    df = pd.DataFrame([e.to_dict() for e in result.events], columns=EVENT_COLUMNS)
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out, index=False, encoding="utf-8-sig")

    print(json.dumps(result.summary(), indent=2))
    for w in result.warnings:
        print(f"[WARN] note {w.note_id}: {w.code} {w.message}")
    print(f"Saved to: {out}")


def cmd_pivot(args: argparse.Namespace) -> None:
    library = _load(args)
    engine = MatcherEngine(library, _config(args))

    date_range = None
    if args.date_from or args.date_to:
        date_range = (_parse_date(args.date_from), _parse_date(args.date_to))

    matrix, result = aggregate_corpus(
        read_notes(args.notes),
        engine,
        Dimension.parse(args.dimension),
        date_range,
        include_negated=args.include_negated,
        max_rows=args.max_rows or None,
        batch_size=args.batch_size,
        max_workers=args.workers,
    )

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    if out.suffix.lower() == ".csv":
        matrix.to_frame().to_csv(out, encoding="utf-8-sig")
    else:
        body = matrix.to_response()
        body["heatmap"] = matrix.heatmap_series()
        body["bubble"] = matrix.bubble_series()
        out.write_text(json.dumps(body, indent=2, ensure_ascii=False), encoding="utf-8")

    if matrix.is_empty:
        print("\n[INFO] No data available for the selected notes.\n")
    else:
        print(matrix.to_frame().to_string())
    print(f"\nnotes={result.notes_seen} skipped={result.notes_skipped}")
    print(f"Saved to: {out}")


def cmd_compare(args: argparse.Namespace) -> None:
    library = _load(args)
    report = compare(
        read_notes(args.notes),
        library,
        _config(args, args.engine_a),
        _config(args, args.engine_b),
        batch_size=args.batch_size,
        max_workers=args.workers,
        top_examples=args.top,
        include_negated=args.include_negated,
    )
    paths = save_report(report, args.out_dir or get_settings().REPORTS_DIR)

    print("\n=== COMPARISON ===\n")
    print(f"{report.engine_a['name']} vs {report.engine_b['name']}: "
          f"notes={report.notes_compared} missed_by_a={report.missed_by_a} missed_by_b={report.missed_by_b} "
          f"precision={report.precision:.3f} recall={report.recall:.3f} f1={report.f1:.3f}")
    for d in report.most_divergent:
        print(f"  {d.note_id}: only A {list(d.only_in_a)} | only B {list(d.only_in_b)}")
    print(f"\nSaved to: {paths['json']}")


# ----------------------------
# Entry point
# ----------------------------

def _common(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--library", default=None, help="Symptom library: csv/tsv/json path or SQLAlchemy URL")
    ap.add_argument("--table", default=None, help="Library table when --library is a database URL")
    ap.add_argument("--notes", required=True, help="Notes file (csv/tsv/json): patient_id, note_id, date_of_service, text")
    ap.add_argument("--negation-window", type=int, default=None, help="Tokens scanned before a match for a negation cue")
    ap.add_argument("--batch-size", type=int, default=None, help="Notes per batch")
    ap.add_argument("--workers", type=int, default=None, help="Matcher threads")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="symptomcore", description="Clinical note symptom extraction and pivots")
    ap.add_argument("--log-level", default=None, help="DEBUG | INFO | WARNING | ERROR")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("extract", help="Notes -> symptom events CSV")
    _common(p)
    p.add_argument("--preset", default="preserve", choices=sorted(PRESETS))
    p.add_argument("--out", default="output/events.csv", help="Events CSV path")
    p.set_defaults(func=cmd_extract)

    p = sub.add_parser("pivot", help="Notes -> pivot matrix (JSON, or CSV when --out ends in .csv)")
    _common(p)
    p.add_argument("--preset", default="preserve", choices=sorted(PRESETS))
    p.add_argument("--dimension", default="diagnosis", choices=[d.value for d in Dimension])
    p.add_argument("--from", dest="date_from", default=None, help="Inclusive start date YYYY-MM-DD")
    p.add_argument("--to", dest="date_to", default=None, help="Inclusive end date YYYY-MM-DD")
    p.add_argument("--include-negated", action="store_true", help="Count negated mentions too")
    p.add_argument("--max-rows", type=int, default=None, help="Keep the top N rows")
    p.add_argument("--out", default="output/pivot.json", help="Output path")
    p.set_defaults(func=cmd_pivot)

    p = sub.add_parser("compare", help="Diff two matcher presets over the same notes")
    _common(p)
    p.add_argument("--a", dest="engine_a", default="per_note", choices=sorted(PRESETS), help="Reference preset")
    p.add_argument("--b", dest="engine_b", default="preserve", choices=sorted(PRESETS), help="Candidate preset")
    p.add_argument("--top", type=int, default=5, help="Most divergent notes to list")
    p.add_argument("--include-negated", action="store_true", help="Compare negated mentions too")
    p.add_argument("--out-dir", default=None, help="Report directory")
    p.set_defaults(func=cmd_compare)

    return ap


def main(argv: Optional[List[str]] = None) -> None:
    ap = build_parser()
    args = ap.parse_args(argv)
    setup_json_logging(args.log_level or get_settings().LOG_LEVEL)
    args.func(args)


if __name__ == "__main__":
    main()
