"""
Comparison Harness: run two matcher configurations over one note snapshot
and report where they disagree.

Read-only. Segment sets are compared per note; engine A is the reference for
precision / recall / F1 of engine B.
"""
from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from jinja2 import Environment, FileSystemLoader, select_autoescape

from symptomcore import __version__
from symptomcore.config import get_settings
from symptomcore.core.errors import ExtractionWarning, SymptomCoreError
from symptomcore.core.logging import bound_run_id
from symptomcore.extraction.library import SymptomLibrary
from symptomcore.extraction.matcher import MatcherConfig, MatcherEngine, preset
from symptomcore.extraction.models import ClinicalNote, ExtractedSymptomEvent
from symptomcore.pipeline import comparison_log
from symptomcore.pipeline.batch import NoteInput, extract_events, iter_batches, note_ids

_log = logging.getLogger("symptomcore.pipeline.comparison")

EngineSpec = MatcherEngine | MatcherConfig | str

# ── Template env ──
tpl_dir = Path(__file__).resolve().parent.parent / "templates"
env = Environment(
    loader=FileSystemLoader(str(tpl_dir)),
    autoescape=select_autoescape(["html", "xml"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass(frozen=True)
class NoteDiff:
    note_id: str
    patient_id: str
    date_of_service: str
    only_in_a: tuple[str, ...]
    only_in_b: tuple[str, ...]
    shared: int
    events_a: int
    events_b: int
    duplicates_a: int
    duplicates_b: int

    @property
    def divergence(self) -> int:
        return len(self.only_in_a) + len(self.only_in_b)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["only_in_a"] = list(self.only_in_a)
        d["only_in_b"] = list(self.only_in_b)
        d["divergence"] = self.divergence
        return d


@dataclass
class ComparisonReport:
    engine_a: dict[str, Any]
    engine_b: dict[str, Any]
    library_records: int
    library_fingerprint: str
    include_negated: bool = False
    notes_compared: int = 0
    notes_skipped: int = 0
    events_a: int = 0
    events_b: int = 0
    negated_a: int = 0
    negated_b: int = 0
    duplicates_a: int = 0
    duplicates_b: int = 0
    shared_pairs: int = 0
    missed_by_a: int = 0
    missed_by_b: int = 0
    identical_notes: int = 0
    categories_only_in_a: list[str] = field(default_factory=list)
    categories_only_in_b: list[str] = field(default_factory=list)
    diagnoses_only_in_a: list[str] = field(default_factory=list)
    diagnoses_only_in_b: list[str] = field(default_factory=list)
    segments_missed_by_a: dict[str, int] = field(default_factory=dict)
    segments_missed_by_b: dict[str, int] = field(default_factory=dict)
    note_diffs: list[NoteDiff] = field(default_factory=list)
    most_divergent: list[NoteDiff] = field(default_factory=list)
    warnings: list[ExtractionWarning] = field(default_factory=list)
    run_id: str = ""
    generated_at: str = ""

    # ── B scored against A ───────────────────────────────────────
    @property
    def precision(self) -> float:
        found_b = self.shared_pairs + self.missed_by_a
        return self.shared_pairs / found_b if found_b else 1.0

    @property
    def recall(self) -> float:
        found_a = self.shared_pairs + self.missed_by_b
        return self.shared_pairs / found_a if found_a else 1.0

    @property
    def f1(self) -> float:
        p, r = self.precision, self.recall
        return 2 * p * r / (p + r) if (p + r) else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": self.generated_at,
            "run_id": self.run_id,
            "symptomcore_version": __version__,
            "engine_a": self.engine_a,
            "engine_b": self.engine_b,
            "library": {"records": self.library_records, "fingerprint": self.library_fingerprint},
            "include_negated": self.include_negated,
            "totals": {
                "notes_compared": self.notes_compared,
                "notes_skipped": self.notes_skipped,
                "identical_notes": self.identical_notes,
                "events_a": self.events_a,
                "events_b": self.events_b,
                "negated_a": self.negated_a,
                "negated_b": self.negated_b,
                "duplicates_a": self.duplicates_a,
                "duplicates_b": self.duplicates_b,
                "shared_pairs": self.shared_pairs,
                "missed_by_a": self.missed_by_a,
                "missed_by_b": self.missed_by_b,
            },
            "metrics": {
                "precision": round(self.precision, 6),
                "recall": round(self.recall, 6),
                "f1": round(self.f1, 6),
            },
            "categories": {"only_in_a": self.categories_only_in_a, "only_in_b": self.categories_only_in_b},
            "diagnoses": {"only_in_a": self.diagnoses_only_in_a, "only_in_b": self.diagnoses_only_in_b},
            "segments": {"missed_by_a": self.segments_missed_by_a, "missed_by_b": self.segments_missed_by_b},
            "most_divergent": [d.to_dict() for d in self.most_divergent],
            "note_diffs": [d.to_dict() for d in self.note_diffs],
            "warnings": [w.to_dict() for w in self.warnings],
        }


# ----------------------------
# Helpers
# ----------------------------

def _as_engine(spec: EngineSpec, library: SymptomLibrary) -> MatcherEngine:
    if isinstance(spec, MatcherEngine):
        return spec
    if isinstance(spec, MatcherConfig):
        return MatcherEngine(library, spec)
    return MatcherEngine(library, preset(spec))


def _engine_info(engine: MatcherEngine) -> dict[str, Any]:
    return {**engine.config.to_dict(), "phrases": len(engine.index)}


def _kept(events: Iterable[ExtractedSymptomEvent], include_negated: bool) -> list[ExtractedSymptomEvent]:
    return [e for e in events if include_negated or not e.negated]


def _duplicates(events: list[ExtractedSymptomEvent]) -> int:
    per_id = Counter(e.symptom_id for e in events)
    return sum(n - 1 for n in per_id.values() if n > 1)


NoteKey = tuple[str | None, str | None]


def _by_note(events: Iterable[ExtractedSymptomEvent]) -> dict[NoteKey, list[ExtractedSymptomEvent]]:
    # note ids are only unique per patient
    out: dict[NoteKey, list[ExtractedSymptomEvent]] = {}
    for e in events:
        out.setdefault((e.patient_id, e.note_id), []).append(e)
    return out


def _to_notes(batch: list[NoteInput], warnings: list[ExtractionWarning]) -> list[ClinicalNote]:
    notes: list[ClinicalNote] = []
    for raw in batch:
        if isinstance(raw, ClinicalNote):
            notes.append(raw)
            continue
        try:
            notes.append(ClinicalNote.from_mapping(raw))
        except SymptomCoreError as e:
            _log.warning("note skipped before comparison code=%s: %s", e.code, e)
            note_id, patient_id = note_ids(raw)
            warnings.append(ExtractionWarning.from_error(e, note_id=note_id, patient_id=patient_id))
    return notes


# ----------------------------
# Public API
# ----------------------------

def compare(
    notes: Iterable[NoteInput],
    library: SymptomLibrary,
    engine_a: EngineSpec,
    engine_b: EngineSpec,
    *,
    batch_size: int | None = None,
    max_workers: int | None = None,
    top_examples: int = 5,
    include_negated: bool = False,
) -> ComparisonReport:
    settings = get_settings()
    batch_size = batch_size or settings.BATCH_SIZE

    a = _as_engine(engine_a, library)
    b = _as_engine(engine_b, library)

    report = ComparisonReport(
        engine_a=_engine_info(a),
        engine_b=_engine_info(b),
        library_records=len(library),
        library_fingerprint=library.fingerprint,
        include_negated=include_negated,
        generated_at=datetime.now(timezone.utc).isoformat(),
    )

    cats_a: set[str] = set()
    cats_b: set[str] = set()
    dx_a: set[str] = set()
    dx_b: set[str] = set()
    missed_by_a: Counter = Counter()
    missed_by_b: Counter = Counter()

    with bound_run_id() as run_id:
        report.run_id = run_id
        _log.info("comparison started a=%s b=%s", a.name, b.name)

        for batch in iter_batches(notes, batch_size):
            clinical = _to_notes(batch, report.warnings)
            skipped: set[NoteKey] = set()

            res_a = extract_events(clinical, a, batch_size=len(clinical) or 1, max_workers=max_workers)
            res_b = extract_events(clinical, b, batch_size=len(clinical) or 1, max_workers=max_workers)
            for w in res_a.warnings + res_b.warnings:
                if w.note_id is not None:
                    skipped.add((w.patient_id, w.note_id))
            # one warning per skipped note, not one per engine
            report.warnings.extend(res_a.warnings)
            report.notes_skipped += len(batch) - len(clinical)

            ev_a = _by_note(_kept(res_a.events, include_negated))
            ev_b = _by_note(_kept(res_b.events, include_negated))
            report.negated_a += sum(1 for e in res_a.events if e.negated)
            report.negated_b += sum(1 for e in res_b.events if e.negated)

            for note in clinical:
                key = (note.patient_id, note.note_id)
                if key in skipped:
                    report.notes_skipped += 1
                    continue
                na = ev_a.get(key, [])
                nb = ev_b.get(key, [])
                segs_a = {e.symptom_segment for e in na}
                segs_b = {e.symptom_segment for e in nb}
                only_a = tuple(sorted(segs_a - segs_b))
                only_b = tuple(sorted(segs_b - segs_a))

                diff = NoteDiff(
                    note_id=note.note_id,
                    patient_id=note.patient_id,
                    date_of_service=note.date_of_service.isoformat(),
                    only_in_a=only_a,
                    only_in_b=only_b,
                    shared=len(segs_a & segs_b),
                    events_a=len(na),
                    events_b=len(nb),
                    duplicates_a=_duplicates(na),
                    duplicates_b=_duplicates(nb),
                )
                report.note_diffs.append(diff)
                report.notes_compared += 1
                report.events_a += diff.events_a
                report.events_b += diff.events_b
                report.duplicates_a += diff.duplicates_a
                report.duplicates_b += diff.duplicates_b
                report.shared_pairs += diff.shared
                report.missed_by_b += len(only_a)
                report.missed_by_a += len(only_b)
                missed_by_b.update(only_a)
                missed_by_a.update(only_b)
                if not diff.divergence and diff.events_a == diff.events_b:
                    report.identical_notes += 1

                cats_a.update(e.diagnostic_category for e in na if e.diagnostic_category)
                cats_b.update(e.diagnostic_category for e in nb if e.diagnostic_category)
                dx_a.update(e.diagnosis for e in na if e.diagnosis)
                dx_b.update(e.diagnosis for e in nb if e.diagnosis)

        report.categories_only_in_a = sorted(cats_a - cats_b)
        report.categories_only_in_b = sorted(cats_b - cats_a)
        report.diagnoses_only_in_a = sorted(dx_a - dx_b)
        report.diagnoses_only_in_b = sorted(dx_b - dx_a)
        report.segments_missed_by_a = dict(sorted(missed_by_a.items(), key=lambda kv: (-kv[1], kv[0])))
        report.segments_missed_by_b = dict(sorted(missed_by_b.items(), key=lambda kv: (-kv[1], kv[0])))
        report.most_divergent = sorted(
            (d for d in report.note_diffs if d.divergence > 0),
            key=lambda d: (-d.divergence, d.patient_id, d.note_id),
        )[:top_examples]

        _log.info(
            "comparison finished notes=%d skipped=%d missed_by_a=%d missed_by_b=%d f1=%.4f",
            report.notes_compared, report.notes_skipped, report.missed_by_a, report.missed_by_b, report.f1,
        )
    return report


def render_markdown(report: ComparisonReport) -> str:
    tpl = env.get_template("comparison_report.md.j2")
    return tpl.render(r=report, d=report.to_dict())


def save_report(
    report: ComparisonReport,
    reports_dir: str | Path | None = None,
    *,
    write_markdown: bool = True,
) -> dict[str, Path]:
    """Write the timestamped JSON, ``latest_comparison.json``, the Markdown
    summary and one line in the comparison log. Returns the written paths."""
    out_dir = Path(reports_dir or get_settings().REPORTS_DIR)
    out_dir.mkdir(parents=True, exist_ok=True)

    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    payload = json.dumps(report.to_dict(), indent=2, ensure_ascii=False)

    paths: dict[str, Path] = {
        "json": out_dir / f"comparison_{stamp}.json",
        "latest": out_dir / "latest_comparison.json",
    }
    paths["json"].write_text(payload, encoding="utf-8")
    paths["latest"].write_text(payload, encoding="utf-8")

    if write_markdown:
        paths["markdown"] = out_dir / f"comparison_{stamp}.md"
        paths["markdown"].write_text(render_markdown(report), encoding="utf-8")

    paths["log"] = comparison_log.log_comparison(report, out_dir / comparison_log.LOG_NAME)
    _log.info("comparison report saved to %s", paths["json"])
    return paths
