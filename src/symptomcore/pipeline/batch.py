"""
Batch runner: notes -> events / pivot, in fixed-size chunks.

Each note is matched independently on a thread pool against one shared,
read-only MatcherEngine. Results are collected in input order, so the event
list is identical whatever the scheduling. Cancellation is checked between
batches only; everything merged before the stop is kept.
"""
from __future__ import annotations

import contextvars
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from itertools import islice
from typing import Any, Iterable, Iterator, Mapping, Sequence, TypeVar

from symptomcore.config import get_settings
from symptomcore.core.errors import ExtractionWarning, SymptomCoreError
from symptomcore.core.logging import bound_run_id
from symptomcore.extraction.matcher import MatcherEngine
from symptomcore.extraction.models import (
    NOTE_FIELD_ALIASES,
    ClinicalNote,
    ExtractedSymptomEvent,
    SymptomOrProblem,
    canonicalize_row,
)
from symptomcore.pipeline.aggregator import Dimension, PivotCounts, PivotFilter, PivotMatrix

_log = logging.getLogger("symptomcore.pipeline.batch")

T = TypeVar("T")

NoteInput = ClinicalNote | Mapping[str, Any]


def iter_batches(items: Iterable[T], size: int) -> Iterator[list[T]]:
    if size < 1:
        raise ValueError("batch size must be >= 1")
    it = iter(items)
    while True:
        chunk = list(islice(it, size))
        if not chunk:
            return
        yield chunk


@dataclass
class ExtractionResult:
    events: list[ExtractedSymptomEvent] = field(default_factory=list)
    warnings: list[ExtractionWarning] = field(default_factory=list)
    notes_seen: int = 0
    notes_skipped: int = 0
    batches_completed: int = 0
    cancelled: bool = False
    run_id: str = ""

    @property
    def notes_matched(self) -> int:
        return self.notes_seen - self.notes_skipped

    def summary(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "notes_seen": self.notes_seen,
            "notes_skipped": self.notes_skipped,
            "events": len(self.events),
            "negated_events": sum(1 for e in self.events if e.negated),
            "warnings": len(self.warnings),
            "batches_completed": self.batches_completed,
            "cancelled": self.cancelled,
        }


def note_ids(raw: NoteInput) -> tuple[str | None, str | None]:
    if isinstance(raw, ClinicalNote):
        return raw.note_id, raw.patient_id
    if isinstance(raw, Mapping):
        # best effort, only for the warning record
        canon = canonicalize_row(raw, NOTE_FIELD_ALIASES)
        note_id, patient_id = canon.get("note_id"), canon.get("patient_id")
        return (str(note_id).strip() if note_id is not None else None,
                str(patient_id).strip() if patient_id is not None else None)
    return None, None


def _match_one(engine: MatcherEngine, raw: NoteInput) -> tuple[list[ExtractedSymptomEvent], ExtractionWarning | None]:
    """Match one note; per-note domain errors come back as a warning."""
    try:
        note = raw if isinstance(raw, ClinicalNote) else ClinicalNote.from_mapping(raw)
        return engine.match_note(note), None
    except SymptomCoreError as e:
        note_id, patient_id = note_ids(raw)
        _log.warning("note skipped note_id=%s code=%s: %s", note_id, e.code, e)
        return [], ExtractionWarning.from_error(e, note_id=note_id, patient_id=patient_id)


def _run_batch(pool: ThreadPoolExecutor, engine: MatcherEngine,
               batch: Sequence[NoteInput]) -> list[tuple[list[ExtractedSymptomEvent], ExtractionWarning | None]]:
    # each task runs in a copy of the caller's context so run_id reaches worker logs
    futures = [
        pool.submit(contextvars.copy_context().run, _match_one, engine, raw)
        for raw in batch
    ]
    return [f.result() for f in futures]


def _iter_batch_results(
    notes: Iterable[NoteInput],
    engine: MatcherEngine,
    result: ExtractionResult,
    batch_size: int,
    max_workers: int,
    cancel: threading.Event | None,
) -> Iterator[list[ExtractedSymptomEvent]]:
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="symptomcore-match") as pool:
        for batch in iter_batches(notes, batch_size):
            if cancel is not None and cancel.is_set():
                result.cancelled = True
                _log.warning("run cancelled after %d batches", result.batches_completed)
                return

            batch_events: list[ExtractedSymptomEvent] = []
            for events, warning in _run_batch(pool, engine, batch):
                result.notes_seen += 1
                if warning is not None:
                    result.notes_skipped += 1
                    result.warnings.append(warning)
                    continue
                batch_events.extend(events)

            result.batches_completed += 1
            _log.debug("batch %d done: %d notes, %d events",
                       result.batches_completed, len(batch), len(batch_events))
            yield batch_events


def extract_events(
    notes: Iterable[NoteInput],
    engine: MatcherEngine,
    batch_size: int | None = None,
    max_workers: int | None = None,
    cancel: threading.Event | None = None,
) -> ExtractionResult:
    settings = get_settings()
    batch_size = batch_size or settings.BATCH_SIZE
    max_workers = max_workers or settings.MAX_WORKERS

    result = ExtractionResult()
    with bound_run_id() as run_id:
        result.run_id = run_id
        _log.info("extraction started engine=%s batch_size=%d workers=%d",
                  engine.name, batch_size, max_workers)
        for batch_events in _iter_batch_results(notes, engine, result, batch_size, max_workers, cancel):
            result.events.extend(batch_events)
        _log.info(
            "extraction finished notes=%d skipped=%d events=%d cancelled=%s",
            result.notes_seen, result.notes_skipped, len(result.events), result.cancelled,
        )
    return result


def aggregate_corpus(
    notes: Iterable[NoteInput],
    engine: MatcherEngine,
    dimension: Dimension | str,
    date_range: tuple[date | None, date | None] | None = None,
    *,
    include_negated: bool = False,
    patient_ids: Iterable[str] | None = None,
    kind: SymptomOrProblem | None = None,
    max_rows: int | None = None,
    batch_size: int | None = None,
    max_workers: int | None = None,
    cancel: threading.Event | None = None,
    keep_events: bool = False,
) -> tuple[PivotMatrix, ExtractionResult]:
    """Match and count batch by batch; only the running PivotCounts stays in memory.

    With ``keep_events`` the result also carries every event, as from
    extract_events.
    """
    settings = get_settings()
    batch_size = batch_size or settings.BATCH_SIZE
    max_workers = max_workers or settings.MAX_WORKERS

    flt = PivotFilter(
        dimension=Dimension.parse(dimension),
        date_range=date_range,
        include_negated=include_negated,
        patient_ids=frozenset(patient_ids) if patient_ids is not None else None,
        kind=kind,
    )
    running = PivotCounts(dimension=flt.dimension)
    result = ExtractionResult()

    with bound_run_id() as run_id:
        result.run_id = run_id
        for batch_events in _iter_batch_results(notes, engine, result, batch_size, max_workers, cancel):
            running = running + PivotCounts.from_events(batch_events, flt)
            if keep_events:
                result.events.extend(batch_events)
        matrix = running.to_matrix(max_rows=max_rows)
        _log.info(
            "aggregation finished dimension=%s notes=%d skipped=%d rows=%d columns=%d cancelled=%s",
            flt.dimension.value, result.notes_seen, result.notes_skipped,
            len(matrix.rows), len(matrix.columns), result.cancelled,
        )
    return matrix, result
