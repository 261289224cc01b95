"""
Matcher Engine: reference phrases -> ExtractedSymptomEvent.

Pipeline per note:
  A) normalize (case fold + whitespace collapse, offset map, clauses)
  B) leftmost / longest-first scan of the phrase index over the note tokens;
     a consumed span is never re-matched by a shorter phrase inside it
  C) negation: cue inside a fixed window of preceding tokens, same clause
  D) one event per occurrence (duplicates are the intensity signal), or one
     per symptom id per note in the legacy ``per_note`` mode

The phrase index is built once per engine from the library and is read-only
afterwards, so one engine can be shared by any number of threads.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Iterable, Sequence

from symptomcore.core.errors import MalformedNote
from symptomcore.extraction import hrsn
from symptomcore.extraction.models import ClinicalNote, ExtractedSymptomEvent, SymptomMasterRecord
from symptomcore.extraction.normalizer import NormalizedText, Token, normalize, phrase_tokens

_log = logging.getLogger("symptomcore.extraction.matcher")


# ═══════════════════════════════════════════════════════════════
# Negation vocabulary
# ═══════════════════════════════════════════════════════════════
# Scope: a fixed token window, never past the start of the clause.

NEGATION_CUES: tuple[tuple[str, ...], ...] = (
    ("no",),
    ("not",),
    ("denies",),
    ("denied",),
    ("deny",),
    ("negative", "for"),
    ("without",),
    ("absent",),
    ("doesn", "t"),
    ("rules", "out"),
    ("ruled", "out"),
)

# A reporting phrase or contrastive conjunction after the cue closes its scope:
# "denies fever but reports anxiety" -> anxiety is affirmed.
SCOPE_TERMINATORS: tuple[tuple[str, ...], ...] = (
    ("reports",),
    ("reported",),
    ("complains", "of"),
    ("presents", "with"),
    ("experiencing",),
    ("endorses",),
    ("endorsed",),
    ("states",),
    ("stated",),
    ("but",),
    ("however",),
)


class DuplicateMode(str, Enum):
    PRESERVE = "preserve"
    PER_NOTE = "per_note"


@dataclass(frozen=True)
class MatcherConfig:
    name: str = "preserve"
    negation_window: int = 5
    consider_negation: bool = True
    duplicate_mode: DuplicateMode = DuplicateMode.PRESERVE
    expand_shared_segments: bool = False
    min_phrase_chars: int = 3

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["duplicate_mode"] = self.duplicate_mode.value
        return d


PRESETS: dict[str, MatcherConfig] = {
    "preserve": MatcherConfig(),
    "per_note": MatcherConfig(name="per_note", duplicate_mode=DuplicateMode.PER_NOTE),
    "no_negation": MatcherConfig(name="no_negation", consider_negation=False),
}


def preset(name: str, **overrides: Any) -> MatcherConfig:
    try:
        base = PRESETS[name]
    except KeyError:
        raise ValueError(f"unknown matcher preset {name!r}; expected one of {sorted(PRESETS)}") from None
    return replace(base, **overrides) if overrides else base


# ═══════════════════════════════════════════════════════════════
# Phrase index
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PhraseEntry:
    tokens: tuple[str, ...]
    records: tuple[SymptomMasterRecord, ...]
    order: int


class PhraseIndex:
    """Token-sequence index over library phrases.

    Keyed by first token; each bucket is sorted longest first, then by the
    library position of the first record registering that phrase. Records
    whose segments normalize to the same tokens share one entry.
    """

    def __init__(self, library: Iterable[SymptomMasterRecord], min_phrase_chars: int = 3) -> None:
        grouped: dict[tuple[str, ...], list[SymptomMasterRecord]] = {}
        order: dict[tuple[str, ...], int] = {}
        skipped = 0

        for i, rec in enumerate(library):
            toks = phrase_tokens(rec.symptom_segment)
            if not toks or len("".join(toks)) < min_phrase_chars:
                skipped += 1
                continue
            if toks not in grouped:
                grouped[toks] = []
                order[toks] = i
            grouped[toks].append(rec)

        buckets: dict[str, list[PhraseEntry]] = defaultdict(list)
        for toks, recs in grouped.items():
            buckets[toks[0]].append(PhraseEntry(tokens=toks, records=tuple(recs), order=order[toks]))
        for entries in buckets.values():
            entries.sort(key=lambda e: (-len(e.tokens), e.order))

        self._buckets: dict[str, tuple[PhraseEntry, ...]] = {k: tuple(v) for k, v in buckets.items()}
        self.phrase_count = len(grouped)
        self.skipped = skipped
        self.max_len = max((len(t) for t in grouped), default=0)

        _log.debug(
            "phrase index built: %d phrases, %d first-token buckets, %d skipped, max_len=%d",
            self.phrase_count, len(self._buckets), skipped, self.max_len,
        )

    def __len__(self) -> int:
        return self.phrase_count

    def longest_at(self, tokens: Sequence[Token], i: int) -> PhraseEntry | None:
        """Longest phrase starting at token ``i`` that does not cross a hard delimiter."""
        candidates = self._buckets.get(tokens[i].text)
        if not candidates:
            return None

        # how far the span may extend before a barrier
        limit = i + 1
        while limit < len(tokens) and limit - i < self.max_len and not tokens[limit].barrier:
            limit += 1
        room = limit - i

        for entry in candidates:
            n = len(entry.tokens)
            if n > room:
                continue
            if all(tokens[i + k].text == entry.tokens[k] for k in range(1, n)):
                return entry
        return None


# ═══════════════════════════════════════════════════════════════
# Negation
# ═══════════════════════════════════════════════════════════════

def _ends_at(words: Sequence[str], end: int, phrase: tuple[str, ...]) -> bool:
    n = len(phrase)
    return end - n >= 0 and tuple(words[end - n:end]) == phrase


def is_negated(tokens: Sequence[Token], match_start: int, window: int) -> bool:
    """True if a cue precedes ``match_start`` inside the window and clause."""
    clause = tokens[match_start].clause
    lo = match_start
    while lo > 0 and match_start - lo < window and tokens[lo - 1].clause == clause:
        lo -= 1
    words = [t.text for t in tokens[lo:match_start]]

    # walk backwards from the match: a terminator seen first closes the scope
    for end in range(len(words), 0, -1):
        if any(_ends_at(words, end, term) for term in SCOPE_TERMINATORS):
            return False
        if any(_ends_at(words, end, cue) for cue in NEGATION_CUES):
            return True
    return False


# ═══════════════════════════════════════════════════════════════
# Engine
# ═══════════════════════════════════════════════════════════════

class MatcherEngine:
    def __init__(self, library: Iterable[SymptomMasterRecord], config: MatcherConfig | None = None) -> None:
        self.config = config or MatcherConfig()
        self.index = PhraseIndex(library, min_phrase_chars=self.config.min_phrase_chars)

    @property
    def name(self) -> str:
        return self.config.name

    def match(self, normalized: NormalizedText, note: ClinicalNote) -> list[ExtractedSymptomEvent]:
        tokens = normalized.tokens()
        cfg = self.config
        events: list[ExtractedSymptomEvent] = []

        i = 0
        while i < len(tokens):
            entry = self.index.longest_at(tokens, i)
            if entry is None:
                i += 1
                continue

            last = i + len(entry.tokens) - 1
            start, end = tokens[i].start, tokens[last].end
            negated = cfg.consider_negation and is_negated(tokens, i, cfg.negation_window)
            surface = normalized.snippet(start, end)

            records = entry.records if cfg.expand_shared_segments else entry.records[:1]
            for rec in records:
                events.append(
                    ExtractedSymptomEvent(
                        patient_id=note.patient_id,
                        note_id=note.note_id,
                        date_of_service=note.date_of_service,
                        symptom_id=rec.symptom_id,
                        symptom_segment=rec.symptom_segment,
                        diagnosis=rec.diagnosis,
                        diagnostic_category=rec.diagnostic_category,
                        negated=negated,
                        start_offset=start,
                        end_offset=end,
                        icd10_code=rec.icd10_code,
                        symptom_or_problem=rec.symptom_or_problem,
                        hrsn_indicator=hrsn.indicator_for(rec),
                        matched_text=surface,
                        clause_index=tokens[i].clause,
                    )
                )
            i = last + 1

        if cfg.duplicate_mode is DuplicateMode.PER_NOTE:
            events = _first_per_symptom(events)
        return events

    def match_note(self, note: ClinicalNote) -> list[ExtractedSymptomEvent]:
        if not note.raw_text or not note.raw_text.strip():
            raise MalformedNote(f"note {note.note_id} has no text")
        return self.match(normalize(note.raw_text), note)


def _first_per_symptom(events: list[ExtractedSymptomEvent]) -> list[ExtractedSymptomEvent]:
    """Legacy dedup: one event per symptom id, the first affirmed one if any."""
    chosen: dict[str, int] = {}
    for pos, ev in enumerate(events):
        prev = chosen.get(ev.symptom_id)
        if prev is None or (events[prev].negated and not ev.negated):
            chosen[ev.symptom_id] = pos
    return [events[pos] for pos in sorted(chosen.values())]


def match(normalized: NormalizedText, note: ClinicalNote, library: Iterable[SymptomMasterRecord],
          config: MatcherConfig | None = None) -> list[ExtractedSymptomEvent]:
    """One-shot convenience; batch callers should build a MatcherEngine once."""
    return MatcherEngine(library, config).match(normalized, note)
