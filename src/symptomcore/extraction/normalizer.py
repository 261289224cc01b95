"""
Note Normalizer.

normalize(raw_text) collapses whitespace and folds case for matching while
keeping a per-character offset map back into the raw text, so snippets shown
to users come from the original (un-lowered) note. The normalized text is
split into clauses on periods, semicolons, ! / ? and line breaks; negation
scope never leaves a clause.

Pure and deterministic: no I/O, no logging.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from symptomcore.core.errors import MalformedNote

_WS_RE = re.compile(r"\s+")
# Hard delimiters end a clause and stop a phrase match; a period between two
# digits ("2.5 mg") is not a delimiter.
_HARD_DELIM_RE = re.compile(r"[;!?]|(?<!\d)\.|\.(?!\d)")
_TOKEN_RE = re.compile(r"[^\W_]+")

_DASHES = str.maketrans({"‐": "-", "‑": "-", "‒": "-", "–": "-", "—": "-", "−": "-"})


@dataclass(frozen=True)
class Clause:
    index: int
    start: int
    end: int


@dataclass(frozen=True)
class Token:
    text: str
    start: int
    end: int
    clause: int
    # a hard delimiter sits between the previous token and this one
    barrier: bool


@dataclass(frozen=True)
class NormalizedText:
    original: str
    text: str
    offsets: tuple[int, ...]
    clauses: tuple[Clause, ...]

    def clause_text(self, clause: Clause) -> str:
        return self.text[clause.start:clause.end]

    def clause_at(self, offset: int) -> Clause | None:
        """Clause containing ``offset``; an offset in a delimiter gap maps to the next clause."""
        for c in self.clauses:
            if offset < c.end:
                return c
        return self.clauses[-1] if self.clauses else None

    def original_span(self, start: int, end: int) -> tuple[int, int]:
        if start >= end or not self.offsets:
            return (0, 0)
        return (self.offsets[start], self.offsets[end - 1] + 1)

    def snippet(self, start: int, end: int) -> str:
        s, e = self.original_span(start, end)
        return self.original[s:e]

    def tokens(self) -> list[Token]:
        out: list[Token] = []
        prev_end = 0
        clause_idx = 0
        clauses = self.clauses
        # delimiters are found on the full text so "2.5" keeps its digits in view
        delims = [d.start() for d in _HARD_DELIM_RE.finditer(self.text)]
        delim_idx = 0
        for m in _TOKEN_RE.finditer(self.text):
            while clause_idx < len(clauses) - 1 and m.start() >= clauses[clause_idx].end:
                clause_idx += 1
            while delim_idx < len(delims) and delims[delim_idx] < prev_end:
                delim_idx += 1
            in_gap = delim_idx < len(delims) and delims[delim_idx] < m.start()
            out.append(
                Token(
                    text=m.group(),
                    start=m.start(),
                    end=m.end(),
                    clause=clause_idx,
                    barrier=bool(out) and in_gap,
                )
            )
            prev_end = m.end()
        return out


def phrase_tokens(phrase: str) -> tuple[str, ...]:
    """Token key for a library phrase: case-folded, punctuation and spacing ignored."""
    return tuple(_TOKEN_RE.findall(phrase.translate(_DASHES).lower()))


def normalize(raw_text: str) -> NormalizedText:
    if not isinstance(raw_text, str):
        raise MalformedNote("note text must be a string")

    chars: list[str] = []
    offsets: list[int] = []
    line_breaks: list[int] = []

    def _append(segment: str, base: int) -> None:
        for i, ch in enumerate(segment.translate(_DASHES)):
            # lower() may expand one character into several; all map back to it
            for low in ch.lower():
                chars.append(low)
                offsets.append(base + i)

    pos = 0
    for m in _WS_RE.finditer(raw_text):
        _append(raw_text[pos:m.start()], pos)
        if chars and m.end() < len(raw_text):
            if "\n" in m.group() or "\r" in m.group():
                line_breaks.append(len(chars))
            chars.append(" ")
            offsets.append(m.start())
        pos = m.end()
    _append(raw_text[pos:], pos)

    text = "".join(chars)
    return NormalizedText(
        original=raw_text,
        text=text,
        offsets=tuple(offsets),
        clauses=tuple(_segment(text, line_breaks)),
    )


def _segment(text: str, line_breaks: list[int]) -> list[Clause]:
    cuts: list[tuple[int, int]] = [(m.start(), m.end()) for m in _HARD_DELIM_RE.finditer(text)]
    cuts.extend((b, b + 1) for b in line_breaks)
    cuts.sort()

    clauses: list[Clause] = []
    start = 0
    for cut_start, cut_end in cuts + [(len(text), len(text))]:
        if cut_start < start:
            continue
        s, e = start, cut_start
        while s < e and text[s] == " ":
            s += 1
        while e > s and text[e - 1] == " ":
            e -= 1
        if s < e:
            clauses.append(Clause(index=len(clauses), start=s, end=e))
        start = cut_end
    return clauses
