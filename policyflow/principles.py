"""
Principle Extractor — Guiding Principles from Obligation Sentences

Mines up to three principle sentences from the original (not
normalized) document text using obligation cue terms, in cue order.
For each cue, the earliest unused candidate sentence containing it
is taken. The result is padded with fixed defaults so it always has
exactly three entries.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

MIN_SENTENCE_LENGTH = 10
MAX_PRINCIPLES = 3

# English obligation cues first, then Korean ("must do", "needed", "mandatory")
CUE_TERMS: tuple[str, ...] = ("must", "shall", "required", "해야 한다", "필요", "필수")

DEFAULT_PRINCIPLES: tuple[str, ...] = (
    "Accuracy in data extraction",
    "Completeness of verification",
    "Timeliness of processing",
)

_SENTENCE_BREAK = re.compile(r"[.。\n]")


@dataclass(frozen=True)
class Candidate:
    text: str
    position: int


def split_candidates(text: str) -> list[Candidate]:
    """
    Split text into candidate sentences with their offsets.

    Fragments whose trimmed length is not above MIN_SENTENCE_LENGTH are
    dropped. Offsets are found by searching forward from the end of the
    previous candidate, so repeated sentences get distinct offsets.
    """
    candidates: list[Candidate] = []
    search_start = 0
    for fragment in _SENTENCE_BREAK.split(text):
        trimmed = fragment.strip()
        if len(trimmed) <= MIN_SENTENCE_LENGTH:
            continue
        position = text.find(trimmed, search_start)
        if position == -1:
            continue
        candidates.append(Candidate(trimmed, position))
        search_start = position + len(trimmed)
    return candidates


def extract_principles(text: str) -> list[str]:
    """Return exactly three principle strings for the text."""
    candidates = split_candidates(text)
    used_positions: set[int] = set()
    principles: list[str] = []

    for term in CUE_TERMS:
        if len(principles) >= MAX_PRINCIPLES:
            break
        needle = term.lower()
        matching = [
            c for c in candidates
            if needle in c.text.lower() and c.position not in used_positions
        ]
        if matching:
            earliest = min(matching, key=lambda c: c.position)
            principles.append(earliest.text)
            used_positions.add(earliest.position)

    # Slot i is padded with default i
    while len(principles) < MAX_PRINCIPLES:
        principles.append(DEFAULT_PRINCIPLES[len(principles)])

    return principles[:MAX_PRINCIPLES]
