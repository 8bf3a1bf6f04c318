"""
Pattern Matcher — Deterministic Keyword Scan

Scans normalized document text against every registry pattern and
partitions the registry into matched and unmatched patterns.

Matching rules:
  - Patterns are scanned in identifier order.
  - Keywords are tried in list order; the first keyword found wins,
    even if a later keyword occurs earlier in the text.
  - A pattern matches at most once.
  - "*" in a keyword stands for one-or-more ASCII digits ("valid for * days").

The matched list is then re-sorted into canonical processing order:
prerequisite patterns first, then ascending priority, then ascending
match offset. Every downstream stage consumes that order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Union

from policyflow.registry import PatternDefinition

WILDCARD = "*"

# ASCII only; \d would also accept Arabic-Indic and fullwidth digits
_DIGIT_RUN = "[0-9]+"

_WHITESPACE_RUN = re.compile(r"\s+")


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class MatchedPattern:
    """A pattern definition enriched with where and how it matched."""
    pattern_id: str
    category: str
    priority: int
    criticality: str
    tool_id: str
    source_type: str
    is_prerequisite: bool
    matched_keyword: str
    match_position: int

    def to_dict(self) -> dict:
        return {
            "pattern_id": self.pattern_id,
            "category": self.category,
            "priority": self.priority,
            "criticality": self.criticality,
            "tool_id": self.tool_id,
            "matched_keyword": self.matched_keyword,
            "match_position": self.match_position,
            "source_type": self.source_type,
            "is_prerequisite": self.is_prerequisite,
        }


@dataclass(frozen=True)
class UnmatchedPattern:
    pattern_id: str
    category: str

    def to_dict(self) -> dict:
        return {"pattern_id": self.pattern_id, "category": self.category}


@dataclass(frozen=True)
class MatchOutcome:
    matched: list[MatchedPattern]
    unmatched: list[UnmatchedPattern]

    @property
    def coverage(self) -> int:
        return len(self.matched)


# ============================================================
# TEXT + KEYWORD HANDLING
# ============================================================

def normalize_text(text: str) -> str:
    """Lower-case and collapse every whitespace run to a single space."""
    return _WHITESPACE_RUN.sub(" ", text.lower())


@lru_cache(maxsize=1024)
def compile_keyword(keyword: str) -> Union[str, re.Pattern]:
    """
    Prepare a keyword for matching.

    Plain keywords come back as their lower-cased string (substring
    search). Wildcard keywords come back as a compiled regex where
    each "*" accepts one-or-more ASCII digits and everything else is literal.
    """
    lowered = keyword.lower()
    if WILDCARD not in lowered:
        return lowered
    parts = [re.escape(part) for part in lowered.split(WILDCARD)]
    return re.compile(_DIGIT_RUN.join(parts))


def find_keyword(normalized_text: str, keyword: str) -> int:
    """Offset of the keyword's first occurrence in the text, or -1."""
    compiled = compile_keyword(keyword)
    if isinstance(compiled, str):
        return normalized_text.find(compiled)
    match = compiled.search(normalized_text)
    return match.start() if match else -1


# ============================================================
# MATCHING
# ============================================================

def canonical_order(matched: Iterable[MatchedPattern]) -> list[MatchedPattern]:
    """Prerequisites first, then ascending priority, then ascending offset."""
    return sorted(
        matched,
        key=lambda m: (not m.is_prerequisite, m.priority, m.match_position),
    )


def match_pattern(normalized_text: str, pattern: PatternDefinition) -> MatchedPattern | None:
    """Match one pattern. The first keyword in list order that occurs wins."""
    for keyword in pattern.keywords:
        position = find_keyword(normalized_text, keyword)
        if position != -1:
            return MatchedPattern(
                pattern_id=pattern.pattern_id,
                category=pattern.category,
                priority=pattern.priority,
                criticality=pattern.criticality,
                tool_id=pattern.tool_id,
                source_type=pattern.source_type,
                is_prerequisite=pattern.is_prerequisite,
                matched_keyword=keyword,
                match_position=position,
            )
    return None


def match_patterns(
    normalized_text: str,
    patterns: Iterable[PatternDefinition],
) -> MatchOutcome:
    """
    Partition patterns into matched and unmatched for the given text.

    Args:
        normalized_text: Output of normalize_text().
        patterns: Pattern definitions; scanned in identifier order
            regardless of the order given.

    Returns:
        MatchOutcome whose matched list is in canonical order and whose
        unmatched list is in identifier order.
    """
    matched: list[MatchedPattern] = []
    unmatched: list[UnmatchedPattern] = []

    for pattern in sorted(patterns, key=lambda p: p.pattern_id):
        hit = match_pattern(normalized_text, pattern)
        if hit is not None:
            matched.append(hit)
        else:
            unmatched.append(UnmatchedPattern(pattern.pattern_id, pattern.category))

    return MatchOutcome(matched=canonical_order(matched), unmatched=unmatched)
