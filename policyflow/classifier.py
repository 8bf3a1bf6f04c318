"""
Classifier — Role and Risk-Level Selection

Each mapping table is scanned in ascending priority order. Within an
entry, keywords are tried in list order. The first keyword found in
the normalized text selects that entry and ends the scan. When no
entry matches, the registry default is selected.

Role and risk level are chosen independently of each other and of the
pattern matcher. Selection is total: exactly one role and one level.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Union

from policyflow.registry import PatternRegistry, RiskMapping, RoleMapping

DEFAULT_MATCH = "default"
DEFAULT_PRIORITY = 999

PriorityEntry = Union[RoleMapping, RiskMapping]


@dataclass(frozen=True)
class RoleSelection:
    role: str
    matched_via: str   # the keyword that fired, or "default"
    priority: int

    def to_dict(self) -> dict:
        return {"role": self.role, "matched_via": self.matched_via, "priority": self.priority}


@dataclass(frozen=True)
class RiskSelection:
    level: str
    matched_via: str
    priority: int

    def to_dict(self) -> dict:
        return {"level": self.level, "matched_via": self.matched_via, "priority": self.priority}


def first_match(
    normalized_text: str,
    entries: Sequence[PriorityEntry],
) -> Optional[tuple[PriorityEntry, str]]:
    """Return (entry, keyword) for the first hit in priority order, or None."""
    for entry in sorted(entries, key=lambda e: e.priority):
        for keyword in entry.keywords:
            if keyword.lower() in normalized_text:
                return entry, keyword
    return None


def select_role(normalized_text: str, registry: PatternRegistry) -> RoleSelection:
    hit = first_match(normalized_text, registry.role_mappings)
    if hit is None:
        return RoleSelection(registry.default_role, DEFAULT_MATCH, DEFAULT_PRIORITY)
    entry, keyword = hit
    return RoleSelection(entry.role, keyword, entry.priority)


def select_risk_level(normalized_text: str, registry: PatternRegistry) -> RiskSelection:
    hit = first_match(normalized_text, registry.risk_mappings)
    if hit is None:
        return RiskSelection(registry.default_risk_level, DEFAULT_MATCH, DEFAULT_PRIORITY)
    entry, keyword = hit
    return RiskSelection(entry.level, keyword, entry.priority)
