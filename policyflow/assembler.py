"""
Assembler — Description, Checklist, Logic Flow, Failure Labels

Turns the canonically ordered matched patterns into the structured
facts a downstream workflow generator consumes:

  - description:  "<Category> verification for <subject>"
  - checklist:    one (data point, source, tool) entry per match
  - logic flow:   one numbered CALL step per match + a final AGGREGATE
  - failure lists: CRITICAL_FAIL_* / REVIEW_* labels from decision rules

Failure label precedence is fixed: a pattern ID listed in both the
critical and the review set is labelled CRITICAL_FAIL.

An unresolved tool ID never fails assembly. It is rendered as the
UNKNOWN_TOOL marker.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from policyflow.matcher import MatchedPattern
from policyflow.registry import DecisionRules, PatternRegistry

UNKNOWN_TOOL = "unknown"
UNKNOWN_SUBJECT = "Unknown Process"
GENERIC_CATEGORY = "Document"

LABEL_PREFIXES: tuple[str, ...] = ("policy:", "procedure:", "guidelines:", "정책:", "절차:")

AGGREGATE_STEP = "AGGREGATE all results → Proceed to Phase 3."

_HEADING_MARKER = re.compile(r"^#+\s*")
_WORD_START = re.compile(r"\b\w")


@dataclass(frozen=True)
class ChecklistItem:
    data_point: str
    source: str
    tool: str

    def to_dict(self) -> dict:
        return {"data_point": self.data_point, "source": self.source, "tool": self.tool}


# ============================================================
# DESCRIPTION
# ============================================================

def humanize_category(category: str) -> str:
    """'document_validity' → 'Document Validity'. Only first letters change."""
    return _WORD_START.sub(lambda m: m.group(0).upper(), category.replace("_", " "))


def extract_subject(text: str) -> str:
    """First non-empty line, minus heading markers and one label prefix."""
    subject = UNKNOWN_SUBJECT
    for line in text.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        subject = _HEADING_MARKER.sub("", stripped) if stripped.startswith("#") else stripped
        break

    lowered = subject.lower()
    for prefix in LABEL_PREFIXES:
        if lowered.startswith(prefix):
            subject = subject[len(prefix):].strip()
            break
    return subject


def build_description(text: str, matched: Sequence[MatchedPattern]) -> str:
    category = humanize_category(matched[0].category) if matched else GENERIC_CATEGORY
    return f"{category} verification for {extract_subject(text)}"


# ============================================================
# FAILURE LABELS
# ============================================================

def failure_label(pattern: MatchedPattern, rules: DecisionRules) -> str:
    if pattern.pattern_id in rules.critical_patterns:
        return f"CRITICAL_FAIL_{pattern.category}"
    if pattern.pattern_id in rules.review_patterns:
        return f"REVIEW_{pattern.category}"
    return f"FAIL_{pattern.category}"


def critical_failures(matched: Sequence[MatchedPattern], rules: DecisionRules) -> list[str]:
    return [
        f"CRITICAL_FAIL_{p.category}"
        for p in matched
        if p.pattern_id in rules.critical_patterns
    ]


def review_triggers(matched: Sequence[MatchedPattern], rules: DecisionRules) -> list[str]:
    return [
        f"REVIEW_{p.category}"
        for p in matched
        if p.pattern_id in rules.review_patterns
    ]


# ============================================================
# CHECKLIST + LOGIC FLOW
# ============================================================

def build_checklist(
    matched: Sequence[MatchedPattern],
    registry: PatternRegistry,
) -> list[ChecklistItem]:
    items = []
    for p in matched:
        tool = registry.get_tool(p.tool_id)
        items.append(ChecklistItem(
            data_point=humanize_category(p.category),
            source=p.source_type,
            tool=tool.name if tool else UNKNOWN_TOOL,
        ))
    return items


def build_logic_flow(
    matched: Sequence[MatchedPattern],
    registry: PatternRegistry,
) -> list[str]:
    """
    Build the numbered verification steps.

    Steps are 1-indexed and contiguous. The last step is always the
    aggregation step, so len(flow) == len(matched) + 1.
    """
    flow = []
    for idx, p in enumerate(matched, start=1):
        tool = registry.get_tool(p.tool_id)
        name = tool.name if tool else UNKNOWN_TOOL
        params = ", ".join(tool.params) if tool else ""
        label = failure_label(p, registry.decision_rules)
        flow.append(
            f"{idx}. CALL {name}({params}) → IF valid, PROCEED. ELSE, FLAG as {label}."
        )
    flow.append(f"{len(flow) + 1}. {AGGREGATE_STEP}")
    return flow
