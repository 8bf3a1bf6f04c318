"""
Preprocessor — Deterministic Policy Extraction

This module IS the product. The fallback generator is the safety net.

Pipeline (pure, zero API cost):
  1. Pattern matching      (matcher)     → matched / unmatched patterns
  2. Role selection        (classifier)  → exactly one role
  3. Risk-level selection  (classifier)  → exactly one level
  4. Principle extraction  (principles)  → exactly three principles
  5. Description           (assembler)   → "<Category> verification for <subject>"
  6. Checklist, logic flow, failure lists (assembler)

The preprocessor holds no mutable state. Its registry is loaded once
and shared read-only. Given the same text and registry, the output is
identical apart from metadata.timestamp.

preprocess() may raise on a programming error. run() never raises:
it returns a PreprocessResult the orchestrator branches on, so "the
preprocessor failed" and "coverage was too low" stay distinct while
triggering the same fallback.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from policyflow.assembler import (
    ChecklistItem,
    build_checklist,
    build_description,
    build_logic_flow,
    critical_failures,
    review_triggers,
)
from policyflow.classifier import RiskSelection, RoleSelection, select_risk_level, select_role
from policyflow.config import settings
from policyflow.logging import get_logger
from policyflow.matcher import MatchedPattern, UnmatchedPattern, match_patterns, normalize_text
from policyflow.principles import extract_principles
from policyflow.registry import PatternRegistry, load_registry

logger = get_logger("preprocessor")

FINGERPRINT_LENGTH = 16


def content_fingerprint(text: str) -> str:
    """Truncated SHA-256 of the raw document text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class PreprocessorMetadata:
    registry_version: str
    timestamp: str
    content_fingerprint: str

    def to_dict(self) -> dict:
        return {
            "registry_version": self.registry_version,
            "timestamp": self.timestamp,
            "content_fingerprint": self.content_fingerprint,
        }


@dataclass(frozen=True)
class PreprocessorOutput:
    """Everything the deterministic path knows about a document."""
    metadata: PreprocessorMetadata
    matched_patterns: list[MatchedPattern]
    unmatched_patterns: list[UnmatchedPattern]
    selected_role: RoleSelection
    selected_risk_level: RiskSelection
    extracted_principles: list[str]
    description: str
    checklist: list[ChecklistItem]
    logic_flow: list[str]
    critical_failures: list[str]
    review_triggers: list[str]

    @property
    def coverage(self) -> int:
        return len(self.matched_patterns)

    def to_dict(self) -> dict:
        """JSON-ready mapping with a fixed key order."""
        return {
            "metadata": self.metadata.to_dict(),
            "matched_patterns": [p.to_dict() for p in self.matched_patterns],
            "unmatched_patterns": [p.to_dict() for p in self.unmatched_patterns],
            "selected_role": self.selected_role.to_dict(),
            "selected_risk_level": self.selected_risk_level.to_dict(),
            "extracted_principles": list(self.extracted_principles),
            "description": self.description,
            "checklist": [c.to_dict() for c in self.checklist],
            "logic_flow": list(self.logic_flow),
            "critical_failures": list(self.critical_failures),
            "review_triggers": list(self.review_triggers),
        }


@dataclass(frozen=True)
class PreprocessResult:
    """Success-with-output or failure-with-reason."""
    ok: bool
    output: Optional[PreprocessorOutput] = None
    reason: Optional[str] = None
    error: Optional[str] = field(default=None, compare=False)

    @classmethod
    def success(cls, output: PreprocessorOutput) -> "PreprocessResult":
        return cls(ok=True, output=output)

    @classmethod
    def failure(cls, reason: str, error: Exception) -> "PreprocessResult":
        return cls(ok=False, reason=reason, error=f"{type(error).__name__}: {error}")


# ============================================================
# THE PREPROCESSOR
# ============================================================

class Preprocessor:
    """
    Deterministic preprocessing engine bound to one registry.

    Instantiated once per registry. Holds no per-call state, so a
    single instance can serve concurrent requests.
    """

    def __init__(self, registry: PatternRegistry):
        self.registry = registry

    @property
    def registry_version(self) -> str:
        return self.registry.version

    def preprocess(self, text: str) -> PreprocessorOutput:
        """Run the full deterministic pipeline over raw document text."""
        normalized = normalize_text(text)

        outcome = match_patterns(normalized, self.registry.patterns)
        matched = outcome.matched
        rules = self.registry.decision_rules

        return PreprocessorOutput(
            metadata=PreprocessorMetadata(
                registry_version=self.registry.version,
                timestamp=datetime.now(timezone.utc).isoformat(),
                content_fingerprint=content_fingerprint(text),
            ),
            matched_patterns=matched,
            unmatched_patterns=outcome.unmatched,
            selected_role=select_role(normalized, self.registry),
            selected_risk_level=select_risk_level(normalized, self.registry),
            extracted_principles=extract_principles(text),
            description=build_description(text, matched),
            checklist=build_checklist(matched, self.registry),
            logic_flow=build_logic_flow(matched, self.registry),
            critical_failures=critical_failures(matched, rules),
            review_triggers=review_triggers(matched, rules),
        )

    def run(self, text: str) -> PreprocessResult:
        """preprocess() wrapped in an explicit result type. Never raises."""
        try:
            return PreprocessResult.success(self.preprocess(text))
        except Exception as e:
            logger.error(
                "Preprocessor failed: %s", e,
                extra={
                    "registry_version": self.registry.version,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return PreprocessResult.failure("preprocessor_error", e)


# ============================================================
# SINGLETON — registry loaded once per process, never mutated
# ============================================================

preprocessor = Preprocessor(load_registry(settings.REGISTRY_PATH or None))


def preprocess_policy(text: str) -> PreprocessorOutput:
    """Preprocess text with the process-wide registry."""
    return preprocessor.preprocess(text)
