"""
Pattern Registry — Versioned, Immutable Rule Catalogue

The registry is the only source of truth the preprocessor consults:
  1. Pattern definitions (keyword triggers → category, priority, tool)
  2. Role mapping (priority-ordered keyword → role table)
  3. Risk-level mapping (priority-ordered keyword → level table)
  4. Tool definitions (id → display name + parameter names)
  5. Decision rules (critical / review pattern ID sets)

A registry is built once from its serialized form and never mutated.
It does not learn or adapt at runtime. A new rule set means a new
registry version, not an edit.

An unreadable or malformed registry is not fatal: load_registry()
degrades to PatternRegistry.empty(), which matches nothing and
therefore routes every document to the fallback generator.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from policyflow.logging import get_logger
from policyflow.schemas.registry import (
    DEFAULT_RISK_LEVEL,
    DEFAULT_ROLE,
    EMPTY_REGISTRY_VERSION,
    RegistryDocument,
)

logger = get_logger("registry")

DEFAULT_REGISTRY_PATH = Path(__file__).resolve().parent / "data" / "pattern_registry.json"


class RegistryError(ValueError):
    """Raised when a serialized registry cannot be turned into a PatternRegistry."""


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class PatternDefinition:
    """A keyword-triggered verification pattern."""
    pattern_id: str
    category: str               # e.g. "document_validity", "notarization"
    keywords: tuple[str, ...]   # "*" stands for one-or-more digits
    priority: int               # lower = higher precedence
    criticality: str            # "critical", "high", "medium", "low"
    tool_id: str
    source_type: str
    is_prerequisite: bool = False


@dataclass(frozen=True)
class RoleMapping:
    priority: int
    keywords: tuple[str, ...]
    role: str


@dataclass(frozen=True)
class RiskMapping:
    priority: int
    keywords: tuple[str, ...]
    level: str


@dataclass(frozen=True)
class ToolDefinition:
    id: str
    name: str
    params: tuple[str, ...]


@dataclass(frozen=True)
class DecisionRules:
    """Failure-severity labelling only. Absent from both sets = plain FAIL."""
    critical_patterns: frozenset[str] = frozenset()
    review_patterns: frozenset[str] = frozenset()


@dataclass(frozen=True)
class PatternRegistry:
    version: str
    patterns: tuple[PatternDefinition, ...]
    role_mappings: tuple[RoleMapping, ...]
    default_role: str
    risk_mappings: tuple[RiskMapping, ...]
    default_risk_level: str
    tools: Mapping[str, ToolDefinition] = field(
        default_factory=lambda: MappingProxyType({}),
    )
    decision_rules: DecisionRules = field(default_factory=DecisionRules)
    name: str = ""

    # --------------------------------------------------------
    # Construction
    # --------------------------------------------------------

    @classmethod
    def empty(cls) -> "PatternRegistry":
        """The valid-but-trivial registry: matches nothing, defaults everywhere."""
        return cls(
            version=EMPTY_REGISTRY_VERSION,
            patterns=(),
            role_mappings=(),
            default_role=DEFAULT_ROLE,
            risk_mappings=(),
            default_risk_level=DEFAULT_RISK_LEVEL,
            name="empty",
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PatternRegistry":
        """
        Build a registry from its serialized (JSON-shaped) form.

        Raises:
            RegistryError: if the structure is malformed.
        """
        try:
            doc = RegistryDocument.model_validate(data)
        except ValidationError as e:
            raise RegistryError(f"Malformed registry: {e}") from e
        return cls._build(doc)

    @classmethod
    def _build(cls, doc: RegistryDocument) -> "PatternRegistry":
        return cls(
            version=doc.registry_metadata.version,
            name=doc.registry_metadata.name,
            patterns=tuple(
                PatternDefinition(
                    pattern_id=p.pattern_id,
                    category=p.category,
                    keywords=tuple(p.keywords),
                    priority=p.priority,
                    criticality=p.criticality,
                    tool_id=p.tool_id,
                    source_type=p.source_type,
                    is_prerequisite=p.is_prerequisite,
                )
                for p in doc.pattern_definitions
            ),
            role_mappings=tuple(
                RoleMapping(priority=m.priority, keywords=tuple(m.keywords), role=m.role)
                for m in doc.role_mapping.priority_order
            ),
            default_role=doc.role_mapping.default_role,
            risk_mappings=tuple(
                RiskMapping(priority=m.priority, keywords=tuple(m.keywords), level=m.level)
                for m in doc.risk_level_mapping.priority_order
            ),
            default_risk_level=doc.risk_level_mapping.default_level,
            tools=MappingProxyType({
                t.id: ToolDefinition(id=t.id, name=t.name, params=tuple(t.params))
                for t in doc.tool_definitions
            }),
            decision_rules=DecisionRules(
                critical_patterns=frozenset(doc.decision_rules.critical_patterns),
                review_patterns=frozenset(doc.decision_rules.review_patterns),
            ),
        )

    # --------------------------------------------------------
    # Lookups
    # --------------------------------------------------------

    def sorted_patterns(self) -> list[PatternDefinition]:
        """Patterns ordered by identifier — the matcher's scan order."""
        return sorted(self.patterns, key=lambda p: p.pattern_id)

    def get_tool(self, tool_id: str) -> Optional[ToolDefinition]:
        return self.tools.get(tool_id)

    @property
    def is_empty(self) -> bool:
        return not self.patterns

    def summary(self) -> dict:
        return {
            "version": self.version,
            "name": self.name,
            "patterns": len(self.patterns),
            "roles": len(self.role_mappings),
            "risk_levels": len(self.risk_mappings),
            "tools": len(self.tools),
            "critical_patterns": sorted(self.decision_rules.critical_patterns),
            "review_patterns": sorted(self.decision_rules.review_patterns),
        }

    def describe_patterns(self) -> list[dict]:
        """
        Return every pattern as a plain dict.

        Used by GET /registry and the CLI to expose the matching surface.
        """
        return [
            {
                "pattern_id": p.pattern_id,
                "category": p.category,
                "keywords": list(p.keywords),
                "priority": p.priority,
                "criticality": p.criticality,
                "tool_id": p.tool_id,
                "source_type": p.source_type,
                "is_prerequisite": p.is_prerequisite,
            }
            for p in self.sorted_patterns()
        ]


# ============================================================
# LOADING
# ============================================================

def load_registry(path: Optional[str | Path] = None) -> PatternRegistry:
    """
    Load a registry from a JSON file. Never raises.

    Args:
        path: Registry file. None or "" = the registry packaged with policyflow.

    Returns:
        The parsed registry, or PatternRegistry.empty() when the file is
        missing, unreadable, or malformed.
    """
    source = Path(path) if path else DEFAULT_REGISTRY_PATH
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
        registry = PatternRegistry.from_dict(data)
    except (OSError, json.JSONDecodeError, RegistryError) as e:
        logger.warning(
            "Pattern registry unavailable, using empty registry: %s", e,
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return PatternRegistry.empty()

    logger.info(
        "Pattern registry loaded: %s (%d patterns)", source.name, len(registry.patterns),
        extra={"registry_version": registry.version},
    )
    return registry
