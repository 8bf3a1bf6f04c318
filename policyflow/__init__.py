"""
policyflow — Deterministic Policy Preprocessor with Generative Fallback

Turns a free-text policy document into a structured verification plan
from a pattern registry, at zero API cost. Documents the registry does
not cover are handed to an LLM fallback generator.

Public API:
  - preprocessor:       Process-wide deterministic engine (packaged registry)
  - Preprocessor:       Deterministic engine bound to one registry
  - preprocess_policy:  Preprocess text with the process-wide engine
  - extract_policy:     Coverage-gated extraction with LLM fallback
  - load_registry:      Load a pattern registry (never raises)
  - LLMProvider:        Abstract LLM interface for provider swapping

Usage:
    from policyflow import preprocess_policy, extract_policy
    from policyflow import Preprocessor, load_registry
"""

__version__ = "1.0.0"

from policyflow.registry import (
    PatternRegistry,
    PatternDefinition,
    RegistryError,
    load_registry,
)
from policyflow.matcher import MatchedPattern, UnmatchedPattern, match_patterns
from policyflow.classifier import select_role, select_risk_level
from policyflow.principles import extract_principles
from policyflow.preprocessor import (
    preprocessor,
    Preprocessor,
    PreprocessorOutput,
    PreprocessResult,
    preprocess_policy,
)
from policyflow.extractor import (
    ExtractionError,
    ExtractionResult,
    ExtractionState,
    extract_policy,
)
from policyflow.usage import TokenUsage
from policyflow.llm import LLMProvider, Completion

__all__ = [
    "PatternRegistry",
    "PatternDefinition",
    "RegistryError",
    "load_registry",
    "MatchedPattern",
    "UnmatchedPattern",
    "match_patterns",
    "select_role",
    "select_risk_level",
    "extract_principles",
    "preprocessor",
    "Preprocessor",
    "PreprocessorOutput",
    "PreprocessResult",
    "preprocess_policy",
    "ExtractionError",
    "ExtractionResult",
    "ExtractionState",
    "extract_policy",
    "TokenUsage",
    "LLMProvider",
    "Completion",
]
