"""
Extractor — Extraction Orchestrator

Decides, per document, whether to trust the deterministic path or
escalate to the generative fallback:

  start → matched → accepted            → done   (method "preprocessor")
  start → matched → fallback_triggered  → done   (method "llm" | "fallback")

Any preprocessor failure jumps straight to fallback_triggered.

Coverage gate: the deterministic output is accepted when at least
MIN_COVERAGE patterns matched. Otherwise the fallback generator is
asked for a (summary, rules, content) triple. A generator that is
absent, times out, errors, or answers garbage degrades to a minimal
result. extract_policy() never raises for text input unless the
caller opts in with raise_on_fallback_error.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from policyflow.config import settings
from policyflow.fallback import DEGRADED_SUMMARY, generate_fallback, parse_extraction_response
from policyflow.llm import LLMProvider
from policyflow.logging import get_logger
from policyflow.preprocessor import Preprocessor, PreprocessorOutput
from policyflow.preprocessor import preprocessor as default_preprocessor
from policyflow.usage import TokenUsage, log_token_usage

logger = get_logger("extractor")

MIN_COVERAGE = 2

METHOD_PREPROCESSOR = "preprocessor"
METHOD_LLM = "llm"
METHOD_FALLBACK = "fallback"

REASON_LOW_COVERAGE = "low_coverage"
REASON_PREPROCESSOR_ERROR = "preprocessor_error"


class ExtractionState(str, Enum):
    START = "start"
    MATCHED = "matched"
    ACCEPTED = "accepted"
    FALLBACK_TRIGGERED = "fallback_triggered"
    DONE = "done"


class ExtractionError(RuntimeError):
    """Fallback generation failed and the caller asked for the failure."""


# ============================================================
# RESULT
# ============================================================

@dataclass
class ExtractionResult:
    """Common shape for every extraction, whichever path produced it."""
    method: str
    content: str
    summary: str
    validation_rules: list[str]
    extracted_at: str
    source_document: str
    token_usage: TokenUsage = field(default_factory=TokenUsage.zero)
    preprocessor_output: Optional[PreprocessorOutput] = None
    fallback_reason: Optional[str] = None
    states: list[ExtractionState] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "content": self.content,
            "summary": self.summary,
            "validation_rules": list(self.validation_rules),
            "extracted_at": self.extracted_at,
            "source_document": self.source_document,
            "token_usage": self.token_usage.to_dict(),
            "preprocessor_output": (
                self.preprocessor_output.to_dict() if self.preprocessor_output else None
            ),
            "fallback_reason": self.fallback_reason,
            "states": [s.value for s in self.states],
        }

    def to_prompt_block(self) -> str:
        """Markdown hand-off block for the downstream workflow generator."""
        rules = "\n".join(f"- {rule}" for rule in self.validation_rules)
        return (
            f"## Policy Summary\n{self.summary}\n\n"
            f"## Validation Rules\n{rules or '(none)'}\n\n"
            f"## Policy Content\n{self.content}"
        ).strip()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def from_preprocessor(output: PreprocessorOutput, source_document: str) -> ExtractionResult:
    """
    Normalize a deterministic output to the common result shape.

    summary = description, rules = per-pattern logic-flow steps (the
    aggregation step is dropped), content = the full output as JSON.
    """
    return ExtractionResult(
        method=METHOD_PREPROCESSOR,
        content=json.dumps(output.to_dict(), ensure_ascii=False, indent=2),
        summary=output.description,
        validation_rules=list(output.logic_flow[:-1]),
        extracted_at=_now(),
        source_document=source_document,
        token_usage=TokenUsage.zero(),
        preprocessor_output=output,
    )


# ============================================================
# ORCHESTRATION
# ============================================================

class _Run:
    """State tracker for one extraction call."""

    def __init__(self, source_document: str):
        self.source_document = source_document
        self.states: list[ExtractionState] = [ExtractionState.START]

    @property
    def state(self) -> ExtractionState:
        return self.states[-1]

    def transition(self, state: ExtractionState, **extra) -> None:
        logger.debug(
            f"Extraction {self.state.value} → {state.value}",
            extra={"state": state.value, "source_document": self.source_document, **extra},
        )
        self.states.append(state)


async def extract_policy(
    text: str,
    source_document: str = "document",
    llm: Optional[LLMProvider] = None,
    preprocessor: Optional[Preprocessor] = None,
    min_coverage: int = MIN_COVERAGE,
    timeout: Optional[float] = None,
    max_tokens: Optional[int] = None,
    raise_on_fallback_error: bool = False,
) -> ExtractionResult:
    """
    Extract structured policy facts from raw document text.

    Args:
        text: Raw document text.
        source_document: Label carried into the result (file name, URL).
        llm: Fallback generator. None = fallback degrades immediately.
        preprocessor: Deterministic engine. None = the process-wide one.
        min_coverage: Matched-pattern count required to accept the
            deterministic output.
        timeout: Seconds allowed for the fallback call.
        max_tokens: Output token cap for the fallback call.
        raise_on_fallback_error: Raise ExtractionError instead of
            degrading when the generator fails.

    Returns:
        ExtractionResult with method "preprocessor", "llm" or "fallback".
    """
    engine = preprocessor or default_preprocessor
    run = _Run(source_document)
    start = time.time()

    outcome = engine.run(text)
    run.transition(ExtractionState.MATCHED)

    if outcome.ok and outcome.output.coverage >= min_coverage:
        run.transition(ExtractionState.ACCEPTED, matched_count=outcome.output.coverage)
        result = from_preprocessor(outcome.output, source_document)
    else:
        reason = REASON_LOW_COVERAGE if outcome.ok else REASON_PREPROCESSOR_ERROR
        run.transition(ExtractionState.FALLBACK_TRIGGERED, fallback_reason=reason)
        result = await _fallback(
            text, source_document, llm, reason,
            timeout=timeout,
            max_tokens=max_tokens,
            raise_on_error=raise_on_fallback_error,
        )
        result.preprocessor_output = outcome.output

    run.transition(ExtractionState.DONE)
    result.states = list(run.states)

    logger.info(
        f"Extraction complete: method={result.method}",
        extra={
            "method": result.method,
            "source_document": source_document,
            "registry_version": engine.registry_version,
            "matched_count": outcome.output.coverage if outcome.ok else None,
            "fallback_reason": result.fallback_reason,
            "total_tokens": result.token_usage.total_tokens,
            "duration_ms": int((time.time() - start) * 1000),
        },
    )
    return result


def _degraded(text: str, source_document: str, reason: str) -> ExtractionResult:
    return ExtractionResult(
        method=METHOD_FALLBACK,
        content=text,
        summary=DEGRADED_SUMMARY,
        validation_rules=[],
        extracted_at=_now(),
        source_document=source_document,
        fallback_reason=reason,
    )


async def _fallback(
    text: str,
    source_document: str,
    llm: Optional[LLMProvider],
    reason: str,
    timeout: Optional[float],
    max_tokens: Optional[int],
    raise_on_error: bool,
) -> ExtractionResult:
    """Delegate to the generator; degrade on any failure unless told to raise."""
    if llm is None:
        if raise_on_error:
            raise ExtractionError(f"Fallback required ({reason}) but no LLM provider configured")
        logger.warning(
            "Fallback required but no LLM provider configured",
            extra={"fallback_reason": reason, "source_document": source_document},
        )
        return _degraded(text, source_document, reason)

    try:
        completion = await generate_fallback(
            llm, text, timeout=timeout, max_tokens=max_tokens,
        )
    except Exception as e:
        if isinstance(e, asyncio.TimeoutError):
            message = f"Fallback generation timed out after {timeout}s"
        else:
            message = f"Fallback generation failed: {e}"
        if raise_on_error:
            raise ExtractionError(message) from e
        logger.warning(
            message,
            extra={
                "fallback_reason": reason,
                "source_document": source_document,
                "error": str(e),
                "error_type": type(e).__name__,
            },
        )
        return _degraded(text, source_document, reason)

    # Parsed outside the transport try: a bad response degrades, never surfaces
    parsed = parse_extraction_response(completion.text)
    usage = completion.usage
    model = completion.model

    log_token_usage("policy-extraction", usage, model or getattr(llm, "name", "unknown"), source_document)

    return ExtractionResult(
        method=METHOD_FALLBACK if parsed.degraded else METHOD_LLM,
        content=parsed.content,
        summary=parsed.summary,
        validation_rules=list(parsed.validation_rules),
        extracted_at=_now(),
        source_document=source_document,
        token_usage=usage,
        fallback_reason=reason,
    )


async def extract_with_settings(
    text: str,
    source_document: str = "document",
    llm: Optional[LLMProvider] = None,
) -> ExtractionResult:
    """extract_policy() with gate, timeout and error policy from settings."""
    return await extract_policy(
        text,
        source_document=source_document,
        llm=llm,
        min_coverage=settings.MIN_COVERAGE,
        timeout=settings.FALLBACK_TIMEOUT,
        max_tokens=settings.FALLBACK_MAX_TOKENS,
        raise_on_fallback_error=settings.RAISE_ON_FALLBACK_ERROR,
    )
