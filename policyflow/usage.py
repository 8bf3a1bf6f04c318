"""
Token Usage — accounting for generative fallback calls

The deterministic path records zero usage. The fallback path records
whatever the provider reports. Entries are logged, not persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from policyflow.logging import get_logger

logger = get_logger("usage")

# USD per million tokens. Rough list prices, override per call.
DEFAULT_INPUT_RATE = 0.30
DEFAULT_OUTPUT_RATE = 2.50


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def zero(cls) -> "TokenUsage":
        return cls()

    @classmethod
    def from_counts(cls, input_tokens: Optional[int], output_tokens: Optional[int]) -> "TokenUsage":
        """Providers may report None for a count; treat it as zero."""
        i = int(input_tokens or 0)
        o = int(output_tokens or 0)
        return cls(input_tokens=i, output_tokens=o, total_tokens=i + o)

    @property
    def is_zero(self) -> bool:
        return self.total_tokens == 0

    def to_dict(self) -> dict:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
        }


def log_token_usage(
    operation: str,
    usage: TokenUsage,
    model: str,
    source_document: Optional[str] = None,
) -> dict:
    """Log token usage for an LLM operation and return the log entry."""
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "operation": operation,
        "input_tokens": usage.input_tokens,
        "output_tokens": usage.output_tokens,
        "total_tokens": usage.total_tokens,
        "model": model,
        "source_document": source_document,
    }
    logger.info(
        f"Token usage {operation}: {format_token_usage(usage)} ({model})",
        extra={k: v for k, v in entry.items() if k != "timestamp"},
    )
    return entry


def format_token_usage(usage: TokenUsage) -> str:
    return (
        f"Input: {usage.input_tokens:,} | "
        f"Output: {usage.output_tokens:,} | "
        f"Total: {usage.total_tokens:,}"
    )


def estimate_cost(
    usage: TokenUsage,
    input_rate: float = DEFAULT_INPUT_RATE,
    output_rate: float = DEFAULT_OUTPUT_RATE,
) -> float:
    """Estimated USD cost given per-million-token rates."""
    return (
        usage.input_tokens / 1_000_000 * input_rate
        + usage.output_tokens / 1_000_000 * output_rate
    )
