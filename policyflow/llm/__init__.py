"""
LLM Provider — Abstract Interface

All generative calls go through this interface. Swap providers
by changing POLICYFLOW_LLM_PROVIDER in env.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from policyflow.usage import TokenUsage


@dataclass(frozen=True)
class Completion:
    """Generated text plus the provider's token accounting."""
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage.zero)
    model: str = ""


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json / ``` fence if the model added one."""
    cleaned = (text or "").strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json"):]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


class LLMProvider(ABC):
    """Abstract base for LLM providers."""

    name: str = "abstract"

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.7,
        json_mode: bool = False,
        max_tokens: Optional[int] = None,
    ) -> Completion:
        """Generate a text response from the LLM."""
        ...
