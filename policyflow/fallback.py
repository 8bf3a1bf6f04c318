"""
Fallback Generator — LLM extraction when deterministic coverage is too low

Submits the raw document with a fixed extraction instruction and
expects a JSON object with summary, validationRules and
structuredContent. Response parsing tolerates a fenced code block.
Anything unparsable degrades to a minimal result that keeps the raw
generator text as content. Parsing never raises.

Transport failures (timeout, network, circuit breaker) are NOT handled
here. They propagate to the orchestrator, which owns the decision to
degrade or surface them.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Optional

from policyflow.llm import Completion, LLMProvider, strip_code_fence
from policyflow.logging import get_logger

logger = get_logger("fallback")

DEGRADED_SUMMARY = "Policy document analyzed"

EXTRACTION_SYSTEM_PROMPT = """You are a Policy Analysis Expert. Your task is to extract and structure key information from policy documents.

Extract the following from the provided document:
1. A concise summary (2-3 sentences)
2. All specific validation rules (e.g., "Document must be issued within 30 days")
3. The complete policy content in a clean, structured format

Output your response in the following JSON format:
{
  "summary": "Brief summary of the policy",
  "validationRules": ["Rule 1", "Rule 2", ...],
  "structuredContent": "The complete policy content, cleaned and formatted"
}

Important:
- Extract rules VERBATIM from the document
- Do not invent or assume rules not present in the document
- Preserve the original meaning and specificity of each rule
- Output ONLY valid JSON, no additional text"""

USER_PROMPT_TEMPLATE = (
    "Please analyze and extract key information from the following policy document:\n\n{text}"
)


@dataclass(frozen=True)
class ParsedExtraction:
    summary: str
    validation_rules: list[str] = field(default_factory=list)
    content: str = ""
    degraded: bool = False

    @classmethod
    def degraded_from(cls, raw_text: str) -> "ParsedExtraction":
        return cls(summary=DEGRADED_SUMMARY, validation_rules=[], content=raw_text, degraded=True)


def build_user_prompt(text: str) -> str:
    return USER_PROMPT_TEMPLATE.format(text=text)


def parse_extraction_response(raw: str) -> ParsedExtraction:
    """
    Parse the generator's response into a (summary, rules, content) triple.

    Accepts bare JSON or JSON inside a ```json / ``` fence. Wrong types
    for individual fields are coerced where the intent is obvious
    (rules as a single string, non-string rules). A response that is not
    a JSON object degrades to ParsedExtraction.degraded_from(raw).
    """
    raw = raw or ""
    try:
        data = json.loads(strip_code_fence(raw))
    except (ValueError, RecursionError):
        logger.warning("Fallback response is not valid JSON, keeping raw content")
        return ParsedExtraction.degraded_from(raw)

    if not isinstance(data, dict):
        logger.warning("Fallback response is JSON but not an object, keeping raw content")
        return ParsedExtraction.degraded_from(raw)

    rules = data.get("validationRules", [])
    if isinstance(rules, str):
        rules = [rules]
    elif not isinstance(rules, list):
        rules = []

    content = data.get("structuredContent")
    if not isinstance(content, str) or not content:
        content = raw

    summary = data.get("summary")
    if not isinstance(summary, str) or not summary:
        summary = DEGRADED_SUMMARY

    return ParsedExtraction(
        summary=summary,
        validation_rules=[str(r) for r in rules if r is not None],
        content=content,
    )


async def generate_fallback(
    llm: LLMProvider,
    text: str,
    timeout: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> Completion:
    """
    Ask the generator for a structured extraction.

    Returns the raw completion. Parsing is left to the caller so that a
    bad response is never confused with a failed call.

    Raises:
        asyncio.TimeoutError, CircuitOpenError, or any provider error.
    """
    return await asyncio.wait_for(
        llm.generate(
            prompt=build_user_prompt(text),
            system_instruction=EXTRACTION_SYSTEM_PROMPT,
            temperature=0.2,
            json_mode=True,
            max_tokens=max_tokens,
        ),
        timeout=timeout,
    )
