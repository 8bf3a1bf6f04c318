"""
Extraction Orchestrator Tests — Coverage Gate and Fallback

Tests the extractor and fallback modules:
  1. Coverage gate (≥ 2 matches → preprocessor, zero tokens, no LLM call)
  2. Low coverage → LLM path with parsed response and token usage
  3. Degradation (garbage response, no provider, timeout, provider error)
  4. Surfacing errors with raise_on_fallback_error
  5. Response parsing (fences, coercions)
"""

from __future__ import annotations

import asyncio
import json

import pytest

from policyflow.extractor import (
    ExtractionError,
    ExtractionState,
    extract_policy,
    from_preprocessor,
)
from policyflow.fallback import (
    DEGRADED_SUMMARY,
    EXTRACTION_SYSTEM_PROMPT,
    parse_extraction_response,
)
from policyflow.llm import Completion, LLMProvider, strip_code_fence
from policyflow.preprocessor import Preprocessor, preprocessor
from policyflow.registry import load_registry
from policyflow.usage import TokenUsage


COVERED = "Certificates must be issued within 30 days. A notarized copy is required."
UNCOVERED = "Applicants should bring their documents to the front desk on time."

GOOD_RESPONSE = json.dumps({
    "summary": "Visitors must register at reception.",
    "validationRules": ["Register at reception", "Wear a badge"],
    "structuredContent": "1. Register\n2. Badge",
})


# ============================================================
# MOCK LLMs
# ============================================================

class MockLLM(LLMProvider):
    """Mock LLM that returns a pre-configured response."""

    name = "mock"

    def __init__(self, response: str = GOOD_RESPONSE, usage: TokenUsage | None = None):
        self._response = response
        self._usage = usage or TokenUsage.from_counts(120, 40)
        self.calls = []

    async def generate(self, prompt, system_instruction=None, temperature=0.7,
                       json_mode=False, max_tokens=None):
        self.calls.append({
            "prompt": prompt,
            "system_instruction": system_instruction,
            "json_mode": json_mode,
            "max_tokens": max_tokens,
        })
        return Completion(text=self._response, usage=self._usage, model="mock-model")


class FailingLLM(LLMProvider):
    name = "failing"

    async def generate(self, prompt, **kwargs):
        raise ConnectionError("network unreachable")


class SlowLLM(LLMProvider):
    name = "slow"

    async def generate(self, prompt, **kwargs):
        await asyncio.sleep(5)
        return Completion(text=GOOD_RESPONSE)


class BrokenPreprocessor(Preprocessor):
    def preprocess(self, text):
        raise RuntimeError("registry corrupted")


# ============================================================
# COVERAGE GATE
# ============================================================

class TestCoverageGate:

    @pytest.mark.asyncio
    async def test_covered_document_uses_preprocessor(self):
        llm = MockLLM()
        result = await extract_policy(COVERED, source_document="kyc.txt", llm=llm)
        assert result.method == "preprocessor"
        assert result.token_usage.is_zero
        assert result.fallback_reason is None
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_preprocessor_normalization(self):
        result = await extract_policy(COVERED, llm=MockLLM())
        output = result.preprocessor_output
        assert result.summary == output.description
        assert result.validation_rules == output.logic_flow[:-1]
        assert json.loads(result.content) == output.to_dict()

    @pytest.mark.asyncio
    async def test_state_trace_accepted(self):
        result = await extract_policy(COVERED)
        assert result.states == [
            ExtractionState.START,
            ExtractionState.MATCHED,
            ExtractionState.ACCEPTED,
            ExtractionState.DONE,
        ]

    @pytest.mark.asyncio
    async def test_single_match_falls_back(self):
        llm = MockLLM()
        result = await extract_policy("A notarized letter is enough here.", llm=llm)
        assert result.method == "llm"
        assert result.fallback_reason == "low_coverage"
        assert result.preprocessor_output.coverage == 1
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_threshold_is_configurable(self):
        result = await extract_policy("A notarized letter is enough here.", min_coverage=1)
        assert result.method == "preprocessor"


# ============================================================
# LLM PATH
# ============================================================

class TestLLMPath:

    @pytest.mark.asyncio
    async def test_parsed_response(self):
        result = await extract_policy(UNCOVERED, source_document="visitor.md", llm=MockLLM())
        assert result.method == "llm"
        assert result.summary == "Visitors must register at reception."
        assert result.validation_rules == ["Register at reception", "Wear a badge"]
        assert result.content == "1. Register\n2. Badge"
        assert result.source_document == "visitor.md"
        assert result.token_usage.total_tokens == 160

    @pytest.mark.asyncio
    async def test_prompt_carries_document(self):
        llm = MockLLM()
        await extract_policy(UNCOVERED, llm=llm, max_tokens=512)
        call = llm.calls[0]
        assert UNCOVERED in call["prompt"]
        assert call["system_instruction"] == EXTRACTION_SYSTEM_PROMPT
        assert call["json_mode"] is True
        assert call["max_tokens"] == 512

    @pytest.mark.asyncio
    async def test_fenced_response(self):
        llm = MockLLM(response=f"```json\n{GOOD_RESPONSE}\n```")
        result = await extract_policy(UNCOVERED, llm=llm)
        assert result.method == "llm"
        assert result.validation_rules == ["Register at reception", "Wear a badge"]

    @pytest.mark.asyncio
    async def test_state_trace_fallback(self):
        result = await extract_policy(UNCOVERED, llm=MockLLM())
        assert result.states == [
            ExtractionState.START,
            ExtractionState.MATCHED,
            ExtractionState.FALLBACK_TRIGGERED,
            ExtractionState.DONE,
        ]


# ============================================================
# DEGRADATION
# ============================================================

class TestDegradation:
    """The orchestrator never raises for text input by default."""

    @pytest.mark.asyncio
    async def test_garbage_response(self):
        garbage = "Sure! Here is what I found: the policy is about visitors."
        result = await extract_policy(UNCOVERED, llm=MockLLM(response=garbage))
        assert result.method == "fallback"
        assert result.content == garbage
        assert result.validation_rules == []
        assert result.summary == DEGRADED_SUMMARY
        assert result.token_usage.total_tokens == 160

    @pytest.mark.asyncio
    async def test_no_provider(self):
        result = await extract_policy(UNCOVERED, llm=None)
        assert result.method == "fallback"
        assert result.content == UNCOVERED
        assert result.validation_rules == []
        assert result.token_usage.is_zero

    @pytest.mark.asyncio
    async def test_provider_error(self):
        result = await extract_policy(UNCOVERED, llm=FailingLLM())
        assert result.method == "fallback"
        assert result.content == UNCOVERED
        assert result.summary == DEGRADED_SUMMARY

    @pytest.mark.asyncio
    async def test_timeout(self):
        result = await extract_policy(UNCOVERED, llm=SlowLLM(), timeout=0.01)
        assert result.method == "fallback"
        assert result.content == UNCOVERED

    @pytest.mark.asyncio
    async def test_preprocessor_error_triggers_fallback(self):
        engine = BrokenPreprocessor(load_registry())
        result = await extract_policy(COVERED, llm=MockLLM(), preprocessor=engine)
        assert result.method == "llm"
        assert result.fallback_reason == "preprocessor_error"
        assert result.preprocessor_output is None

    @pytest.mark.asyncio
    async def test_empty_text(self):
        result = await extract_policy("", llm=None)
        assert result.method == "fallback"
        assert result.content == ""

    @pytest.mark.asyncio
    async def test_deeply_nested_response(self):
        nested = "[" * 100_000
        llm = MockLLM(response=nested, usage=TokenUsage.from_counts(10, 5))
        result = await extract_policy(UNCOVERED, llm=llm)
        assert result.method == "fallback"
        assert result.content == nested
        assert result.validation_rules == []
        assert result.token_usage.total_tokens == 15

    @pytest.mark.asyncio
    async def test_null_response_text(self):
        result = await extract_policy(UNCOVERED, llm=MockLLM(response=None))
        assert result.method == "fallback"
        assert result.content == ""
        assert result.summary == DEGRADED_SUMMARY
        assert result.token_usage.total_tokens == 160


class TestSurfacing:
    """raise_on_fallback_error turns degradation into ExtractionError."""

    @pytest.mark.asyncio
    async def test_provider_error_raises(self):
        with pytest.raises(ExtractionError, match="network unreachable"):
            await extract_policy(UNCOVERED, llm=FailingLLM(), raise_on_fallback_error=True)

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        with pytest.raises(ExtractionError, match="timed out"):
            await extract_policy(
                UNCOVERED, llm=SlowLLM(), timeout=0.01, raise_on_fallback_error=True,
            )

    @pytest.mark.asyncio
    async def test_no_provider_raises(self):
        with pytest.raises(ExtractionError):
            await extract_policy(UNCOVERED, llm=None, raise_on_fallback_error=True)

    @pytest.mark.asyncio
    async def test_covered_document_never_raises(self):
        result = await extract_policy(COVERED, llm=FailingLLM(), raise_on_fallback_error=True)
        assert result.method == "preprocessor"

    @pytest.mark.asyncio
    async def test_unparseable_response_never_raises(self):
        llm = MockLLM(response="[" * 100_000)
        result = await extract_policy(UNCOVERED, llm=llm, raise_on_fallback_error=True)
        assert result.method == "fallback"
        assert result.token_usage.total_tokens == 160


# ============================================================
# RESPONSE PARSING
# ============================================================

class TestParseResponse:

    def test_strip_code_fence(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fence('{"a": 1}') == '{"a": 1}'

    def test_rules_as_string(self):
        parsed = parse_extraction_response(json.dumps({
            "summary": "s", "validationRules": "Only one rule", "structuredContent": "c",
        }))
        assert parsed.validation_rules == ["Only one rule"]

    def test_missing_content_keeps_raw(self):
        raw = json.dumps({"summary": "s", "validationRules": []})
        parsed = parse_extraction_response(raw)
        assert parsed.content == raw
        assert parsed.degraded is False

    def test_missing_summary(self):
        parsed = parse_extraction_response(json.dumps({"structuredContent": "c"}))
        assert parsed.summary == DEGRADED_SUMMARY

    def test_json_array_degrades(self):
        parsed = parse_extraction_response('["not", "an", "object"]')
        assert parsed.degraded is True
        assert parsed.validation_rules == []

    def test_empty_string_degrades(self):
        assert parse_extraction_response("").degraded is True

    def test_deeply_nested_degrades(self):
        parsed = parse_extraction_response("[" * 100_000)
        assert parsed.degraded is True
        assert parsed.summary == DEGRADED_SUMMARY

    def test_none_degrades(self):
        assert strip_code_fence(None) == ""
        assert parse_extraction_response(None).degraded is True


# ============================================================
# RESULT SHAPE
# ============================================================

class TestResultShape:

    def test_to_dict(self):
        result = from_preprocessor(preprocessor.preprocess(COVERED), "kyc.txt")
        data = result.to_dict()
        assert data["method"] == "preprocessor"
        assert data["token_usage"] == {"inputTokens": 0, "outputTokens": 0, "totalTokens": 0}
        assert data["preprocessor_output"]["metadata"]["registry_version"] == "1.0.0"

    def test_prompt_block(self):
        result = from_preprocessor(preprocessor.preprocess(COVERED), "kyc.txt")
        block = result.to_prompt_block()
        assert block.startswith("## Policy Summary\nDocument Validity verification for")
        assert "## Validation Rules\n- 1. CALL check_issue_date" in block
        assert "## Policy Content\n{" in block

    def test_prompt_block_without_rules(self):
        result = from_preprocessor(preprocessor.preprocess(""), "empty.txt")
        assert "## Validation Rules\n(none)" in result.to_prompt_block()
