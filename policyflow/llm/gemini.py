"""
Gemini Provider — Google Gemini API implementation of the fallback generator.

Uses the google.genai SDK. Client is lazily initialized —
the app loads without an API key and only fails on an actual call,
which the extraction orchestrator absorbs into a degraded result.

Features:
- Model fallback chain: primary model → gemini-2.5-flash on failure
- Circuit breaker: after consecutive failures, fail fast for 60s
- Exponential backoff retry on transient errors
- Token usage read from the response's usage_metadata
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from google import genai
from google.genai import types

from policyflow.config import settings
from policyflow.llm import Completion, LLMProvider
from policyflow.logging import get_logger
from policyflow.usage import TokenUsage

logger = get_logger("llm.gemini")

FALLBACK_MODEL = "gemini-2.5-flash"

# Circuit breaker settings
_CB_FAILURE_THRESHOLD = 3   # Open after this many consecutive failures
_CB_RECOVERY_TIMEOUT = 60   # Seconds before trying again (half-open)

_TRANSIENT_MARKERS = (
    "429", "503", "500", "rate", "quota", "timeout",
    "connection", "unavailable", "overloaded",
)


class CircuitBreaker:
    """Simple circuit breaker: closed → open → half-open → closed.

    When open, generate() raises CircuitOpenError immediately so the
    orchestrator can degrade without waiting on a dead provider.
    """

    def __init__(
        self,
        failure_threshold: int = _CB_FAILURE_THRESHOLD,
        recovery_timeout: float = _CB_RECOVERY_TIMEOUT,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._failures = 0
        self._last_failure_time: float = 0
        self._state = "closed"  # closed | open | half-open

    @property
    def state(self) -> str:
        if self._state == "open":
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = "half-open"
        return self._state

    def record_success(self) -> None:
        self._failures = 0
        self._state = "closed"

    def record_failure(self) -> None:
        self._failures += 1
        self._last_failure_time = time.monotonic()
        if self._failures >= self.failure_threshold:
            self._state = "open"
            logger.warning(
                "Circuit breaker OPEN — %d consecutive LLM failures. "
                "Fallback generation disabled for %ds.",
                self._failures, self.recovery_timeout,
            )

    @property
    def is_open(self) -> bool:
        return self.state == "open"


class CircuitOpenError(Exception):
    """Raised when the circuit breaker is open."""


def is_transient(error: Exception) -> bool:
    error_str = str(error).lower()
    return any(k in error_str for k in _TRANSIENT_MARKERS)


def usage_from_response(response) -> TokenUsage:
    meta = getattr(response, "usage_metadata", None)
    if meta is None:
        return TokenUsage.zero()
    return TokenUsage.from_counts(
        getattr(meta, "prompt_token_count", 0),
        getattr(meta, "candidates_token_count", 0),
    )


class GeminiProvider(LLMProvider):
    """Google Gemini LLM provider with fallback and circuit breaker."""

    name = "gemini"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self._api_key = api_key or settings.GEMINI_API_KEY
        self._model = model or settings.GEMINI_MODEL
        self._client: Optional[genai.Client] = None
        self.circuit_breaker = CircuitBreaker()

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise RuntimeError(
                    "GEMINI_API_KEY not set. Get one from "
                    "https://aistudio.google.com/apikey"
                )
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def _call_model(
        self,
        model: str,
        prompt: str,
        config: types.GenerateContentConfig,
        max_retries: int = 3,
    ) -> Completion:
        """Call a specific model with retry logic."""
        client = self._get_client()
        last_error = None
        for attempt in range(max_retries):
            try:
                response = await client.aio.models.generate_content(
                    model=model,
                    contents=prompt,
                    config=config,
                )
                if not response.text:
                    raise ValueError("No text content in response")
                return Completion(
                    text=response.text,
                    usage=usage_from_response(response),
                    model=model,
                )
            except Exception as e:
                last_error = e
                if is_transient(e) and attempt < max_retries - 1:
                    await asyncio.sleep(2 ** attempt)
                    continue
                raise

        raise last_error  # type: ignore[misc]

    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.7,
        json_mode: bool = False,
        max_tokens: Optional[int] = None,
    ) -> Completion:
        # Fast-fail when the provider is known to be down
        if self.circuit_breaker.is_open:
            raise CircuitOpenError(
                "LLM circuit breaker is open — too many consecutive failures."
            )

        config = types.GenerateContentConfig(
            temperature=temperature,
            system_instruction=system_instruction,
            max_output_tokens=max_tokens,
        )
        if json_mode:
            config.response_mime_type = "application/json"

        try:
            result = await self._call_model(self._model, prompt, config, max_retries=2)
            self.circuit_breaker.record_success()
            return result
        except Exception as primary_err:
            if self._model == FALLBACK_MODEL:
                self.circuit_breaker.record_failure()
                raise
            logger.warning(
                "Primary model %s failed (%s), falling back to %s",
                self._model, primary_err, FALLBACK_MODEL,
                extra={"model": self._model, "error": str(primary_err)},
            )
            try:
                result = await self._call_model(FALLBACK_MODEL, prompt, config, max_retries=1)
            except Exception as fallback_err:
                logger.error(
                    "Fallback model %s also failed: %s", FALLBACK_MODEL, fallback_err,
                    extra={"model": FALLBACK_MODEL, "error": str(fallback_err)},
                )
                self.circuit_breaker.record_failure()
                raise fallback_err from primary_err
            self.circuit_breaker.record_success()
            return result
