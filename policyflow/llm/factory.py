"""
LLM Provider — factory.

Resolves the configured fallback generator. A provider without
credentials is reported as None, so callers degrade to the minimal
fallback result instead of failing one network call per document.
"""

from typing import Optional

from policyflow.config import settings
from policyflow.llm import LLMProvider
from policyflow.logging import get_logger

logger = get_logger("llm.factory")


def get_provider(
    provider_name: Optional[str] = None,
    api_key: Optional[str] = None,
) -> Optional[LLMProvider]:
    """
    Return the configured LLM provider, or None when it has no API key.

    Args:
        provider_name: Provider to build. None = settings.LLM_PROVIDER.
        api_key: Explicit key. None = the key from settings.

    Raises:
        ValueError: for an unknown provider name.
    """
    name = provider_name or settings.LLM_PROVIDER
    if name == "gemini":
        key = settings.GEMINI_API_KEY if api_key is None else api_key
        if not key:
            logger.warning(
                "GEMINI_API_KEY not set — fallback generation disabled",
                extra={"model": settings.GEMINI_MODEL},
            )
            return None
        from policyflow.llm.gemini import GeminiProvider
        return GeminiProvider(api_key=key)
    raise ValueError(f"Unknown LLM provider: {name}")
