"""
policyflow Configuration

Central settings loaded from environment variables.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    # --- Versioning ---
    VERSION: str = "1.0.0"
    API_VERSION: str = "1"

    # --- Pattern Registry ---
    # Empty = the registry packaged with policyflow
    REGISTRY_PATH: str = os.getenv("POLICYFLOW_REGISTRY_PATH", "")

    # --- Coverage gate ---
    MIN_COVERAGE: int = int(os.getenv("POLICYFLOW_MIN_COVERAGE", "2"))

    # --- LLM Provider (fallback generator) ---
    LLM_PROVIDER: str = os.getenv("POLICYFLOW_LLM_PROVIDER", "gemini")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    FALLBACK_TIMEOUT: float = float(os.getenv("POLICYFLOW_FALLBACK_TIMEOUT", "120"))
    FALLBACK_MAX_TOKENS: int = int(os.getenv("POLICYFLOW_FALLBACK_MAX_TOKENS", "8192"))
    RAISE_ON_FALLBACK_ERROR: bool = _env_bool("POLICYFLOW_RAISE_ON_FALLBACK_ERROR")

    # --- Server ---
    HOST: str = os.getenv("POLICYFLOW_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("POLICYFLOW_PORT", "8000"))

    # --- CORS ---
    CORS_ORIGINS: str = os.getenv("POLICYFLOW_CORS_ORIGINS", "*")


settings = Settings()
