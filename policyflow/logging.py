"""
Structured Logging — JSON Output for Production

Configures Python logging to emit structured JSON logs.
Each log entry includes timestamp, level, module, and
any additional context fields.

Usage:
    from policyflow.logging import get_logger
    logger = get_logger("extractor")
    logger.info("Extraction complete", extra={"method": "preprocessor", "matched_count": 4})
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone


LOG_LEVEL = os.getenv("POLICYFLOW_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("POLICYFLOW_LOG_FORMAT", "json")  # "json" or "text"

# Extra record attributes copied into JSON entries when present
EXTRA_FIELDS = (
    "registry_version", "source_document", "method", "matched_count",
    "fallback_reason", "state", "operation", "model", "input_tokens",
    "output_tokens", "total_tokens", "error", "error_type", "duration_ms",
    "status_code", "path",
)


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val

        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable format for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging(stream=None):
    """Configure the policyflow logger. Call once at app startup."""
    root = logging.getLogger("policyflow")
    root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    if LOG_FORMAT == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under the policyflow namespace."""
    return logging.getLogger(f"policyflow.{name}")
