"""
python -m policyflow — preprocess or extract a policy document from the shell.

Usage:
    python -m policyflow policy.txt                        # Deterministic output (JSON)
    python -m policyflow policy.txt --registry my.json     # Custom pattern registry
    python -m policyflow policy.txt --extract              # Full extraction with fallback
    python -m policyflow policy.txt --extract --prompt     # Markdown hand-off block
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from policyflow.config import settings
from policyflow.extractor import ExtractionError, extract_policy
from policyflow.llm.factory import get_provider
from policyflow.logging import setup_logging
from policyflow.preprocessor import Preprocessor
from policyflow.registry import load_registry


def main(argv=None):
    parser = argparse.ArgumentParser(description="policyflow document preprocessor")
    parser.add_argument("file", help="Path to a UTF-8 text document, or - for stdin")
    parser.add_argument(
        "--registry",
        default=settings.REGISTRY_PATH or None,
        help="Pattern registry JSON (default: packaged registry)",
    )
    parser.add_argument(
        "--extract",
        action="store_true",
        help="Run the full extraction (LLM fallback when coverage is low)",
    )
    parser.add_argument(
        "--source",
        default=None,
        help="Source document label (default: the file name)",
    )
    parser.add_argument(
        "--prompt",
        action="store_true",
        help="With --extract, print the markdown hand-off block instead of JSON",
    )
    args = parser.parse_args(argv)

    setup_logging(stream=sys.stderr)

    if args.file == "-":
        text = sys.stdin.read()
        source = args.source or "stdin"
    else:
        path = Path(args.file)
        if not path.is_file():
            print(f"Error: File not found: {path}", file=sys.stderr)
            return 1
        text = path.read_text(encoding="utf-8")
        source = args.source or path.name

    engine = Preprocessor(load_registry(args.registry))

    if not args.extract:
        outcome = engine.run(text)
        if not outcome.ok:
            print(f"Error: {outcome.error}", file=sys.stderr)
            return 1
        print(json.dumps(outcome.output.to_dict(), ensure_ascii=False, indent=2))
        return 0

    llm = get_provider(settings.LLM_PROVIDER)

    try:
        result = asyncio.run(extract_policy(
            text,
            source_document=source,
            llm=llm,
            preprocessor=engine,
            min_coverage=settings.MIN_COVERAGE,
            timeout=settings.FALLBACK_TIMEOUT,
            max_tokens=settings.FALLBACK_MAX_TOKENS,
            raise_on_fallback_error=settings.RAISE_ON_FALLBACK_ERROR,
        ))
    except ExtractionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.prompt:
        print(result.to_prompt_block())
    else:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
