"""
policyflow API — Main Application

POST /extract     — Extract policy facts (deterministic first, LLM fallback)
POST /preprocess  — Deterministic preprocessing only (zero API cost)
GET  /registry    — Loaded pattern registry
GET  /health      — Health check
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from policyflow.config import settings
from policyflow.extractor import ExtractionError, extract_with_settings
from policyflow.llm.factory import get_provider
from policyflow.logging import setup_logging, get_logger
from policyflow.preprocessor import preprocessor
from policyflow.schemas.extraction import (
    ExtractRequest,
    ExtractionResponse,
    PreprocessResponse,
    RegistryResponse,
    HealthResponse,
)

logger = get_logger("api")


# ============================================================
# STARTUP / SHUTDOWN
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire up logging and report the loaded registry."""
    setup_logging()
    if preprocessor.registry.is_empty:
        logger.warning(
            "Pattern registry is empty — every document will go to the fallback generator",
            extra={"registry_version": preprocessor.registry_version},
        )
    logger.info("policyflow API starting",
                extra={"registry_version": preprocessor.registry_version})
    yield
    logger.info("policyflow API shutting down")


app = FastAPI(
    title="policyflow API",
    description="Deterministic policy preprocessing with a generative fallback",
    version=settings.VERSION,
    lifespan=lifespan,
)

# CORS — set POLICYFLOW_CORS_ORIGINS in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",")],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=False,
)


# ============================================================
# GLOBAL ERROR HANDLER
# ============================================================

@app.exception_handler(Exception)
async def global_error_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions — return structured error, don't leak internals."""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra={"error": str(exc), "path": request.url.path},
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error. The document could not be processed."},
    )


# Lazy LLM provider. None after resolution = no credentials, fallback degrades
_llm = None
_llm_resolved = False


def _get_llm():
    global _llm, _llm_resolved
    if not _llm_resolved:
        _llm = get_provider(settings.LLM_PROVIDER)
        _llm_resolved = True
    return _llm


# ============================================================
# ROUTES
# ============================================================

@app.post("/extract", response_model=ExtractionResponse)
async def extract(request: ExtractRequest):
    """Extract policy facts. Falls back to the LLM when coverage is low."""
    try:
        result = await extract_with_settings(
            request.text,
            source_document=request.source_document,
            llm=_get_llm(),
        )
    except ExtractionError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return result.to_dict()


@app.post("/preprocess", response_model=PreprocessResponse,
          response_model_exclude_none=True)
async def preprocess(request: ExtractRequest):
    """Run the deterministic pipeline only. Never calls an LLM."""
    outcome = preprocessor.run(request.text)
    if not outcome.ok:
        raise HTTPException(status_code=500, detail=f"Preprocessing failed: {outcome.error}")
    body = outcome.output.to_dict()
    body["coverage"] = outcome.output.coverage
    return body


@app.get("/registry", response_model=RegistryResponse)
async def registry():
    """Return the loaded pattern registry."""
    summary = preprocessor.registry.summary()
    return {
        "version": summary["version"],
        "name": summary["name"],
        "total_patterns": summary["patterns"],
        "critical_patterns": summary["critical_patterns"],
        "review_patterns": summary["review_patterns"],
        "patterns": preprocessor.registry.describe_patterns(),
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check."""
    return {
        "status": "operational",
        "version": settings.VERSION,
        "registry_version": preprocessor.registry_version,
        "registry_patterns": len(preprocessor.registry.patterns),
        "llm_provider": settings.LLM_PROVIDER,
        "min_coverage": settings.MIN_COVERAGE,
    }


# --- Version Header Middleware ---
@app.middleware("http")
async def add_version_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Policyflow-Version"] = settings.VERSION
    response.headers["X-Registry-Version"] = preprocessor.registry_version
    return response


# --- Request Logging Middleware ---
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with path, status, duration."""
    path = request.url.path
    if path == "/health":
        return await call_next(request)

    start = time.time()
    response = await call_next(request)
    duration_ms = round((time.time() - start) * 1000, 1)

    logger.info(
        f"{request.method} {path} → {response.status_code} ({duration_ms}ms)",
        extra={
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=settings.HOST, port=settings.PORT)
