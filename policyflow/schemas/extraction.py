"""
API Schemas — Request and Response Models

Pydantic models for the policyflow API.
"""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field


# ============================================================
# EXTRACTION
# ============================================================

class ExtractRequest(BaseModel):
    """POST /extract and POST /preprocess request body."""
    text: str = Field(..., min_length=1, max_length=500_000,
                      description="Raw policy document text.")
    source_document: str = Field("document", min_length=1, max_length=512,
                                 description="Label carried into the result (file name, URL).")

    model_config = {"json_schema_extra": {"examples": [
        {
            "text": "Certificates must be issued within 30 days. A notarized copy is required.",
            "source_document": "kyc-policy.pdf",
        },
    ]}}


class TokenUsageResponse(BaseModel):
    inputTokens: int = 0
    outputTokens: int = 0
    totalTokens: int = 0


class ExtractionResponse(BaseModel):
    """POST /extract response body."""
    method: str
    content: str
    summary: str
    validation_rules: list[str]
    extracted_at: str
    source_document: str
    token_usage: TokenUsageResponse
    preprocessor_output: Optional[dict] = None
    fallback_reason: Optional[str] = None
    states: list[str] = []


# ============================================================
# PREPROCESSOR
# ============================================================

class MatchedPatternResponse(BaseModel):
    pattern_id: str
    category: str
    priority: int
    criticality: str
    tool_id: str
    matched_keyword: str
    match_position: int
    source_type: str
    is_prerequisite: bool


class UnmatchedPatternResponse(BaseModel):
    pattern_id: str
    category: str


class SelectionResponse(BaseModel):
    matched_via: str
    priority: int
    role: Optional[str] = None
    level: Optional[str] = None


class ChecklistItemResponse(BaseModel):
    data_point: str
    source: str
    tool: str


class MetadataResponse(BaseModel):
    registry_version: str
    timestamp: str
    content_fingerprint: str


class PreprocessResponse(BaseModel):
    """POST /preprocess response body."""
    metadata: MetadataResponse
    matched_patterns: list[MatchedPatternResponse]
    unmatched_patterns: list[UnmatchedPatternResponse]
    selected_role: SelectionResponse
    selected_risk_level: SelectionResponse
    extracted_principles: list[str]
    description: str
    checklist: list[ChecklistItemResponse]
    logic_flow: list[str]
    critical_failures: list[str]
    review_triggers: list[str]
    coverage: int


# ============================================================
# REGISTRY / HEALTH
# ============================================================

class RegistryResponse(BaseModel):
    """GET /registry response body."""
    version: str
    name: str
    total_patterns: int
    critical_patterns: list[str]
    review_patterns: list[str]
    patterns: list[dict]


class HealthResponse(BaseModel):
    status: str
    version: str
    registry_version: str
    registry_patterns: int
    llm_provider: str
    min_coverage: int
