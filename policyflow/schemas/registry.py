"""
Registry Schemas — Serialized Pattern Registry

Pydantic models for the JSON form of a pattern registry. They validate
shape and types only. registry.PatternRegistry.from_dict() turns a
validated document into the frozen runtime dataclasses.
"""

from __future__ import annotations

from typing import Annotated, List

from pydantic import AliasChoices, BaseModel, Field, StrictInt, StrictStr, model_validator

DEFAULT_ROLE = "Document Verification Specialist"
DEFAULT_RISK_LEVEL = "MEDIUM"
EMPTY_REGISTRY_VERSION = "0.0.0"

Keyword = Annotated[StrictStr, Field(min_length=1)]


class RegistryMetadataModel(BaseModel):
    version: StrictStr = EMPTY_REGISTRY_VERSION
    name: StrictStr = ""
    description: StrictStr = ""


class PatternDefinitionModel(BaseModel):
    pattern_id: StrictStr = Field(..., min_length=1)
    category: StrictStr
    keywords: List[Keyword] = Field(default_factory=list)
    priority: StrictInt
    criticality: StrictStr = "medium"
    tool_id: StrictStr = Field("", validation_alias=AliasChoices("maps_to_tool", "tool_id"))
    source_type: StrictStr = ""
    is_prerequisite: bool = False


class RoleEntryModel(BaseModel):
    priority: StrictInt
    keywords: List[Keyword] = Field(default_factory=list)
    role: StrictStr


class RiskEntryModel(BaseModel):
    priority: StrictInt
    keywords: List[Keyword] = Field(default_factory=list)
    level: StrictStr


class RoleMappingModel(BaseModel):
    default_role: StrictStr = DEFAULT_ROLE
    priority_order: List[RoleEntryModel] = Field(default_factory=list)


class RiskMappingModel(BaseModel):
    default_level: StrictStr = DEFAULT_RISK_LEVEL
    priority_order: List[RiskEntryModel] = Field(default_factory=list)


class ToolDefinitionModel(BaseModel):
    id: StrictStr
    name: StrictStr
    params: List[StrictStr] = Field(default_factory=list)


class DecisionRulesModel(BaseModel):
    critical_patterns: List[StrictStr] = Field(default_factory=list)
    review_patterns: List[StrictStr] = Field(default_factory=list)


class RegistryDocument(BaseModel):
    """Root of a serialized registry file."""
    registry_metadata: RegistryMetadataModel = Field(default_factory=RegistryMetadataModel)
    pattern_definitions: List[PatternDefinitionModel] = Field(default_factory=list)
    role_mapping: RoleMappingModel = Field(default_factory=RoleMappingModel)
    risk_level_mapping: RiskMappingModel = Field(default_factory=RiskMappingModel)
    tool_definitions: List[ToolDefinitionModel] = Field(default_factory=list)
    decision_rules: DecisionRulesModel = Field(default_factory=DecisionRulesModel)

    @model_validator(mode="after")
    def _unique_pattern_ids(self) -> "RegistryDocument":
        seen: set[str] = set()
        for p in self.pattern_definitions:
            if p.pattern_id in seen:
                raise ValueError(f"Duplicate pattern_id: {p.pattern_id}")
            seen.add(p.pattern_id)
        return self
