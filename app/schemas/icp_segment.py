"""
ICP Segment Schemas
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Optional, Literal, Any, Union

HEX_COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"


class SegmentRule(BaseModel):
    """Single field condition."""
    model_config = ConfigDict(extra="forbid")

    field: str = Field(..., description="Prospect field, e.g. 'icp_score'")
    operator: str = Field(..., description="equals, not_equals, greater_than_or_equal, ...")
    value: Any = Field(None, description="Omitted for is_null / is_not_null")


class SegmentRuleSet(BaseModel):
    """Rule group with AND/OR logic."""
    model_config = ConfigDict(extra="forbid")

    logic: Literal["and", "or"] = "and"
    rules: list[Union[SegmentRule, "SegmentRuleSet"]] = Field(default_factory=list)


# Enable self-referencing
SegmentRuleSet.model_rebuild()


class SegmentBase(BaseModel):
    """Base segment schema."""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    offer_template_id: Optional[int] = None


class SegmentCreate(SegmentBase):
    """
    Create a segment.

    ``rules`` is taken as raw JSON so the rule parser can report problems per
    rule, and so flat criteria from older clients are still accepted.
    """
    rules: dict[str, Any] = Field(default_factory=dict)


class SegmentUpdate(BaseModel):
    """Partial update; only fields that are sent are changed."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    rules: Optional[dict[str, Any]] = None
    offer_template_id: Optional[int] = None

    @field_validator("name", "color")
    @classmethod
    def not_null(cls, v: Optional[str]) -> str:
        """Omit a field to keep it; null is not a valid name or color."""
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class SegmentResponse(BaseModel):
    """Segment with membership counts."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    color: str
    rules: SegmentRuleSet
    rules_summary: list[str] = Field(default_factory=list)
    offer_template_id: Optional[int] = None
    offer_template_name: Optional[str] = None
    owner_id: int
    organization_id: Optional[int] = None
    assigned_count: int = 0
    matching_count: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SegmentListResponse(BaseModel):
    items: list[SegmentResponse]
    total: int


class ApplyRequest(BaseModel):
    """Apply options. Additive unless ``clear_others`` is set."""
    clear_others: bool = False


class ApplyResponse(BaseModel):
    segment_id: int
    matched_count: int
    reassigned_count: int
    unassigned_count: int
    clear_others: bool
    execution_time_ms: float


class PreviewRequest(BaseModel):
    rules: dict[str, Any] = Field(default_factory=dict)


class PreviewResponse(BaseModel):
    matching_count: int
    rules_summary: list[str]


class SegmentDeleteResponse(BaseModel):
    id: int
    unassigned_count: int


class FieldOperatorInfo(BaseModel):
    name: str
    display_name: str
    data_type: str
    description: str
    operators: list[str]


class FieldListResponse(BaseModel):
    fields: list[FieldOperatorInfo]
