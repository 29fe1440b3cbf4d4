"""Schemas for resume review, merge decisions, and apply runs."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

DiffType = Literal["new", "equivalent", "conflicting"]
DecisionType = Literal["accept", "reject", "override"]


class DiffItem(BaseModel):
    """Classification of one extracted candidate field against the profile."""

    field_name: str
    parsed_entity_id: str
    profile_entity_id: str | None = None
    profile_entity_type: str
    profile_entity_version: int | None = None
    diff_type: DiffType
    parsed_value: str | None = None
    profile_value: str | None = None
    confidence_score: float | None = None
    justification: str | None = None
    requires_review: bool = False


class ReviewSummary(BaseModel):
    """Counts of review items by diff type."""

    total: int = 0
    new: int = 0
    equivalent: int = 0
    conflicting: int = 0
    requires_review: int = 0


class ReviewItemsRead(BaseModel):
    """Review queue for one resume version."""

    resume_version_id: str
    items: list[DiffItem]
    summary: ReviewSummary
    has_pending_review: bool


class CandidateCreate(BaseModel):
    """One extracted field handed over by a resume extractor."""

    parsed_entity_id: str = Field(min_length=1)
    field_name: str = Field(min_length=1)
    raw_value: str | list[str]
    entity_type: str | None = None
    confidence_score: float | None = Field(default=None, ge=0.0, le=1.0)
    matched_entity_id: str | None = None


class CandidateIngestRequest(BaseModel):
    """Batch of extracted fields for a resume version."""

    candidates: list[CandidateCreate] = Field(min_length=1)


class CandidateIngestResult(BaseModel):
    resume_version_id: str
    stored: int


class DecisionRecordRequest(BaseModel):
    """User decision about one review item."""

    parsed_entity_id: str = Field(min_length=1)
    field_name: str = Field(min_length=1)
    decision_type: DecisionType
    override_value: str | None = None
    justification: str | None = None

    @model_validator(mode="after")
    def validate_override_value(self) -> "DecisionRecordRequest":
        if self.decision_type == "override" and not (self.override_value or "").strip():
            raise ValueError("override_value is required for override decisions.")
        return self


class MergeDecisionRead(BaseModel):
    """Serialized merge decision ledger row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    resume_version_id: str
    parsed_entity_id: str
    field_name: str
    decision_type: str
    parsed_value: str | None
    override_value: str | None
    confirmed_value: str | None
    justification: str | None
    confidence_score: float | None
    profile_entity_id: str | None
    profile_entity_type: str
    profile_entity_version: int | None
    reviewed_value: str | None
    applied: bool
    applied_at: datetime | None
    applied_entity_id: str | None
    last_error: str | None
    created_at: datetime
    updated_at: datetime


class DecisionResult(BaseModel):
    """Outcome of one decision inside an apply run."""

    decision_id: int | None = None
    parsed_entity_id: str
    field_name: str
    entity_type: str
    status: Literal["applied", "rejected", "overridden", "failed"]
    logical_entity_id: str | None = None
    version: int | None = None
    applied_value: str | None = None
    error: str | None = None


class ApplySummary(BaseModel):
    """Counts from applying pending decisions."""

    applied: int = 0
    rejected: int = 0
    overridden: int = 0
    failed: int = 0
    results: list[DecisionResult] = Field(default_factory=list)


class BulkApplyGroupResult(BaseModel):
    parsed_entity_id: str
    entity_type: str
    status: Literal["created", "updated", "failed"]
    logical_entity_ids: list[str] = Field(default_factory=list)
    error: str | None = None


class BulkApplySummary(BaseModel):
    """Counts from accepting every candidate of a resume as new entities."""

    entities_created: int = 0
    entities_updated: int = 0
    errors: int = 0
    results: list[BulkApplyGroupResult] = Field(default_factory=list)
