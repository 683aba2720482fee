"""Contributor suggestion models."""

from typing import Any

from pydantic import BaseModel, Field

from familytree.models.enums import SuggestionStatus, SuggestionType


class SuggestionEvidence(BaseModel):
    id: str
    suggestion_id: str
    evidence_type: str = "note"
    url: str | None = None
    citation: str | None = None
    notes: str | None = None
    created_by_user_id: int
    created_at: str


class SuggestionComment(BaseModel):
    id: str
    suggestion_id: str
    author_user_id: int
    content: str
    is_from_reviewer: bool = False
    created_at: str


class Suggestion(BaseModel):
    id: str
    tree_id: str
    type: SuggestionType
    status: SuggestionStatus = SuggestionStatus.PENDING
    target_person_id: str | None = None
    secondary_person_id: str | None = None
    target_union_id: str | None = None
    relationship_id: str | None = None
    proposed_values: dict[str, Any] = Field(default_factory=dict)
    previous_values: dict[str, Any] | None = None
    submitter_notes: str | None = None
    reviewer_notes: str | None = None
    submitted_by_user_id: int
    reviewed_by_user_id: int | None = None
    reviewed_at: str | None = None
    applied_entity_type: str | None = None
    applied_entity_id: str | None = None
    created_at: str
    updated_at: str
    evidence: list[SuggestionEvidence] = Field(default_factory=list)
    comments: list[SuggestionComment] = Field(default_factory=list)


class SuggestionCreate(BaseModel):
    """
    A proposed change.

    ``proposed_values`` holds person fields for add/update suggestions and
    ``relationship_type`` / ``union_type`` for relationship suggestions.
    """

    tree_id: str
    type: SuggestionType
    target_person_id: str | None = None
    secondary_person_id: str | None = None
    target_union_id: str | None = None
    relationship_id: str | None = None
    proposed_values: dict[str, Any] = Field(default_factory=dict)
    submitter_notes: str | None = Field(default=None, max_length=2000)
    evidence: list["EvidenceCreate"] = Field(default_factory=list)


class EvidenceCreate(BaseModel):
    evidence_type: str = Field(default="note", max_length=50)
    url: str | None = Field(default=None, max_length=1000)
    citation: str | None = None
    notes: str | None = None


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=4000)


class ReviewRequest(BaseModel):
    reviewer_notes: str | None = Field(default=None, max_length=2000)


class SuggestionPage(BaseModel):
    items: list[Suggestion]
    total: int
    page: int
    page_size: int


class SuggestionStatistics(BaseModel):
    total: int
    by_status: dict[str, int]
    by_type: dict[str, int]


SuggestionCreate.model_rebuild()
