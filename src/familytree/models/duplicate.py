"""Duplicate-detection candidates, summaries and resolution requests."""

from typing import Literal

from pydantic import BaseModel, Field

DetectionMode = Literal["auto", "name_exact", "name_similar", "mother_surn", "shared_parent"]
ResolveAction = Literal["approve_link", "reject", "merge"]


class DuplicateCandidate(BaseModel):
    """Two persons that may describe the same individual."""

    person_a_id: str
    person_a_tree_id: str
    person_a_name: str | None = None
    person_a_full_name: str | None = None
    person_a_sex: int
    person_a_birth_year: int | None = None
    person_b_id: str
    person_b_tree_id: str
    person_b_name: str | None = None
    person_b_full_name: str | None = None
    person_b_sex: int
    person_b_birth_year: int | None = None
    match_type: str
    confidence: int
    similarity_score: float
    given_name_a: str | None = None
    given_name_b: str | None = None
    father_name_a: str | None = None
    father_name_b: str | None = None
    grandfather_name_a: str | None = None
    grandfather_name_b: str | None = None
    shared_parent_count: int = 0
    evidence: dict[str, object] = Field(default_factory=dict)


class DuplicateScanResult(BaseModel):
    total: int
    page: int
    page_size: int
    items: list[DuplicateCandidate]


class DuplicateSummaryItem(BaseModel):
    match_type: str
    candidate_count: int
    avg_confidence: float
    min_confidence: int
    max_confidence: int


class DuplicateSummary(BaseModel):
    tree_id: str | None = None
    target_tree_id: str | None = None
    total_candidates: int
    by_match_type: list[DuplicateSummaryItem]


class DuplicateScanRequest(BaseModel):
    tree_id: str | None = None
    target_tree_id: str | None = None
    mode: DetectionMode = "auto"
    min_confidence: int | None = Field(default=None, ge=0, le=100)
    page: int = 1
    page_size: int = 50


class DuplicateResolveRequest(BaseModel):
    person_a_id: str
    person_b_id: str
    action: str
    keep_person_id: str | None = None
    notes: str | None = None


class DuplicateResolveResult(BaseModel):
    action: str
    link_id: str | None = None
    kept_person_id: str | None = None
    removed_person_id: str | None = None
    relationships_moved: int = 0
    message: str
