"""Relationship prediction models."""

from dataclasses import dataclass

from pydantic import BaseModel, Field

from familytree.models.enums import ConfidenceLevel, PredictedType, PredictionStatus


@dataclass
class PredictionCandidate:
    """Output of a single prediction rule before aggregation."""

    rule_id: str
    predicted_type: PredictedType
    source_person_id: str
    target_person_id: str
    confidence: float
    explanation: str


class Prediction(BaseModel):
    id: str
    tree_id: str
    rule_id: str
    rule_description: str | None = None
    predicted_type: PredictedType
    source_person_id: str
    target_person_id: str
    source_person_name: str | None = None
    target_person_name: str | None = None
    confidence: float
    confidence_level: ConfidenceLevel
    explanation: str
    status: PredictionStatus = PredictionStatus.NEW
    resolved_by_user_id: int | None = None
    resolved_at: str | None = None
    dismiss_reason: str | None = None
    applied_entity_type: str | None = None
    applied_entity_id: str | None = None
    scan_batch_id: str
    created_at: str


class PredictionScanResult(BaseModel):
    scan_batch_id: str
    total_predictions: int
    high_confidence: int
    medium_confidence: int
    low_confidence: int
    by_rule: dict[str, int] = Field(default_factory=dict)
    rule_errors: list[str] = Field(default_factory=list)


class PredictionPage(BaseModel):
    items: list[Prediction]
    total: int
    page: int
    page_size: int


class PredictionDismissRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class AcceptAllRequest(BaseModel):
    min_confidence: float = Field(default=85.0, ge=0, le=100)


class AcceptAllResult(BaseModel):
    accepted: int
    failed: int
    errors: list[str] = Field(default_factory=list)
