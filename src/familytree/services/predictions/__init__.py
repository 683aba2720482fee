"""Rule-based prediction of missing parent-child links and unions."""

from familytree.services.predictions.aggregator import aggregate_candidates, confidence_level, noisy_or
from familytree.services.predictions.rules import (
    AgeFamilyRule,
    MissingUnionRule,
    PatronymicNameRule,
    PredictionRule,
    SiblingParentGapRule,
    SpouseChildGapRule,
    TreeSnapshot,
    default_rules,
)
from familytree.services.predictions.service import PredictionService

__all__ = [
    "AgeFamilyRule",
    "MissingUnionRule",
    "PatronymicNameRule",
    "PredictionRule",
    "PredictionService",
    "SiblingParentGapRule",
    "SpouseChildGapRule",
    "TreeSnapshot",
    "aggregate_candidates",
    "confidence_level",
    "default_rules",
    "noisy_or",
]
