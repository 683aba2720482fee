"""Combine candidates that several rules proposed for the same link.

Independent signals are merged with a noisy-OR: ``1 - prod(1 - p)``. Two
rules at 80 and 60 give 92, never more than the cap.
"""

from familytree.config.constants import (
    PREDICTION_CONFIDENCE_CAP,
    PREDICTION_LEVEL_HIGH,
    PREDICTION_LEVEL_MEDIUM,
)
from familytree.models.enums import ConfidenceLevel
from familytree.models.prediction import PredictionCandidate


def noisy_or(confidences: list[float]) -> float:
    """Combined confidence (0-100) of independent confidences (0-100)."""
    remaining = 1.0
    for confidence in confidences:
        remaining *= 1.0 - confidence / 100.0
    return round(min((1.0 - remaining) * 100.0, PREDICTION_CONFIDENCE_CAP), 2)


def aggregate_candidates(candidates: list[PredictionCandidate]) -> list[PredictionCandidate]:
    """One candidate per (source, target, type), strongest first."""
    groups: dict[tuple, list[PredictionCandidate]] = {}
    for candidate in candidates:
        key = (candidate.source_person_id, candidate.target_person_id, candidate.predicted_type)
        groups.setdefault(key, []).append(candidate)

    merged = []
    for group in groups.values():
        ranked = sorted(group, key=lambda c: -c.confidence)
        primary = ranked[0]
        if len(ranked) == 1:
            merged.append(primary)
            continue
        rule_ids = ", ".join(dict.fromkeys(c.rule_id for c in ranked))
        merged.append(PredictionCandidate(
            rule_id=primary.rule_id,
            predicted_type=primary.predicted_type,
            source_person_id=primary.source_person_id,
            target_person_id=primary.target_person_id,
            confidence=noisy_or([c.confidence for c in ranked]),
            explanation=f"{primary.explanation} (also matched by: {rule_ids})",
        ))
    merged.sort(key=lambda c: -c.confidence)
    return merged


def confidence_level(confidence: float) -> ConfidenceLevel:
    if confidence >= PREDICTION_LEVEL_HIGH:
        return ConfidenceLevel.HIGH
    if confidence >= PREDICTION_LEVEL_MEDIUM:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW
