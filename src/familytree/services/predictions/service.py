"""
Relationship prediction scans and review.

A scan runs every rule over a snapshot of the tree, merges their candidates
and replaces the tree's unreviewed predictions with the new batch. Pairs a
reviewer already accepted or dismissed are not proposed again.
"""

import uuid

from loguru import logger

from familytree.config import Config, get_config
from familytree.database import Database
from familytree.errors import ConflictError, FamilyTreeError, NotFoundError, ValidationError
from familytree.models.enums import ConfidenceLevel, PredictedType, PredictionStatus
from familytree.models.prediction import (
    AcceptAllResult,
    Prediction,
    PredictionCandidate,
    PredictionPage,
    PredictionScanResult,
)
from familytree.repositories import (
    AuditLogRepository,
    PersonRepository,
    PredictionRepository,
    RelationshipRepository,
)
from familytree.services.access import TreeAccess, UserContext
from familytree.services.person_service import require_person
from familytree.services.predictions.aggregator import aggregate_candidates, confidence_level
from familytree.services.predictions.rules import (
    RULE_DESCRIPTIONS,
    PredictionRule,
    TreeSnapshot,
    default_rules,
)
from familytree.services.relationship_service import create_parent_child, create_union


class PredictionService:
    """Run prediction rules and let administrators act on the results."""

    def __init__(self, db: Database, config: Config | None = None, rules: list[PredictionRule] | None = None):
        self.db = db
        self.config = config or get_config()
        self.rules = rules if rules is not None else default_rules()

    # =========================================================================
    # Scan
    # =========================================================================

    def scan(self, actor: UserContext, tree_id: str) -> PredictionScanResult:
        batch_id = str(uuid.uuid4())
        with self.db.transaction() as conn:
            TreeAccess(conn, actor).require_admin_scope(tree_id)
            logger.info(f"Starting prediction scan for tree {tree_id}, batch {batch_id}")

            snapshot = TreeSnapshot.load(conn, tree_id)
            candidates, errors = self.run_rules(snapshot)
            aggregated = aggregate_candidates(candidates)

            predictions = PredictionRepository(conn)
            stale = predictions.delete_new(tree_id)
            resolved = predictions.resolved_keys(tree_id)

            levels = {level: 0 for level in ConfidenceLevel}
            by_rule: dict[str, int] = {}
            for candidate in aggregated:
                key = (candidate.source_person_id, candidate.target_person_id, candidate.predicted_type.value)
                if key in resolved:
                    continue
                level = confidence_level(candidate.confidence)
                predictions.create(
                    tree_id=tree_id,
                    rule_id=candidate.rule_id,
                    predicted_type=candidate.predicted_type,
                    source_person_id=candidate.source_person_id,
                    target_person_id=candidate.target_person_id,
                    confidence=candidate.confidence,
                    confidence_level=level,
                    explanation=candidate.explanation,
                    scan_batch_id=batch_id,
                )
                levels[level] += 1
                by_rule[candidate.rule_id] = by_rule.get(candidate.rule_id, 0) + 1

        total = sum(levels.values())
        logger.info(
            f"Prediction scan complete for tree {tree_id}: {total} predictions "
            f"({levels[ConfidenceLevel.HIGH]} high, {levels[ConfidenceLevel.MEDIUM]} medium, "
            f"{levels[ConfidenceLevel.LOW]} low), replaced {stale} unreviewed"
        )
        return PredictionScanResult(
            scan_batch_id=batch_id,
            total_predictions=total,
            high_confidence=levels[ConfidenceLevel.HIGH],
            medium_confidence=levels[ConfidenceLevel.MEDIUM],
            low_confidence=levels[ConfidenceLevel.LOW],
            by_rule=by_rule,
            rule_errors=errors,
        )

    def run_rules(self, snapshot: TreeSnapshot) -> tuple[list[PredictionCandidate], list[str]]:
        """Run every rule; a failing rule is logged and skipped.

        Returns:
            Tuple of (all candidates, "rule_id: error" messages)
        """
        candidates: list[PredictionCandidate] = []
        errors: list[str] = []
        limit = self.config.prediction_max_candidates_per_rule
        for rule in self.rules:
            try:
                found = rule.detect(snapshot)
            except Exception as e:
                logger.error(f"Error running prediction rule {rule.rule_id} for tree {snapshot.tree_id}: {e}")
                errors.append(f"{rule.rule_id}: {e}")
                continue
            if rule.capped:
                found = sorted(found, key=lambda c: -c.confidence)[:limit]
            logger.debug(f"Rule {rule.rule_id} found {len(found)} candidates")
            candidates.extend(found)
        return candidates, errors

    # =========================================================================
    # Review
    # =========================================================================

    def list_page(
        self,
        actor: UserContext,
        tree_id: str,
        status: PredictionStatus | None = None,
        confidence_level: ConfidenceLevel | None = None,
        rule_id: str | None = None,
        predicted_type: PredictedType | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> PredictionPage:
        page = max(page, 1)
        page_size = min(max(page_size, 1), 200)
        with self.db.connection() as conn:
            TreeAccess(conn, actor).require_admin_scope(tree_id)
            items, total = PredictionRepository(conn).list_page(
                tree_id,
                status=status,
                confidence_level=confidence_level,
                rule_id=rule_id,
                predicted_type=predicted_type,
                page=page,
                page_size=page_size,
            )
        return PredictionPage(items=[_describe(p) for p in items], total=total, page=page, page_size=page_size)

    def get(self, actor: UserContext, prediction_id: str) -> Prediction:
        with self.db.connection() as conn:
            prediction = self._require(conn, actor, prediction_id)
        return _describe(prediction)

    def accept(self, actor: UserContext, prediction_id: str) -> Prediction:
        """Create the predicted link and mark the prediction applied."""
        with self.db.transaction() as conn:
            prediction = self._require_new(conn, actor, prediction_id)
            persons = PersonRepository(conn)
            source = require_person(persons, prediction.source_person_id)
            target = require_person(persons, prediction.target_person_id)

            if prediction.predicted_type == PredictedType.PARENT_CHILD:
                entity_type = "parent_child"
                entity_id = create_parent_child(conn, source, target).id
            else:
                if RelationshipRepository(conn).shared_union(source.id, target.id):
                    raise ConflictError("These persons already share a union")
                entity_type = "union"
                entity_id = create_union(conn, prediction.tree_id, [source, target])

            predictions = PredictionRepository(conn)
            predictions.resolve(
                prediction.id,
                PredictionStatus.APPLIED,
                actor.user_id,
                applied_entity_type=entity_type,
                applied_entity_id=entity_id,
            )
            AuditLogRepository(conn).record(
                actor.user_id, "prediction.accepted", "prediction", prediction.id,
                {"rule_id": prediction.rule_id, "entity_type": entity_type, "entity_id": entity_id},
            )
            accepted = predictions.get(prediction.id)
        logger.info(f"Prediction {prediction_id} accepted: created {entity_type} {entity_id}")
        return _describe(accepted)

    def dismiss(self, actor: UserContext, prediction_id: str, reason: str | None = None) -> Prediction:
        with self.db.transaction() as conn:
            prediction = self._require_new(conn, actor, prediction_id)
            predictions = PredictionRepository(conn)
            predictions.resolve(prediction.id, PredictionStatus.DISMISSED, actor.user_id, dismiss_reason=reason)
            AuditLogRepository(conn).record(
                actor.user_id, "prediction.dismissed", "prediction", prediction.id, {"reason": reason}
            )
            dismissed = predictions.get(prediction.id)
        logger.info(f"Prediction {prediction_id} dismissed")
        return _describe(dismissed)

    def accept_all(self, actor: UserContext, tree_id: str, min_confidence: float | None = None) -> AcceptAllResult:
        """Accept every unreviewed prediction at or above ``min_confidence``.

        Each prediction is applied in its own transaction, so one that breaks
        a family tree rule does not stop the others.
        """
        if min_confidence is None:
            min_confidence = self.config.prediction_high_confidence
        with self.db.connection() as conn:
            TreeAccess(conn, actor).require_admin_scope(tree_id)
            pending, _ = PredictionRepository(conn).list_page(
                tree_id,
                status=PredictionStatus.NEW,
                min_confidence=min_confidence,
                page_size=-1,
            )

        result = AcceptAllResult(accepted=0, failed=0)
        for prediction in pending:
            try:
                self.accept(actor, prediction.id)
                result.accepted += 1
            except FamilyTreeError as e:
                result.failed += 1
                result.errors.append(f"{prediction.id}: {e.message}")
        logger.info(f"Bulk accept for tree {tree_id}: {result.accepted}/{len(pending)} predictions accepted")
        return result

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _require(conn, actor: UserContext, prediction_id: str) -> Prediction:
        prediction = PredictionRepository(conn).get(prediction_id)
        if prediction is None:
            raise NotFoundError("Prediction not found")
        TreeAccess(conn, actor).require_admin_scope(prediction.tree_id)
        return prediction

    def _require_new(self, conn, actor: UserContext, prediction_id: str) -> Prediction:
        prediction = self._require(conn, actor, prediction_id)
        if prediction.status != PredictionStatus.NEW:
            raise ValidationError(f"Prediction is already {prediction.status.name.lower()}")
        return prediction


def _describe(prediction: Prediction) -> Prediction:
    prediction.rule_description = RULE_DESCRIPTIONS.get(prediction.rule_id, prediction.rule_id)
    return prediction
