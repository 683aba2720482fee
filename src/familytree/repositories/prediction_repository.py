"""Relationship prediction persistence."""

from typing import Any

from familytree.models.enums import ConfidenceLevel, PredictedType, PredictionStatus
from familytree.models.prediction import Prediction
from familytree.repositories.base import BaseRepository

_SELECT = """
    SELECT rp.*,
           COALESCE(s.name_english, s.primary_name, s.name_arabic, s.name_nobiin) AS source_person_name,
           COALESCE(t.name_english, t.primary_name, t.name_arabic, t.name_nobiin) AS target_person_name
    FROM relationship_predictions rp
    JOIN persons s ON s.id = rp.source_person_id
    JOIN persons t ON t.id = rp.target_person_id
"""


class PredictionRepository(BaseRepository):
    """Repository for stored prediction results."""

    def create(
        self,
        tree_id: str,
        rule_id: str,
        predicted_type: PredictedType,
        source_person_id: str,
        target_person_id: str,
        confidence: float,
        confidence_level: ConfidenceLevel,
        explanation: str,
        scan_batch_id: str,
    ) -> str:
        prediction_id = self.new_id()
        self.conn.execute(
            """
            INSERT INTO relationship_predictions (
                id, tree_id, rule_id, predicted_type, source_person_id, target_person_id,
                confidence, confidence_level, explanation, status, scan_batch_id, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                prediction_id, tree_id, rule_id, predicted_type.value, source_person_id,
                target_person_id, confidence, confidence_level.value, explanation,
                int(PredictionStatus.NEW), scan_batch_id, self._now_iso(),
            ),
        )
        return prediction_id

    def get(self, prediction_id: str) -> Prediction | None:
        row = self.conn.execute(f"{_SELECT} WHERE rp.id = ?", (prediction_id,)).fetchone()
        return Prediction.model_validate(dict(row)) if row else None

    def list_page(
        self,
        tree_id: str,
        status: PredictionStatus | None = None,
        confidence_level: ConfidenceLevel | None = None,
        rule_id: str | None = None,
        predicted_type: PredictedType | None = None,
        min_confidence: float | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Prediction], int]:
        clauses = ["rp.tree_id = ?", "s.is_deleted = 0", "t.is_deleted = 0"]
        params: list[Any] = [tree_id]
        if status is not None:
            clauses.append("rp.status = ?")
            params.append(int(status))
        if confidence_level is not None:
            clauses.append("rp.confidence_level = ?")
            params.append(confidence_level.value)
        if rule_id:
            clauses.append("rp.rule_id = ?")
            params.append(rule_id)
        if predicted_type is not None:
            clauses.append("rp.predicted_type = ?")
            params.append(predicted_type.value)
        if min_confidence is not None:
            clauses.append("rp.confidence >= ?")
            params.append(min_confidence)
        where = " AND ".join(clauses)

        total = self.conn.execute(
            f"""
            SELECT COUNT(*) FROM relationship_predictions rp
            JOIN persons s ON s.id = rp.source_person_id
            JOIN persons t ON t.id = rp.target_person_id
            WHERE {where}
            """,
            params,
        ).fetchone()[0]
        rows = self.conn.execute(
            f"{_SELECT} WHERE {where} ORDER BY rp.confidence DESC, rp.created_at LIMIT ? OFFSET ?",
            [*params, page_size, (page - 1) * page_size],
        ).fetchall()
        return [Prediction.model_validate(dict(row)) for row in rows], total

    def delete_new(self, tree_id: str) -> int:
        """Drop unresolved predictions from earlier scans."""
        cursor = self.conn.execute(
            "DELETE FROM relationship_predictions WHERE tree_id = ? AND status = ?",
            (tree_id, int(PredictionStatus.NEW)),
        )
        return cursor.rowcount

    def resolved_keys(self, tree_id: str) -> set[tuple[str, str, str]]:
        """(source, target, type) of every prediction a reviewer already handled."""
        rows = self.conn.execute(
            """
            SELECT source_person_id, target_person_id, predicted_type
            FROM relationship_predictions
            WHERE tree_id = ? AND status <> ?
            """,
            (tree_id, int(PredictionStatus.NEW)),
        ).fetchall()
        return {(row[0], row[1], row[2]) for row in rows}

    def resolve(
        self,
        prediction_id: str,
        status: PredictionStatus,
        user_id: int,
        dismiss_reason: str | None = None,
        applied_entity_type: str | None = None,
        applied_entity_id: str | None = None,
    ) -> None:
        self.conn.execute(
            """
            UPDATE relationship_predictions
            SET status = ?, resolved_by_user_id = ?, resolved_at = ?, dismiss_reason = ?,
                applied_entity_type = ?, applied_entity_id = ?
            WHERE id = ?
            """,
            (
                int(status), user_id, self._now_iso(), dismiss_reason,
                applied_entity_type, applied_entity_id, prediction_id,
            ),
        )
