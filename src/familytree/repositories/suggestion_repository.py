"""Suggestion persistence."""

import json
from typing import Any

from familytree.models.enums import SuggestionStatus, SuggestionType
from familytree.models.suggestion import Suggestion, SuggestionComment, SuggestionEvidence
from familytree.repositories.base import BaseRepository, to_db

OPEN_STATUSES = (SuggestionStatus.PENDING, SuggestionStatus.NEEDS_INFO)


def proposed_person_name(values: dict[str, Any]) -> str:
    """Comparable name of a proposed person (first name column that is set)."""
    for field in ("primary_name", "name_english", "name_arabic", "name_nobiin"):
        value = values.get(field)
        if isinstance(value, str) and value.strip():
            return " ".join(value.split()).casefold()
    return ""


class SuggestionRepository(BaseRepository):
    """Repository for suggestions, their evidence and comments."""

    _UPDATABLE = (
        "status",
        "reviewer_notes",
        "reviewed_by_user_id",
        "reviewed_at",
        "applied_entity_type",
        "applied_entity_id",
        "previous_values",
    )

    def _to_model(self, row) -> Suggestion:
        data = dict(row)
        data["proposed_values"] = json.loads(data["proposed_values"] or "{}")
        if data.get("previous_values"):
            data["previous_values"] = json.loads(data["previous_values"])
        return Suggestion.model_validate(data)

    def create(
        self,
        tree_id: str,
        suggestion_type: SuggestionType,
        submitted_by_user_id: int,
        target_person_id: str | None = None,
        secondary_person_id: str | None = None,
        target_union_id: str | None = None,
        relationship_id: str | None = None,
        proposed_values: dict[str, Any] | None = None,
        submitter_notes: str | None = None,
    ) -> str:
        suggestion_id = self.new_id()
        now = self._now_iso()
        self.conn.execute(
            """
            INSERT INTO suggestions (
                id, tree_id, type, status, target_person_id, secondary_person_id,
                target_union_id, relationship_id, proposed_values, submitter_notes,
                submitted_by_user_id, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                suggestion_id, tree_id, suggestion_type.value, SuggestionStatus.PENDING.value,
                target_person_id, secondary_person_id, target_union_id, relationship_id,
                json.dumps(proposed_values or {}, default=str, ensure_ascii=False),
                submitter_notes, submitted_by_user_id, now, now,
            ),
        )
        return suggestion_id

    def get(self, suggestion_id: str, with_details: bool = True) -> Suggestion | None:
        row = self.conn.execute(
            "SELECT * FROM suggestions WHERE id = ?", (suggestion_id,)
        ).fetchone()
        if not row:
            return None
        suggestion = self._to_model(row)
        if with_details:
            suggestion.evidence = self.list_evidence(suggestion_id)
            suggestion.comments = self.list_comments(suggestion_id)
        return suggestion

    def find_open_duplicate(
        self,
        tree_id: str,
        suggestion_type: SuggestionType,
        target_person_id: str | None,
        secondary_person_id: str | None,
        person_name: str | None = None,
    ) -> str | None:
        """Open suggestion proposing the same change.

        New-person proposals carry no persons, so ``person_name`` narrows
        them to the ones naming the same person.
        """
        rows = self.conn.execute(
            """
            SELECT id, proposed_values FROM suggestions
            WHERE tree_id = ? AND type = ? AND status IN (?, ?)
              AND COALESCE(target_person_id, '') = COALESCE(?, '')
              AND COALESCE(secondary_person_id, '') = COALESCE(?, '')
            ORDER BY created_at
            """,
            (
                tree_id, suggestion_type.value, *[s.value for s in OPEN_STATUSES],
                target_person_id, secondary_person_id,
            ),
        ).fetchall()
        for row in rows:
            values = json.loads(row["proposed_values"] or "{}")
            if person_name is None or proposed_person_name(values) == person_name:
                return row["id"]
        return None

    def list_page(
        self,
        tree_id: str | None = None,
        status: SuggestionStatus | None = None,
        suggestion_type: SuggestionType | None = None,
        submitted_by_user_id: int | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Suggestion], int]:
        clauses = []
        params: list[Any] = []
        if tree_id:
            clauses.append("tree_id = ?")
            params.append(tree_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if suggestion_type is not None:
            clauses.append("type = ?")
            params.append(suggestion_type.value)
        if submitted_by_user_id is not None:
            clauses.append("submitted_by_user_id = ?")
            params.append(submitted_by_user_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        total = self.conn.execute(f"SELECT COUNT(*) FROM suggestions {where}", params).fetchone()[0]
        rows = self.conn.execute(
            f"SELECT * FROM suggestions {where} ORDER BY created_at, id LIMIT ? OFFSET ?",
            [*params, page_size, (page - 1) * page_size],
        ).fetchall()
        return [self._to_model(row) for row in rows], total

    def update(self, suggestion_id: str, fields: dict[str, Any]) -> bool:
        if "previous_values" in fields and isinstance(fields["previous_values"], dict):
            fields = {
                **fields,
                "previous_values": json.dumps(fields["previous_values"], default=str, ensure_ascii=False),
            }
        return self._update_columns("suggestions", suggestion_id, fields, self._UPDATABLE) > 0

    def count_by(self, column: str, tree_id: str | None = None) -> dict[str, int]:
        if column not in ("status", "type"):
            raise ValueError(f"Cannot group suggestions by {column}")
        where = "WHERE tree_id = ?" if tree_id else ""
        params = [tree_id] if tree_id else []
        rows = self.conn.execute(
            f"SELECT {column}, COUNT(*) FROM suggestions {where} GROUP BY {column}", params
        ).fetchall()
        return {row[0]: row[1] for row in rows}

    # =========================================================================
    # Evidence and Comments
    # =========================================================================

    def add_evidence(
        self,
        suggestion_id: str,
        created_by_user_id: int,
        evidence_type: str = "note",
        url: str | None = None,
        citation: str | None = None,
        notes: str | None = None,
    ) -> SuggestionEvidence:
        evidence_id = self.new_id()
        self.conn.execute(
            """
            INSERT INTO suggestion_evidence (
                id, suggestion_id, evidence_type, url, citation, notes, created_by_user_id, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (evidence_id, suggestion_id, evidence_type, url, citation, notes,
             created_by_user_id, self._now_iso()),
        )
        row = self.conn.execute(
            "SELECT * FROM suggestion_evidence WHERE id = ?", (evidence_id,)
        ).fetchone()
        return SuggestionEvidence.model_validate(dict(row))

    def list_evidence(self, suggestion_id: str) -> list[SuggestionEvidence]:
        rows = self.conn.execute(
            "SELECT * FROM suggestion_evidence WHERE suggestion_id = ? ORDER BY created_at, id",
            (suggestion_id,),
        ).fetchall()
        return [SuggestionEvidence.model_validate(dict(row)) for row in rows]

    def add_comment(
        self, suggestion_id: str, author_user_id: int, content: str, is_from_reviewer: bool
    ) -> SuggestionComment:
        comment_id = self.new_id()
        self.conn.execute(
            """
            INSERT INTO suggestion_comments (
                id, suggestion_id, author_user_id, content, is_from_reviewer, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (comment_id, suggestion_id, author_user_id, content, to_db(is_from_reviewer),
             self._now_iso()),
        )
        row = self.conn.execute(
            "SELECT * FROM suggestion_comments WHERE id = ?", (comment_id,)
        ).fetchone()
        return SuggestionComment.model_validate(dict(row))

    def list_comments(self, suggestion_id: str) -> list[SuggestionComment]:
        rows = self.conn.execute(
            "SELECT * FROM suggestion_comments WHERE suggestion_id = ? ORDER BY created_at, id",
            (suggestion_id,),
        ).fetchall()
        return [SuggestionComment.model_validate(dict(row)) for row in rows]
