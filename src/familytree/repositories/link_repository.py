"""Person link and audit log persistence."""

import json
from typing import Any

from familytree.models.enums import PersonLinkStatus, PersonLinkType
from familytree.models.relationship import PersonLink
from familytree.repositories.base import BaseRepository


class PersonLinkRepository(BaseRepository):
    """Repository for links asserting two person records are related."""

    def create(
        self,
        source_person_id: str,
        target_person_id: str,
        status: PersonLinkStatus,
        confidence: int,
        created_by_user_id: int | None,
        link_type: PersonLinkType = PersonLinkType.SAME_PERSON,
        notes: str | None = None,
    ) -> PersonLink:
        link_id = self.new_id()
        now = self._now_iso()
        approved_by = created_by_user_id if status == PersonLinkStatus.APPROVED else None
        self.conn.execute(
            """
            INSERT INTO person_links (
                id, source_person_id, target_person_id, link_type, status, confidence,
                notes, created_by_user_id, approved_by_user_id, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                link_id, source_person_id, target_person_id, int(link_type), int(status),
                confidence, notes, created_by_user_id, approved_by, now, now,
            ),
        )
        return self.get(link_id)

    def get(self, link_id: str) -> PersonLink | None:
        row = self.conn.execute("SELECT * FROM person_links WHERE id = ?", (link_id,)).fetchone()
        return PersonLink.model_validate(dict(row)) if row else None

    def exists_between(self, person_a: str, person_b: str) -> bool:
        """True when a link exists in either direction."""
        row = self.conn.execute(
            """
            SELECT 1 FROM person_links
            WHERE (source_person_id = ? AND target_person_id = ?)
               OR (source_person_id = ? AND target_person_id = ?)
            LIMIT 1
            """,
            (person_a, person_b, person_b, person_a),
        ).fetchone()
        return row is not None

    def linked_pairs(self) -> set[frozenset[str]]:
        """Every linked pair regardless of direction or status."""
        rows = self.conn.execute(
            "SELECT source_person_id, target_person_id FROM person_links"
        ).fetchall()
        return {frozenset((row[0], row[1])) for row in rows}

    def list_for_person(self, person_id: str) -> list[PersonLink]:
        rows = self.conn.execute(
            """
            SELECT * FROM person_links
            WHERE source_person_id = ? OR target_person_id = ?
            ORDER BY created_at
            """,
            (person_id, person_id),
        ).fetchall()
        return [PersonLink.model_validate(dict(row)) for row in rows]

    def list_pending(self) -> list[tuple[PersonLink, str]]:
        """Pending links with the tree id of their target person, newest first."""
        rows = self.conn.execute(
            """
            SELECT l.*, p.tree_id AS target_tree_id FROM person_links l
            JOIN persons p ON p.id = l.target_person_id AND p.is_deleted = 0
            WHERE l.status = ?
            ORDER BY l.created_at DESC
            """,
            (int(PersonLinkStatus.PENDING),),
        ).fetchall()
        return [(PersonLink.model_validate(dict(row)), row["target_tree_id"]) for row in rows]

    def approved_touching_tree(self, tree_id: str) -> list[dict[str, Any]]:
        """Approved links with one side in ``tree_id`` and the other side elsewhere.

        Each row carries the link plus the person and tree on the far side.
        """
        rows = self.conn.execute(
            """
            SELECT l.id AS link_id, l.link_type,
                   CASE WHEN s.tree_id = ? THEN s.id ELSE t.id END AS own_person_id,
                   CASE WHEN s.tree_id = ? THEN t.id ELSE s.id END AS person_id,
                   CASE WHEN s.tree_id = ? THEN t.tree_id ELSE s.tree_id END AS tree_id
            FROM person_links l
            JOIN persons s ON s.id = l.source_person_id AND s.is_deleted = 0
            JOIN persons t ON t.id = l.target_person_id AND t.is_deleted = 0
            WHERE l.status = ? AND (s.tree_id = ? OR t.tree_id = ?) AND s.tree_id != t.tree_id
            ORDER BY l.created_at
            """,
            (tree_id, tree_id, tree_id, int(PersonLinkStatus.APPROVED), tree_id, tree_id),
        ).fetchall()
        return [dict(row) for row in rows]

    def review(self, link_id: str, status: PersonLinkStatus, user_id: int, notes: str | None) -> bool:
        return self._update_columns(
            "person_links", link_id,
            {"status": int(status), "approved_by_user_id": user_id, "notes": notes},
            ("status", "approved_by_user_id", "notes"),
        ) > 0

    def delete(self, link_id: str) -> bool:
        cursor = self.conn.execute("DELETE FROM person_links WHERE id = ?", (link_id,))
        return cursor.rowcount > 0


class AuditLogRepository(BaseRepository):
    """Append-only log of significant changes."""

    def record(
        self,
        actor_user_id: int | None,
        action: str,
        entity_type: str,
        entity_id: str | None,
        details: dict[str, Any] | str | None = None,
    ) -> int:
        if isinstance(details, dict):
            details = json.dumps(details, default=str, ensure_ascii=False)
        cursor = self.conn.execute(
            """
            INSERT INTO audit_log (actor_user_id, action, entity_type, entity_id, details, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (actor_user_id, action, entity_type, entity_id, details, self._now_iso()),
        )
        return cursor.lastrowid

    def list_entries(
        self,
        entity_type: str | None = None,
        entity_id: str | None = None,
        actor_user_id: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        clauses = []
        params: list[Any] = []
        if entity_type:
            clauses.append("entity_type = ?")
            params.append(entity_type)
        if entity_id:
            clauses.append("entity_id = ?")
            params.append(entity_id)
        if actor_user_id is not None:
            clauses.append("actor_user_id = ?")
            params.append(actor_user_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.conn.execute(
            f"SELECT * FROM audit_log {where} ORDER BY id DESC LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()
        return [dict(row) for row in rows]
