"""Parent-child and union persistence."""

import sqlite3
from typing import Any

from familytree.errors import ConflictError
from familytree.models.enums import MemberRole, RelationshipType
from familytree.models.relationship import ParentChild, Union, UnionMember
from familytree.repositories.base import BaseRepository, to_db

UNION_COLUMNS = (
    "type",
    "start_date",
    "start_precision",
    "start_place",
    "end_date",
    "end_precision",
    "notes",
)


class RelationshipRepository(BaseRepository):
    """Repository for parent-child links, unions and union members."""

    # =========================================================================
    # Parent-Child
    # =========================================================================

    def create_parent_child(
        self,
        parent_id: str,
        child_id: str,
        relationship_type: RelationshipType = RelationshipType.BIOLOGICAL,
        notes: str | None = None,
    ) -> ParentChild:
        link_id = self.new_id()
        try:
            self.conn.execute(
                """
                INSERT INTO parent_child (id, parent_id, child_id, relationship_type, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (link_id, parent_id, child_id, to_db(relationship_type), notes, self._now_iso()),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError("This parent-child relationship already exists") from e
        return self.get_parent_child(link_id)

    def get_parent_child(self, link_id: str, include_deleted: bool = False) -> ParentChild | None:
        sql = "SELECT * FROM parent_child WHERE id = ?"
        if not include_deleted:
            sql += " AND is_deleted = 0"
        row = self.conn.execute(sql, (link_id,)).fetchone()
        return ParentChild.model_validate(dict(row)) if row else None

    def find_parent_child(self, parent_id: str, child_id: str) -> ParentChild | None:
        row = self.conn.execute(
            "SELECT * FROM parent_child WHERE parent_id = ? AND child_id = ? AND is_deleted = 0",
            (parent_id, child_id),
        ).fetchone()
        return ParentChild.model_validate(dict(row)) if row else None

    def parent_links(self, child_id: str) -> list[ParentChild]:
        """Active links to the child's parents (parents themselves not deleted)."""
        rows = self.conn.execute(
            """
            SELECT pc.* FROM parent_child pc
            JOIN persons p ON p.id = pc.parent_id
            WHERE pc.child_id = ? AND pc.is_deleted = 0 AND p.is_deleted = 0
            ORDER BY pc.created_at
            """,
            (child_id,),
        ).fetchall()
        return [ParentChild.model_validate(dict(row)) for row in rows]

    def child_links(self, parent_id: str) -> list[ParentChild]:
        rows = self.conn.execute(
            """
            SELECT pc.* FROM parent_child pc
            JOIN persons c ON c.id = pc.child_id
            WHERE pc.parent_id = ? AND pc.is_deleted = 0 AND c.is_deleted = 0
            ORDER BY c.birth_date, pc.created_at
            """,
            (parent_id,),
        ).fetchall()
        return [ParentChild.model_validate(dict(row)) for row in rows]

    def links_touching(self, person_id: str) -> list[ParentChild]:
        """Every active link where the person is parent or child."""
        rows = self.conn.execute(
            """
            SELECT * FROM parent_child
            WHERE (parent_id = ? OR child_id = ?) AND is_deleted = 0
            """,
            (person_id, person_id),
        ).fetchall()
        return [ParentChild.model_validate(dict(row)) for row in rows]

    def parent_child_in_tree(self, tree_id: str) -> list[ParentChild]:
        """Active links whose parent and child are both live persons of the tree."""
        rows = self.conn.execute(
            """
            SELECT pc.* FROM parent_child pc
            JOIN persons p ON p.id = pc.parent_id
            JOIN persons c ON c.id = pc.child_id
            WHERE p.tree_id = ? AND pc.is_deleted = 0
              AND p.is_deleted = 0 AND c.is_deleted = 0
            ORDER BY pc.created_at, pc.id
            """,
            (tree_id,),
        ).fetchall()
        return [ParentChild.model_validate(dict(row)) for row in rows]

    def repoint_parent_child(self, link_id: str, column: str, person_id: str) -> None:
        if column not in ("parent_id", "child_id"):
            raise ValueError(f"Invalid parent-child column: {column}")
        self.conn.execute(
            f"UPDATE parent_child SET {column} = ? WHERE id = ?", (person_id, link_id)
        )

    def soft_delete_parent_child(self, link_id: str, user_id: int | None) -> bool:
        cursor = self.conn.execute(
            """
            UPDATE parent_child SET is_deleted = 1, deleted_at = ?, deleted_by_user_id = ?
            WHERE id = ? AND is_deleted = 0
            """,
            (self._now_iso(), user_id, link_id),
        )
        return cursor.rowcount > 0

    def restore_parent_child(self, link_id: str) -> bool:
        cursor = self.conn.execute(
            """
            UPDATE parent_child SET is_deleted = 0, deleted_at = NULL, deleted_by_user_id = NULL
            WHERE id = ? AND is_deleted = 1
            """,
            (link_id,),
        )
        return cursor.rowcount > 0

    # =========================================================================
    # Unions
    # =========================================================================

    def create_union(self, tree_id: str, fields: dict[str, Any]) -> str:
        union_id = self.new_id()
        now = self._now_iso()
        columns = [name for name in UNION_COLUMNS if name in fields]
        placeholders = ", ".join("?" for _ in columns)
        column_sql = "".join(f", {name}" for name in columns)
        value_sql = f", {placeholders}" if columns else ""
        self.conn.execute(
            f"""
            INSERT INTO unions (id, tree_id{column_sql}, created_at, updated_at)
            VALUES (?, ?{value_sql}, ?, ?)
            """,
            (union_id, tree_id, *[to_db(fields[name]) for name in columns], now, now),
        )
        return union_id

    def get_union(self, union_id: str, include_deleted: bool = False) -> Union | None:
        sql = "SELECT * FROM unions WHERE id = ?"
        if not include_deleted:
            sql += " AND is_deleted = 0"
        row = self.conn.execute(sql, (union_id,)).fetchone()
        if not row:
            return None
        union = Union.model_validate(dict(row))
        union.members = self.members_of(union_id)
        return union

    def list_unions(self, tree_id: str) -> list[Union]:
        rows = self.conn.execute(
            "SELECT * FROM unions WHERE tree_id = ? AND is_deleted = 0 ORDER BY start_date, created_at",
            (tree_id,),
        ).fetchall()
        members_by_union: dict[str, list[UnionMember]] = {}
        for member in self.members_in_tree(tree_id):
            members_by_union.setdefault(member.union_id, []).append(member)
        unions = []
        for row in rows:
            union = Union.model_validate(dict(row))
            union.members = members_by_union.get(union.id, [])
            unions.append(union)
        return unions

    def update_union(self, union_id: str, fields: dict[str, Any]) -> bool:
        return self._update_columns("unions", union_id, fields, UNION_COLUMNS) > 0

    def soft_delete_union(self, union_id: str, user_id: int | None) -> bool:
        now = self._now_iso()
        cursor = self.conn.execute(
            """
            UPDATE unions SET is_deleted = 1, deleted_at = ?, deleted_by_user_id = ?, updated_at = ?
            WHERE id = ? AND is_deleted = 0
            """,
            (now, user_id, now, union_id),
        )
        return cursor.rowcount > 0

    def restore_union(self, union_id: str) -> bool:
        cursor = self.conn.execute(
            """
            UPDATE unions SET is_deleted = 0, deleted_at = NULL, deleted_by_user_id = NULL
            WHERE id = ? AND is_deleted = 1
            """,
            (union_id,),
        )
        return cursor.rowcount > 0

    # =========================================================================
    # Union Members
    # =========================================================================

    def add_member(self, union_id: str, person_id: str, role: MemberRole) -> UnionMember:
        member_id = self.new_id()
        try:
            self.conn.execute(
                """
                INSERT INTO union_members (id, union_id, person_id, role, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (member_id, union_id, person_id, to_db(role), self._now_iso()),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError("Person is already a member of this union") from e
        row = self.conn.execute("SELECT * FROM union_members WHERE id = ?", (member_id,)).fetchone()
        return UnionMember.model_validate(dict(row))

    def remove_member(self, union_id: str, person_id: str) -> bool:
        cursor = self.conn.execute(
            "DELETE FROM union_members WHERE union_id = ? AND person_id = ?",
            (union_id, person_id),
        )
        return cursor.rowcount > 0

    def remove_memberships(self, person_id: str) -> int:
        cursor = self.conn.execute("DELETE FROM union_members WHERE person_id = ?", (person_id,))
        return cursor.rowcount

    def repoint_member(self, member_id: str, person_id: str) -> None:
        self.conn.execute(
            "UPDATE union_members SET person_id = ? WHERE id = ?", (person_id, member_id)
        )

    def delete_member(self, member_id: str) -> None:
        self.conn.execute("DELETE FROM union_members WHERE id = ?", (member_id,))

    def members_of(self, union_id: str) -> list[UnionMember]:
        rows = self.conn.execute(
            """
            SELECT um.* FROM union_members um
            JOIN persons p ON p.id = um.person_id
            WHERE um.union_id = ? AND p.is_deleted = 0
            ORDER BY um.created_at, um.id
            """,
            (union_id,),
        ).fetchall()
        return [UnionMember.model_validate(dict(row)) for row in rows]

    def memberships_of(self, person_id: str) -> list[UnionMember]:
        """Memberships of the person in unions that are not deleted."""
        rows = self.conn.execute(
            """
            SELECT um.* FROM union_members um
            JOIN unions u ON u.id = um.union_id
            WHERE um.person_id = ? AND u.is_deleted = 0
            ORDER BY u.start_date, um.created_at
            """,
            (person_id,),
        ).fetchall()
        return [UnionMember.model_validate(dict(row)) for row in rows]

    def members_in_tree(self, tree_id: str) -> list[UnionMember]:
        rows = self.conn.execute(
            """
            SELECT um.* FROM union_members um
            JOIN unions u ON u.id = um.union_id
            JOIN persons p ON p.id = um.person_id
            WHERE u.tree_id = ? AND u.is_deleted = 0 AND p.is_deleted = 0
            ORDER BY um.created_at, um.id
            """,
            (tree_id,),
        ).fetchall()
        return [UnionMember.model_validate(dict(row)) for row in rows]

    def shared_union(self, person_a: str, person_b: str) -> str | None:
        """Id of a live union containing both persons, if any."""
        row = self.conn.execute(
            """
            SELECT a.union_id FROM union_members a
            JOIN union_members b ON b.union_id = a.union_id
            JOIN unions u ON u.id = a.union_id
            WHERE a.person_id = ? AND b.person_id = ? AND u.is_deleted = 0
            LIMIT 1
            """,
            (person_a, person_b),
        ).fetchone()
        return row[0] if row else None
