"""User and tree persistence."""

import sqlite3

from loguru import logger

from familytree.errors import ConflictError
from familytree.models.enums import SystemRole, TreeRole
from familytree.models.tree import Tree, TreeMember, User
from familytree.repositories.base import BaseRepository, to_db


class UserRepository(BaseRepository):
    """Repository for user accounts."""

    def create(
        self,
        username: str,
        display_name: str | None = None,
        system_role: SystemRole = SystemRole.USER,
    ) -> User:
        try:
            cursor = self.conn.execute(
                """
                INSERT INTO users (username, display_name, system_role, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (username, display_name, system_role.value, self._now_iso()),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError(f"Username already exists: {username}") from e
        logger.info(f"Created user {username} (id={cursor.lastrowid}, role={system_role.value})")
        return self.get(cursor.lastrowid)

    def get(self, user_id: int) -> User | None:
        row = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return User.model_validate(dict(row)) if row else None

    def get_by_username(self, username: str) -> User | None:
        row = self.conn.execute(
            "SELECT * FROM users WHERE username = ?", (username,)
        ).fetchone()
        return User.model_validate(dict(row)) if row else None

    def list_all(self) -> list[User]:
        rows = self.conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        return [User.model_validate(dict(row)) for row in rows]

    def set_role(self, user_id: int, role: SystemRole) -> bool:
        cursor = self.conn.execute(
            "UPDATE users SET system_role = ? WHERE id = ?", (role.value, user_id)
        )
        return cursor.rowcount > 0


class TreeRepository(BaseRepository):
    """Repository for trees, memberships and admin assignments."""

    _UPDATABLE = ("name", "description", "is_public", "allow_cross_tree_linking")

    # =========================================================================
    # Trees
    # =========================================================================

    def create(
        self,
        name: str,
        owner_id: int | None,
        description: str | None = None,
        is_public: bool = False,
        allow_cross_tree_linking: bool = False,
    ) -> Tree:
        tree_id = self.new_id()
        now = self._now_iso()
        self.conn.execute(
            """
            INSERT INTO trees (
                id, name, description, owner_id, is_public,
                allow_cross_tree_linking, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                tree_id, name, description, owner_id, int(is_public),
                int(allow_cross_tree_linking), now, now,
            ),
        )
        return self.get(tree_id)

    def get(self, tree_id: str) -> Tree | None:
        row = self.conn.execute("SELECT * FROM trees WHERE id = ?", (tree_id,)).fetchone()
        return Tree.model_validate(dict(row)) if row else None

    def list_all(self) -> list[Tree]:
        rows = self.conn.execute("SELECT * FROM trees ORDER BY name").fetchall()
        return [Tree.model_validate(dict(row)) for row in rows]

    def list_visible(self, user_id: int) -> list[Tree]:
        """Trees the user is a member of, plus public trees."""
        rows = self.conn.execute(
            """
            SELECT DISTINCT t.* FROM trees t
            LEFT JOIN tree_members m ON m.tree_id = t.id AND m.user_id = ?
            WHERE m.user_id IS NOT NULL OR t.is_public = 1
            ORDER BY t.name
            """,
            (user_id,),
        ).fetchall()
        return [Tree.model_validate(dict(row)) for row in rows]

    def update(self, tree_id: str, fields: dict) -> bool:
        return self._update_columns("trees", tree_id, fields, self._UPDATABLE) > 0

    def delete(self, tree_id: str) -> bool:
        cursor = self.conn.execute("DELETE FROM trees WHERE id = ?", (tree_id,))
        return cursor.rowcount > 0

    # =========================================================================
    # Members
    # =========================================================================

    def add_member(self, tree_id: str, user_id: int, role: TreeRole) -> TreeMember:
        try:
            self.conn.execute(
                """
                INSERT INTO tree_members (tree_id, user_id, role, joined_at)
                VALUES (?, ?, ?, ?)
                """,
                (tree_id, user_id, to_db(role), self._now_iso()),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError("User is already a member of this tree") from e
        return self.get_member(tree_id, user_id)

    def get_member(self, tree_id: str, user_id: int) -> TreeMember | None:
        row = self.conn.execute(
            """
            SELECT m.*, u.username FROM tree_members m
            JOIN users u ON u.id = m.user_id
            WHERE m.tree_id = ? AND m.user_id = ?
            """,
            (tree_id, user_id),
        ).fetchone()
        return TreeMember.model_validate(dict(row)) if row else None

    def get_member_role(self, tree_id: str, user_id: int) -> TreeRole | None:
        row = self.conn.execute(
            "SELECT role FROM tree_members WHERE tree_id = ? AND user_id = ?",
            (tree_id, user_id),
        ).fetchone()
        return TreeRole(row["role"]) if row else None

    def list_members(self, tree_id: str) -> list[TreeMember]:
        rows = self.conn.execute(
            """
            SELECT m.*, u.username FROM tree_members m
            JOIN users u ON u.id = m.user_id
            WHERE m.tree_id = ?
            ORDER BY m.role DESC, u.username
            """,
            (tree_id,),
        ).fetchall()
        return [TreeMember.model_validate(dict(row)) for row in rows]

    def update_member_role(self, tree_id: str, user_id: int, role: TreeRole) -> bool:
        cursor = self.conn.execute(
            "UPDATE tree_members SET role = ? WHERE tree_id = ? AND user_id = ?",
            (to_db(role), tree_id, user_id),
        )
        return cursor.rowcount > 0

    def remove_member(self, tree_id: str, user_id: int) -> bool:
        cursor = self.conn.execute(
            "DELETE FROM tree_members WHERE tree_id = ? AND user_id = ?",
            (tree_id, user_id),
        )
        return cursor.rowcount > 0

    def count_owners(self, tree_id: str) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM tree_members WHERE tree_id = ? AND role = ?",
            (tree_id, int(TreeRole.OWNER)),
        ).fetchone()
        return row[0]

    # =========================================================================
    # Admin Assignments
    # =========================================================================

    def assign_admin(self, user_id: int, tree_id: str) -> None:
        self.conn.execute(
            """
            INSERT OR IGNORE INTO admin_tree_assignments (user_id, tree_id, assigned_at)
            VALUES (?, ?, ?)
            """,
            (user_id, tree_id, self._now_iso()),
        )

    def has_admin_assignment(self, user_id: int, tree_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM admin_tree_assignments WHERE user_id = ? AND tree_id = ?",
            (user_id, tree_id),
        ).fetchone()
        return row is not None
