"""Person persistence."""

from typing import Any

from familytree.models.person import Person
from familytree.repositories.base import BaseRepository, to_db

PERSON_COLUMNS = (
    "primary_name",
    "name_arabic",
    "name_english",
    "name_nobiin",
    "family_name",
    "sex",
    "birth_date",
    "birth_precision",
    "birth_place",
    "death_date",
    "death_precision",
    "death_place",
    "occupation",
    "notes",
    "needs_review",
)


class PersonRepository(BaseRepository):
    """Repository for persons. Soft-deleted rows are hidden unless asked for."""

    def create(self, tree_id: str, fields: dict[str, Any]) -> Person:
        person_id = fields.get("id") or self.new_id()
        now = self._now_iso()
        columns = [name for name in PERSON_COLUMNS if name in fields]
        placeholders = ", ".join("?" for _ in columns)
        self.conn.execute(
            f"""
            INSERT INTO persons (id, tree_id, {', '.join(columns)}, created_at, updated_at)
            VALUES (?, ?, {placeholders}, ?, ?)
            """,
            (person_id, tree_id, *[to_db(fields[name]) for name in columns], now, now),
        )
        return self.get(person_id)

    def get(self, person_id: str, include_deleted: bool = False) -> Person | None:
        sql = "SELECT * FROM persons WHERE id = ?"
        if not include_deleted:
            sql += " AND is_deleted = 0"
        row = self.conn.execute(sql, (person_id,)).fetchone()
        return Person.model_validate(dict(row)) if row else None

    def get_many(self, person_ids: list[str]) -> dict[str, Person]:
        if not person_ids:
            return {}
        placeholders = ", ".join("?" for _ in person_ids)
        rows = self.conn.execute(
            f"SELECT * FROM persons WHERE id IN ({placeholders})", list(person_ids)
        ).fetchall()
        return {row["id"]: Person.model_validate(dict(row)) for row in rows}

    def list_in_tree(self, tree_id: str) -> list[Person]:
        rows = self.conn.execute(
            "SELECT * FROM persons WHERE tree_id = ? AND is_deleted = 0 ORDER BY created_at, id",
            (tree_id,),
        ).fetchall()
        return [Person.model_validate(dict(row)) for row in rows]

    def search(
        self,
        tree_id: str,
        query: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Person], int]:
        """Page through a tree's persons, optionally filtered by any name column.

        Returns:
            Tuple of (persons on this page, total matching)
        """
        where = "tree_id = ? AND is_deleted = 0"
        params: list[Any] = [tree_id]
        if query:
            term = query.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            pattern = f"%{term}%"
            where += """
                AND (
                    LOWER(COALESCE(primary_name, '')) LIKE ? ESCAPE '\\'
                    OR LOWER(COALESCE(name_arabic, '')) LIKE ? ESCAPE '\\'
                    OR LOWER(COALESCE(name_english, '')) LIKE ? ESCAPE '\\'
                    OR LOWER(COALESCE(name_nobiin, '')) LIKE ? ESCAPE '\\'
                    OR LOWER(COALESCE(family_name, '')) LIKE ? ESCAPE '\\'
                )
            """
            params.extend([pattern] * 5)

        total = self.conn.execute(
            f"SELECT COUNT(*) FROM persons WHERE {where}", params
        ).fetchone()[0]
        rows = self.conn.execute(
            f"""
            SELECT * FROM persons WHERE {where}
            ORDER BY COALESCE(name_english, primary_name, name_arabic, name_nobiin), id
            LIMIT ? OFFSET ?
            """,
            [*params, page_size, (page - 1) * page_size],
        ).fetchall()
        return [Person.model_validate(dict(row)) for row in rows], total

    def update(self, person_id: str, fields: dict[str, Any]) -> bool:
        return self._update_columns("persons", person_id, fields, PERSON_COLUMNS) > 0

    def soft_delete(self, person_id: str, user_id: int | None) -> bool:
        now = self._now_iso()
        cursor = self.conn.execute(
            """
            UPDATE persons
            SET is_deleted = 1, deleted_at = ?, deleted_by_user_id = ?, updated_at = ?
            WHERE id = ? AND is_deleted = 0
            """,
            (now, user_id, now, person_id),
        )
        return cursor.rowcount > 0

    def restore(self, person_id: str) -> bool:
        cursor = self.conn.execute(
            """
            UPDATE persons
            SET is_deleted = 0, deleted_at = NULL, deleted_by_user_id = NULL, updated_at = ?
            WHERE id = ? AND is_deleted = 1
            """,
            (self._now_iso(), person_id),
        )
        return cursor.rowcount > 0

    def count_in_tree(self, tree_id: str) -> int:
        return self.conn.execute(
            "SELECT COUNT(*) FROM persons WHERE tree_id = ? AND is_deleted = 0", (tree_id,)
        ).fetchone()[0]
