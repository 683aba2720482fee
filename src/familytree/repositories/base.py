"""Shared helpers for repositories."""

import sqlite3
import uuid
from datetime import date
from enum import Enum
from typing import Any

from familytree.database.connection import now_iso


def to_db(value: Any) -> Any:
    """Convert a model value into something sqlite3 can bind."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


class BaseRepository:
    """Repository bound to a caller-owned connection.

    The caller decides the transaction boundary; repositories never commit.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return now_iso()

    def _update_columns(
        self,
        table: str,
        row_id: Any,
        fields: dict[str, Any],
        allowed: tuple[str, ...],
        touch: bool = True,
    ) -> int:
        """UPDATE only whitelisted columns; returns affected row count."""
        columns = [name for name in fields if name in allowed]
        if not columns:
            return 0
        assignments = [f"{name} = ?" for name in columns]
        params = [to_db(fields[name]) for name in columns]
        if touch:
            assignments.append("updated_at = ?")
            params.append(self._now_iso())
        params.append(row_id)
        cursor = self.conn.execute(
            f"UPDATE {table} SET {', '.join(assignments)} WHERE id = ?",
            params,
        )
        return cursor.rowcount
