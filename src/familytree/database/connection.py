"""SQLite database for family tree data.

Owns the database file, applies numbered SQL migrations on first use, and
hands out connections. Repositories never open connections themselves: a
service opens a ``connection()`` for reads or a ``transaction()`` for writes
and passes it to every repository taking part in the unit of work, so a
multi-table operation (merge, GEDCOM import) commits or rolls back as one.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from loguru import logger

from familytree.errors import FamilyTreeError

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def now_iso() -> str:
    """Return current UTC timestamp as ISO format string.

    Returns:
        str: ISO format timestamp (e.g., '2025-11-21T15:41:32.123456+00:00')
    """
    return datetime.now(timezone.utc).isoformat()


class Database:
    """Handle to the familytree SQLite database."""

    def __init__(self, db_path: str | Path):
        """Initialize database, creating the file and schema if needed.

        Args:
            db_path: Path to the database file (``~`` is expanded)
        """
        self.db_path = Path(db_path).expanduser()
        self._ensure_database_exists()

    def _ensure_database_exists(self) -> None:
        """Create database directory and bring schema up to date."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.connection() as conn:
            current = self._current_version(conn)
            if current == 0:
                logger.info(f"Initializing database: {self.db_path}")
            else:
                logger.debug(f"Database exists: {self.db_path} (schema v{current})")
            self._run_migrations(conn, current)

    @staticmethod
    def _current_version(conn: sqlite3.Connection) -> int:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL
            )
            """
        )
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row and row[0] is not None else 0

    def _run_migrations(self, conn: sqlite3.Connection, current_version: int) -> None:
        """Apply migrations newer than ``current_version`` in numeric order.

        Args:
            conn: Database connection
            current_version: Highest migration already applied
        """
        for migration_file in sorted(MIGRATIONS_DIR.glob("*.sql")):
            migration_num = int(migration_file.name.split("_")[0])

            if migration_num <= current_version:
                logger.debug(f"Skipping migration {migration_file.name} (already applied)")
                continue

            logger.info(f"Applying migration {migration_file.name}...")
            conn.executescript(migration_file.read_text(encoding="utf-8"))
            conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (migration_num, now_iso()),
            )
            conn.commit()
            logger.info(f"Applied migration {migration_file.name}")

    def schema_version(self) -> int:
        """Return the highest applied migration number."""
        with self.connection() as conn:
            return self._current_version(conn)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with context manager.

        Yields:
            sqlite3.Connection: Connection with row access by column name
        """
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a unit of work atomically.

        Commits when the block exits normally; rolls back and re-raises on any
        exception.

        Yields:
            sqlite3.Connection: Connection inside an open write transaction
        """
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.commit()
            except FamilyTreeError as e:
                logger.debug(f"Rolling back transaction: {e.message}")
                conn.rollback()
                raise
            except Exception as e:
                logger.error(f"Rolling back transaction due to error: {e}")
                conn.rollback()
                raise


# Global database instance
_database: Database | None = None


def get_database() -> Database:
    """Get or create the database configured by ``Config.database_path``."""
    global _database
    if _database is None:
        from familytree.config import get_config

        _database = Database(get_config().database_path)
    return _database
