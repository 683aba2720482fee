"""Tests for database initialization and transactions."""

import sqlite3

import pytest

from familytree.database import Database
from familytree.errors import ValidationError
from familytree.repositories import UserRepository


class TestDatabaseInitialization:
    """Test schema creation and migrations."""

    def test_creates_database_file_and_directory(self, tmp_path):
        """Test the database file and missing parent directories are created."""
        db_path = tmp_path / "nested" / "dir" / "familytree.db"

        Database(db_path)

        assert db_path.exists()

    def test_applies_all_migrations(self, db):
        """Test every numbered migration is recorded."""
        assert db.schema_version() == 2

    def test_creates_tables(self, db):
        """Test core and review workflow tables exist."""
        with db.connection() as conn:
            tables = {
                row["name"]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }

        for table in (
            "users",
            "trees",
            "tree_members",
            "persons",
            "parent_child",
            "unions",
            "union_members",
            "person_links",
            "audit_log",
            "relationship_predictions",
            "suggestions",
            "support_tickets",
        ):
            assert table in tables

    def test_reopening_does_not_reapply_migrations(self, tmp_path):
        """Test opening an existing database keeps its schema version."""
        db_path = tmp_path / "familytree.db"
        Database(db_path)

        reopened = Database(db_path)

        assert reopened.schema_version() == 2
        with reopened.connection() as conn:
            count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
        assert count == 2

    def test_foreign_keys_enabled(self, db):
        """Test connections enforce foreign keys."""
        with db.connection() as conn:
            assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1


class TestTransactions:
    """Test commit and rollback behaviour."""

    def test_commit_on_success(self, db):
        with db.transaction() as conn:
            UserRepository(conn).create("alice")

        with db.connection() as conn:
            assert UserRepository(conn).get_by_username("alice") is not None

    def test_rollback_on_domain_error(self, db):
        """Test a domain error undoes the whole unit of work."""
        with pytest.raises(ValidationError):
            with db.transaction() as conn:
                UserRepository(conn).create("alice")
                raise ValidationError("stop")

        with db.connection() as conn:
            assert UserRepository(conn).get_by_username("alice") is None

    def test_rollback_on_unexpected_error(self, db):
        with pytest.raises(sqlite3.OperationalError):
            with db.transaction() as conn:
                UserRepository(conn).create("bob")
                conn.execute("SELECT * FROM missing_table")

        with db.connection() as conn:
            assert UserRepository(conn).get_by_username("bob") is None
