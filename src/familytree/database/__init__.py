"""Database access for familytree."""

from familytree.database.connection import Database, get_database, now_iso

__all__ = ["Database", "get_database", "now_iso"]
