"""SQLite storage for settings and correlation records."""

from outreachmail.infrastructure.sqlite.client import SQLiteClient

__all__ = ["SQLiteClient"]
