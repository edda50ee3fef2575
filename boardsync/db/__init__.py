"""
boardsync Database Package

SQLite persistence for boards, lanes and their referential anchors.
"""

from boardsync.db.database import (
    Database,
    SQLiteDatabase,
    get_database,
)
from boardsync.db.schema import SCHEMA_SQLITE

__all__ = [
    "Database",
    "SQLiteDatabase",
    "get_database",
    "SCHEMA_SQLITE",
]
