"""Database layer: SQLite with ACID transactions and repository pattern."""

from annotation_tool.db.database import Database, RunResult, get_db, reset_db
from annotation_tool.db.schema import SCHEMA_DDL, validate

__all__ = ["Database", "RunResult", "get_db", "reset_db", "SCHEMA_DDL", "validate"]
