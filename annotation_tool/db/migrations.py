"""Tracked schema migrations applied on top of ``SCHEMA_DDL``."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from annotation_tool.db.database import Database

logger = logging.getLogger(__name__)

MIGRATIONS_DDL = """
CREATE TABLE IF NOT EXISTS migrations (
    migration_id INTEGER PRIMARY KEY AUTOINCREMENT,
    version      TEXT NOT NULL UNIQUE,
    name         TEXT NOT NULL,
    applied_at   DATETIME DEFAULT CURRENT_TIMESTAMP,
    checksum     TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_migrations_version ON migrations(version);
"""


@dataclass(frozen=True)
class Migration:
    version: str
    name: str
    statements: tuple[str, ...]

    @property
    def checksum(self) -> str:
        return hashlib.md5(";\n".join(self.statements).encode("utf-8")).hexdigest()


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version="001",
        name="add_creator_editor_fields",
        statements=(
            "ALTER TABLE images ADD COLUMN created_by TEXT NULL",
            "ALTER TABLE images ADD COLUMN last_edited_by TEXT NULL",
            "ALTER TABLE annotations ADD COLUMN created_by TEXT NULL",
            "ALTER TABLE annotations ADD COLUMN last_edited_by TEXT NULL",
            "UPDATE images SET created_by = 'system' WHERE created_by IS NULL",
            "UPDATE annotations SET created_by = 'system' WHERE created_by IS NULL",
        ),
    ),
)


def _ensure_table(db: Database) -> None:
    conn = db.connection()
    conn.executescript(MIGRATIONS_DDL)
    conn.commit()


def applied_versions(db: Database) -> list[str]:
    _ensure_table(db)
    rows = db.query("SELECT version FROM migrations ORDER BY version")
    return [r["version"] for r in rows]


def apply_pending(db: Database) -> list[str]:
    """Apply every migration not yet recorded, each in its own transaction."""
    done = set(applied_versions(db))
    applied: list[str] = []
    for migration in MIGRATIONS:
        if migration.version in done:
            continue
        with db.transaction() as conn:
            for stmt in migration.statements:
                conn.execute(stmt)
            conn.execute(
                "INSERT INTO migrations (version, name, checksum) VALUES (?, ?, ?)",
                (migration.version, migration.name, migration.checksum),
            )
        logger.info(f"Applied migration {migration.version}_{migration.name}")
        applied.append(migration.version)
    return applied


def verify_checksums(db: Database) -> list[str]:
    """Versions whose recorded checksum differs from the migration on disk."""
    known = {m.version: m for m in MIGRATIONS}
    mismatched: list[str] = []
    for row in db.query("SELECT version, checksum FROM migrations ORDER BY version"):
        migration = known.get(row["version"])
        if migration is not None and migration.checksum != row["checksum"]:
            mismatched.append(row["version"])
    return mismatched
