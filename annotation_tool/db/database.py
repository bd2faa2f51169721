"""Core database connection with ACID transaction support."""

from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generator, Optional

from annotation_tool.db.schema import SCHEMA_DDL
from annotation_tool.errors import ConstraintViolation, DatabaseBusyError

logger = logging.getLogger(__name__)

_ENTITY_NAMES = {"images": "Image", "labels": "Label", "annotations": "Annotation"}


@dataclass(frozen=True)
class RunResult:
    """Outcome of a write statement."""
    changes: int
    last_id: Optional[int] = None


def _is_busy(exc: sqlite3.OperationalError) -> bool:
    msg = str(exc).lower()
    return "locked" in msg or "busy" in msg


def constraint_violation(exc: sqlite3.IntegrityError, table: str) -> ConstraintViolation:
    """Turn an engine integrity error into a domain ``ConstraintViolation``."""
    msg = str(exc)
    entity = _ENTITY_NAMES.get(table, table)
    if "UNIQUE constraint failed" in msg:
        columns = [c.split(".")[-1] for c in msg.split(":", 1)[-1].split(",")]
        what = " and ".join(c.strip() for c in columns)
        return ConstraintViolation(
            f"{entity} with this {what} already exists", table=table, constraint="unique"
        )
    if "FOREIGN KEY constraint failed" in msg:
        return ConstraintViolation(
            f"{entity} references a row that does not exist", table=table, constraint="foreign_key"
        )
    if "CHECK constraint failed" in msg:
        return ConstraintViolation(
            f"{entity} violates a check constraint", table=table, constraint="check"
        )
    if "NOT NULL constraint failed" in msg:
        return ConstraintViolation(
            f"{entity} is missing a required value", table=table, constraint="not_null"
        )
    return ConstraintViolation(f"{entity} constraint violation: {msg}", table=table)


class Database:
    """
    SQLite database wrapper with explicit ACID transaction support.

    Implements the Unit-of-Work pattern: every mutation goes through
    ``transaction()``, which commits on success and rolls back on failure.
    Transactions nest; only the outermost block commits or rolls back.
    """

    def __init__(self, path: Optional[Path | str] = None, timeout: Optional[float] = None):
        from annotation_tool.config import get_database_config
        cfg = get_database_config()
        if path is None:
            self.path: Path = cfg.path
        elif isinstance(path, str):
            self.path = Path(path)
        else:
            self.path = path
        self.timeout = cfg.timeout if timeout is None else timeout
        self.journal_mode = cfg.journal_mode
        self._conn: Optional[sqlite3.Connection] = None
        self._depth = 0

    # -- connection lifecycle --------------------------------------------------

    def _ensure_dir(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._ensure_dir()
            self._conn = sqlite3.connect(
                str(self.path), timeout=self.timeout, check_same_thread=False
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute(f"PRAGMA journal_mode = {self.journal_mode}")
            logger.debug(f"Opened SQLite database at {self.path}")
        return self._conn

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
            self._depth = 0
            logger.debug(f"Closed SQLite database at {self.path}")

    def init(self) -> list[str]:
        """Create all tables and apply pending migrations (idempotent).

        Returns the versions of the migrations applied by this call.
        """
        from annotation_tool.db.migrations import apply_pending

        conn = self.connection()
        conn.executescript(SCHEMA_DDL)
        conn.commit()
        return apply_pending(self)

    # -- transaction helpers ---------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """ACID transaction: commits on success, rolls back on exception."""
        conn = self.connection()
        outermost = self._depth == 0
        try:
            if outermost and not conn.in_transaction:
                conn.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield conn
            finally:
                self._depth -= 1
            if outermost:
                conn.commit()
        except sqlite3.OperationalError as exc:
            if outermost:
                conn.rollback()
            if _is_busy(exc):
                raise DatabaseBusyError(f"Database is busy: {exc}") from exc
            raise
        except Exception:
            if outermost:
                conn.rollback()
            raise

    # -- low-level query helpers -----------------------------------------------

    def query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        try:
            rows = self.connection().execute(sql, params).fetchall()
        except sqlite3.OperationalError as exc:
            if _is_busy(exc):
                raise DatabaseBusyError(f"Database is busy: {exc}") from exc
            raise
        return [dict(r) for r in rows]

    def query_one(self, sql: str, params: tuple = ()) -> Optional[dict[str, Any]]:
        try:
            row = self.connection().execute(sql, params).fetchone()
        except sqlite3.OperationalError as exc:
            if _is_busy(exc):
                raise DatabaseBusyError(f"Database is busy: {exc}") from exc
            raise
        return dict(row) if row else None

    def run(self, sql: str, params: tuple = ()) -> RunResult:
        """Execute a write; joins the open transaction or commits on its own."""
        with self.transaction() as conn:
            cursor = conn.execute(sql, params)
        return RunResult(changes=cursor.rowcount, last_id=cursor.lastrowid)

    # -- diagnostics -----------------------------------------------------------

    def health(self) -> dict[str, Any]:
        """Connectivity check plus a few engine settings."""
        started = time.perf_counter()
        try:
            ping = self.query_one("SELECT 1 AS ok")
            if not ping or ping["ok"] != 1:
                raise RuntimeError("Basic query failed")
            fk = self.query_one("PRAGMA foreign_keys")
            journal = self.query_one("PRAGMA journal_mode")
            tables = self.query_one(
                "SELECT COUNT(*) AS n FROM sqlite_master "
                "WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
            )
        except (sqlite3.Error, RuntimeError, DatabaseBusyError) as exc:
            logger.error(f"Database health check failed: {exc}")
            return {
                "healthy": False,
                "error": str(exc),
                "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
            }

        return {
            "healthy": True,
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
            "database": {
                "path": str(self.path),
                "size_bytes": self.path.stat().st_size if self.path.exists() else 0,
                "tables": tables["n"] if tables else 0,
                "foreign_keys_enabled": bool(fk and fk["foreign_keys"] == 1),
                "journal_mode": journal["journal_mode"] if journal else None,
            },
        }


# -- module singleton ----------------------------------------------------------

_default_db: Optional[Database] = None


def get_db(path: Optional[Path] = None) -> Database:
    """Return (and lazily initialise) the module-level Database singleton."""
    global _default_db
    if _default_db is None:
        _default_db = Database(path)
        _default_db.init()
    return _default_db


def reset_db() -> None:
    """Close and discard the singleton (useful in tests)."""
    global _default_db
    if _default_db is not None:
        _default_db.close()
        _default_db = None
