"""Repository for the ``labels`` table."""

from __future__ import annotations

import sqlite3
from typing import Any, Optional

from annotation_tool.db.database import Database, RunResult, constraint_violation
from annotation_tool.db.schema import writable_columns
from annotation_tool.models.label import Label

_USAGE_SQL = """
    SELECT
        l.*,
        COUNT(a.annotation_id) AS usage_count,
        AVG(a.confidence) AS avg_confidence
    FROM labels l
    LEFT JOIN annotations a ON l.label_id = a.label_id
"""


class LabelRepository:
    """Single-Responsibility repository for label persistence."""

    def __init__(self, db: Database):
        self._db = db

    # -- Create ----------------------------------------------------------------

    def create(self, record: dict[str, Any]) -> Label:
        """Insert a label row. Raises ``ConstraintViolation`` on a duplicate name."""
        try:
            result = self._db.run(
                "INSERT INTO labels (label_name, label_description) VALUES (?, ?)",
                (record["label_name"], record.get("label_description")),
            )
        except sqlite3.IntegrityError as exc:
            raise constraint_violation(exc, "labels") from exc
        return self.find_by_id(result.last_id)  # type: ignore[arg-type,return-value]

    # -- Read ------------------------------------------------------------------

    def find_all(self) -> list[Label]:
        rows = self._db.query("SELECT * FROM labels ORDER BY label_name")
        return [Label.from_row(r) for r in rows]

    def find_by_id(self, label_id: int) -> Optional[Label]:
        row = self._db.query_one("SELECT * FROM labels WHERE label_id = ?", (label_id,))
        return Label.from_row(row) if row else None

    def find_by_name(self, label_name: str) -> Optional[Label]:
        """Exact (case-sensitive) match, as enforced by the UNIQUE constraint."""
        row = self._db.query_one("SELECT * FROM labels WHERE label_name = ?", (label_name,))
        return Label.from_row(row) if row else None

    def find_by_name_ci(self, label_name: str) -> Optional[Label]:
        """Case-insensitive match, with usage statistics."""
        row = self._db.query_one(
            _USAGE_SQL
            + """ WHERE LOWER(l.label_name) = LOWER(?)
                  GROUP BY l.label_id
                  ORDER BY l.label_id
                  LIMIT 1""",
            (label_name,),
        )
        return Label.from_row(row) if row else None

    def find_with_usage_stats(self) -> list[Label]:
        rows = self._db.query(
            _USAGE_SQL + " GROUP BY l.label_id ORDER BY usage_count DESC, l.label_name"
        )
        return [Label.from_row(r) for r in rows]

    def search(self, term: str) -> list[Label]:
        """Substring match on name or description."""
        pattern = f"%{term}%"
        rows = self._db.query(
            _USAGE_SQL
            + """ WHERE l.label_name LIKE ? OR l.label_description LIKE ?
                  GROUP BY l.label_id
                  ORDER BY usage_count DESC, l.label_name""",
            (pattern, pattern),
        )
        return [Label.from_row(r) for r in rows]

    def stats(self) -> dict[str, Any]:
        return self._db.query_one(
            """SELECT
                   COUNT(*) AS total_labels,
                   COUNT(CASE WHEN usage_count > 0 THEN 1 END) AS used_labels,
                   COUNT(CASE WHEN usage_count = 0 THEN 1 END) AS unused_labels,
                   AVG(usage_count) AS avg_usage_per_label,
                   MAX(usage_count) AS max_usage
               FROM (
                   SELECT l.label_id, COUNT(a.annotation_id) AS usage_count
                   FROM labels l
                   LEFT JOIN annotations a ON l.label_id = a.label_id
                   GROUP BY l.label_id
               )"""
        ) or {}

    # -- Update ----------------------------------------------------------------

    def update(self, label_id: int, fields: dict[str, Any]) -> int:
        allowed = writable_columns("labels")
        filtered = {k: v for k, v in fields.items() if k in allowed}
        if not filtered:
            return 0

        set_parts = [f"{k} = ?" for k in filtered]
        values = list(filtered.values())
        values.append(label_id)
        try:
            result = self._db.run(
                f"UPDATE labels SET {', '.join(set_parts)} WHERE label_id = ?",
                tuple(values),
            )
        except sqlite3.IntegrityError as exc:
            raise constraint_violation(exc, "labels") from exc
        return result.changes

    # -- Delete ----------------------------------------------------------------

    def delete(self, label_id: int) -> RunResult:
        return self._db.run("DELETE FROM labels WHERE label_id = ?", (label_id,))
