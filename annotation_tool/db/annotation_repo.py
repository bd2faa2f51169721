"""Repository for the ``annotations`` junction table."""

from __future__ import annotations

import sqlite3
from typing import Any, Optional

from annotation_tool.db.database import Database, RunResult, constraint_violation
from annotation_tool.models.annotation import DEFAULT_CONFIDENCE, Annotation


class AnnotationRepository:
    """Single-Responsibility repository for annotation persistence."""

    def __init__(self, db: Database):
        self._db = db

    # -- Create ----------------------------------------------------------------

    def create(self, record: dict[str, Any]) -> Annotation:
        """Insert an annotation. Raises ``ConstraintViolation`` on a duplicate pair
        or a dangling image/label reference."""
        confidence = record.get("confidence")
        try:
            result = self._db.run(
                """INSERT INTO annotations
                   (image_id, label_id, confidence, created_by, last_edited_by)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    record["image_id"], record["label_id"],
                    DEFAULT_CONFIDENCE if confidence is None else confidence,
                    record.get("created_by"), record.get("last_edited_by"),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise constraint_violation(exc, "annotations") from exc
        return self.find_by_id(result.last_id)  # type: ignore[arg-type,return-value]

    # -- Read ------------------------------------------------------------------

    def find_all(self) -> list[Annotation]:
        rows = self._db.query("SELECT * FROM annotations ORDER BY annotation_id")
        return [Annotation.from_row(r) for r in rows]

    def find_by_id(self, annotation_id: int) -> Optional[Annotation]:
        row = self._db.query_one(
            "SELECT * FROM annotations WHERE annotation_id = ?", (annotation_id,)
        )
        return Annotation.from_row(row) if row else None

    def find_pair(self, image_id: int, label_id: int) -> Optional[Annotation]:
        row = self._db.query_one(
            "SELECT * FROM annotations WHERE image_id = ? AND label_id = ?",
            (image_id, label_id),
        )
        return Annotation.from_row(row) if row else None

    def find_by_image_id(self, image_id: int) -> list[Annotation]:
        """Annotations of one image joined with label details, newest first."""
        rows = self._db.query(
            """SELECT a.*, l.label_name, l.label_description
               FROM annotations a
               JOIN labels l ON a.label_id = l.label_id
               WHERE a.image_id = ?
               ORDER BY a.created_at DESC, a.annotation_id DESC""",
            (image_id,),
        )
        return [Annotation.from_row(r) for r in rows]

    def find_by_label_id(self, label_id: int) -> list[Annotation]:
        """Annotations using one label joined with image names, newest first."""
        rows = self._db.query(
            """SELECT a.*, i.filename, i.original_name
               FROM annotations a
               JOIN images i ON a.image_id = i.image_id
               WHERE a.label_id = ?
               ORDER BY a.created_at DESC, a.annotation_id DESC""",
            (label_id,),
        )
        return [Annotation.from_row(r) for r in rows]

    def count_for_image(self, image_id: int) -> int:
        row = self._db.query_one(
            "SELECT COUNT(*) AS n FROM annotations WHERE image_id = ?", (image_id,)
        )
        return row["n"] if row else 0

    # -- Update ----------------------------------------------------------------

    def update_confidence(
        self,
        image_id: int,
        label_id: int,
        confidence: float,
        edited_by: Optional[str] = None,
    ) -> int:
        try:
            result = self._db.run(
                """UPDATE annotations SET confidence = ?, last_edited_by = ?
                   WHERE image_id = ? AND label_id = ?""",
                (confidence, edited_by, image_id, label_id),
            )
        except sqlite3.IntegrityError as exc:
            raise constraint_violation(exc, "annotations") from exc
        return result.changes

    # -- Delete ----------------------------------------------------------------

    def delete(self, annotation_id: int) -> RunResult:
        return self._db.run(
            "DELETE FROM annotations WHERE annotation_id = ?", (annotation_id,)
        )

    def delete_pair(self, image_id: int, label_id: int) -> RunResult:
        return self._db.run(
            "DELETE FROM annotations WHERE image_id = ? AND label_id = ?",
            (image_id, label_id),
        )

    def delete_by_image_id(self, image_id: int) -> RunResult:
        return self._db.run("DELETE FROM annotations WHERE image_id = ?", (image_id,))

    def delete_by_label_id(self, label_id: int) -> RunResult:
        return self._db.run("DELETE FROM annotations WHERE label_id = ?", (label_id,))
