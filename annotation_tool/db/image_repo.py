"""Repository for the ``images`` table."""

from __future__ import annotations

import sqlite3
from typing import Any, Optional

from annotation_tool.db.database import Database, RunResult, constraint_violation
from annotation_tool.db.schema import writable_columns
from annotation_tool.models.image import Image

# Labels and confidences are aggregated over the same joined rows, so the two
# comma-joined lists stay position-aligned.
_WITH_LABELS_SQL = """
    SELECT
        i.*,
        GROUP_CONCAT(l.label_name) AS labels,
        GROUP_CONCAT(a.confidence) AS confidences
    FROM images i
    LEFT JOIN annotations a ON i.image_id = a.image_id
    LEFT JOIN labels l ON a.label_id = l.label_id
"""


class ImageRepository:
    """Single-Responsibility repository for image persistence."""

    _INSERTABLE = writable_columns("images") | {"image_id"}

    def __init__(self, db: Database):
        self._db = db

    # -- Create ----------------------------------------------------------------

    def create(self, record: dict[str, Any]) -> Image:
        """Insert an image row. Raises ``ConstraintViolation`` on a duplicate filename."""
        data = {k: v for k, v in record.items() if k in self._INSERTABLE and v is not None}
        columns = ", ".join(data)
        placeholders = ", ".join("?" for _ in data)
        try:
            result = self._db.run(
                f"INSERT INTO images ({columns}) VALUES ({placeholders})",
                tuple(data.values()),
            )
        except sqlite3.IntegrityError as exc:
            raise constraint_violation(exc, "images") from exc
        return self.find_by_id(result.last_id)  # type: ignore[arg-type,return-value]

    # -- Read ------------------------------------------------------------------

    def find_all(self) -> list[Image]:
        rows = self._db.query("SELECT * FROM images ORDER BY uploaded_at DESC, image_id DESC")
        return [Image.from_row(r) for r in rows]

    def find_by_id(self, image_id: int) -> Optional[Image]:
        row = self._db.query_one("SELECT * FROM images WHERE image_id = ?", (image_id,))
        return Image.from_row(row) if row else None

    def find_by_filename(self, filename: str) -> Optional[Image]:
        row = self._db.query_one("SELECT * FROM images WHERE filename = ?", (filename,))
        return Image.from_row(row) if row else None

    def exists(self, image_id: int) -> bool:
        row = self._db.query_one("SELECT 1 AS found FROM images WHERE image_id = ?", (image_id,))
        return row is not None

    def find_with_labels(self) -> list[Image]:
        """All images with their label names and confidences, newest upload first."""
        rows = self._db.query(
            _WITH_LABELS_SQL
            + " GROUP BY i.image_id ORDER BY i.uploaded_at DESC, i.image_id DESC"
        )
        return [Image.from_row(r) for r in rows]

    def search_by_label(self, label_name: str) -> list[Image]:
        """Images carrying ``label_name``, each with its full label list."""
        rows = self._db.query(
            _WITH_LABELS_SQL
            + """ WHERE i.image_id IN (
                      SELECT a2.image_id FROM annotations a2
                      JOIN labels l2 ON a2.label_id = l2.label_id
                      WHERE l2.label_name = ?
                  )
                  GROUP BY i.image_id
                  ORDER BY i.uploaded_at DESC, i.image_id DESC""",
            (label_name,),
        )
        return [Image.from_row(r) for r in rows]

    def find_for_export(self) -> list[dict[str, Any]]:
        """One flat row per image, ordered by id, for tabular export.

        NULL audit values are coalesced to '' so every joined list has one
        entry per annotation.
        """
        return self._db.query(
            """SELECT
                   i.image_id, i.filename, i.original_name, i.file_path,
                   i.file_size, i.mime_type, i.uploaded_at,
                   i.created_by AS image_created_by,
                   i.last_edited_by AS image_last_edited_by,
                   GROUP_CONCAT(l.label_name) AS labels,
                   GROUP_CONCAT(a.confidence) AS confidences,
                   GROUP_CONCAT(CASE WHEN a.annotation_id IS NULL THEN NULL
                                     ELSE COALESCE(a.created_by, '') END) AS annotation_creators,
                   GROUP_CONCAT(CASE WHEN a.annotation_id IS NULL THEN NULL
                                     ELSE COALESCE(a.last_edited_by, '') END) AS annotation_editors
               FROM images i
               LEFT JOIN annotations a ON i.image_id = a.image_id
               LEFT JOIN labels l ON a.label_id = l.label_id
               GROUP BY i.image_id
               ORDER BY i.image_id"""
        )

    def stats(self) -> dict[str, Any]:
        images = self._db.query_one(
            """SELECT
                   COUNT(*) AS total_images,
                   AVG(file_size) AS avg_file_size,
                   MIN(file_size) AS min_file_size,
                   MAX(file_size) AS max_file_size,
                   COUNT(DISTINCT mime_type) AS mime_types_count,
                   MIN(uploaded_at) AS oldest_upload,
                   MAX(uploaded_at) AS newest_upload
               FROM images"""
        ) or {}
        annotations = self._db.query_one(
            """SELECT
                   COUNT(*) AS total_annotations,
                   AVG(confidence) AS avg_confidence,
                   COUNT(DISTINCT image_id) AS annotated_images
               FROM annotations"""
        ) or {}
        merged = {**images, **annotations}
        merged["unannotated_images"] = (
            merged.get("total_images", 0) - merged.get("annotated_images", 0)
        )
        return merged

    # -- Update ----------------------------------------------------------------

    def update(self, image_id: int, fields: dict[str, Any]) -> int:
        """Update only the supplied columns. Returns the changed row count."""
        allowed = writable_columns("images")
        filtered = {k: v for k, v in fields.items() if k in allowed}
        if not filtered:
            return 0

        set_parts = [f"{k} = ?" for k in filtered]
        values = list(filtered.values())
        values.append(image_id)
        try:
            result = self._db.run(
                f"UPDATE images SET {', '.join(set_parts)} WHERE image_id = ?",
                tuple(values),
            )
        except sqlite3.IntegrityError as exc:
            raise constraint_violation(exc, "images") from exc
        return result.changes

    # -- Delete ----------------------------------------------------------------

    def delete(self, image_id: int) -> RunResult:
        return self._db.run("DELETE FROM images WHERE image_id = ?", (image_id,))
