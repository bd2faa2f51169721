"""
CSV service: bulk export of images with their annotations, and bulk import
of the same layout.

Each image is one row; its labels, confidences, annotation creators and
annotation editors are comma-joined inside single (quoted) fields.
"""
from __future__ import annotations

import csv
import io
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Optional

from annotation_tool.config import get_import_error_limit
from annotation_tool.db.annotation_repo import AnnotationRepository
from annotation_tool.db.database import Database
from annotation_tool.db.image_repo import ImageRepository
from annotation_tool.db.schema import validate
from annotation_tool.errors import AnnotationToolError, ValidationError
from annotation_tool.models.annotation import DEFAULT_CONFIDENCE
from annotation_tool.services.annotation_service import check_confidence
from annotation_tool.services.label_service import LabelService

logger = logging.getLogger(__name__)

CSV_HEADERS = (
    "image_id",
    "filename",
    "original_name",
    "file_path",
    "file_size",
    "mime_type",
    "uploaded_at",
    "image_created_by",
    "image_last_edited_by",
    "labels",
    "confidences",
    "annotation_creators",
    "annotation_editors",
)
REQUIRED_HEADERS = ("image_id", "filename", "labels")
LIST_SEPARATOR = ","
DEFAULT_MIME_TYPE = "image/jpeg"
NO_DATA_MESSAGE = "CSV file must contain headers and at least one data row"


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return (
            f"Import completed: {self.imported} imported, "
            f"{self.skipped} skipped, {self.errors} errors"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "errors": self.errors,
            "error_details": list(self.error_details),
            "message": self.message,
        }


def _split_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(LIST_SEPARATOR)]


def _parse_int(value: str, column: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"Column '{column}' must be an integer, got {value!r}") from None


def _parse_confidence(raw: Optional[str]) -> float:
    if raw is None or raw == "":
        return DEFAULT_CONFIDENCE
    try:
        value = float(raw)
    except ValueError:
        raise ValidationError(f"Invalid confidence {raw!r}") from None
    return check_confidence(value)


def _read_headers(reader) -> Optional[list[str]]:
    """First non-blank record of ``reader``, cleaned; ``None`` for an empty file."""
    for row in reader:
        if any(value.strip() for value in row):
            return [h.strip().strip('"') for h in row]
    return None


class CsvService:
    """Tabular import/export of the whole annotation store."""

    def __init__(self, db: Database, error_limit: Optional[int] = None):
        self._db = db
        self._images = ImageRepository(db)
        self._annotations = AnnotationRepository(db)
        self._labels = LabelService(db)
        self._error_limit = get_import_error_limit() if error_limit is None else error_limit

    # -- Export ----------------------------------------------------------------

    def export_csv(self) -> str:
        """Serialise every image, one row each, ordered by ``image_id``."""
        buf = io.StringIO(newline="")
        # QUOTE_MINIMAL quotes any value containing a lineterminator character
        writer = csv.writer(buf, lineterminator="\r\n")
        writer.writerow(CSV_HEADERS)
        rows = self._images.find_for_export()
        for row in rows:
            writer.writerow(["" if row.get(h) is None else row[h] for h in CSV_HEADERS])
        logger.info(f"Exported {len(rows)} images to CSV")
        return buf.getvalue()

    # -- Import ----------------------------------------------------------------

    def import_csv(self, text: str, imported_by: str = "csv-import") -> ImportResult:
        """
        Import rows produced by ``export_csv`` (or a compatible subset).

        Every row runs in its own transaction: an existing ``image_id`` is
        skipped, a failing row is counted and rolled back, and the rest of the
        file is still processed.  A missing header row or required header
        raises ``ValidationError`` before anything is written.
        """
        reader = csv.reader(io.StringIO(text, newline=""))
        try:
            headers = _read_headers(reader)
        except csv.Error as exc:
            raise ValidationError(f"Unreadable CSV header row: {exc}") from exc
        if headers is None:
            raise ValidationError(NO_DATA_MESSAGE)

        missing = [h for h in REQUIRED_HEADERS if h not in headers]
        if missing:
            raise ValidationError(f"Missing required headers: {', '.join(missing)}")

        result = ImportResult()
        row_number = 1
        while True:
            # A malformed record fails only its own row
            try:
                raw = next(reader)
            except StopIteration:
                break
            except csv.Error as exc:
                row_number += 1
                self._record_error(result, row_number, exc)
                continue

            values = [value.strip() for value in raw]
            if not any(values):
                continue
            row_number += 1
            try:
                if len(values) != len(headers):
                    raise ValidationError("Column count mismatch")
                outcome = self._import_row(dict(zip(headers, values)), imported_by)
            except (AnnotationToolError, sqlite3.Error, csv.Error) as exc:
                self._record_error(result, row_number, exc)
                continue
            if outcome:
                result.imported += 1
            else:
                result.skipped += 1

        if row_number == 1:
            raise ValidationError(NO_DATA_MESSAGE)

        logger.info(result.message)
        return result

    def _record_error(self, result: ImportResult, row_number: int, exc: Exception) -> None:
        result.errors += 1
        detail = f"Row {row_number}: {exc}"
        if len(result.error_details) < self._error_limit:
            result.error_details.append(detail)
        logger.warning(f"CSV import failed for {detail}")

    def _import_row(self, row: dict[str, str], imported_by: str) -> bool:
        """Insert one row; ``False`` means the image already existed."""
        if not row.get("image_id") or not row.get("filename"):
            raise ValidationError("Missing required fields (image_id, filename)")
        image_id = _parse_int(row["image_id"], "image_id")
        if self._images.exists(image_id):
            return False

        record: dict[str, Any] = {
            "image_id": image_id,
            "filename": row["filename"],
            "original_name": row.get("original_name") or row["filename"],
            "file_path": row.get("file_path") or "",
            "file_size": _parse_int(row["file_size"], "file_size") if row.get("file_size") else None,
            "mime_type": row.get("mime_type") or DEFAULT_MIME_TYPE,
            "uploaded_at": row.get("uploaded_at") or None,
            "created_by": row.get("image_created_by") or imported_by,
            "last_edited_by": row.get("image_last_edited_by") or None,
        }
        check = validate("images", record)
        if not check.valid:
            raise ValidationError(check.errors)

        labels = _split_list(row.get("labels"))
        confidences = _split_list(row.get("confidences"))
        creators = _split_list(row.get("annotation_creators"))
        editors = _split_list(row.get("annotation_editors"))

        with self._db.transaction():
            if self._images.exists(image_id):
                return False
            self._images.create(record)
            for i, name in enumerate(labels):
                if not name:
                    continue
                confidence = _parse_confidence(confidences[i] if i < len(confidences) else None)
                label = self._labels.find_or_create(name)
                self._annotations.create({
                    "image_id": image_id,
                    "label_id": label.label_id,
                    "confidence": confidence,
                    "created_by": (creators[i] if i < len(creators) else "") or imported_by,
                    "last_edited_by": (editors[i] if i < len(editors) else "") or None,
                })
        return True
