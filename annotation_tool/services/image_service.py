"""
Image service: create, edit, browse and delete uploaded image records.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

from annotation_tool.db.annotation_repo import AnnotationRepository
from annotation_tool.db.database import Database
from annotation_tool.db.image_repo import ImageRepository
from annotation_tool.db.schema import validate
from annotation_tool.errors import ConstraintViolation, ValidationError
from annotation_tool.models.image import Image

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("filename", "original_name", "file_path", "file_size", "mime_type")
EDITABLE_FIELDS = ("original_name", "file_path", "file_size", "mime_type")


def timestamp_now() -> str:
    """UTC timestamp in the same layout SQLite's CURRENT_TIMESTAMP produces."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class ImageService:
    """Use cases for the ``images`` table."""

    def __init__(self, db: Database):
        self._db = db
        self._images = ImageRepository(db)
        self._annotations = AnnotationRepository(db)

    # -- Read ------------------------------------------------------------------

    def list_images(self) -> list[Image]:
        """All images with their labels and confidences, newest first."""
        return self._images.find_with_labels()

    def list_images_page(self, page: int = 1, limit: int = 10) -> dict[str, Any]:
        page = max(page, 1)
        limit = max(limit, 1)
        images = self.list_images()
        total = len(images)
        total_pages = math.ceil(total / limit) if total else 0
        offset = (page - 1) * limit
        return {
            "data": images[offset:offset + limit],
            "pagination": {
                "page": page,
                "limit": limit,
                "total_images": total,
                "total_pages": total_pages,
                "has_next_page": page < total_pages,
                "has_prev_page": page > 1,
            },
        }

    def get_image(self, image_id: int) -> Optional[Image]:
        """The image with its annotations, or ``None`` if it does not exist."""
        image = self._images.find_by_id(image_id)
        if image is None:
            return None
        image.annotations = self._annotations.find_by_image_id(image_id)
        image.labels = [a.label_name or "" for a in image.annotations]
        image.confidences = [a.confidence for a in image.annotations]
        return image

    def search_by_label(self, label_name: str) -> list[Image]:
        if not isinstance(label_name, str) or not label_name.strip():
            raise ValidationError("Valid label name is required")
        return self._images.search_by_label(label_name.strip())

    def stats(self) -> dict[str, Any]:
        return self._images.stats()

    # -- Create ----------------------------------------------------------------

    def create_image(self, data: dict[str, Any], created_by: Optional[str] = None) -> Image:
        """
        Validate and insert a new image record.

        Raises ``ValidationError`` for missing or malformed fields and
        ``ConstraintViolation`` when the stored filename is already taken.
        """
        missing = [f for f in REQUIRED_FIELDS if _is_blank(data.get(f))]
        if missing:
            raise ValidationError([f"Field '{f}' is required" for f in missing])

        record = {k: data[k] for k in REQUIRED_FIELDS}
        if created_by is not None:
            record["created_by"] = created_by
        result = validate("images", record)
        if not result.valid:
            logger.warning(f"Rejected image {data.get('filename')!r}: {result.errors}")
            raise ValidationError(result.errors)

        try:
            with self._db.transaction():
                image = self._images.create(record)
        except ConstraintViolation as exc:
            if exc.constraint == "unique":
                raise ConstraintViolation(
                    "Image with this filename already exists",
                    table="images", constraint="unique",
                ) from exc
            raise

        logger.info(f"Created image {image.image_id}: {image.filename}")
        return image

    # -- Update ----------------------------------------------------------------

    def update_image(
        self,
        image_id: int,
        data: dict[str, Any],
        edited_by: Optional[str] = None,
    ) -> Optional[Image]:
        """
        Apply a partial update and refresh ``updated_at``.

        Returns ``None`` when ``image_id`` does not exist.
        """
        updates = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
        if not updates:
            raise ValidationError("No valid fields to update")
        empty = [f for f, v in updates.items() if v is not None and _is_blank(v)]
        if empty:
            raise ValidationError([f"Field '{f}' cannot be empty" for f in empty])

        result = validate("images", updates, partial=True)
        if not result.valid:
            logger.warning(f"Rejected update of image {image_id}: {result.errors}")
            raise ValidationError(result.errors)

        updates["updated_at"] = timestamp_now()
        if edited_by is not None:
            updates["last_edited_by"] = edited_by

        with self._db.transaction():
            if not self._images.exists(image_id):
                return None
            self._images.update(image_id, updates)
            image = self._images.find_by_id(image_id)

        logger.info(f"Updated image {image_id}: {sorted(updates)}")
        return image

    # -- Delete ----------------------------------------------------------------

    def delete_image(self, image_id: int) -> bool:
        """Delete an image and its annotations. ``False`` if it did not exist."""
        with self._db.transaction():
            if not self._images.exists(image_id):
                return False
            removed = self._annotations.delete_by_image_id(image_id).changes
            deleted = self._images.delete(image_id).changes > 0

        logger.info(f"Deleted image {image_id} ({removed} annotations)")
        return deleted
