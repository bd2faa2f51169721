"""
Label service: idempotent creation, renaming and deletion of labels.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from annotation_tool.db.annotation_repo import AnnotationRepository
from annotation_tool.db.database import Database
from annotation_tool.db.label_repo import LabelRepository
from annotation_tool.db.schema import LABEL_NAME_MAX_LENGTH, validate
from annotation_tool.errors import ConstraintViolation, ValidationError
from annotation_tool.models.label import Label

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("label_name", "label_description")


def clean_label_name(name: Any) -> str:
    """Trim a label name and enforce the 1-100 character rule."""
    if not isinstance(name, str):
        raise ValidationError("Field 'label_name' is required and must be a string")
    trimmed = name.strip()
    if not trimmed:
        raise ValidationError("Label name cannot be empty or whitespace only")
    if len(trimmed) > LABEL_NAME_MAX_LENGTH:
        raise ValidationError(f"Label name cannot exceed {LABEL_NAME_MAX_LENGTH} characters")
    return trimmed


class LabelService:
    """Use cases for the ``labels`` table."""

    def __init__(self, db: Database):
        self._db = db
        self._labels = LabelRepository(db)
        self._annotations = AnnotationRepository(db)

    # -- Read ------------------------------------------------------------------

    def list_labels(self) -> list[Label]:
        """All labels with usage counts, most used first."""
        return self._labels.find_with_usage_stats()

    def common_label_names(self) -> list[str]:
        return [label.label_name for label in self.list_labels()]

    def get_label(self, label_id: int) -> Optional[Label]:
        return self._labels.find_by_id(label_id)

    def get_label_by_name(self, name: str) -> Optional[Label]:
        """Case-insensitive lookup on the trimmed name."""
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Valid label name is required")
        return self._labels.find_by_name_ci(name.strip())

    def search(self, term: str) -> list[Label]:
        if not isinstance(term, str) or not term.strip():
            raise ValidationError("Valid search term is required")
        return self._labels.search(term.strip())

    def stats(self) -> dict[str, Any]:
        return self._labels.stats()

    # -- Create ----------------------------------------------------------------

    def create_label(self, data: dict[str, Any]) -> Label:
        """
        Create a label, or return the existing one with the same (trimmed) name.

        The description of an existing label is left untouched.
        """
        return self.find_or_create(data.get("label_name"), data.get("label_description"))

    def find_or_create(self, name: Any, description: Optional[str] = None) -> Label:
        label_name = clean_label_name(name)
        record = {"label_name": label_name, "label_description": description}
        result = validate("labels", record)
        if not result.valid:
            raise ValidationError(result.errors)

        with self._db.transaction():
            existing = self._labels.find_by_name(label_name)
            if existing is not None:
                return existing
            label = self._labels.create(record)

        logger.info(f"Created label {label.label_id}: {label.label_name}")
        return label

    # -- Update ----------------------------------------------------------------

    def update_label(self, label_id: int, data: dict[str, Any]) -> Optional[Label]:
        """
        Rename or re-describe a label.

        Returns ``None`` when ``label_id`` does not exist; renaming onto a name
        held by another label raises ``ConstraintViolation``.
        """
        updates = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
        if not updates:
            raise ValidationError("No valid fields to update")
        if "label_name" in updates:
            updates["label_name"] = clean_label_name(updates["label_name"])

        result = validate("labels", updates, partial=True)
        if not result.valid:
            raise ValidationError(result.errors)

        try:
            with self._db.transaction():
                if self._labels.find_by_id(label_id) is None:
                    return None
                self._labels.update(label_id, updates)
                label = self._labels.find_by_id(label_id)
        except ConstraintViolation as exc:
            if exc.constraint == "unique":
                raise ConstraintViolation(
                    "Label with this name already exists",
                    table="labels", constraint="unique",
                ) from exc
            raise

        logger.info(f"Updated label {label_id}: {sorted(updates)}")
        return label

    # -- Delete ----------------------------------------------------------------

    def delete_label(self, label_id: int) -> bool:
        """Delete a label and every annotation using it. ``False`` if missing."""
        with self._db.transaction():
            if self._labels.find_by_id(label_id) is None:
                return False
            removed = self._annotations.delete_by_label_id(label_id).changes
            deleted = self._labels.delete(label_id).changes > 0

        logger.info(f"Deleted label {label_id} ({removed} annotations)")
        return deleted
