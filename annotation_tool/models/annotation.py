"""Annotation domain model: one label attached to one image."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

DEFAULT_CONFIDENCE = 1.0


@dataclass
class Annotation:
    image_id: int
    label_id: int
    confidence: float = DEFAULT_CONFIDENCE
    annotation_id: Optional[int] = None
    created_at: Optional[str] = None
    created_by: Optional[str] = None
    last_edited_by: Optional[str] = None
    # Joined columns, present on relationship-aware reads
    label_name: Optional[str] = None
    label_description: Optional[str] = None
    filename: Optional[str] = None
    original_name: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "annotation_id": self.annotation_id,
            "image_id": self.image_id,
            "label_id": self.label_id,
            "confidence": self.confidence,
            "created_at": self.created_at,
            "created_by": self.created_by,
            "last_edited_by": self.last_edited_by,
        }
        for key in ("label_name", "label_description", "filename", "original_name"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Annotation":
        return cls(
            annotation_id=row["annotation_id"],
            image_id=row["image_id"],
            label_id=row["label_id"],
            confidence=row["confidence"] if row.get("confidence") is not None else DEFAULT_CONFIDENCE,
            created_at=row.get("created_at"),
            created_by=row.get("created_by"),
            last_edited_by=row.get("last_edited_by"),
            label_name=row.get("label_name"),
            label_description=row.get("label_description"),
            filename=row.get("filename"),
            original_name=row.get("original_name"),
        )
