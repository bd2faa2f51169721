"""Image domain model: metadata for one uploaded file."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from annotation_tool.models.annotation import Annotation


def split_joined(raw: Optional[str]) -> list[str]:
    """Split a ``GROUP_CONCAT`` result; ``None``/empty means no items."""
    if not raw:
        return []
    return raw.split(",")


@dataclass
class Image:
    """An uploaded image file and the labels attached to it."""

    filename: str
    original_name: str
    file_path: str
    file_size: int
    mime_type: str
    image_id: Optional[int] = None
    uploaded_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[str] = None
    last_edited_by: Optional[str] = None
    # Filled by relationship-aware reads only
    labels: list[str] = field(default_factory=list)
    confidences: list[float] = field(default_factory=list)
    annotations: list[Annotation] = field(default_factory=list)

    @property
    def label_count(self) -> int:
        return len(self.labels) if self.labels else len(self.annotations)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "image_id": self.image_id,
            "filename": self.filename,
            "original_name": self.original_name,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "uploaded_at": self.uploaded_at,
            "updated_at": self.updated_at,
            "created_by": self.created_by,
            "last_edited_by": self.last_edited_by,
            "labels": list(self.labels),
            "confidences": list(self.confidences),
            "label_count": self.label_count,
        }
        if self.annotations:
            data["annotations"] = [a.to_dict() for a in self.annotations]
        return data

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Image":
        labels = split_joined(row.get("labels"))
        confidences = [float(c) for c in split_joined(row.get("confidences"))]
        return cls(
            image_id=row["image_id"],
            filename=row["filename"],
            original_name=row["original_name"],
            file_path=row["file_path"],
            file_size=row["file_size"],
            mime_type=row["mime_type"],
            uploaded_at=row.get("uploaded_at"),
            updated_at=row.get("updated_at"),
            created_by=row.get("created_by"),
            last_edited_by=row.get("last_edited_by"),
            labels=labels,
            confidences=confidences,
        )
