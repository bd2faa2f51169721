"""Label domain model: a reusable text category."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class Label:
    label_name: str
    label_description: Optional[str] = None
    label_id: Optional[int] = None
    created_at: Optional[str] = None
    # Usage statistics, present on aggregate reads only
    usage_count: Optional[int] = None
    avg_confidence: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "label_id": self.label_id,
            "label_name": self.label_name,
            "label_description": self.label_description,
            "created_at": self.created_at,
        }
        if self.usage_count is not None:
            data["usage_count"] = self.usage_count
            data["avg_confidence"] = self.avg_confidence
        return data

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Label":
        return cls(
            label_id=row["label_id"],
            label_name=row["label_name"],
            label_description=row.get("label_description"),
            created_at=row.get("created_at"),
            usage_count=row.get("usage_count"),
            avg_confidence=row.get("avg_confidence"),
        )
