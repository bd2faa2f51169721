"""
Maintenance service: wipe the store and (re)load sample data from YAML.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from annotation_tool.config import get_seed_path
from annotation_tool.db.annotation_repo import AnnotationRepository
from annotation_tool.db.database import Database
from annotation_tool.db.image_repo import ImageRepository
from annotation_tool.services.image_service import ImageService
from annotation_tool.services.label_service import LabelService
from annotation_tool.services.annotation_service import check_confidence

logger = logging.getLogger(__name__)


class MaintenanceService:
    def __init__(self, db: Database):
        self._db = db
        self._images = ImageRepository(db)
        self._annotations = AnnotationRepository(db)
        self._image_service = ImageService(db)
        self._label_service = LabelService(db)

    def reset(self, seed: bool = True, seed_path: Optional[Path] = None) -> dict[str, Any]:
        """Delete every row, restart the id counters and optionally re-seed."""
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM annotations")
            conn.execute("DELETE FROM images")
            conn.execute("DELETE FROM labels")
            conn.execute(
                "DELETE FROM sqlite_sequence WHERE name IN (?, ?, ?)",
                ("labels", "images", "annotations"),
            )
        logger.info("Database cleared")

        if not seed:
            return {"seeded": False}

        path = seed_path or get_seed_path()
        if not path.exists():
            logger.warning(f"Seed file not found, database reset without seeding: {path}")
            return {"seeded": False}
        counts = self.seed_from_yaml(path)
        return {"seeded": True, **counts}

    def seed_from_yaml(self, path: Path) -> dict[str, int]:
        """
        Load labels, images and annotations from a YAML seed file.

        Rows that already exist (same label name, same filename, same
        image/label pair) are reused, so seeding twice is harmless.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        counts = {"labels": 0, "images": 0, "annotations": 0}
        with self._db.transaction():
            for item in data.get("labels", []):
                self._label_service.find_or_create(item["name"], item.get("description"))
                counts["labels"] += 1

            for item in data.get("images", []):
                image = self._images.find_by_filename(item["filename"])
                if image is None:
                    image = self._image_service.create_image(
                        {k: item.get(k) for k in (
                            "filename", "original_name", "file_path", "file_size", "mime_type",
                        )},
                        created_by=item.get("created_by", "system"),
                    )
                counts["images"] += 1

                for ann in item.get("annotations", []):
                    label = self._label_service.find_or_create(ann["label"])
                    if self._annotations.find_pair(image.image_id, label.label_id):  # type: ignore[arg-type]
                        continue
                    self._annotations.create({
                        "image_id": image.image_id,
                        "label_id": label.label_id,
                        "confidence": check_confidence(ann.get("confidence", 1.0)),
                        "created_by": ann.get("created_by", "system"),
                    })
                    counts["annotations"] += 1

        logger.info(f"Seeded from {path}: {counts}")
        return counts
