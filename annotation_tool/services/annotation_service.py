"""
Annotation service: attach labels to images with a confidence score.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from annotation_tool.db.annotation_repo import AnnotationRepository
from annotation_tool.db.database import Database
from annotation_tool.db.image_repo import ImageRepository
from annotation_tool.db.label_repo import LabelRepository
from annotation_tool.errors import AlreadyExistsError, ConstraintViolation, ValidationError
from annotation_tool.models.annotation import DEFAULT_CONFIDENCE, Annotation
from annotation_tool.services.label_service import LabelService

logger = logging.getLogger(__name__)


def check_confidence(confidence: Any) -> float:
    """Return ``confidence`` as a float in [0.0, 1.0] or raise ``ValidationError``."""
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise ValidationError("Confidence must be a number")
    if not 0.0 <= confidence <= 1.0:
        raise ValidationError("Confidence must be between 0.0 and 1.0")
    return float(confidence)


def _check_id(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"Valid {name} is required")
    return value


class AnnotationService:
    """Use cases for the ``annotations`` junction table."""

    def __init__(self, db: Database):
        self._db = db
        self._annotations = AnnotationRepository(db)
        self._images = ImageRepository(db)
        self._labels = LabelRepository(db)
        self._label_service = LabelService(db)

    # -- Read ------------------------------------------------------------------

    def annotations_for_image(self, image_id: int) -> list[Annotation]:
        return self._annotations.find_by_image_id(image_id)

    def annotations_for_label(self, label_id: int) -> list[Annotation]:
        return self._annotations.find_by_label_id(label_id)

    def get_annotation(self, image_id: int, label_id: int) -> Optional[Annotation]:
        return self._annotations.find_pair(image_id, label_id)

    def label_id_for_name(self, label_name: str) -> Optional[int]:
        label = self._labels.find_by_name(label_name)
        return label.label_id if label else None

    # -- Create ----------------------------------------------------------------

    def create_annotation(
        self,
        image_id: int,
        label_id: int,
        confidence: float = DEFAULT_CONFIDENCE,
        created_by: Optional[str] = None,
    ) -> Annotation:
        """
        Attach an existing label to an existing image.

        Raises ``ValidationError`` for a bad confidence or a missing endpoint,
        and ``AlreadyExistsError`` if the pair is already annotated.
        """
        image_id = _check_id(image_id, "image ID")
        label_id = _check_id(label_id, "label ID")
        confidence = check_confidence(confidence)

        with self._db.transaction():
            if not self._images.exists(image_id):
                raise ValidationError(f"Image {image_id} not found")
            if self._labels.find_by_id(label_id) is None:
                raise ValidationError(f"Label {label_id} not found")
            if self._annotations.find_pair(image_id, label_id) is not None:
                raise AlreadyExistsError("Annotation already exists for this image and label")
            try:
                annotation = self._annotations.create({
                    "image_id": image_id,
                    "label_id": label_id,
                    "confidence": confidence,
                    "created_by": created_by,
                })
            except ConstraintViolation as exc:
                if exc.constraint == "unique":
                    raise AlreadyExistsError(
                        "Annotation already exists for this image and label"
                    ) from exc
                raise

        logger.info(
            f"Annotated image {image_id} with label {label_id} (confidence={confidence})"
        )
        return annotation

    def annotate(
        self,
        image_id: int,
        label_name: str,
        confidence: float = DEFAULT_CONFIDENCE,
        created_by: Optional[str] = None,
    ) -> Annotation:
        """Attach a label by name, creating the label first if it is new."""
        confidence = check_confidence(confidence)
        with self._db.transaction():
            label = self._label_service.find_or_create(label_name)
            annotation = self.create_annotation(
                image_id, label.label_id, confidence, created_by  # type: ignore[arg-type]
            )
        annotation.label_name = label.label_name
        annotation.label_description = label.label_description
        return annotation

    # -- Update ----------------------------------------------------------------

    def update_confidence(
        self,
        image_id: int,
        label_id: int,
        confidence: float,
        edited_by: Optional[str] = None,
    ) -> Optional[Annotation]:
        """New confidence for an existing annotation; ``None`` if there is none."""
        confidence = check_confidence(confidence)

        with self._db.transaction():
            if self._annotations.find_pair(image_id, label_id) is None:
                return None
            self._annotations.update_confidence(image_id, label_id, confidence, edited_by)
            annotation = self._annotations.find_pair(image_id, label_id)

        logger.info(
            f"Updated annotation image={image_id} label={label_id} confidence={confidence}"
        )
        return annotation

    # -- Delete ----------------------------------------------------------------

    def delete_annotation(self, image_id: int, label_id: int) -> bool:
        """Remove one annotation. Deleting a missing pair returns ``False``."""
        deleted = self._annotations.delete_pair(image_id, label_id).changes > 0
        if deleted:
            logger.info(f"Deleted annotation image={image_id} label={label_id}")
        return deleted
