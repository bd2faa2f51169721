"""Domain models for the image annotation tool."""

from annotation_tool.models.annotation import Annotation, DEFAULT_CONFIDENCE
from annotation_tool.models.image import Image
from annotation_tool.models.label import Label

__all__ = ["Annotation", "DEFAULT_CONFIDENCE", "Image", "Label"]
