"""Data-access layer: transaction-wrapped use cases over the repositories."""

from annotation_tool.services.annotation_service import AnnotationService
from annotation_tool.services.csv_service import CsvService, ImportResult
from annotation_tool.services.image_service import ImageService
from annotation_tool.services.label_service import LabelService
from annotation_tool.services.maintenance_service import MaintenanceService

__all__ = [
    "AnnotationService",
    "CsvService",
    "ImageService",
    "ImportResult",
    "LabelService",
    "MaintenanceService",
]
