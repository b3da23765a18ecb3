"""Building detection collaborators."""

from canvass.detection.models import BuildingSource, DetectedBuilding, DetectionResult
from canvass.detection.service import (
    BuildingDetector,
    MockBuildingDetector,
    create_building_detector,
)

__all__ = [
    "BuildingDetector",
    "BuildingSource",
    "DetectedBuilding",
    "DetectionResult",
    "MockBuildingDetector",
    "create_building_detector",
]
