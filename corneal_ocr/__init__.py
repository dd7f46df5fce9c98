"""
Corneal Topography OCR - Field Extraction

Supporting modules for the extraction pipeline.
"""

__version__ = "1.0.0"

from .batch_processor import BatchProcessor
from .document_processor import DocumentProcessor
from .exceptions import CorneaOCRError, DegenerateRegion, NoTextDetected
from .field_parser import SENTINEL, FieldParser
from .models import (
    BatchRequest,
    BatchResult,
    BoundingBox,
    CompositeImage,
    CompositeLayout,
    DetectionResult,
    Fragment,
    NormalizedRegion,
    Vertex,
)
from .ocr_engine import AnnotationFileDetector, EasyOCRDetector, TextDetector
from .region_compositor import RegionCompositor
from .spatial_attributor import SpatialAttributor

__all__ = [
    "BatchProcessor",
    "DocumentProcessor",
    "FieldParser",
    "RegionCompositor",
    "SpatialAttributor",
    "TextDetector",
    "EasyOCRDetector",
    "AnnotationFileDetector",
    "BatchRequest",
    "BatchResult",
    "BoundingBox",
    "CompositeImage",
    "CompositeLayout",
    "DetectionResult",
    "Fragment",
    "NormalizedRegion",
    "Vertex",
    "CorneaOCRError",
    "DegenerateRegion",
    "NoTextDetected",
    "SENTINEL",
]
