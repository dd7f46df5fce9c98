"""
OCR Engine Module
Text-detection adapters producing ordered fragments with pixel boxes

Every detector returns the same shape:
- entry 0: whole-image summary (all text, box spanning the image)
- entries 1..n: individual word/line fragments in engine order

Engines:
- EasyOCR (local, multilingual-capable, GPU when available)
- Stored annotation JSON replay (offline runs, fixtures)
"""

import json
import os
from pathlib import Path
from typing import List, Protocol, Sequence, Union

from loguru import logger

from .document_processor import DocumentProcessor
from .exceptions import NoTextDetected
from .models import BoundingBox, DetectionResult, Fragment

# Disable EasyOCR model source connectivity check for offline deployment
os.environ.setdefault('EASYOCR_MODULE_PATH', os.path.expanduser('~/.EasyOCR'))

try:
    import easyocr
    EASYOCR_AVAILABLE = True
except ImportError:
    EASYOCR_AVAILABLE = False


class TextDetector(Protocol):
    """Anything that turns image bytes into an ordered detection result."""

    def detect(self, image_bytes: bytes) -> DetectionResult:
        ...


class EasyOCRDetector:
    """
    EasyOCR-backed detector.

    The engine has no whole-image annotation of its own, so the summary entry
    is synthesised from the accepted detections.
    """

    def __init__(
        self,
        languages: Sequence[str] = ('en',),
        use_gpu: bool = True,
        drop_score: float = 0.4,
        reader=None
    ):
        """
        Args:
            languages: EasyOCR language codes
            use_gpu: Use GPU acceleration (CUDA)
            drop_score: Minimum confidence for a detection to be kept
            reader: Pre-built reader exposing readtext(); built lazily otherwise
        """
        self.languages = list(languages)
        self.use_gpu = use_gpu
        self.drop_score = drop_score
        self.processor = DocumentProcessor()
        self._reader = reader

        if self._reader is None and not EASYOCR_AVAILABLE:
            raise ImportError("EasyOCR not available. Install: pip install easyocr")

    @property
    def reader(self):
        if self._reader is None:
            logger.info(f"Loading EasyOCR with languages: {self.languages}")
            self._reader = easyocr.Reader(self.languages, gpu=self.use_gpu, verbose=False)
            logger.info("EasyOCR initialized successfully")
        return self._reader

    def detect(self, image_bytes: bytes) -> DetectionResult:
        img = self.processor.decode(image_bytes)
        width, height = img.size

        # EasyOCR returns: [[bbox, text, confidence], ...]
        # bbox format: [[x1,y1], [x2,y1], [x2,y2], [x1,y2]]
        raw_results = self.reader.readtext(self.processor.to_numpy(img))

        fragments: List[Fragment] = []
        for bbox, text, conf in raw_results:
            if conf >= self.drop_score and text.strip():
                fragments.append(Fragment(text=text.strip(), box=BoundingBox.from_points(bbox)))

        if not fragments:
            raise NoTextDetected(f"No text found in {width}x{height} image")

        logger.debug(f"EasyOCR extracted {len(fragments)} text elements")

        summary = Fragment(
            text='\n'.join(f.text for f in fragments),
            box=BoundingBox.from_rect(0, 0, width, height)
        )
        return DetectionResult([summary] + fragments)


class AnnotationFileDetector:
    """
    Replays one stored annotation file for every call.

    Used to rerun extraction on detector output captured earlier.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        if self.path.is_dir():
            raise ValueError(f"Expected one annotation file, got directory: {self.path}")
        with open(self.path, 'r', encoding='utf-8') as f:
            self.detection = DetectionResult.from_annotations(json.load(f))
        logger.debug(f"Loaded {len(self.detection)} annotations from {self.path}")

    def detect(self, image_bytes: bytes) -> DetectionResult:
        if not len(self.detection):
            raise NoTextDetected(f"No annotations in {self.path}")
        return self.detection
