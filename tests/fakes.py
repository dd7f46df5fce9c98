"""Detector doubles and fragment builders for tests."""

import threading

from corneal_ocr.exceptions import NoTextDetected
from corneal_ocr.models import BoundingBox, DetectionResult, Fragment


def fragment(text, x, y=0, width=20, height=10):
    """Fragment whose box spans [x, x + width); mean x is x + width / 2."""
    return Fragment(text=text, box=BoundingBox.from_rect(x, y, x + width, y + height))


def centered(text, center_x, y=0, width=20):
    return fragment(text, center_x - width / 2, y=y, width=width)


def detection(fragments, width=1000, height=800, summary_text=None):
    if summary_text is None:
        summary_text = '\n'.join(f.text for f in fragments)
    summary = Fragment(text=summary_text, box=BoundingBox.from_rect(0, 0, width, height))
    return DetectionResult([summary] + list(fragments))


class FakeDetector:
    """Returns canned results keyed by image bytes; records every call."""

    def __init__(self, results=None, default=None):
        self.results = dict(results or {})
        self.default = default
        self.calls = []
        self._lock = threading.Lock()

    def detect(self, image_bytes):
        with self._lock:
            self.calls.append(image_bytes)
        outcome = self.results.get(image_bytes, self.default)
        if outcome is None:
            raise NoTextDetected("No text found")
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(image_bytes)
        return outcome
