"""
Data Model Module
Plain records shared by the compositor, the attribution engine and the pipeline

Covers:
- Detector output (vertices, boxes, fragments, whole-image summary)
- Caller-drawn normalized regions and their composite layout
- Batch request/result envelopes carrying correlation ids
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Vertex:
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class BoundingBox:
    """
    Quadrilateral in pixel space, vertices in detector order.

    Treated as axis-aligned: only the vertex-mean x and the max x are used.
    """

    vertices: Tuple[Vertex, ...] = ()

    @classmethod
    def from_points(cls, points: Sequence) -> "BoundingBox":
        """Build from [[x, y], ...] pairs or {'x': .., 'y': ..} mappings."""
        vertices = []
        for point in points or []:
            if isinstance(point, dict):
                vertices.append(Vertex(float(point.get('x') or 0), float(point.get('y') or 0)))
            else:
                vertices.append(Vertex(float(point[0]), float(point[1])))
        return cls(tuple(vertices))

    @classmethod
    def from_rect(cls, x1: float, y1: float, x2: float, y2: float) -> "BoundingBox":
        return cls((Vertex(x1, y1), Vertex(x2, y1), Vertex(x2, y2), Vertex(x1, y2)))

    def __bool__(self) -> bool:
        return len(self.vertices) > 0

    @property
    def mean_x(self) -> Optional[float]:
        if not self.vertices:
            return None
        return float(np.mean([v.x for v in self.vertices]))

    @property
    def max_x(self) -> Optional[float]:
        if not self.vertices:
            return None
        return float(max(v.x for v in self.vertices))


@dataclass(frozen=True, eq=False)
class Fragment:
    """One detected text span. Compared by identity so duplicates stay distinct."""

    text: str
    box: BoundingBox = field(default_factory=BoundingBox)


@dataclass
class DetectionResult:
    """
    Ordered detector output.

    The first entry is always the whole-image summary; everything after it is
    an individual word/line fragment.
    """

    entries: List[Fragment] = field(default_factory=list)

    @property
    def summary(self) -> Optional[Fragment]:
        return self.entries[0] if self.entries else None

    @property
    def summary_text(self) -> str:
        return self.summary.text if self.summary else ''

    @property
    def fragments(self) -> List[Fragment]:
        return self.entries[1:]

    def __len__(self) -> int:
        return len(self.entries)

    @classmethod
    def from_annotations(cls, payload) -> "DetectionResult":
        """
        Parse stored text annotations.

        Accepts either a list of ``{"description", "boundingPoly": {"vertices"}}``
        entries or a mapping holding such a list under ``textAnnotations``.
        """
        if isinstance(payload, dict):
            payload = payload.get('textAnnotations', [])

        entries = []
        for item in payload or []:
            poly = item.get('boundingPoly') or {}
            vertices = poly.get('vertices') or item.get('boundingBox') or []
            entries.append(Fragment(
                text=item.get('description', '') or '',
                box=BoundingBox.from_points(vertices)
            ))
        return cls(entries)


@dataclass(frozen=True)
class NormalizedRegion:
    """
    Caller-drawn rectangle, coordinates relative to the reference image (0-1).

    Minimum-size rejection is the caller's job; the compositor only skips
    regions that collapse to zero pixels.
    """

    id: str
    label: str
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_dict(cls, data: Dict) -> "NormalizedRegion":
        region = cls(
            id=str(data['id']),
            label=str(data.get('label') or data['id']),
            x=float(data['x']),
            y=float(data['y']),
            width=float(data['width']),
            height=float(data['height'])
        )
        for name in ('x', 'y', 'width', 'height'):
            value = getattr(region, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Region {region.id}: {name}={value} outside [0, 1]")
        if region.x + region.width > 1.0 + 1e-9 or region.y + region.height > 1.0 + 1e-9:
            raise ValueError(f"Region {region.id} extends past the image edge")
        return region


@dataclass(frozen=True)
class CompositeLayout:
    """Half-open pixel range [x_start, x_end) a region occupies in the composite."""

    region_id: str
    x_start: int
    x_end: int

    def contains(self, x: float) -> bool:
        return self.x_start <= x < self.x_end


@dataclass
class CompositeImage:
    image_bytes: bytes
    layouts: List[CompositeLayout]
    width: int
    height: int


@dataclass
class BatchRequest:
    id: str
    image_bytes: bytes
    image_type: str = 'full'  # 'full' or 'cropped'


@dataclass
class BatchResult:
    id: str
    success: bool
    full_text: str = ''
    fragments: List[Fragment] = field(default_factory=list)
    error: Optional[str] = None
    processing_time: float = 0.0  # seconds spent in the detector call
