"""
Spatial Attribution Module
Assigns detector fragments to logical buckets using bounding-box geometry

Two modes:
- Full page: keep the left data column of a topography printout, plus a few
  keyword-matched fragments sitting slightly further right
- Region composite: hand each fragment back to the region whose x-range in the
  composite image contains it

Only the vertex-mean x of each box is used; boxes are treated as axis-aligned.
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from .models import CompositeLayout, DetectionResult, Fragment

SENTINEL = '-'


class SpatialAttributor:
    """
    Geometry-only fragment bucketing.

    The column ratios and keyword allow-list are tied to one physical printout
    layout, so they are constructor settings rather than constants.
    """

    # Labels of data fields printed just right of the main column
    EXTENDED_KEYWORDS = ('depth', 'pupil', 'chamber', 'iop', 'pachy', 'lens', 'dia')

    def __init__(
        self,
        left_ratio: float = 0.33,
        extended_ratio: float = 0.50,
        keywords: Sequence[str] = EXTENDED_KEYWORDS,
        default_width: int = 1000
    ):
        if not 0 < left_ratio <= extended_ratio <= 1:
            raise ValueError(
                f"Expected 0 < left_ratio <= extended_ratio <= 1, got {left_ratio}, {extended_ratio}"
            )
        self.left_ratio = left_ratio
        self.extended_ratio = extended_ratio
        self.keywords = tuple(k.lower() for k in keywords)
        self.default_width = default_width

    # ============ FULL PAGE MODE ============

    def image_width(self, detection: DetectionResult) -> float:
        """Widest x of the summary box; the default when the summary has no box."""
        summary = detection.summary
        if summary is None or not summary.box:
            return float(self.default_width)
        return summary.box.max_x

    def select_fragments(
        self,
        fragments: Sequence[Fragment],
        image_width: float
    ) -> List[Fragment]:
        """
        Pick the fragments that make up the primary data column.

        - primary: mean x < left threshold
        - extended: mean x in [left, extended) and text holds an allow-listed keyword
        - union in detector order; empty union falls back to every fragment
        """
        left_threshold = image_width * self.left_ratio
        extended_threshold = image_width * self.extended_ratio

        selected = []
        primary_count = 0
        extended_count = 0

        for fragment in fragments:
            x = fragment.box.mean_x
            if x is None:
                continue
            if x < left_threshold:
                selected.append(fragment)
                primary_count += 1
            elif x < extended_threshold and self._is_relevant(fragment.text):
                logger.debug(f"Extended fragment '{fragment.text}' at x={x:.1f}")
                selected.append(fragment)
                extended_count += 1

        logger.debug(
            f"Full-page filter: width={image_width:.0f}, left<{left_threshold:.1f}, "
            f"extended<{extended_threshold:.1f}, primary={primary_count}, "
            f"extended={extended_count}, total={len(fragments)}"
        )

        if not selected:
            logger.debug("No fragments in the data column, keeping all fragments")
            return list(fragments)
        return selected

    def attribute_full_page(
        self,
        fragments: Sequence[Fragment],
        image_width: float,
        summary_text: str = ''
    ) -> str:
        """
        Text of the data column, one fragment per line.

        Falls back to the whole-image summary when no fragment text survives.
        """
        selected = self.select_fragments(fragments, image_width)
        text = '\n'.join(f.text for f in selected)
        return text or summary_text

    def attribute_detection(
        self,
        detection: DetectionResult,
        image_type: str = 'full'
    ) -> Tuple[str, List[Fragment]]:
        """
        Resolve a detector result to (text, fragments) for the given capture type.

        'full' applies the column filter; 'cropped' keeps the detector's own
        summary text and every fragment.
        """
        if image_type == 'cropped':
            return detection.summary_text, detection.fragments
        if image_type != 'full':
            raise ValueError(f"Unknown image type: {image_type}")

        width = self.image_width(detection)
        selected = self.select_fragments(detection.fragments, width)
        text = '\n'.join(f.text for f in selected) or detection.summary_text
        return text, selected

    def _is_relevant(self, text: str) -> bool:
        lowered = (text or '').lower()
        return any(keyword in lowered for keyword in self.keywords)

    # ============ REGION COMPOSITE MODE ============

    def attribute_by_region(
        self,
        fragments: Sequence[Fragment],
        layouts: Sequence[CompositeLayout]
    ) -> Dict[str, str]:
        """
        Split composite-image fragments back into their source regions.

        Args:
            fragments: Detector fragments, summary excluded
            layouts: x-ranges produced by the compositor

        Returns:
            Dict of region id -> space-joined text ("-" when empty), in layout order
        """
        buckets: Dict[str, List[str]] = {layout.region_id: [] for layout in layouts}
        dropped = 0

        for fragment in fragments:
            layout = self.find_layout(fragment, layouts)
            if layout is None:
                dropped += 1
                continue
            buckets[layout.region_id].append(fragment.text)

        logger.debug(f"Region attribution: {len(fragments) - dropped} assigned, {dropped} dropped")

        return {
            region_id: self.clean_text(' '.join(texts))
            for region_id, texts in buckets.items()
        }

    @staticmethod
    def find_layout(
        fragment: Fragment,
        layouts: Sequence[CompositeLayout]
    ) -> Optional[CompositeLayout]:
        """First layout whose range holds the fragment's mean x, if any."""
        x = fragment.box.mean_x
        if x is None:
            return None
        for layout in layouts:
            if layout.contains(x):
                return layout
        return None

    @staticmethod
    def clean_text(text: str) -> str:
        """Collapse whitespace; empty text becomes the sentinel."""
        return re.sub(r'\s+', ' ', text or '').strip() or SENTINEL
