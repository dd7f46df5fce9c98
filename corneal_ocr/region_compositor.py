"""
Region Compositor Module
Crops caller-drawn regions out of a photograph and tiles them into one image

Output:
- One composite image per photograph, sent to the detector in a single call
- The x-range each region occupies, used to hand fragments back to regions

Coordinates are always resolved against the source image's native pixels.
"""

from typing import List, Optional, Sequence, Tuple

from PIL import Image
from loguru import logger

from .document_processor import DocumentProcessor, ImageSource
from .exceptions import DegenerateRegion
from .models import CompositeImage, CompositeLayout, NormalizedRegion


class RegionCompositor:
    """
    Tile region crops left-to-right on a white canvas.

    Layout:
    - canvas height = tallest crop
    - canvas width = sum of crop widths + gap_px * (n - 1)
    - crops top-aligned, in the caller's region order
    """

    def __init__(
        self,
        gap_px: int = 10,
        background: Tuple[int, int, int] = (255, 255, 255),
        processor: Optional[DocumentProcessor] = None
    ):
        if gap_px < 0:
            raise ValueError(f"gap_px must be >= 0, got {gap_px}")
        self.gap_px = gap_px
        self.background = background
        self.processor = processor or DocumentProcessor(background=background)

    def pixel_rect(
        self,
        region: NormalizedRegion,
        image_size: Tuple[int, int]
    ) -> Tuple[int, int, int, int]:
        """
        Resolve a normalized region to (left, top, right, bottom) native pixels.

        Raises:
            DegenerateRegion: if the crop has no positive width or height
        """
        img_w, img_h = image_size

        left = self._clamp(round(region.x * img_w), img_w)
        top = self._clamp(round(region.y * img_h), img_h)
        right = self._clamp(round((region.x + region.width) * img_w), img_w)
        bottom = self._clamp(round((region.y + region.height) * img_h), img_h)

        if right - left <= 0 or bottom - top <= 0:
            raise DegenerateRegion(region.id, right - left, bottom - top)

        return left, top, right, bottom

    def crop_regions(
        self,
        source: ImageSource,
        regions: Sequence[NormalizedRegion]
    ) -> List[Tuple[NormalizedRegion, Image.Image]]:
        """Crop every usable region; degenerate ones are logged and skipped."""
        crops, _ = self._crop_usable(self.processor.load(source), regions)
        return crops

    def crop_regions_png(
        self,
        source: ImageSource,
        regions: Sequence[NormalizedRegion]
    ) -> List[Tuple[NormalizedRegion, bytes]]:
        """Per-region PNG crops, for sending each region as its own batch item."""
        return [
            (region, self.processor.encode_png(crop))
            for region, crop in self.crop_regions(source, regions)
        ]

    def compose(
        self,
        source: ImageSource,
        regions: Sequence[NormalizedRegion]
    ) -> CompositeImage:
        """
        Build the composite image and the x-range of every included region.

        Args:
            source: Photograph (PIL image, encoded bytes, or path)
            regions: Regions in output-column order

        Returns:
            CompositeImage with PNG bytes and one layout per usable region

        Raises:
            ValueError: if no regions are supplied
            DegenerateRegion: if every region is degenerate
        """
        if not regions:
            raise ValueError("No regions supplied")

        crops, skipped = self._crop_usable(self.processor.load(source), regions)
        if not crops:
            raise skipped[-1]

        total_width = sum(crop.width for _, crop in crops) + self.gap_px * (len(crops) - 1)
        max_height = max(crop.height for _, crop in crops)

        canvas = Image.new('RGB', (total_width, max_height), self.background)

        layouts = []
        current_x = 0
        for region, crop in crops:
            canvas.paste(crop, (current_x, 0))
            layouts.append(CompositeLayout(
                region_id=region.id,
                x_start=current_x,
                x_end=current_x + crop.width
            ))
            current_x += crop.width + self.gap_px

        logger.debug(
            f"Composite {total_width}x{max_height} from {len(layouts)}/{len(regions)} regions "
            f"(gap={self.gap_px}px)"
        )

        return CompositeImage(
            image_bytes=self.processor.encode_png(canvas),
            layouts=layouts,
            width=total_width,
            height=max_height
        )

    def _crop_usable(
        self,
        img: Image.Image,
        regions: Sequence[NormalizedRegion]
    ) -> Tuple[List[Tuple[NormalizedRegion, Image.Image]], List[DegenerateRegion]]:
        """Split regions into (region, crop) pairs and the degenerate ones skipped."""
        crops = []
        skipped = []

        for region in regions:
            try:
                rect = self.pixel_rect(region, img.size)
            except DegenerateRegion as e:
                logger.warning(f"Skipping region '{region.label}': {e}")
                skipped.append(e)
                continue
            crops.append((region, self.processor.crop(img, rect)))

        logger.debug(f"Cropped {len(crops)}/{len(regions)} regions from {img.size[0]}x{img.size[1]} image")
        return crops, skipped

    @staticmethod
    def _clamp(value: int, upper: int) -> int:
        return max(0, min(int(value), upper))
