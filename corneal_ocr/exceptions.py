"""
Exception types raised by the extraction core.

Unresolved fields are not errors: they hold the "-" sentinel in the result map.
"""


class CorneaOCRError(Exception):
    """Base class for extraction failures."""


class NoTextDetected(CorneaOCRError):
    """The detector returned no fragments at all for an image."""


class DegenerateRegion(CorneaOCRError):
    """A region collapses to a non-positive pixel width or height."""

    def __init__(self, region_id: str, width: int, height: int):
        self.region_id = region_id
        self.width = width
        self.height = height
        super().__init__(f"Region {region_id} has degenerate crop size {width}x{height}")
