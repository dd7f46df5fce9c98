"""
Document Processor Module
Handles image ingestion, cropping and PNG encoding for the detector
"""

from io import BytesIO
from pathlib import Path
from typing import Tuple, Union

import numpy as np
from PIL import Image, ImageOps
from loguru import logger

ImageSource = Union[Image.Image, bytes, bytearray, str, Path]


class DocumentProcessor:
    """
    Image codec used by the compositor and the pipeline.
    Supports PNG, JPG, TIFF, BMP and WEBP photographs.
    """

    def __init__(self, background: Tuple[int, int, int] = (255, 255, 255)):
        self.background = background
        self.supported_formats = {'.png', '.jpg', '.jpeg', '.tiff', '.tif', '.bmp', '.webp'}

    def load(self, source: ImageSource) -> Image.Image:
        """
        Return an RGB image at its native resolution, turned upright by its
        EXIF orientation tag.
        """
        if isinstance(source, Image.Image):
            return self._to_rgb(ImageOps.exif_transpose(source))

        if isinstance(source, (bytes, bytearray)):
            return self.decode(bytes(source))

        file_path = Path(source)
        if not file_path.exists():
            raise FileNotFoundError(f"Image not found: {file_path}")

        suffix = file_path.suffix.lower()
        if suffix not in self.supported_formats:
            raise ValueError(f"Unsupported format: {suffix}")

        with Image.open(file_path) as img:
            img.load()
            return self._to_rgb(ImageOps.exif_transpose(img))

    def decode(self, data: bytes) -> Image.Image:
        """Decode encoded image bytes."""
        with Image.open(BytesIO(data)) as img:
            img.load()
            fmt = img.format
            img = ImageOps.exif_transpose(img)
            logger.debug(f"Decoded {fmt} image {img.size[0]}x{img.size[1]} ({img.mode})")
            return self._to_rgb(img)

    def crop(self, img: Image.Image, rect: Tuple[int, int, int, int]) -> Image.Image:
        """Crop (left, top, right, bottom) in native pixels."""
        return img.crop(rect)

    def encode_png(self, img: Image.Image) -> bytes:
        """Lossless encoding sent to the detector."""
        buffer = BytesIO()
        img.save(buffer, format='PNG')
        return buffer.getvalue()

    def read_bytes(self, source: ImageSource) -> bytes:
        """Bytes for a detector call; paths are read untouched, images re-encoded."""
        if isinstance(source, (bytes, bytearray)):
            return bytes(source)
        if isinstance(source, Image.Image):
            return self.encode_png(self._to_rgb(source))
        file_path = Path(source)
        if not file_path.exists():
            raise FileNotFoundError(f"Image not found: {file_path}")
        return file_path.read_bytes()

    def _to_rgb(self, img: Image.Image) -> Image.Image:
        # Flatten transparency onto the background
        if img.mode in ('RGBA', 'LA', 'P'):
            background = Image.new('RGB', img.size, self.background)
            if img.mode == 'P':
                img = img.convert('RGBA')
            if img.mode in ('RGBA', 'LA'):
                background.paste(img, mask=img.split()[-1])
            else:
                background.paste(img)
            return background
        if img.mode != 'RGB':
            return img.convert('RGB')
        return img.copy()

    def to_numpy(self, img: Image.Image) -> np.ndarray:
        """Convert PIL Image to numpy array."""
        return np.array(img)
