"""Pytest configuration shared across the suite."""

import sys
from pathlib import Path

import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def striped_image():
    """600x400 RGB image with three vertical colour bands."""
    img = Image.new('RGB', (600, 400), (255, 255, 255))
    img.paste((255, 0, 0), (0, 0, 200, 400))
    img.paste((0, 255, 0), (200, 0, 400, 400))
    img.paste((0, 0, 255), (400, 0, 600, 400))
    return img
