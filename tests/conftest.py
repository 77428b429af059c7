"""
Pytest configuration and fixtures for image transform service tests
"""

import cv2
import numpy as np
import pytest

from core.asset_store import AssetStore
from core.image.asset import ImageAsset
from core.raster_engine import EngineConfig, RasterEngine


def _encode_png(pixels: np.ndarray) -> bytes:
    """Encode an OpenCV-order array as PNG bytes"""
    ok, buffer = cv2.imencode(".png", pixels)
    assert ok
    return buffer.tobytes()


def _solid(width: int, height: int, bgr=(0, 0, 255)) -> np.ndarray:
    """Solid BGR image, red by default"""
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:] = bgr
    return image


@pytest.fixture
def engine():
    """RasterEngine with caching disabled so tests never share decodes"""
    return RasterEngine(EngineConfig(cache_enabled=False))


@pytest.fixture
def asset_store(tmp_path):
    """AssetStore backed by a temporary directory"""
    return AssetStore(tmp_path / "processed")


@pytest.fixture
def test_image():
    """Create a test image for testing"""
    image = np.zeros((120, 160, 3), dtype=np.uint8)
    cv2.rectangle(image, (40, 30), (120, 90), (255, 255, 255), -1)
    cv2.circle(image, (20, 20), 10, (128, 128, 128), -1)
    return image


@pytest.fixture
def test_asset(test_image):
    return ImageAsset(pixels=test_image, format="png")


@pytest.fixture
def red_asset():
    """4x4 opaque red image"""
    return ImageAsset(pixels=_solid(4, 4), format="png")


@pytest.fixture
def png_bytes(test_image):
    return _encode_png(test_image)


@pytest.fixture
def encode_png():
    """Helper turning a BGR/BGRA array into PNG bytes"""
    return _encode_png


@pytest.fixture
def solid():
    """Helper building a solid-color BGR array"""
    return _solid
