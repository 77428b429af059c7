"""
Pytest configuration for API integration tests
"""

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient

from config import Settings, StorageSettings
from core.enums import MattingModelSize


class FakeMattingModel:
    """Matting model stand-in returning a half-transparent cutout"""

    def __init__(self):
        self.calls = []

    def remove_background(self, data: bytes, model: MattingModelSize) -> bytes:
        self.calls.append((len(data), MattingModelSize(model)))
        cutout = np.zeros((8, 8, 4), dtype=np.uint8)
        cutout[:, :4] = (0, 0, 255, 255)
        ok, buffer = cv2.imencode(".png", cutout)
        assert ok
        return buffer.tobytes()


@pytest.fixture
def matting_model():
    return FakeMattingModel()


@pytest.fixture(scope="function")
def client(tmp_path, matting_model):
    """
    Create a test client with properly initialized app state.
    Each test gets fresh stores in a temporary directory.
    """
    from main import app, init_state

    settings = Settings(
        storage=StorageSettings(
            output_dir=str(tmp_path / "processed"),
            matting_output_dir=str(tmp_path / "bg-processed"),
            max_upload_mb=1,
        )
    )
    init_state(app, settings, matting_model=matting_model)

    # Create test client (no context manager so the lifespan does not rebuild state)
    test_client = TestClient(app, raise_server_exceptions=False)

    yield test_client


@pytest.fixture
def image_file(png_bytes):
    """Multipart tuple for the shared test image"""
    return ("test image.png", png_bytes, "image/png")


@pytest.fixture
def make_file(encode_png):
    """Build a multipart tuple from a pixel array"""

    def _make(pixels, name="upload.png"):
        return (name, encode_png(pixels), "image/png")

    return _make
