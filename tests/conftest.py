"""
Pytest configuration and fixtures for Headshot Studio tests.
"""
import os
import sys
from io import BytesIO

import numpy as np
import pytest
from PIL import Image as PILImage

# Make the repository root (api_server.py, headshot_studio/) importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from headshot_studio.errors import TransformError
from headshot_studio.models.image import PixelBuffer
from headshot_studio.services.transform_provider import TransformProvider


def encode_png(pixels: np.ndarray) -> bytes:
    out = BytesIO()
    PILImage.fromarray(pixels).save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def make_png():
    """Factory: (width, height, colour) → encoded PNG bytes."""
    def _make(width, height, color=(128, 128, 128)):
        channels = len(color)
        pixels = np.empty((height, width, channels), dtype=np.uint8)
        pixels[...] = color
        return encode_png(pixels)
    return _make


@pytest.fixture
def gray_buffer():
    """Uniform mid-gray 40x30 opaque frame."""
    return PixelBuffer.filled(40, 30, (128, 128, 128, 255))


@pytest.fixture
def noisy_buffer():
    """Deterministic random opaque 32x24 frame."""
    rng = np.random.default_rng(1234)
    pixels = rng.integers(0, 256, size=(24, 32, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    return PixelBuffer(pixels)


class FakeProvider(TransformProvider):
    """Returns a fixed image, or raises the configured error."""

    def __init__(self, image_bytes: bytes = None, error: Exception = None):
        self.image_bytes = image_bytes
        self.error = error
        self.calls = []

    def transform(self, image_bytes, style):
        self.calls.append((image_bytes, style))
        if self.error is not None:
            raise self.error
        return self.image_bytes


@pytest.fixture
def fake_provider(make_png):
    return FakeProvider(image_bytes=make_png(512, 512, (10, 20, 30)))


@pytest.fixture
def rate_limited_provider():
    return FakeProvider(error=TransformError("Too many requests", status=429))


@pytest.fixture
def app():
    """Flask test application with an empty session registry."""
    import api_server
    api_server.app.config['TESTING'] = True
    api_server.app.config['TRANSFORM_PROVIDER'] = None
    max_content_length = api_server.app.config['MAX_CONTENT_LENGTH']
    api_server.sessions.clear()
    yield api_server.app
    api_server.sessions.clear()
    api_server.app.config['TRANSFORM_PROVIDER'] = None
    api_server.app.config['MAX_CONTENT_LENGTH'] = max_content_length


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()
