"""
Pytest configuration and fixtures for LuminaScale tests.
"""
import base64
import io
import json

import httpx
import numpy as np
import pytest
from PIL import Image

from luminascale.enhance.client import EnhancementClient
from luminascale.imaging.models import RasterImage


def make_raster(width, height):
    """Raster whose every pixel differs from its neighbours."""
    ys, xs = np.mgrid[0:height, 0:width]
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[..., 0] = (xs * 7 + ys * 3) % 256
    pixels[..., 1] = (xs * 5 + ys * 11) % 256
    pixels[..., 2] = (xs * 13 + ys * 2) % 256
    pixels[..., 3] = 255
    return RasterImage(pixels)


def encode(width, height, fmt="PNG", color=(120, 140, 160)):
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format=fmt)
    return buf.getvalue()


def data_url(width, height, fmt="PNG"):
    mime = "image/png" if fmt == "PNG" else "image/jpeg"
    return f"data:{mime};base64,{base64.b64encode(encode(width, height, fmt)).decode('ascii')}"


def decoded_size(data):
    with Image.open(io.BytesIO(data)) as img:
        return img.size


class SleepRecorder:
    """Stand-in for asyncio.sleep that records the requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakeEnhanceService:
    """Scripted /api/enhance and /api/health endpoint for httpx.MockTransport."""

    def __init__(self, responses=None, result_size=(64, 48)):
        self.responses = list(responses or [])
        self.result_size = result_size
        self.requests = []
        self.health = {"status": "ok", "hasApiKey": True, "apiStatus": "connected", "timestamp": "2026-01-01T00:00:00Z"}

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/health":
            return httpx.Response(200, json=self.health)
        self.requests.append(json.loads(request.content))
        if self.responses:
            step = self.responses.pop(0)
            if isinstance(step, Exception):
                raise step
            return step
        return httpx.Response(200, json={"enhancedImage": data_url(*self.result_size)})

    @property
    def calls(self):
        return len(self.requests)


@pytest.fixture
def raster():
    return make_raster(6, 4)


@pytest.fixture
def png_bytes():
    return encode(40, 30, "PNG")


@pytest.fixture
def jpeg_bytes():
    return encode(40, 30, "JPEG")


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def service():
    return FakeEnhanceService()


@pytest.fixture
def make_client(sleeps):
    """Build an EnhancementClient wired to a FakeEnhanceService."""

    def _make(fake, **kwargs):
        kwargs.setdefault("initial_delay", 3.0)
        kwargs.setdefault("sleep", sleeps)
        return EnhancementClient(
            "http://enhance.test",
            transport=httpx.MockTransport(fake.handler),
            **kwargs,
        )

    return _make


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop the process-wide client and session between tests."""
    from luminascale.enhance import client, coordinator

    yield
    client._enhancement_client = None
    coordinator._session = None
