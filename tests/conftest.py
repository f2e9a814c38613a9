"""Pytest configuration and fixtures."""

import io
from typing import Callable

import pytest
from PIL import Image

from converter.batch import BatchCoordinator
from converter.conversion.models import ConversionRequest
from converter.conversion.service import ConversionService
from converter.progress import ProgressHub


def image_bytes(
    fmt: str = "PNG",
    size: tuple[int, int] = (800, 600),
    mode: str = "RGB",
) -> bytes:
    """Encode a gradient test image."""
    w, h = size
    img = Image.linear_gradient("L").resize(size).convert(mode)
    if mode == "RGB" and w > 1 and h > 1:
        img.paste((200, 40, 40), (0, 0, w // 2, h // 2))
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    return image_bytes


@pytest.fixture
def png_bytes() -> bytes:
    """800x600 PNG."""
    return image_bytes("PNG", (800, 600))


@pytest.fixture
def square_jpeg_bytes() -> bytes:
    """1000x1000 JPEG."""
    return image_bytes("JPEG", (1000, 1000))


@pytest.fixture
def ppm_bytes() -> bytes:
    """200x80 binary PPM (P6)."""
    return image_bytes("PPM", (200, 80))


@pytest.fixture
def service() -> ConversionService:
    return ConversionService()


@pytest.fixture
def hub() -> ProgressHub:
    return ProgressHub()


@pytest.fixture
def coordinator(service: ConversionService, hub: ProgressHub) -> BatchCoordinator:
    return BatchCoordinator(service=service, hub=hub, max_files=3)


@pytest.fixture
def make_request() -> Callable[..., ConversionRequest]:
    def _make(data: bytes, name: str = "photo.png", target_format: str = "webp", **kwargs) -> ConversionRequest:
        return ConversionRequest(source_bytes=data, source_name=name, target_format=target_format, **kwargs)

    return _make
