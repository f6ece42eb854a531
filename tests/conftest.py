from __future__ import annotations

from io import BytesIO
import os

import pytest
from PIL import Image

from fashion_pal.http_json import HttpError
from fashion_pal.models import Product


def encode_image(
    *,
    size: tuple[int, int] = (60, 40),
    color: tuple[int, ...] = (220, 20, 20),
    fmt: str = "PNG",
    mode: str = "RGB",
) -> bytes:
    buffer = BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def noise_png(size: tuple[int, int] = (64, 64)) -> bytes:
    buffer = BytesIO()
    Image.frombytes("RGB", size, os.urandom(size[0] * size[1] * 3)).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeImageHost:
    """Serves image bytes by URL; unknown URLs fail like an HTTP 404, ``errors`` raise as given."""

    def __init__(self, images: dict[str, bytes] | None = None) -> None:
        self.images = dict(images or {})
        self.errors: dict[str, Exception] = {}
        self.requested: list[str] = []

    def __call__(self, url: str, *, timeout_seconds: float) -> bytes:
        self.requested.append(url)
        if url in self.errors:
            raise self.errors[url]
        if url not in self.images:
            raise HttpError("HTTP 404: Not Found", status=404)
        return self.images[url]


@pytest.fixture
def make_product():
    def _make(index: int, **overrides) -> Product:
        fields = {
            "title": f"Product {index}",
            "price": 10.0 + index,
            "description": f"Item number {index}",
            "image_url": f"https://img.example.com/{index}.png",
            "product_url": f"https://shop.example.com/p/{index}",
        }
        fields.update(overrides)
        return Product(**fields)

    return _make


@pytest.fixture
def image_host():
    return FakeImageHost()
