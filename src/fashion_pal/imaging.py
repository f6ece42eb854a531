"""Product image pipeline: download, sniff, normalize and merge into a 3:4 grid composite."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from fractions import Fraction
import http.client
from io import BytesIO
import json
import logging
import math
from pathlib import Path
from typing import Callable, Sequence

from PIL import Image, ImageOps

from fashion_pal.errors import ImageFetchError, ImageNormalizeError, ProviderError
from fashion_pal.http_json import fetch_bytes
from fashion_pal.models import Product


_LOGGER = logging.getLogger(__name__)

TILE_SIZE = 400
IMAGES_PER_ROW = 3
PADDING = 10
BACKGROUND_COLOR = (255, 255, 255)
TARGET_ASPECT_RATIO = Fraction(3, 4)
JPEG_QUALITY = 90


class MimeType(str, Enum):
    PNG = "image/png"
    JPEG = "image/jpeg"
    WEBP = "image/webp"
    HEIC = "image/heic"
    HEIF = "image/heif"
    UNSUPPORTED = "application/octet-stream"


def detect_mime_type(data: bytes) -> MimeType:
    """Classify an image buffer from its leading byte signature only."""
    if len(data) < 4:
        return MimeType.UNSUPPORTED
    if data[:4] == b"\x89PNG":
        return MimeType.PNG
    if data[:3] == b"\xff\xd8\xff":
        return MimeType.JPEG
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return MimeType.WEBP
    if data[4:12] == b"ftypheic":
        return MimeType.HEIC
    if data[4:12] == b"ftypheif":
        return MimeType.HEIF
    return MimeType.UNSUPPORTED


@dataclass(frozen=True)
class ImageAsset:
    data: bytes
    mime_type: MimeType

    @classmethod
    def from_bytes(cls, data: bytes) -> "ImageAsset":
        return cls(data=bytes(data), mime_type=detect_mime_type(data))

    @property
    def is_supported(self) -> bool:
        return self.mime_type is not MimeType.UNSUPPORTED


def fetch_image(
    url: str,
    *,
    timeout_seconds: float,
    fetcher: Callable[..., bytes] = fetch_bytes,
) -> ImageAsset:
    try:
        payload = fetcher(url, timeout_seconds=timeout_seconds)
    except (ProviderError, OSError, http.client.HTTPException) as exc:
        raise ImageFetchError(f"Could not fetch {url}: {exc}") from exc
    if not payload:
        raise ImageFetchError(f"Empty response body from {url}")
    return ImageAsset.from_bytes(payload)


def _encode_jpeg(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="JPEG", quality=JPEG_QUALITY)
    return buffer.getvalue()


def _flatten(image: Image.Image) -> Image.Image:
    has_alpha = image.mode in {"RGBA", "LA"} or (image.mode == "P" and "transparency" in image.info)
    if not has_alpha:
        return image.convert("RGB")
    rgba = image.convert("RGBA")
    background = Image.new("RGBA", rgba.size, BACKGROUND_COLOR + (255,))
    return Image.alpha_composite(background, rgba).convert("RGB")


def normalize_tile(data: bytes) -> bytes:
    """Contain-fit an image into a white TILE_SIZE square and re-encode it as JPEG."""
    try:
        with Image.open(BytesIO(data)) as source:
            source.load()
            flattened = _flatten(source)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageNormalizeError(f"Could not decode image: {exc}") from exc

    tile = ImageOps.pad(
        flattened,
        (TILE_SIZE, TILE_SIZE),
        method=Image.Resampling.LANCZOS,
        color=BACKGROUND_COLOR,
    )
    return _encode_jpeg(tile)


@dataclass(frozen=True)
class CompositeLayout:
    count: int
    rows: int
    cols: int
    content_width: int
    content_height: int
    canvas_width: int
    canvas_height: int
    offset_x: int
    offset_y: int

    def position(self, index: int) -> tuple[int, int]:
        row, col = divmod(index, IMAGES_PER_ROW)
        x = col * TILE_SIZE + (col + 1) * PADDING + self.offset_x
        y = row * TILE_SIZE + (row + 1) * PADDING + self.offset_y
        return x, y

    @property
    def aspect_ratio(self) -> float:
        return self.canvas_width / self.canvas_height


def compute_layout(count: int) -> CompositeLayout:
    if count < 1:
        raise ValueError("A composite needs at least one tile.")

    cols = min(count, IMAGES_PER_ROW)
    rows = math.ceil(count / IMAGES_PER_ROW)
    content_width = cols * TILE_SIZE + (cols + 1) * PADDING
    content_height = rows * TILE_SIZE + (rows + 1) * PADDING

    canvas_width, canvas_height = content_width, content_height
    current = Fraction(content_width, content_height)
    if current > TARGET_ASPECT_RATIO:
        canvas_height = math.ceil(content_width / TARGET_ASPECT_RATIO)
    elif current < TARGET_ASPECT_RATIO:
        canvas_width = math.ceil(content_height * TARGET_ASPECT_RATIO)

    return CompositeLayout(
        count=count,
        rows=rows,
        cols=cols,
        content_width=content_width,
        content_height=content_height,
        canvas_width=canvas_width,
        canvas_height=canvas_height,
        offset_x=(canvas_width - content_width) // 2,
        offset_y=(canvas_height - content_height) // 2,
    )


def composite_tiles(tiles: Sequence[bytes]) -> bytes | None:
    if not tiles:
        return None

    layout = compute_layout(len(tiles))
    _LOGGER.info(
        "Product merge dimensions: images=%d rows=%d cols=%d content=%dx%d canvas=%dx%d ratio=%.3f target=%.3f offset=(%d, %d)",
        layout.count,
        layout.rows,
        layout.cols,
        layout.content_width,
        layout.content_height,
        layout.canvas_width,
        layout.canvas_height,
        layout.aspect_ratio,
        float(TARGET_ASPECT_RATIO),
        layout.offset_x,
        layout.offset_y,
    )

    canvas = Image.new("RGB", (layout.canvas_width, layout.canvas_height), BACKGROUND_COLOR)
    for index, tile in enumerate(tiles):
        with Image.open(BytesIO(tile)) as image:
            canvas.paste(image.convert("RGB"), layout.position(index))
    return _encode_jpeg(canvas)


class ProductImageMerger:
    """Downloads each product image, normalizes it and merges the survivors in product order."""

    def __init__(
        self,
        *,
        fetch_timeout_seconds: float = 15.0,
        max_workers: int = 8,
        fetcher: Callable[..., bytes] = fetch_bytes,
        debug_dir: Path | None = None,
    ) -> None:
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.max_workers = max(1, int(max_workers))
        self.fetcher = fetcher
        self.debug_dir = debug_dir

    def _load_tile(self, product: Product) -> bytes:
        asset = fetch_image(product.image_url, timeout_seconds=self.fetch_timeout_seconds, fetcher=self.fetcher)
        return normalize_tile(asset.data)

    def load_tiles(self, products: Sequence[Product]) -> list[bytes]:
        if not products:
            return []

        workers = min(self.max_workers, len(products))
        tiles: list[bytes] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="image-fetch") as pool:
            futures = [pool.submit(self._load_tile, product) for product in products]
            # Read back by submission index so tile order matches product order.
            for product, future in zip(products, futures):
                try:
                    tiles.append(future.result())
                except (ImageFetchError, ImageNormalizeError) as exc:
                    _LOGGER.warning("Skipping image for product %r: %s", product.title, exc)
        return tiles

    def merge(self, products: Sequence[Product], *, save_debug: bool = False) -> bytes | None:
        tiles = self.load_tiles(products)
        if not tiles:
            _LOGGER.warning("No product images could be prepared out of %d products.", len(products))
            return None

        merged = composite_tiles(tiles)
        if merged is not None and save_debug:
            self.save_debug_image(merged, products)
        return merged

    def save_debug_image(self, merged: bytes, products: Sequence[Product]) -> Path | None:
        if self.debug_dir is None:
            return None
        try:
            self.debug_dir.mkdir(parents=True, exist_ok=True)
            now = datetime.now(timezone.utc)
            stamp = now.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
            image_path = self.debug_dir / f"merged-products-{len(products)}-{stamp}.jpg"
            image_path.write_bytes(merged)

            metadata = {
                "timestamp": now.isoformat(),
                "productCount": len(products),
                "products": [
                    {"title": product.title, "imageUrl": product.image_url, "price": product.price}
                    for product in products
                ],
                "imagePath": str(image_path),
            }
            (self.debug_dir / f"metadata-{stamp}.json").write_text(json.dumps(metadata, indent=2), encoding="utf-8")
        except OSError as exc:
            _LOGGER.warning("Failed to save debug merge image: %s", exc)
            return None

        _LOGGER.info("Debug merge image saved to %s", image_path)
        return image_path
