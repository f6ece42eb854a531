from __future__ import annotations

import http.client
from io import BytesIO
import json

import pytest
from PIL import Image

from conftest import encode_image
from fashion_pal.errors import ImageFetchError, ImageNormalizeError
from fashion_pal.imaging import (
    IMAGES_PER_ROW,
    TILE_SIZE,
    ImageAsset,
    MimeType,
    ProductImageMerger,
    composite_tiles,
    compute_layout,
    detect_mime_type,
    fetch_image,
    normalize_tile,
)


def _close(pixel, expected, tolerance=40):
    return all(abs(a - b) <= tolerance for a, b in zip(pixel, expected))


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"\x89PNG" + b"garbage-after-header", MimeType.PNG),
        (b"\xff\xd8\xff\xe0" + b"\x00" * 8, MimeType.JPEG),
        (b"RIFF\x24\x00\x00\x00WEBPVP8 ", MimeType.WEBP),
        (b"\x00\x00\x00\x18ftypheic\x00\x00", MimeType.HEIC),
        (b"\x00\x00\x00\x18ftypheif\x00\x00", MimeType.HEIF),
        (b"RIFF\x24\x00\x00\x00WAVEfmt ", MimeType.UNSUPPORTED),
        (b"GIF89a\x01\x00", MimeType.UNSUPPORTED),
        (b"\x89P", MimeType.UNSUPPORTED),
        (b"\xff\xd8\xff", MimeType.UNSUPPORTED),
        (b"", MimeType.UNSUPPORTED),
    ],
)
def test_detect_mime_type_signatures(data, expected):
    assert detect_mime_type(data) is expected


def test_detect_mime_type_is_deterministic():
    data = encode_image(fmt="JPEG")
    assert {detect_mime_type(data) for _ in range(5)} == {MimeType.JPEG}


def test_image_asset_uses_sniffed_type():
    asset = ImageAsset.from_bytes(encode_image(fmt="PNG"))
    assert asset.mime_type is MimeType.PNG
    assert asset.is_supported
    assert not ImageAsset.from_bytes(b"nope").is_supported


def test_layout_for_single_tile():
    layout = compute_layout(1)
    assert (layout.rows, layout.cols) == (1, 1)
    assert (layout.content_width, layout.content_height) == (420, 420)
    assert (layout.canvas_width, layout.canvas_height) == (420, 560)
    assert (layout.offset_x, layout.offset_y) == (0, 70)
    assert layout.position(0) == (10, 80)


def test_layout_for_four_tiles_grows_height():
    layout = compute_layout(4)
    assert (layout.rows, layout.cols) == (2, 3)
    assert (layout.content_width, layout.content_height) == (1230, 830)
    assert (layout.canvas_width, layout.canvas_height) == (1230, 1640)
    assert layout.offset_y == 405
    assert layout.position(3) == (10, 400 + 20 + 405)
    assert layout.position(2) == (2 * 400 + 3 * 10, 10 + 405)


def test_layout_for_ten_tiles_grows_width():
    layout = compute_layout(10)
    assert (layout.content_width, layout.content_height) == (1230, 1650)
    assert (layout.canvas_width, layout.canvas_height) == (1238, 1650)
    assert (layout.offset_x, layout.offset_y) == (4, 0)


@pytest.mark.parametrize("count", range(1, 17))
def test_layout_properties(count):
    layout = compute_layout(count)
    assert layout.rows * layout.cols >= count
    assert layout.cols <= IMAGES_PER_ROW
    assert layout.canvas_width >= layout.content_width
    assert layout.canvas_height >= layout.content_height
    assert abs(layout.aspect_ratio - 0.75) <= 1 / layout.canvas_height
    last_x, last_y = layout.position(count - 1)
    assert last_x + TILE_SIZE <= layout.canvas_width
    assert last_y + TILE_SIZE <= layout.canvas_height


def test_layout_rejects_empty():
    with pytest.raises(ValueError):
        compute_layout(0)


def test_normalize_tile_letterboxes_on_white():
    tile = normalize_tile(encode_image(size=(800, 200), color=(220, 20, 20)))
    assert detect_mime_type(tile) is MimeType.JPEG
    with Image.open(BytesIO(tile)) as image:
        assert image.size == (TILE_SIZE, TILE_SIZE)
        assert _close(image.getpixel((200, 200)), (220, 20, 20))
        assert _close(image.getpixel((200, 5)), (255, 255, 255), tolerance=12)


def test_normalize_tile_upscales_small_images():
    tile = normalize_tile(encode_image(size=(20, 20), color=(20, 20, 220)))
    with Image.open(BytesIO(tile)) as image:
        assert image.size == (TILE_SIZE, TILE_SIZE)
        assert _close(image.getpixel((5, 5)), (20, 20, 220))


def test_normalize_tile_flattens_transparency_to_white():
    tile = normalize_tile(encode_image(size=(50, 50), color=(0, 0, 0, 0), mode="RGBA"))
    with Image.open(BytesIO(tile)) as image:
        assert _close(image.getpixel((200, 200)), (255, 255, 255), tolerance=12)


def test_normalize_tile_rejects_corrupt_data():
    with pytest.raises(ImageNormalizeError):
        normalize_tile(b"this is not an image at all")


def test_composite_tiles_empty_returns_none():
    assert composite_tiles([]) is None


def test_composite_tiles_matches_layout():
    tiles = [normalize_tile(encode_image(color=(20, 200, 20))) for _ in range(2)]
    merged = composite_tiles(tiles)
    layout = compute_layout(2)
    with Image.open(BytesIO(merged)) as image:
        assert image.format == "JPEG"
        assert image.size == (layout.canvas_width, layout.canvas_height)
        x, y = layout.position(1)
        assert _close(image.getpixel((x + 200, y + 200)), (20, 200, 20))
        assert _close(image.getpixel((2, 2)), (255, 255, 255), tolerance=12)


def test_fetch_image_wraps_http_failures(image_host):
    with pytest.raises(ImageFetchError):
        fetch_image("https://missing.example.com/a.png", timeout_seconds=1, fetcher=image_host)


def test_fetch_image_rejects_empty_body(image_host):
    image_host.images["https://img.example.com/empty.png"] = b""
    with pytest.raises(ImageFetchError):
        fetch_image("https://img.example.com/empty.png", timeout_seconds=1, fetcher=image_host)


def test_merge_tolerates_partial_failures(image_host, make_product):
    products = [make_product(i) for i in range(5)]
    for product in products[:3]:
        image_host.images[product.image_url] = encode_image()

    merger = ProductImageMerger(fetcher=image_host, max_workers=4)
    merged = merger.merge(products)

    layout = compute_layout(3)
    with Image.open(BytesIO(merged)) as image:
        assert image.size == (layout.canvas_width, layout.canvas_height)
    assert sorted(image_host.requested) == sorted(p.image_url for p in products)


def test_merge_returns_none_when_everything_fails(image_host, make_product):
    products = [make_product(i) for i in range(5)]
    merger = ProductImageMerger(fetcher=image_host)
    assert merger.merge(products) is None


@pytest.mark.parametrize(
    "error",
    [TimeoutError("timed out"), ConnectionResetError(104, "reset"), http.client.RemoteDisconnected("closed")],
)
def test_fetch_image_wraps_transport_failures(image_host, error):
    image_host.errors["https://slow.example.com/a.png"] = error
    with pytest.raises(ImageFetchError) as info:
        fetch_image("https://slow.example.com/a.png", timeout_seconds=1, fetcher=image_host)
    assert info.value.__cause__ is error


def test_merge_survives_slow_and_dropped_hosts(image_host, make_product):
    products = [make_product(i) for i in range(4)]
    image_host.images[products[0].image_url] = encode_image()
    image_host.images[products[3].image_url] = encode_image()
    image_host.errors[products[1].image_url] = TimeoutError("timed out")
    image_host.errors[products[2].image_url] = ConnectionResetError(104, "Connection reset by peer")

    merged = ProductImageMerger(fetcher=image_host, max_workers=4).merge(products)

    layout = compute_layout(2)
    with Image.open(BytesIO(merged)) as image:
        assert image.size == (layout.canvas_width, layout.canvas_height)


def test_merge_drops_undecodable_images(image_host, make_product):
    good, bad = make_product(1), make_product(2)
    image_host.images[good.image_url] = encode_image()
    image_host.images[bad.image_url] = b"not an image either"
    tiles = ProductImageMerger(fetcher=image_host).load_tiles([good, bad])
    assert len(tiles) == 1


def test_tiles_keep_product_order(image_host, make_product):
    colors = [(220, 20, 20), (20, 220, 20), (20, 20, 220), (220, 220, 20)]
    products = [make_product(i) for i in range(len(colors))]
    for product, color in zip(products, colors):
        image_host.images[product.image_url] = encode_image(color=color)
    # a failing product in the middle must not shift the others
    products.insert(2, make_product(99))

    tiles = ProductImageMerger(fetcher=image_host, max_workers=5).load_tiles(products)

    assert len(tiles) == len(colors)
    for tile, color in zip(tiles, colors):
        with Image.open(BytesIO(tile)) as image:
            assert _close(image.getpixel((200, 200)), color)


def test_merge_saves_debug_output(tmp_path, image_host, make_product):
    product = make_product(1)
    image_host.images[product.image_url] = encode_image()
    merger = ProductImageMerger(fetcher=image_host, debug_dir=tmp_path / "debug")

    merged = merger.merge([product], save_debug=True)

    images = list((tmp_path / "debug").glob("merged-products-1-*.jpg"))
    metadata_files = list((tmp_path / "debug").glob("metadata-*.json"))
    assert len(images) == 1 and images[0].read_bytes() == merged
    metadata = json.loads(metadata_files[0].read_text(encoding="utf-8"))
    assert metadata["productCount"] == 1
    assert metadata["products"][0] == {"title": "Product 1", "imageUrl": product.image_url, "price": 11.0}
