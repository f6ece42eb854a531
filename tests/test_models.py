from __future__ import annotations

import pytest

from fashion_pal.models import Product, VideoTask, VideoTaskStatus, parse_task_status


def test_product_from_payload_round_trips_camel_case():
    payload = {
        "title": " Linen Blazer ",
        "price": "89.5",
        "description": "Unlined",
        "imageUrl": "https://img.example.com/b.jpg",
        "productUrl": "https://shop.example.com/b",
        "rating": 4.2,
        "brand": "Example",
    }
    product = Product.from_payload(payload)

    assert product.title == "Linen Blazer"
    assert product.price == 89.5
    assert product.to_dict() == {
        "title": "Linen Blazer",
        "price": 89.5,
        "description": "Unlined",
        "imageUrl": "https://img.example.com/b.jpg",
        "productUrl": "https://shop.example.com/b",
        "rating": 4.2,
        "brand": "Example",
    }


@pytest.mark.parametrize(
    "payload",
    [
        {"title": "x", "price": 0, "imageUrl": "https://i", "productUrl": "https://p"},
        {"title": "x", "price": -3, "imageUrl": "https://i", "productUrl": "https://p"},
        {"title": "", "price": 10, "imageUrl": "https://i", "productUrl": "https://p"},
        {"title": "x", "price": 10, "productUrl": "https://p"},
        {"title": "x", "price": 10, "imageUrl": "https://i"},
        {"title": "x", "price": "ten", "imageUrl": "https://i", "productUrl": "https://p"},
    ],
)
def test_product_from_payload_rejects_unusable(payload):
    with pytest.raises(ValueError, match="positive price"):
        Product.from_payload(payload)


def test_product_from_payload_rejects_non_objects():
    with pytest.raises(ValueError, match="JSON object"):
        Product.from_payload(["not", "a", "product"])


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("SUCCEEDED", VideoTaskStatus.SUCCEEDED),
        ("completed", VideoTaskStatus.COMPLETED),
        ("RUNNING", VideoTaskStatus.PROCESSING),
        ("THROTTLED", VideoTaskStatus.PENDING),
        ("CANCELLED", VideoTaskStatus.FAILED),
        ("something-new", VideoTaskStatus.PENDING),
        (None, VideoTaskStatus.PENDING),
    ],
)
def test_parse_task_status(raw, expected):
    assert parse_task_status(raw) is expected


@pytest.mark.parametrize(
    "output",
    [
        ["https://cdn.example.com/v.mp4", "https://cdn.example.com/other.mp4"],
        {"video": "https://cdn.example.com/v.mp4"},
        "https://cdn.example.com/v.mp4",
    ],
)
def test_video_task_reads_output_shapes(output):
    task = VideoTask.from_provider({"id": "t1", "status": "SUCCEEDED", "output": output})
    assert task.output_video == "https://cdn.example.com/v.mp4"
    assert task.is_success and task.is_terminal


def test_video_task_failure_keeps_reason():
    task = VideoTask.from_provider({"status": "FAILED", "failure": "moderation"}, fallback_id="t2")
    assert task.to_dict() == {"id": "t2", "status": "failed", "error": "moderation"}
    assert task.is_terminal and not task.is_success
