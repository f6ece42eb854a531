"""Domain types passed between the provider clients, the image pipeline and the API."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Product:
    title: str
    price: float
    description: str
    image_url: str
    product_url: str
    rating: float | None = None
    reviews: int | None = None
    brand: str | None = None
    condition: str | None = None
    availability: str | None = None

    @property
    def is_usable(self) -> bool:
        return bool(self.title and self.image_url and self.product_url) and self.price > 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Product":
        """Build a product from a camelCase API payload.

        Raises ``ValueError`` when the payload is not a mapping or the product
        lacks a title, a positive price, an image URL or a product URL.
        """
        if not isinstance(payload, Mapping):
            raise ValueError("Each product must be a JSON object.")

        price = _optional_float(payload.get("price"))
        product = cls(
            title=_clean_text(payload.get("title")),
            price=price if price is not None else 0.0,
            description=_clean_text(payload.get("description")),
            image_url=_clean_text(payload.get("imageUrl")),
            product_url=_clean_text(payload.get("productUrl")),
            rating=_optional_float(payload.get("rating")),
            reviews=_optional_int(payload.get("reviews")),
            brand=_clean_text(payload.get("brand")) or None,
            condition=_clean_text(payload.get("condition")) or None,
            availability=_clean_text(payload.get("availability")) or None,
        )
        if not product.is_usable:
            raise ValueError("Each product must include title, a positive price, imageUrl, and productUrl.")
        return product

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "title": self.title,
            "price": self.price,
            "description": self.description,
            "imageUrl": self.image_url,
            "productUrl": self.product_url,
        }
        optional = {
            "rating": self.rating,
            "reviews": self.reviews,
            "brand": self.brand,
            "condition": self.condition,
            "availability": self.availability,
        }
        out.update({key: value for key, value in optional.items() if value is not None})
        return out


@dataclass(frozen=True)
class PersonalInfo:
    age: int
    gender: str


class VideoTaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Runway reports a few states outside the public enum.
_STATUS_ALIASES = {
    "running": VideoTaskStatus.PROCESSING,
    "in_progress": VideoTaskStatus.PROCESSING,
    "throttled": VideoTaskStatus.PENDING,
    "queued": VideoTaskStatus.PENDING,
    "cancelled": VideoTaskStatus.FAILED,
    "canceled": VideoTaskStatus.FAILED,
}


def parse_task_status(value: Any) -> VideoTaskStatus:
    key = _clean_text(value).lower()
    if not key:
        return VideoTaskStatus.PENDING
    try:
        return VideoTaskStatus(key)
    except ValueError:
        return _STATUS_ALIASES.get(key, VideoTaskStatus.PENDING)


@dataclass(frozen=True)
class VideoTask:
    id: str
    status: VideoTaskStatus
    output_video: str | None = None
    error: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status in {VideoTaskStatus.COMPLETED, VideoTaskStatus.SUCCEEDED}

    @property
    def is_terminal(self) -> bool:
        return self.is_success or self.status is VideoTaskStatus.FAILED

    @classmethod
    def from_provider(cls, payload: Mapping[str, Any], *, fallback_id: str = "") -> "VideoTask":
        output = payload.get("output")
        video: str | None = None
        if isinstance(output, list):
            video = _clean_text(output[0]) if output else None
        elif isinstance(output, Mapping):
            video = _clean_text(output.get("video")) or None
        elif output:
            video = _clean_text(output)

        error = payload.get("error") or payload.get("failure")
        return cls(
            id=_clean_text(payload.get("id")) or fallback_id,
            status=parse_task_status(payload.get("status")),
            output_video=video or None,
            error=_clean_text(error) or None,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "status": self.status.value}
        if self.output_video:
            out["output"] = {"video": self.output_video}
        if self.error:
            out["error"] = self.error
        return out
