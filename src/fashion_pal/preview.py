"""Outfit preview generation: the shopper's photo plus a product composite sent to a Gemini image model."""

from __future__ import annotations

import base64
import logging
from typing import Any, Callable, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from fashion_pal.config import require_api_key
from fashion_pal.errors import ImageMergeError, ProviderError
from fashion_pal.imaging import ImageAsset, ProductImageMerger
from fashion_pal.models import Product


_LOGGER = logging.getLogger(__name__)

PREVIEW_ASPECT_RATIO = "3:4"

MISSING_PHOTO_MESSAGE = "User photo is required to generate an outfit preview."
MISSING_EVENT_MESSAGE = "Event description is required to generate an outfit preview."
MISSING_PRODUCTS_MESSAGE = "At least one product is required to generate an outfit preview."


def _default_client_factory() -> genai.Client:
    return genai.Client(api_key=require_api_key("GEMINI_API_KEY"))


def build_preview_prompt(event_description: str) -> str:
    return (
        "Create a photo of the person in the first image wearing all the items shown in the second image "
        f"at {event_description.strip()}. "
        "Keep the person's face, body shape and skin tone unchanged. "
        "Photorealistic, full body, natural lighting, "
        f"{PREVIEW_ASPECT_RATIO} aspect ratio."
    )


def extract_image_bytes(response: Any) -> bytes:
    """Return the first inline image payload of a generate_content response."""
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            data = getattr(inline, "data", None) if inline is not None else None
            if not data:
                continue
            if isinstance(data, str):
                return base64.b64decode(data)
            return bytes(data)
    raise ProviderError("No image data received")


class OutfitPreviewGenerator:
    def __init__(
        self,
        *,
        model: str,
        merger: ProductImageMerger,
        client_factory: Callable[[], Any] = _default_client_factory,
    ) -> None:
        self.model = model
        self.merger = merger
        self.client_factory = client_factory

    @staticmethod
    def validate_request(user_photo: ImageAsset | None, products: Sequence[Product], event_description: str) -> None:
        if user_photo is None or not user_photo.data:
            raise ValueError(MISSING_PHOTO_MESSAGE)
        if not (event_description or "").strip():
            raise ValueError(MISSING_EVENT_MESSAGE)
        if not products:
            raise ValueError(MISSING_PRODUCTS_MESSAGE)

    @staticmethod
    def _inline_part(asset: ImageAsset, label: str) -> types.Part:
        if not asset.is_supported:
            raise ValueError(f"{label} must be a PNG, JPEG, WEBP, HEIC or HEIF image.")
        return types.Part.from_bytes(data=asset.data, mime_type=asset.mime_type.value)

    def generate(
        self,
        user_photo: ImageAsset | None,
        products: Sequence[Product],
        event_description: str,
        *,
        merged_image: bytes | None = None,
    ) -> bytes:
        self.validate_request(user_photo, products, event_description)

        if merged_image is None:
            merged_image = self.merger.merge(products)
        if not merged_image:
            raise ImageMergeError("None of the selected product images could be downloaded.")

        contents = [
            self._inline_part(user_photo, "User photo"),
            self._inline_part(ImageAsset.from_bytes(merged_image), "Product composite"),
            build_preview_prompt(event_description),
        ]

        client = self.client_factory()
        try:
            response = client.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE"],
                    image_config=types.ImageConfig(aspect_ratio=PREVIEW_ASPECT_RATIO),
                ),
            )
        except (genai_errors.APIError, httpx.HTTPError) as exc:
            raise ProviderError(f"Outfit preview generation failed: {exc}") from exc

        image = extract_image_bytes(response)
        _LOGGER.info(
            "Generated outfit preview (%d bytes, %s) for %d products",
            len(image),
            ImageAsset.from_bytes(image).mime_type.value,
            len(products),
        )
        return image
