"""Request-level orchestration for recommendations, outfit previews and preview videos."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Sequence

from fashion_pal.config import Settings
from fashion_pal.errors import ImageMergeError
from fashion_pal.imaging import ImageAsset, ProductImageMerger
from fashion_pal.models import PersonalInfo, Product, VideoTask
from fashion_pal.preview import OutfitPreviewGenerator
from fashion_pal.search_terms import SearchTermGenerator
from fashion_pal.shopping import ProductSearchClient, placeholder_recommendations
from fashion_pal.video import RunwayVideoClient


_LOGGER = logging.getLogger(__name__)


class FashionPalService:
    """Stateless facade built once at startup and shared by the API handlers.

    Every collaborator can be injected, which is how the tests swap the
    provider clients for fakes.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        search_terms: SearchTermGenerator | None = None,
        product_search: ProductSearchClient | None = None,
        merger: ProductImageMerger | None = None,
        preview: OutfitPreviewGenerator | None = None,
        video: RunwayVideoClient | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        cfg = self.settings

        self.search_terms = search_terms or SearchTermGenerator(
            model=cfg.openai_model,
            timeout_seconds=cfg.request_timeout_seconds,
        )
        self.product_search = product_search or ProductSearchClient(
            base_url=cfg.serpapi_base_url,
            results_per_term=cfg.search_results_per_term,
            timeout_seconds=cfg.request_timeout_seconds,
            max_workers=cfg.max_workers,
        )
        self.merger = merger or ProductImageMerger(
            fetch_timeout_seconds=cfg.image_fetch_timeout_seconds,
            max_workers=cfg.max_workers,
            debug_dir=cfg.debug_merge_dir,
        )
        self.preview = preview or OutfitPreviewGenerator(model=cfg.gemini_image_model, merger=self.merger)
        self.video = video or RunwayVideoClient(
            base_url=cfg.runway_base_url,
            api_version=cfg.runway_api_version,
            model=cfg.runway_model,
            max_payload_kb=cfg.video_max_payload_kb,
            timeout_seconds=cfg.request_timeout_seconds,
        )

    def recommend_products(self, personal_info: PersonalInfo, event_description: str) -> dict[str, Any]:
        event = event_description.strip()
        if not event:
            raise ValueError("eventDescription must not be empty.")

        terms = self.search_terms.generate(personal_info.age, personal_info.gender, event)
        results = self.product_search.search(terms)

        used_placeholders = not results
        if used_placeholders:
            _LOGGER.warning("No search term returned usable products; using placeholder recommendations.")
            grouped = placeholder_recommendations(personal_info.gender, event)
        else:
            grouped = {term: products for term, products in results}

        recommendations = {term: [product.to_dict() for product in products] for term, products in grouped.items()}
        return {
            "recommendations": [recommendations],
            "searchTerms": terms,
            "placeholder": used_placeholders,
        }

    def merge_product_images(self, products: Sequence[Product]) -> bytes:
        if not products:
            raise ValueError("products must be a non-empty array")
        merged = self.merger.merge(products, save_debug=self.settings.save_debug_merges)
        if merged is None:
            raise ImageMergeError("None of the product images could be downloaded and processed.")
        return merged

    def preview_outfit(
        self,
        *,
        user_photo: ImageAsset | None,
        products: Sequence[Product],
        event_description: str,
    ) -> bytes:
        self.preview.validate_request(user_photo, products, event_description)
        merged = self.merge_product_images(products)
        return self.preview.generate(user_photo, products, event_description, merged_image=merged)

    def create_video_task(
        self,
        image: bytes,
        *,
        prompt_text: str | None = None,
        ratio: str | None = None,
        duration_seconds: int | None = None,
    ) -> str:
        return self.video.create_task(
            image,
            prompt_text=prompt_text,
            ratio=ratio,
            duration_seconds=duration_seconds,
        )

    def video_task_status(self, task_id: str) -> VideoTask:
        return self.video.get_task(task_id)

    @staticmethod
    def health() -> dict[str, Any]:
        return {
            "success": True,
            "message": "Fashion Pal backend is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
