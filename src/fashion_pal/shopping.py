"""Google Shopping search through SerpApi, normalized into ``Product`` records."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import http.client
import logging
import re
from typing import Any, Callable, Mapping, Sequence

from fashion_pal.config import require_api_key
from fashion_pal.errors import ProviderError
from fashion_pal.http_json import JsonApiClient
from fashion_pal.models import Product


_LOGGER = logging.getLogger(__name__)

_NUMERIC_RUN = re.compile(r"\d[\d.,]*")

PLACEHOLDER_CATEGORIES = ("Main Outfit", "Accessories", "Shoes")


def parse_price(raw: Any) -> float:
    """Read the first amount out of a free-text price such as ``"$1,234.56"`` or ``"12,50 €"``.

    Returns 0.0 when no amount can be found.
    """
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)
    text = re.sub(r"[^\d.,]", "", str(raw or ""))
    match = _NUMERIC_RUN.search(text)
    if match is None:
        return 0.0

    number = match.group(0).rstrip(".,")
    if "," in number and "." in number:
        if number.rfind(",") > number.rfind("."):
            number = number.replace(".", "").replace(",", ".")
        else:
            number = number.replace(",", "")
    elif "," in number:
        head, _, tail = number.rpartition(",")
        if number.count(",") == 1 and len(tail) == 2:
            number = f"{head}.{tail}"
        else:
            number = number.replace(",", "")
    elif number.count(".") > 1:
        number = number.replace(".", "")

    try:
        return float(number)
    except ValueError:
        return 0.0


def map_shopping_result(record: Mapping[str, Any]) -> Product | None:
    """Map one raw ``shopping_results`` entry to a Product, or None if it is unusable."""
    if not isinstance(record, Mapping):
        return None

    price_text = record.get("price")
    price = parse_price(price_text) if price_text else parse_price(record.get("extracted_price"))

    rating = record.get("rating")
    reviews = record.get("reviews")
    product = Product(
        title=str(record.get("title") or "").strip(),
        price=price,
        description=str(record.get("snippet") or record.get("description") or "").strip(),
        image_url=str(record.get("thumbnail") or record.get("serpapi_thumbnail") or "").strip(),
        product_url=str(record.get("product_link") or record.get("link") or "").strip(),
        rating=float(rating) if isinstance(rating, (int, float)) and not isinstance(rating, bool) else None,
        reviews=int(reviews) if isinstance(reviews, int) and not isinstance(reviews, bool) else None,
        brand=str(record.get("source") or "").strip() or None,
        condition=str(record.get("second_hand_condition") or "").strip() or None,
        availability=str(record.get("delivery") or "").strip() or None,
    )
    return product if product.is_usable else None


def _default_client_factory(base_url: str, timeout_seconds: float) -> JsonApiClient:
    return JsonApiClient(name="SerpApi", base_url=base_url, timeout_seconds=timeout_seconds)


class ProductSearchClient:
    def __init__(
        self,
        *,
        base_url: str = "https://serpapi.com",
        results_per_term: int = 5,
        timeout_seconds: float = 30.0,
        max_workers: int = 8,
        client_factory: Callable[[str, float], JsonApiClient] = _default_client_factory,
    ) -> None:
        self.base_url = base_url
        self.results_per_term = max(1, int(results_per_term))
        self.timeout_seconds = timeout_seconds
        self.max_workers = max(1, int(max_workers))
        self.client_factory = client_factory

    def search_term(self, term: str, *, api_key: str) -> list[Product]:
        client = self.client_factory(self.base_url, self.timeout_seconds)
        response = client.request_json(
            "GET",
            "/search.json",
            params={
                "engine": "google_shopping",
                "q": term,
                "num": self.results_per_term,
                "api_key": api_key,
            },
        )
        if response.get("error"):
            raise ProviderError(f"SerpApi error for {term!r}: {response['error']}")

        raw_results = response.get("shopping_results")
        if not isinstance(raw_results, list):
            return []

        products: list[Product] = []
        for record in raw_results[: self.results_per_term]:
            product = map_shopping_result(record)
            if product is not None:
                products.append(product)
        return products

    def _safe_search_term(self, term: str, api_key: str) -> list[Product]:
        try:
            return self.search_term(term, api_key=api_key)
        except (ProviderError, OSError, http.client.HTTPException) as exc:
            _LOGGER.warning("Product search failed for term %r: %s", term, exc)
            return []

    def search(self, terms: Sequence[str]) -> list[tuple[str, list[Product]]]:
        """Search every term in parallel and keep only terms with at least one usable product."""
        cleaned = [term.strip() for term in terms if term and term.strip()]
        if not cleaned:
            return []

        api_key = require_api_key("SERPAPI_API_KEY")
        workers = min(self.max_workers, len(cleaned))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="product-search") as pool:
            futures = [pool.submit(self._safe_search_term, term, api_key) for term in cleaned]
            results = [(term, future.result()) for term, future in zip(cleaned, futures)]

        kept = [(term, products) for term, products in results if products]
        for term, products in results:
            if not products:
                _LOGGER.warning("No usable products for search term %r", term)
        return kept


def placeholder_recommendations(gender: str, event_description: str) -> dict[str, list[Product]]:
    """Fixed demo products returned when no search term produced a usable product."""
    products = [
        Product(
            title="Elegant Event Dress",
            price=89.99,
            description=f"Perfect for {event_description}. A stylish and comfortable choice.",
            image_url="https://example.com/images/dress1.jpg",
            product_url="https://amazon.com/dp/dress1",
        ),
        Product(
            title="Classic Formal Shirt",
            price=45.50,
            description=f"High-quality formal shirt perfect for {event_description}.",
            image_url="https://example.com/images/shirt1.jpg",
            product_url="https://amazon.com/dp/shirt1",
        ),
        Product(
            title=f"Stylish {gender} Blazer",
            price=120.00,
            description=f"Professional blazer perfect for {event_description}.",
            image_url="https://example.com/images/blazer1.jpg",
            product_url="https://amazon.com/dp/blazer1",
        ),
        Product(
            title="Comfortable Dress Shoes",
            price=75.25,
            description=f"Elegant shoes that provide comfort for {event_description}.",
            image_url="https://example.com/images/shoes1.jpg",
            product_url="https://amazon.com/dp/shoes1",
        ),
        Product(
            title="Accessory Set",
            price=25.99,
            description=f"Complete accessory set to complement your outfit for {event_description}.",
            image_url="https://example.com/images/accessories1.jpg",
            product_url="https://amazon.com/dp/accessories1",
        ),
    ]
    main_outfit, accessories, shoes = PLACEHOLDER_CATEGORIES
    return {
        main_outfit: products[0:2],
        accessories: products[2:4],
        shoes: products[4:5],
    }
