"""Turns a shopper's age, gender and event into retail search phrases with an OpenAI structured-output call."""

from __future__ import annotations

import logging
from typing import Any, Callable

from openai import OpenAI, OpenAIError
from pydantic import BaseModel, ConfigDict, ValidationError

from fashion_pal.config import require_api_key
from fashion_pal.errors import ProviderError


_LOGGER = logging.getLogger(__name__)

MIN_SEARCH_TERMS = 3
MAX_SEARCH_TERMS = 5

_RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "search_terms",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "searchTerms": {
                    "type": "array",
                    "items": {"type": "string"},
                }
            },
            "required": ["searchTerms"],
            "additionalProperties": False,
        },
    },
}


class SearchTermsPayload(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    searchTerms: list[str]


def _default_client_factory() -> OpenAI:
    return OpenAI(api_key=require_api_key("OPENAI_API_KEY"))


def build_search_prompt(age: int, gender: str, event_description: str) -> str:
    return (
        "You are a personal stylist helping a shopper find an outfit online.\n"
        f"Shopper: {age} year old {gender}.\n"
        f"Event: {event_description}\n"
        f"Suggest {MIN_SEARCH_TERMS} to {MAX_SEARCH_TERMS} short retail search phrases, one per clothing item or accessory, "
        "that together make a complete outfit for this event. "
        "Each phrase should work as a query on a shopping site (for example \"navy linen blazer\").\n"
        "Return JSON with a single key searchTerms holding the list of phrases."
    )


def clean_search_terms(terms: list[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for term in terms:
        cleaned = " ".join(str(term).split())
        if not cleaned:
            continue
        key = cleaned.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(cleaned)
    return out[:MAX_SEARCH_TERMS]


class SearchTermGenerator:
    def __init__(
        self,
        *,
        model: str,
        timeout_seconds: float = 60.0,
        client_factory: Callable[[], Any] = _default_client_factory,
    ) -> None:
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.client_factory = client_factory

    def generate(self, age: int, gender: str, event_description: str) -> list[str]:
        client = self.client_factory()
        prompt = build_search_prompt(age, gender, event_description)

        try:
            completion = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You reply only with JSON that matches the requested schema."},
                    {"role": "user", "content": prompt},
                ],
                response_format=_RESPONSE_FORMAT,
                temperature=0.4,
                timeout=self.timeout_seconds,
            )
        except OpenAIError as exc:
            raise ProviderError(f"Search term generation failed: {exc}") from exc

        content = None
        if completion.choices:
            content = completion.choices[0].message.content
        if not content:
            raise ProviderError("Search term generation returned an empty response.")

        try:
            payload = SearchTermsPayload.model_validate_json(content)
        except ValidationError as exc:
            raise ProviderError(f"Search term generation returned malformed JSON: {content[:200]}") from exc

        terms = clean_search_terms(payload.searchTerms)
        if len(terms) < MIN_SEARCH_TERMS:
            raise ProviderError(
                f"Search term generation returned {len(terms)} usable terms; at least {MIN_SEARCH_TERMS} are required."
            )

        _LOGGER.info("Generated %d search terms for event %r", len(terms), event_description[:80])
        return terms
