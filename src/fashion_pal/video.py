"""Image-to-video tasks on Runway and the client-side polling loop that waits for them."""

from __future__ import annotations

import base64
import logging
import time
import urllib.parse
from typing import Any, Callable

from fashion_pal.config import require_api_key
from fashion_pal.errors import (
    PayloadTooLargeError,
    ProviderError,
    VideoTaskFailedError,
    VideoTaskTimeoutError,
)
from fashion_pal.http_json import HttpError, JsonApiClient
from fashion_pal.imaging import ImageAsset
from fashion_pal.models import VideoTask, VideoTaskStatus


_LOGGER = logging.getLogger(__name__)

DEFAULT_PROMPT_TEXT = "A person wearing clothing, standing and moving naturally"
DEFAULT_RATIO = "1280:720"
DEFAULT_DURATION_SECONDS = 5
DEFAULT_SEED = 4294967295

POLL_INTERVAL_SECONDS = 5.0
MAX_POLL_ATTEMPTS = 60


def decode_image_payload(value: str) -> bytes:
    """Decode a base64 image, with or without a ``data:image/...;base64,`` prefix."""
    text = (value or "").strip()
    if text.startswith("data:"):
        _, _, text = text.partition(",")
    try:
        return base64.b64decode(text, validate=True)
    except ValueError as exc:
        raise ValueError("imageBase64 is not valid base64 data.") from exc


def to_data_uri(image: bytes) -> str:
    asset = ImageAsset.from_bytes(image)
    if not asset.is_supported:
        raise ValueError("Video source must be a PNG, JPEG, WEBP, HEIC or HEIF image.")
    encoded = base64.b64encode(asset.data).decode("ascii")
    return f"data:{asset.mime_type.value};base64,{encoded}"


def _default_client_factory(base_url: str, api_version: str, timeout_seconds: float) -> JsonApiClient:
    api_key = require_api_key("RUNWAY_API_KEY")
    return JsonApiClient(
        name="Runway",
        base_url=base_url,
        timeout_seconds=timeout_seconds,
        headers={
            "Authorization": f"Bearer {api_key}",
            "X-Runway-Version": api_version,
        },
    )


class RunwayVideoClient:
    def __init__(
        self,
        *,
        base_url: str = "https://api.dev.runwayml.com/v1",
        api_version: str = "2024-11-06",
        model: str = "gen4_turbo",
        max_payload_kb: int = 45000,
        timeout_seconds: float = 60.0,
        client_factory: Callable[[str, str, float], JsonApiClient] = _default_client_factory,
    ) -> None:
        self.base_url = base_url
        self.api_version = api_version
        self.model = model
        self.max_payload_kb = max(1, int(max_payload_kb))
        self.timeout_seconds = timeout_seconds
        self.client_factory = client_factory

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        client = self.client_factory(self.base_url, self.api_version, self.timeout_seconds)
        try:
            return client.request_json(method, path, payload=payload)
        except HttpError as exc:
            if "not have enough credits" in exc.provider_message:
                raise ProviderError(
                    "Insufficient credits: Please add credits to your Runway account to generate videos."
                ) from exc
            raise

    def create_task(
        self,
        image: bytes,
        *,
        prompt_text: str | None = None,
        ratio: str | None = None,
        duration_seconds: int | None = None,
    ) -> str:
        prompt_image = to_data_uri(image)
        payload_kb = round(len(prompt_image) / 1024)
        _LOGGER.info("Creating video generation task with payload size: %dKB", payload_kb)
        if payload_kb > self.max_payload_kb:
            raise PayloadTooLargeError("Payload too large. Please use a smaller image.")

        body = {
            "promptImage": prompt_image,
            "seed": DEFAULT_SEED,
            "model": self.model,
            "promptText": (prompt_text or "").strip() or DEFAULT_PROMPT_TEXT,
            "duration": duration_seconds or DEFAULT_DURATION_SECONDS,
            "ratio": (ratio or "").strip() or DEFAULT_RATIO,
            "contentModeration": {"publicFigureThreshold": "auto"},
        }
        response = self._request("POST", "/image_to_video", body)

        task_id = str(response.get("id") or "").strip()
        if not task_id:
            raise ProviderError("Invalid response from Runway: missing task ID")
        _LOGGER.info("Video generation task created with ID: %s", task_id)
        return task_id

    def get_task(self, task_id: str) -> VideoTask:
        cleaned = (task_id or "").strip()
        if not cleaned:
            raise ValueError("Task ID is required")
        response = self._request("GET", f"/tasks/{urllib.parse.quote(cleaned, safe='')}")
        task = VideoTask.from_provider(response, fallback_id=cleaned)
        _LOGGER.info("Task %s status: %s", cleaned, task.status.value)
        return task


def poll_task_completion(
    fetch_status: Callable[[str], VideoTask],
    task_id: str,
    *,
    interval_seconds: float = POLL_INTERVAL_SECONDS,
    max_attempts: int = MAX_POLL_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
    on_update: Callable[[VideoTask], None] | None = None,
) -> VideoTask:
    """Poll ``fetch_status`` until the task succeeds, fails or runs out of attempts.

    Errors raised by ``fetch_status`` propagate unchanged; the loop does not retry them.
    """
    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        task = fetch_status(task_id)
        if on_update is not None:
            on_update(task)
        if task.is_success:
            return task
        if task.status is VideoTaskStatus.FAILED:
            raise VideoTaskFailedError(f"Video generation failed: {task.error or 'Unknown error'}")
        if attempt < attempts:
            sleep(interval_seconds)
    raise VideoTaskTimeoutError("Video generation timed out after maximum polling attempts")
