#!/usr/bin/env python3
"""Animates an outfit preview through the backend video API and waits for the finished video."""

from __future__ import annotations

import argparse
import base64
from io import BytesIO
import logging
import os
from pathlib import Path
import sys
import time
from typing import Callable

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from dotenv import load_dotenv
from PIL import Image

from fashion_pal.errors import ProviderError
from fashion_pal.http_json import JsonApiClient
from fashion_pal.models import VideoTask
from fashion_pal.video import MAX_POLL_ATTEMPTS, POLL_INTERVAL_SECONDS, poll_task_completion


DEFAULT_BACKEND_URL = "http://localhost:3001/api"
DEFAULT_PROMPT = "A person wearing the selected outfit, moving naturally and elegantly"

_LOGGER = logging.getLogger("generate_video")


def compress_image(data: bytes, *, max_width: int = 1280, quality: int = 80) -> bytes:
    """Shrink wide images and re-encode as JPEG; returns the input unchanged if it cannot be decoded."""
    try:
        with Image.open(BytesIO(data)) as source:
            image = source.convert("RGB")
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Could not compress image, sending original bytes: %s", exc)
        return data

    if image.width > max_width:
        height = round(image.height * max_width / image.width)
        image = image.resize((max_width, height), Image.Resampling.LANCZOS)
    buffer = BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    compressed = buffer.getvalue()
    _LOGGER.info("Image compression: %dKB -> %dKB", round(len(data) / 1024), round(len(compressed) / 1024))
    return compressed


def create_task(
    client: JsonApiClient,
    image: bytes,
    *,
    prompt_text: str = DEFAULT_PROMPT,
    ratio: str = "1280:720",
    duration: int = 5,
) -> str:
    response = client.request_json(
        "POST",
        "/video-generation/create",
        payload={
            "imageBase64": base64.b64encode(image).decode("ascii"),
            "promptText": prompt_text,
            "ratio": ratio,
            "duration": duration,
        },
    )
    task_id = (response.get("data") or {}).get("taskId")
    if not response.get("success") or not task_id:
        raise ProviderError("Invalid response from backend: missing task ID")
    return str(task_id)


def get_task_status(client: JsonApiClient, task_id: str) -> VideoTask:
    response = client.request_json("GET", f"/video-generation/status/{task_id}")
    data = response.get("data")
    if not response.get("success") or not isinstance(data, dict):
        raise ProviderError("Invalid response from backend")
    return VideoTask.from_provider(data, fallback_id=task_id)


def generate_video_from_image(
    client: JsonApiClient,
    image: bytes,
    *,
    prompt_text: str = DEFAULT_PROMPT,
    interval_seconds: float = POLL_INTERVAL_SECONDS,
    max_attempts: int = MAX_POLL_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    task_id = create_task(client, compress_image(image), prompt_text=prompt_text)
    _LOGGER.info("Created video task %s", task_id)

    result = poll_task_completion(
        lambda tid: get_task_status(client, tid),
        task_id,
        interval_seconds=interval_seconds,
        max_attempts=max_attempts,
        on_update=lambda task: _LOGGER.info("Task %s is %s", task.id, task.status.value),
        sleep=sleep,
    )
    if not result.output_video:
        raise ProviderError("Video generation completed but no video URL was provided")
    return result.output_video


def main() -> None:
    load_dotenv()

    parser = argparse.ArgumentParser()
    parser.add_argument("image", help="Path to the outfit preview image")
    parser.add_argument("--backend", default=os.getenv("FP_BACKEND_URL", DEFAULT_BACKEND_URL))
    parser.add_argument("--prompt", default=DEFAULT_PROMPT)
    parser.add_argument("--interval", type=float, default=POLL_INTERVAL_SECONDS)
    parser.add_argument("--max-attempts", type=int, default=MAX_POLL_ATTEMPTS)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s - %(message)s")

    image = Path(os.path.expanduser(args.image)).read_bytes()
    client = JsonApiClient(name="Fashion Pal backend", base_url=args.backend, timeout_seconds=120.0)
    video_url = generate_video_from_image(
        client,
        image,
        prompt_text=args.prompt,
        interval_seconds=args.interval,
        max_attempts=args.max_attempts,
    )
    print(video_url)


if __name__ == "__main__":
    main()
