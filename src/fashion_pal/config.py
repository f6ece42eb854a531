"""Environment-driven settings and provider credential lookup."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from fashion_pal.errors import ConfigurationError


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except Exception:
        return default
    return value if value > 0 else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except Exception:
        return default
    return value if value > 0 else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def require_api_key(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ConfigurationError(f"{name} is not set.")
    return value


@dataclass(frozen=True)
class Settings:
    openai_model: str
    gemini_image_model: str
    serpapi_base_url: str
    runway_base_url: str
    runway_api_version: str
    runway_model: str
    request_timeout_seconds: float
    image_fetch_timeout_seconds: float
    max_workers: int
    search_results_per_term: int
    video_max_payload_kb: int
    enable_merge_debug: bool
    save_debug_merges: bool
    debug_merge_dir: Path
    log_level: str

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_model=_env_str("FP_OPENAI_MODEL", "gpt-4o-mini"),
            gemini_image_model=_env_str("FP_GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image"),
            serpapi_base_url=_env_str("FP_SERPAPI_BASE_URL", "https://serpapi.com"),
            runway_base_url=_env_str("FP_RUNWAY_BASE_URL", "https://api.dev.runwayml.com/v1"),
            runway_api_version=_env_str("FP_RUNWAY_API_VERSION", "2024-11-06"),
            runway_model=_env_str("FP_RUNWAY_MODEL", "gen4_turbo"),
            request_timeout_seconds=_env_float("FP_REQUEST_TIMEOUT_SECONDS", 60.0),
            image_fetch_timeout_seconds=_env_float("FP_IMAGE_FETCH_TIMEOUT_SECONDS", 15.0),
            max_workers=_env_int("FP_MAX_WORKERS", 8),
            search_results_per_term=_env_int("FP_SEARCH_RESULTS_PER_TERM", 5),
            video_max_payload_kb=_env_int("FP_VIDEO_MAX_PAYLOAD_KB", 45000),
            enable_merge_debug=_env_bool("FP_ENABLE_MERGE_DEBUG", True),
            save_debug_merges=_env_bool("FP_SAVE_DEBUG_MERGES", False),
            debug_merge_dir=Path(_env_str("FP_DEBUG_MERGE_DIR", str(Path.cwd() / "debug" / "merged-images"))),
            log_level=_env_str("FP_LOG_LEVEL", "INFO").upper(),
        )
