"""Small urllib transport shared by the REST provider clients and the image fetcher."""

from __future__ import annotations

import http.client
import json
from typing import Any
import urllib.error
import urllib.parse
import urllib.request

from fashion_pal.errors import ProviderError

_USER_AGENT = "fashion-pal/1.0"


def _provider_message(body: str) -> str:
    """Pull a human readable message out of an error body, JSON or not."""
    text = (body or "").strip()
    if not text:
        return ""
    try:
        parsed = json.loads(text)
    except Exception:
        return text[:300]
    if isinstance(parsed, dict):
        for key in ("message", "error", "detail"):
            value = parsed.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
            if isinstance(value, dict) and isinstance(value.get("message"), str):
                return value["message"].strip()
    return text[:300]


class HttpError(ProviderError):
    def __init__(self, message: str, *, status: int | None = None, provider_message: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.provider_message = provider_message


class JsonApiClient:
    def __init__(
        self,
        *,
        name: str,
        base_url: str,
        timeout_seconds: float,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = max(1.0, float(timeout_seconds))
        self.headers = dict(headers or {})

    def request_json(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        endpoint = f"{self.base_url}{path}"
        if params:
            endpoint = f"{endpoint}?{urllib.parse.urlencode(params)}"

        body = json.dumps(payload).encode("utf-8") if payload is not None else None
        headers = {"Accept": "application/json", "User-Agent": _USER_AGENT, **self.headers}
        if body is not None:
            headers["Content-Type"] = "application/json"
        request = urllib.request.Request(endpoint, data=body, headers=headers, method=method)

        try:
            with urllib.request.urlopen(request, timeout=self.timeout_seconds) as response:
                raw = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            response_body = exc.read().decode("utf-8", errors="ignore")
            message = _provider_message(response_body)
            raise HttpError(
                f"{self.name} request failed ({exc.code}) at {path}: {message or exc.reason}",
                status=exc.code,
                provider_message=message,
            ) from exc
        except urllib.error.URLError as exc:
            raise HttpError(f"{self.name} request failed at {path}: {exc.reason}") from exc
        except (OSError, http.client.HTTPException) as exc:
            # read timeouts and dropped connections are not wrapped in URLError
            raise HttpError(f"{self.name} request failed at {path}: {exc!r}") from exc
        except UnicodeDecodeError as exc:
            raise ProviderError(f"{self.name} returned a non UTF-8 body at {path}.") from exc

        try:
            parsed = json.loads(raw) if raw.strip() else {}
        except ValueError as exc:
            raise ProviderError(f"{self.name} returned invalid JSON at {path}.") from exc
        if not isinstance(parsed, dict):
            raise ProviderError(f"{self.name} returned an unexpected payload at {path}.")
        return parsed


def fetch_bytes(url: str, *, timeout_seconds: float) -> bytes:
    request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT, "Accept": "image/*,*/*"})
    try:
        with urllib.request.urlopen(request, timeout=max(1.0, float(timeout_seconds))) as response:
            return response.read()
    except urllib.error.HTTPError as exc:
        raise HttpError(f"HTTP {exc.code}: {exc.reason}", status=exc.code) from exc
    except (urllib.error.URLError, ValueError) as exc:
        reason = getattr(exc, "reason", exc)
        raise HttpError(f"Could not download {url}: {reason}") from exc
    except (OSError, http.client.HTTPException) as exc:
        raise HttpError(f"Could not download {url}: {exc!r}") from exc
