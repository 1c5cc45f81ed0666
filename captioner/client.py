# ─────────────────────────────────────────────────────────────────────────────
# Caption Client — builds caption requests and posts them to the service
# ─────────────────────────────────────────────────────────────────────────────
# Mirrors what the browser form did: image from a URL or a local file
# (inlined as a data URI), a word target, a set of tones, and an optimistic
# client-side quota that only counts successful captions. The server's
# quota is authoritative; this one just avoids pointless round trips.
# ─────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

import base64
import mimetypes
import threading
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import httpx
import structlog

from captioner.prompts import DEFAULT_MAX_WORDS, Tone, build_caption_prompt

logger = structlog.get_logger(__name__)

CAPTION_PATH = "/api/openai/responses"


class CaptionRequestError(Exception):
    """The service (or the local quota) refused a caption request."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ClientRateLimiter:
    """Client variant of the quota: reads never mutate, increments are explicit."""

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 3600.0,
        clock: Any = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._count = 0
        self._window_start = clock()

    def _roll_window(self) -> None:
        now = self._clock()
        if now - self._window_start >= self._window_seconds:
            self._count = 0
            self._window_start = now

    def get_remaining_requests(self) -> int:
        with self._lock:
            self._roll_window()
            return max(0, self._max_requests - self._count)

    def increment_request(self) -> None:
        """Count one successful caption against the current window."""
        with self._lock:
            self._roll_window()
            self._count += 1


def image_source_from_file(path: str | Path) -> str:
    """Inline a local image as a base64 data URI."""
    path = Path(path)
    mime_type, _ = mimetypes.guess_type(path.name)
    if mime_type is None or not mime_type.startswith("image/"):
        raise ValueError(f"Not a recognised image file: {path.name}")
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def build_caption_input(
    image_source: str,
    max_words: int = DEFAULT_MAX_WORDS,
    tones: Iterable[Tone | str] = (),
) -> list[dict[str, Any]]:
    """ChatInput payload: one user message with the prompt, then the image."""
    if not image_source:
        raise ValueError("Please provide an image URL or upload an image file")
    return [
        {
            "role": "user",
            "content": [
                {"type": "input_text", "text": build_caption_prompt(max_words, tones)},
                {"type": "input_image", "image_url": image_source},
            ],
        }
    ]


class CaptionClient:
    """Synchronous client for POST /api/openai/responses."""

    def __init__(
        self,
        base_url: str,
        rate_limiter: ClientRateLimiter | None = None,
        *,
        timeout: float = 90.0,
    ) -> None:
        self._rate_limiter = rate_limiter or ClientRateLimiter()
        self._http = httpx.Client(base_url=base_url, timeout=timeout)
        self.remaining_requests = self._rate_limiter.get_remaining_requests()

    def __enter__(self) -> CaptionClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def caption(
        self,
        *,
        image_url: str = "",
        image_file: str | Path | None = None,
        max_words: int = DEFAULT_MAX_WORDS,
        tones: Iterable[Tone | str] = (),
    ) -> str:
        """Caption one image. A URL wins over a file when both are given."""
        if not image_url and image_file is None:
            raise CaptionRequestError("Please provide an image URL or upload an image file")

        if self._rate_limiter.get_remaining_requests() <= 0:
            self.remaining_requests = 0
            raise CaptionRequestError("Rate limit exceeded. Please try again later.")

        source = image_url or image_source_from_file(image_file)  # type: ignore[arg-type]
        payload = {"input": build_caption_input(source, max_words, tones)}

        response = self._http.post(CAPTION_PATH, json=payload)
        if response.is_error:
            raise CaptionRequestError(_error_message(response), status_code=response.status_code)

        caption = response.json()["response"]

        self._rate_limiter.increment_request()
        self.remaining_requests = self._rate_limiter.get_remaining_requests()
        logger.info(
            "caption_received", words=len(caption.split()), remaining=self.remaining_requests
        )
        return caption


def _error_message(response: httpx.Response) -> str:
    try:
        error = response.json().get("error")
    except ValueError:
        error = None
    return error or f"HTTP {response.status_code}: {response.reason_phrase}"
