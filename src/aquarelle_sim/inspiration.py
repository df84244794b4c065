"""Async painting-prompt and reference-image generator (Gemini REST API).

Every call degrades to a fixed fallback instead of raising: a canned prompt
string, or ``None`` for the image. Nothing here touches the simulation grid.
"""

from __future__ import annotations
import asyncio
import base64
import io
import logging
import os
import time
from typing import Any

import httpx

logger = logging.getLogger(__name__)

API_BASE = "https://generativelanguage.googleapis.com/v1beta"
TEXT_MODEL = "gemini-3-flash-preview"
IMAGE_MODEL = "gemini-2.5-flash-image"

NO_KEY_PROMPT = "Paint a calm blue ocean at sunset."
ERROR_PROMPT = "A mysterious forest path in autumn."

INSPIRATION_REQUEST = (
    "Generate a short, evocative, artistic painting prompt for a watercolor artist. "
    "Keep it under 20 words. Example: 'A lonely lighthouse amidst stormy crashing waves.'"
)


def _api_key_from_env() -> str | None:
    return os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY")


class InspirationClient:
    """Async client for the two Gemini calls used by the paint panel."""

    def __init__(self, api_key: str | None = None, transport: httpx.AsyncBaseTransport | None = None, timeout: float = 60.0):
        self.api_key = api_key if api_key is not None else _api_key_from_env()
        self._transport = transport
        self._timeout = timeout

    async def _generate(self, model: str, text: str) -> dict[str, Any]:
        url = f"{API_BASE}/models/{model}:generateContent"
        payload = {"contents": [{"parts": [{"text": text}]}]}
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()

    @staticmethod
    def _parts(data: dict[str, Any]) -> list[dict[str, Any]]:
        candidates = data.get("candidates") or []
        if not candidates:
            return []
        return (candidates[0].get("content") or {}).get("parts") or []

    async def inspiration_prompt(self) -> str:
        if not self.api_key:
            logger.warning("API key not found in environment variables")
            return NO_KEY_PROMPT

        try:
            data = await self._generate(TEXT_MODEL, INSPIRATION_REQUEST)
            text = "".join(p.get("text", "") for p in self._parts(data)).strip()
            if not text:
                raise ValueError("empty response")
            return text
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Gemini API Error: {e}")
            return ERROR_PROMPT

    async def reference_image(self, prompt: str) -> str | None:
        """Returns a base64 PNG data URI, or None when no image is available."""
        if not self.api_key:
            return None

        try:
            data = await self._generate(IMAGE_MODEL, f"Watercolor painting reference of: {prompt}")
            for part in self._parts(data):
                inline = part.get("inlineData") or part.get("inline_data")
                if inline and inline.get("data"):
                    return f"data:image/png;base64,{inline['data']}"
            logger.debug("No image part in response")
            return None
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Gemini Image Gen Error: {e}")
            return None


async def generate_inspiration_prompt() -> str:
    return await InspirationClient().inspiration_prompt()


async def generate_reference_image(prompt: str) -> str | None:
    return await InspirationClient().reference_image(prompt)


def save_reference(data_uri: str, directory: str = ".") -> str | None:
    """Decodes a PNG data URI and writes it to `directory`. Returns the path, or None on failure."""
    import PIL.Image

    try:
        raw = base64.b64decode(data_uri.split(",", 1)[1], validate=True)
        path = os.path.join(directory, f"reference_{int(time.time())}.png")
        PIL.Image.open(io.BytesIO(raw)).save(path)
    except (IndexError, ValueError, OSError) as e:
        logger.error(f"Could not save reference image: {e}")
        return None
    return path


def run_in_background(coro_factory, on_done) -> None:
    """Runs an async call on a daemon thread and hands its result to `on_done`.

    A call that raises hands over None instead, so `on_done` always runs.
    """
    import threading

    def _worker():
        result = None
        try:
            result = asyncio.run(coro_factory())
        except Exception as e:
            logger.error(f"Background inspiration call failed: {e}")
        on_done(result)

    threading.Thread(target=_worker, daemon=True).start()
