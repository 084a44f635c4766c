"""Generative Model Adapter for the Gemini ``generateContent`` API."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .errors import GenerationBlocked, NoOutput, UpstreamError
from .images import ImageData

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

RESPONSE_TEXT = "TEXT"
RESPONSE_IMAGE = "IMAGE"

SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_ONLY_HIGH"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_ONLY_HIGH"},
]


def build_request(prompt: str, images: Sequence[ImageData], response_type: str) -> Dict[str, Any]:
    parts: List[Dict[str, Any]] = [{"text": prompt}]
    for image in images:
        parts.append({"inline_data": {"mime_type": image.mime_type, "data": image.to_base64()}})

    generation_config: Dict[str, Any] = {
        "temperature": 0.3 if response_type == RESPONSE_TEXT else 0.4,
    }
    if response_type == RESPONSE_IMAGE:
        generation_config["responseModalities"] = ["IMAGE"]

    return {
        "contents": [{"parts": parts}],
        "generationConfig": generation_config,
        "safetySettings": SAFETY_SETTINGS,
    }


def _upstream_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"Gemini API returned {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return f"Gemini API returned {response.status_code}"


def parse_response(body: Dict[str, Any], response_type: str):
    """Extract text or image output from a ``generateContent`` response body."""
    if body.get("error"):
        error = body["error"]
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise UpstreamError(message or "Gemini API Error")

    feedback = body.get("promptFeedback") or {}
    if feedback.get("blockReason"):
        raise GenerationBlocked(f"Generation blocked: {feedback['blockReason']}")

    candidates = body.get("candidates") or []
    if not candidates:
        raise NoOutput("No candidates returned")
    candidate = candidates[0]

    finish_reason = candidate.get("finishReason")
    if finish_reason and finish_reason != "STOP":
        detail = candidate.get("finishMessage") or ""
        raise GenerationBlocked(f"Generation blocked: {finish_reason} - {detail}".rstrip(" -"))

    parts = (candidate.get("content") or {}).get("parts") or []
    if response_type == RESPONSE_TEXT:
        for part in parts:
            text = part.get("text")
            if text and text.strip():
                return text.strip()
        raise NoOutput("No text response from API")

    for part in parts:
        inline = part.get("inline_data") or part.get("inlineData")
        if inline and inline.get("data"):
            mime_type = inline.get("mime_type") or inline.get("mimeType")
            return ImageData.from_base64(inline["data"], mime_type)
    raise NoOutput("No image data in API response")


class GeminiClient:
    """Async client for Gemini ``models/{model}:generateContent``."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def generate(
        self,
        prompt: str,
        images: Sequence[ImageData],
        model: str,
        response_type: str = RESPONSE_IMAGE,
    ):
        """
        Run one model call.

        Returns:
            ``str`` for TEXT responses, ``ImageData`` for IMAGE responses

        Raises:
            UpstreamError: API key missing, transport failure or API error
            GenerationBlocked: prompt or candidate blocked
            NoOutput: no usable candidate part
        """
        if not self.api_key:
            raise UpstreamError("GEMINI_API_KEY not configured")

        client = await self._get_client()
        payload = build_request(prompt, images, response_type)
        started = time.perf_counter()
        try:
            response = await client.post(
                f"{self.base_url}/models/{model}:generateContent",
                params={"key": self.api_key},
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.error(f"Gemini request to {model} failed: {e}")
            raise UpstreamError(f"Gemini request failed: {e}") from e

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"Gemini {model} {response_type} call with {len(images)} image(s) "
            f"returned {response.status_code} in {elapsed_ms}ms"
        )

        if not 200 <= response.status_code < 300:
            message = _upstream_message(response)
            logger.error(f"Gemini API error from {model}: {message}")
            raise UpstreamError(message)

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError("Gemini API returned a non-JSON body") from e
        return parse_response(body, response_type)
