"""Tests for the Gemini generateContent adapter."""

import base64
import json

import httpx
import pytest

from wardrobe_gateway.errors import GenerationBlocked, NoOutput, UpstreamError
from wardrobe_gateway.gemini_client import (
    RESPONSE_IMAGE,
    RESPONSE_TEXT,
    GeminiClient,
    build_request,
    parse_response,
)
from wardrobe_gateway.images import JPEG, PNG, ImageData

MODEL = "gemini-2.5-flash-image"


def image_body(data: bytes, mime_type: str = PNG):
    return {
        "candidates": [
            {
                "finishReason": "STOP",
                "content": {
                    "parts": [
                        {"text": "here you go"},
                        {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(data).decode()}},
                    ]
                },
            }
        ]
    }


def make_client(handler, api_key="test-key"):
    transport = httpx.MockTransport(handler)
    return GeminiClient(api_key, client=httpx.AsyncClient(transport=transport))


def test_build_request_orders_prompt_before_images():
    payload = build_request("dress them", [ImageData(b"\xff\xd8\xffabc", JPEG)], RESPONSE_IMAGE)
    parts = payload["contents"][0]["parts"]
    assert parts[0] == {"text": "dress them"}
    assert parts[1]["inline_data"]["mime_type"] == JPEG
    assert base64.b64decode(parts[1]["inline_data"]["data"]) == b"\xff\xd8\xffabc"
    assert payload["generationConfig"]["responseModalities"] == ["IMAGE"]
    assert payload["safetySettings"]


def test_build_request_text_has_no_modalities():
    payload = build_request("tag this", [], RESPONSE_TEXT)
    assert "responseModalities" not in payload["generationConfig"]
    assert payload["contents"][0]["parts"] == [{"text": "tag this"}]


def test_parse_response_text_is_stripped():
    body = {"candidates": [{"content": {"parts": [{"text": "  \n{\"a\": 1}\n "}]}}]}
    assert parse_response(body, RESPONSE_TEXT) == '{"a": 1}'


def test_parse_response_image_accepts_snake_case():
    body = {
        "candidates": [
            {"content": {"parts": [{"inline_data": {"mime_type": JPEG, "data": base64.b64encode(b"xyz").decode()}}]}}
        ]
    }
    image = parse_response(body, RESPONSE_IMAGE)
    assert image.data == b"xyz"
    assert image.mime_type == JPEG


@pytest.mark.parametrize(
    "body,error,message",
    [
        ({"error": {"message": "quota exceeded"}}, UpstreamError, "quota exceeded"),
        ({"promptFeedback": {"blockReason": "SAFETY"}}, GenerationBlocked, "Generation blocked: SAFETY"),
        ({"candidates": []}, NoOutput, "No candidates returned"),
        (
            {"candidates": [{"finishReason": "IMAGE_SAFETY", "finishMessage": "unsafe"}]},
            GenerationBlocked,
            "Generation blocked: IMAGE_SAFETY - unsafe",
        ),
        ({"candidates": [{"content": {"parts": [{"text": "sorry"}]}}]}, NoOutput, "No image data"),
    ],
)
def test_parse_response_errors(body, error, message):
    with pytest.raises(error, match=message):
        parse_response(body, RESPONSE_IMAGE)


def test_parse_response_text_without_text_part():
    with pytest.raises(NoOutput, match="No text response"):
        parse_response({"candidates": [{"content": {"parts": [{"text": "   "}]}}]}, RESPONSE_TEXT)


@pytest.mark.asyncio
async def test_generate_posts_to_model_endpoint():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.url.params.get("key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=image_body(b"generated"))

    client = make_client(handler)
    image = await client.generate("prompt", [ImageData(b"\x89PNG\r\n\x1a\nabc", PNG)], MODEL)
    await client.close()

    assert image.data == b"generated"
    assert image.mime_type == PNG
    assert seen["path"].endswith(f"/models/{MODEL}:generateContent")
    assert seen["key"] == "test-key"
    assert len(seen["body"]["contents"][0]["parts"]) == 2


@pytest.mark.asyncio
async def test_generate_surfaces_upstream_message():
    def handler(request):
        return httpx.Response(429, json={"error": {"message": "Resource has been exhausted"}})

    client = make_client(handler)
    with pytest.raises(UpstreamError, match="Resource has been exhausted"):
        await client.generate("prompt", [], MODEL, RESPONSE_TEXT)


@pytest.mark.asyncio
async def test_generate_wraps_transport_errors():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    client = make_client(handler)
    with pytest.raises(UpstreamError, match="Gemini request failed"):
        await client.generate("prompt", [], MODEL, RESPONSE_TEXT)


@pytest.mark.asyncio
async def test_generate_requires_api_key():
    def handler(request):
        raise AssertionError("no request expected")

    client = make_client(handler, api_key=None)
    with pytest.raises(UpstreamError, match="GEMINI_API_KEY not configured"):
        await client.generate("prompt", [], MODEL)
