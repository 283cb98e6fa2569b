from __future__ import annotations

import asyncio
import base64
import json

import httpx
import pytest

from clients.mathpix_client import MathpixClient

API_URL = "https://api.example.com/v3/text"


def _client(handler) -> MathpixClient:
    return MathpixClient(
        app_id="app-123",
        app_key="key-456",
        api_url=API_URL,
        timeout_seconds=5,
        transport=httpx.MockTransport(handler),
    )


def test_recognize_returns_styled_latex_and_confidence() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:  # type: ignore[override]
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"text": "\\( x^2 \\)", "latex_styled": "x^{2}", "confidence": 0.93})

    result = asyncio.run(_client(handler).recognize(b"\x89PNG fake"))

    assert result.text == "x^{2}"
    assert result.confidence == 0.93
    assert result.usable
    assert seen["headers"]["app_id"] == "app-123"
    assert seen["headers"]["app_key"] == "key-456"
    assert seen["body"]["formats"] == ["text", "latex_styled"]
    prefix = "data:image/png;base64,"
    assert seen["body"]["src"].startswith(prefix)
    assert base64.b64decode(seen["body"]["src"][len(prefix):]) == b"\x89PNG fake"


def test_text_used_when_styled_latex_missing() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # type: ignore[override]
        return httpx.Response(200, json={"text": "y = 3", "confidence_rate": 0.5})

    result = asyncio.run(_client(handler).recognize(b"img"))

    assert result.text == "y = 3"
    assert result.confidence == 0.5


def test_error_payload_is_reported_not_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # type: ignore[override]
        return httpx.Response(200, json={"error": "Content not found", "error_info": {"id": "image_no_content"}})

    result = asyncio.run(_client(handler).recognize(b"img"))

    assert result.error == "Content not found"
    assert not result.usable


def test_http_error_status_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # type: ignore[override]
        return httpx.Response(429, json={"detail": "rate limited"})

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(_client(handler).recognize(b"img"))


def test_missing_credentials() -> None:
    client = MathpixClient(app_id="", app_key="", api_url=API_URL)

    assert not client.is_available()
    with pytest.raises(RuntimeError):
        asyncio.run(client.recognize(b"img"))
