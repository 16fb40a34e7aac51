from __future__ import annotations

import asyncio
import json

import allure
import httpx
import pytest

from studio_batch.orchestrator.backend.gemini import GeminiTransport
from studio_batch.orchestrator.errors import TransportError

pytestmark = [
    allure.epic("Generation Gateway"),
    allure.feature("Gemini Transport"),
]

PAYLOAD = {"contents": [{"role": "user", "parts": [{"text": "hi"}]}]}


def _send(handler) -> dict:
    async def _run() -> dict:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with GeminiTransport(
            api_key="unused",
            base_url="https://example.test/v1beta/",
            client=client,
        ) as transport:
            return await transport.send(model="image-model", payload=PAYLOAD)

    return asyncio.run(_run())


def test_send_posts_payload_to_generate_content() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"candidates": []})

    assert _send(handler) == {"candidates": []}
    assert str(seen[0].url) == "https://example.test/v1beta/models/image-model:generateContent"
    assert json.loads(seen[0].content) == PAYLOAD


def test_error_body_fields_are_carried_on_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            429,
            json={"error": {"code": 429, "status": "RESOURCE_EXHAUSTED", "message": "Slow down"}},
        )

    with pytest.raises(TransportError) as exc_info:
        _send(handler)

    assert exc_info.value.status_code == 429
    assert exc_info.value.status == "RESOURCE_EXHAUSTED"
    assert "Slow down" in exc_info.value.message


def test_non_json_error_body_uses_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway upstream")

    with pytest.raises(TransportError) as exc_info:
        _send(handler)

    assert exc_info.value.status_code == 502
    assert exc_info.value.status is None
    assert "bad gateway upstream" in exc_info.value.message


def test_timeout_maps_to_deadline_exceeded() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(TransportError) as exc_info:
        _send(handler)

    assert exc_info.value.status == "DEADLINE_EXCEEDED"
    assert exc_info.value.status_code is None


def test_connection_error_maps_to_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransportError) as exc_info:
        _send(handler)

    assert exc_info.value.status == "UNAVAILABLE"
