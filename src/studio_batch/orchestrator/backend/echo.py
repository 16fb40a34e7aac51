"""Local demo transport for offline runs and integration tests."""

from __future__ import annotations

from typing import Any


class EchoTransport:
    """Answers every request with the last image it was given.

    The response mirrors the shape of a real ``generateContent`` reply, so the
    gateway validation and canonicalization paths run unchanged.
    """

    def __init__(self) -> None:
        self.calls = 0

    async def send(self, *, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls += 1
        parts = payload["contents"][0]["parts"]
        images = [part for part in parts if "inlineData" in part]
        text = f"echo:{model}"
        response_parts: list[dict[str, Any]] = [{"text": text}]
        if images:
            response_parts.append({"inlineData": dict(images[-1]["inlineData"])})
        return {
            "candidates": [
                {
                    "content": {"role": "model", "parts": response_parts},
                    "finishReason": "STOP",
                },
            ],
        }
