"""Transport interface for generation requests."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(slots=True, frozen=True)
class InlineImage:
    """One image attached to a generation request."""

    data: bytes
    mime_type: str = "image/jpeg"

    def to_part(self) -> dict[str, Any]:
        return {
            "inlineData": {
                "mimeType": self.mime_type,
                "data": base64.b64encode(self.data).decode("ascii"),
            },
        }


@dataclass(slots=True, frozen=True)
class GenerationRequest:
    """Inputs required to execute one generation call."""

    model: str
    prompt: str
    images: tuple[InlineImage, ...] = ()
    aspect_ratio: str = "1:1"
    metadata: dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to a ``generateContent`` request body."""

        parts: list[dict[str, Any]] = [{"text": self.prompt}]
        parts.extend(image.to_part() for image in self.images)
        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "responseModalities": ["IMAGE"],
                "imageConfig": {"aspectRatio": self.aspect_ratio},
            },
        }


class GenerationTransport(Protocol):
    """Protocol implemented by transports.

    ``send`` returns the decoded response body or raises ``TransportError``.
    """

    async def send(self, *, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send one request and return the response payload."""
