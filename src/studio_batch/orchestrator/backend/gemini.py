"""HTTP transport for the Gemini ``generateContent`` endpoint."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from studio_batch.orchestrator.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT_SECONDS = 120.0


class GeminiTransport:
    """Async HTTP client wrapper; one instance can serve many concurrent jobs."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
        )

    async def send(self, *, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/models/{model}:generateContent"
        try:
            response = await self._client.post(url, json=payload)
        except httpx.TimeoutException as exc:
            logger.warning("Timeout calling %s", url)
            raise TransportError(f"Request timed out: {exc}", status="DEADLINE_EXCEEDED") from exc
        except httpx.HTTPError as exc:
            logger.warning("HTTP error calling %s: %s", url, exc)
            raise TransportError(f"Network error: {exc}", status="UNAVAILABLE") from exc

        if not response.is_success:
            status, message = _error_fields(response)
            raise TransportError(
                f"HTTP {response.status_code}: {message}",
                status_code=response.status_code,
                status=status,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(
                "Response body is not valid JSON.",
                status_code=response.status_code,
            ) from exc

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GeminiTransport:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()


def _error_fields(response: httpx.Response) -> tuple[str | None, str]:
    try:
        body = response.json()
    except ValueError:
        return None, response.text.strip() or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return None, response.text.strip() or response.reason_phrase
    status = error.get("status")
    message = error.get("message") or response.reason_phrase
    return (status if isinstance(status, str) else None), str(message)
