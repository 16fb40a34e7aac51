"""Retry-wrapped boundary to the external image generation service."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from studio_batch.orchestrator.backend.base import GenerationRequest, GenerationTransport
from studio_batch.orchestrator.backoff import BackoffPolicy
from studio_batch.orchestrator.errors import (
    GENERIC_FAILURE_MESSAGE,
    ExternalFailure,
    FatalExternalFailure,
    RetryableExternalFailure,
    TransportError,
)
from studio_batch.orchestrator.failure_classifier import classify_generation_failure
from studio_batch.orchestrator.models import FailureClass

logger = logging.getLogger(__name__)

QUOTA_EXHAUSTED_MESSAGE = "Usage limit exceeded. Please wait a moment and try again."
TRANSIENT_EXHAUSTED_MESSAGE = (
    "The generation service is temporarily unavailable. Please try again shortly."
)
MISSING_CREDENTIALS_MESSAGE = (
    "API key is missing. Set STUDIO_BATCH_API_KEY (or GEMINI_API_KEY) and retry."
)

Sleep = Callable[[float], Awaitable[None]]


class GenerationGateway:
    """Invokes the transport with bounded exponential backoff.

    Stateless between calls; the attempt counter lives inside ``invoke``.
    """

    def __init__(
        self,
        transport: GenerationTransport,
        *,
        policy: BackoffPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
        credentials_configured: bool = True,
    ) -> None:
        self.transport = transport
        self.policy = policy or BackoffPolicy()
        self._sleep = sleep
        self._credentials_configured = credentials_configured

    async def invoke(self, request: GenerationRequest) -> bytes:
        """Return raw image bytes or raise ``FatalExternalFailure``."""

        if not self._credentials_configured:
            raise FatalExternalFailure(
                MISSING_CREDENTIALS_MESSAGE,
                failure_class=FailureClass.ACCESS_OR_AUTH,
            )

        payload = request.to_payload()
        retries_done = 0
        while True:
            try:
                response = await self._attempt(request=request, payload=payload)
            except RetryableExternalFailure as failure:
                if not self.policy.should_retry(retryable=True, retries_done=retries_done):
                    raise _exhausted(
                        failure,
                        attempts=retries_done + 1,
                        context=request.metadata,
                    ) from failure
                retries_done += 1
                delay = self.policy.delay_for(retries_done)
                logger.warning(
                    "Generation call failed (%s) %s. Retrying attempt %d/%d in %.1fs: %s",
                    failure.failure_class.value,
                    request.metadata,
                    retries_done,
                    self.policy.max_retries,
                    delay,
                    failure,
                )
                await self._sleep(delay)
                continue
            return extract_image_bytes(response)

    async def _attempt(
        self,
        *,
        request: GenerationRequest,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            return await self.transport.send(model=request.model, payload=payload)
        except TransportError as error:
            raise _to_failure(error) from error


def _to_failure(error: TransportError) -> ExternalFailure:
    classification = classify_generation_failure(
        status_code=error.status_code,
        status=error.status,
        message=error.message,
    )
    logger.debug("Classified generation failure: %s", classification.to_log_details())
    if classification.retryable:
        return RetryableExternalFailure(
            error.message,
            failure_class=classification.failure_class,
        )
    return FatalExternalFailure(
        error.message,
        failure_class=classification.failure_class,
        user_message=error.message or GENERIC_FAILURE_MESSAGE,
    )


def _exhausted(
    failure: RetryableExternalFailure,
    *,
    attempts: int,
    context: dict[str, str],
) -> FatalExternalFailure:
    user_message = (
        QUOTA_EXHAUSTED_MESSAGE
        if failure.failure_class == FailureClass.QUOTA
        else TRANSIENT_EXHAUSTED_MESSAGE
    )
    logger.error(
        "Generation call gave up after %d attempt(s) (%s) %s: %s",
        attempts,
        failure.failure_class.value,
        context,
        failure,
    )
    return FatalExternalFailure(
        f"Retry budget exhausted after {attempts} attempt(s): {failure}",
        failure_class=failure.failure_class,
        user_message=user_message,
    )


def extract_image_bytes(response: dict[str, Any]) -> bytes:
    """Pull the first inline image out of a ``generateContent`` response."""

    if not isinstance(response, dict):
        raise _no_output("No image generated: response is not a JSON object.")
    candidates = response.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        feedback = response.get("promptFeedback")
        block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        detail = f" (blocked: {block_reason})" if block_reason else ""
        raise _no_output(f"No image generated: response has no candidates{detail}.")

    candidate = candidates[0]
    content = candidate.get("content") if isinstance(candidate, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list) or not parts:
        raise _no_output("No content parts in response.")

    for part in parts:
        if not isinstance(part, dict):
            continue
        inline = part.get("inlineData") or part.get("inline_data")
        data = inline.get("data") if isinstance(inline, dict) else None
        if not data:
            continue
        if not isinstance(data, str):
            raise _no_output("Image data in the response is not a base64 string.")
        try:
            return base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as error:
            raise _no_output(f"Image data in the response is not valid base64: {error}") from error

    raise _no_output("No image data found in the response.")


def _no_output(message: str) -> FatalExternalFailure:
    return FatalExternalFailure(
        message,
        failure_class=FailureClass.NO_OUTPUT,
        user_message=f"No image produced. {message}",
    )
