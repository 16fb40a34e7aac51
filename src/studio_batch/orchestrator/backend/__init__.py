"""Generation transport implementations."""

from studio_batch.orchestrator.backend.base import (
    GenerationRequest,
    GenerationTransport,
    InlineImage,
)
from studio_batch.orchestrator.backend.echo import EchoTransport
from studio_batch.orchestrator.backend.gemini import GeminiTransport

__all__ = [
    "EchoTransport",
    "GeminiTransport",
    "GenerationRequest",
    "GenerationTransport",
    "InlineImage",
]
