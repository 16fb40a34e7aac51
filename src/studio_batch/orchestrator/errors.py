"""Error taxonomy for batch execution."""

from __future__ import annotations

from studio_batch.orchestrator.models import FailureClass

GENERIC_FAILURE_MESSAGE = "Failed to process image with AI."


class StudioBatchError(Exception):
    """Base error; ``user_message`` is what ends up on a failed job."""

    def __init__(self, message: str, *, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class ExternalFailure(StudioBatchError):
    """The external generation call failed."""

    def __init__(
        self,
        message: str,
        *,
        failure_class: FailureClass,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.failure_class = failure_class


class RetryableExternalFailure(ExternalFailure):
    """Rate limit or transient unavailability; handled by the backoff policy."""


class FatalExternalFailure(ExternalFailure):
    """Failure that retrying cannot fix."""


class CanonicalizationError(StudioBatchError):
    """Generated output could not be normalized."""


class DecodeFailure(CanonicalizationError):
    """Raw output is not a readable image."""


class EncodeFailure(CanonicalizationError):
    """Normalized raster could not be re-encoded."""


class JobStateError(StudioBatchError):
    """Requested transition is not allowed from the job's current status."""


class JobNotFoundError(StudioBatchError, KeyError):
    """No job with the given id in this queue."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class ArtifactError(StudioBatchError):
    """Artifact handle misuse (unknown or already released)."""


class TransportError(Exception):
    """Raw failure reported by a generation transport."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        status: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.status = status
