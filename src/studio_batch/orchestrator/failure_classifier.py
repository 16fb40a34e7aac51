"""Deterministic generation failure classification for gateway retry policy."""

from __future__ import annotations

from dataclasses import dataclass

from studio_batch.orchestrator.models import RETRYABLE_FAILURE_CLASSES, FailureClass

GENERATION_FAILURE_CLASSIFIER_VERSION = 2

_QUOTA_STATUS_CODES: frozenset[int] = frozenset({429})
_TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({503})
_AUTH_STATUS_CODES: frozenset[int] = frozenset({401, 403})
_INVALID_REQUEST_STATUS_CODES: frozenset[int] = frozenset({400})

_QUOTA_STATUSES: frozenset[str] = frozenset({"RESOURCE_EXHAUSTED"})
_TRANSIENT_STATUSES: frozenset[str] = frozenset({"UNAVAILABLE"})
_AUTH_STATUSES: frozenset[str] = frozenset({"PERMISSION_DENIED", "UNAUTHENTICATED"})
_INVALID_REQUEST_STATUSES: frozenset[str] = frozenset({"INVALID_ARGUMENT", "FAILED_PRECONDITION"})

# Text patterns are consulted only when the failure carries no status code or status.
_QUOTA_PATTERNS: tuple[str, ...] = (
    "resource_exhausted",
    "resource exhausted",
    "too many requests",
    "rate limit",
    "quota",
    "429",
)
_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "service unavailable",
    "unavailable",
    "overloaded",
    "503",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "api key not valid",
    "invalid api key",
    "permission denied",
    "permission_denied",
    "unauthenticated",
    "unauthorized",
    "forbidden",
)
_INVALID_REQUEST_PATTERNS: tuple[str, ...] = (
    "invalid_argument",
    "invalid argument",
    "failed_precondition",
    "unsupported",
    "malformed",
)


@dataclass(slots=True)
class GenerationFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    matched_rule: str
    matched_pattern: str | None

    @property
    def retryable(self) -> bool:
        return self.failure_class in RETRYABLE_FAILURE_CLASSES

    def to_log_details(self) -> dict[str, object]:
        return {
            "classifier_version": GENERATION_FAILURE_CLASSIFIER_VERSION,
            "failure_class": self.failure_class.value,
            "matched_rule": self.matched_rule,
            "matched_pattern": self.matched_pattern,
        }


def classify_generation_failure(
    *,
    status_code: int | None,
    status: str | None,
    message: str,
) -> GenerationFailureClassification:
    """Classify a transport failure into a deterministic retry class.

    Only rate limiting (429, ``RESOURCE_EXHAUSTED``) and service unavailability
    (503, ``UNAVAILABLE``) are retryable. When the service reports a status code
    or status, it decides alone and the message text only refines which fatal
    class applies.
    """

    haystack = _normalize_text(status=status, message=message)
    normalized_status = (status or "").strip().upper()

    if status_code is not None or normalized_status:
        return _classify_structured(
            status_code=status_code,
            status=normalized_status,
            haystack=haystack,
        )
    return _classify_text(haystack)


def _classify_structured(
    *,
    status_code: int | None,
    status: str,
    haystack: str,
) -> GenerationFailureClassification:
    if status_code in _AUTH_STATUS_CODES or status in _AUTH_STATUSES:
        return GenerationFailureClassification(
            failure_class=FailureClass.ACCESS_OR_AUTH,
            matched_rule="access_or_auth_status",
            matched_pattern=None,
        )
    if status_code in _INVALID_REQUEST_STATUS_CODES or status in _INVALID_REQUEST_STATUSES:
        # Gemini reports a bad API key as 400 INVALID_ARGUMENT.
        pattern = _first_match(haystack, _ACCESS_OR_AUTH_PATTERNS)
        return GenerationFailureClassification(
            failure_class=(
                FailureClass.ACCESS_OR_AUTH if pattern is not None else FailureClass.INVALID_REQUEST
            ),
            matched_rule="invalid_request_status",
            matched_pattern=pattern,
        )

    if status_code in _QUOTA_STATUS_CODES or status in _QUOTA_STATUSES:
        return GenerationFailureClassification(
            failure_class=FailureClass.QUOTA,
            matched_rule="quota_status_code",
            matched_pattern=None,
        )
    if status_code in _TRANSIENT_STATUS_CODES or status in _TRANSIENT_STATUSES:
        return GenerationFailureClassification(
            failure_class=FailureClass.TRANSIENT,
            matched_rule="transient_status_code",
            matched_pattern=None,
        )

    return GenerationFailureClassification(
        failure_class=FailureClass.NON_RETRYABLE,
        matched_rule="fallback_status",
        matched_pattern=None,
    )


def _classify_text(haystack: str) -> GenerationFailureClassification:
    pattern = _first_match(haystack, _QUOTA_PATTERNS)
    if pattern is not None:
        return GenerationFailureClassification(
            failure_class=FailureClass.QUOTA,
            matched_rule="quota",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _TRANSIENT_PATTERNS)
    if pattern is not None:
        return GenerationFailureClassification(
            failure_class=FailureClass.TRANSIENT,
            matched_rule="transient",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _ACCESS_OR_AUTH_PATTERNS)
    if pattern is not None:
        return GenerationFailureClassification(
            failure_class=FailureClass.ACCESS_OR_AUTH,
            matched_rule="access_or_auth",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _INVALID_REQUEST_PATTERNS)
    if pattern is not None:
        return GenerationFailureClassification(
            failure_class=FailureClass.INVALID_REQUEST,
            matched_rule="invalid_request",
            matched_pattern=pattern,
        )

    return GenerationFailureClassification(
        failure_class=FailureClass.NON_RETRYABLE,
        matched_rule="fallback_non_retryable",
        matched_pattern=None,
    )


def _normalize_text(*, status: str | None, message: str) -> str:
    return f"{status or ''}\n{message}".lower()


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
