"""Runtime configuration for batch generation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from studio_batch.orchestrator.backend.gemini import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_SECONDS
from studio_batch.orchestrator.backoff import DEFAULT_INITIAL_DELAY_SECONDS, DEFAULT_MAX_RETRIES
from studio_batch.orchestrator.canonicalizer import DEFAULT_JPEG_QUALITY, DEFAULT_OUTPUT_SIZE
from studio_batch.orchestrator.dispatcher import DEFAULT_MODEL

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(slots=True)
class GenerationSettings:
    """External generation service settings."""

    api_key: str = ""
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    request_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    aspect_ratio: str = "1:1"


@dataclass(slots=True)
class RetrySettings:
    """Gateway backoff settings."""

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay_seconds: float = DEFAULT_INITIAL_DELAY_SECONDS


@dataclass(slots=True)
class OutputSettings:
    """Canonical output settings."""

    size: int = DEFAULT_OUTPUT_SIZE
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    output_dir: Path = Path("studio_output")


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    generation: GenerationSettings = field(default_factory=GenerationSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    output: OutputSettings = field(default_factory=OutputSettings)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, output_dir: Path | None = None) -> Settings:
        """Load settings from environment with defaults for local use."""

        return cls(
            generation=GenerationSettings(
                api_key=os.getenv("STUDIO_BATCH_API_KEY", os.getenv("GEMINI_API_KEY", "")).strip(),
                model=os.getenv("STUDIO_BATCH_MODEL", DEFAULT_MODEL),
                base_url=os.getenv("STUDIO_BATCH_BASE_URL", DEFAULT_BASE_URL),
                request_timeout_seconds=_env_float(
                    "STUDIO_BATCH_REQUEST_TIMEOUT_SECONDS",
                    DEFAULT_TIMEOUT_SECONDS,
                ),
                aspect_ratio=os.getenv("STUDIO_BATCH_ASPECT_RATIO", "1:1"),
            ),
            retry=RetrySettings(
                max_retries=_env_int("STUDIO_BATCH_MAX_RETRIES", DEFAULT_MAX_RETRIES),
                initial_delay_seconds=_env_float(
                    "STUDIO_BATCH_RETRY_INITIAL_DELAY_SECONDS",
                    DEFAULT_INITIAL_DELAY_SECONDS,
                ),
            ),
            output=OutputSettings(
                size=_env_int("STUDIO_BATCH_OUTPUT_SIZE", DEFAULT_OUTPUT_SIZE),
                jpeg_quality=_env_int("STUDIO_BATCH_JPEG_QUALITY", DEFAULT_JPEG_QUALITY),
                output_dir=output_dir
                or Path(os.getenv("STUDIO_BATCH_OUTPUT_DIR", "studio_output")),
            ),
            log_level=os.getenv("STUDIO_BATCH_LOG_LEVEL", "INFO").strip().upper(),
        )

    def validate(self) -> None:
        """Raise configuration error for values no run can work with."""

        if self.retry.max_retries < 0:
            raise ValueError("STUDIO_BATCH_MAX_RETRIES must be >= 0.")
        if self.retry.initial_delay_seconds < 0:
            raise ValueError("STUDIO_BATCH_RETRY_INITIAL_DELAY_SECONDS must be >= 0.")
        if self.output.size <= 0:
            raise ValueError("STUDIO_BATCH_OUTPUT_SIZE must be a positive integer.")
        if not 1 <= self.output.jpeg_quality <= 100:
            raise ValueError("STUDIO_BATCH_JPEG_QUALITY must be within 1..100.")
        if self.generation.request_timeout_seconds <= 0:
            raise ValueError("STUDIO_BATCH_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid STUDIO_BATCH_LOG_LEVEL: {self.log_level!r}. "
                f"Expected one of: {', '.join(sorted(_LOG_LEVELS))}.",
            )

    def validate_for_generation(self) -> None:
        """Raise configuration error if the remote service cannot be addressed.

        A missing API key is not checked here: jobs fail individually with a
        credentials error instead.
        """

        self.validate()
        if not self.generation.model.strip():
            raise ValueError("STUDIO_BATCH_MODEL must not be empty.")
        _validate_base_url(self.generation.base_url)

    def configure_logging(self) -> None:
        logging.basicConfig(
            level=getattr(logging, self.log_level, logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )


def _validate_base_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid STUDIO_BATCH_BASE_URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {value!r}") from error
