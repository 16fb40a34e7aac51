"""Normalize generated images to the fixed output geometry and encoding."""

from __future__ import annotations

import io
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from studio_batch.orchestrator.errors import DecodeFailure, EncodeFailure

DEFAULT_OUTPUT_SIZE = 1000
DEFAULT_JPEG_QUALITY = 95
OUTPUT_MEDIA_TYPE = "image/jpeg"
_BACKGROUND = (255, 255, 255)


@dataclass(slots=True, frozen=True)
class OutputCanonicalizer:
    """Stretch any image onto an exact ``size`` x ``size`` JPEG.

    Width and height are scaled independently (no crop, no letterbox), so the
    output geometry never depends on the input aspect ratio.
    """

    size: int = DEFAULT_OUTPUT_SIZE
    quality: int = DEFAULT_JPEG_QUALITY

    def __post_init__(self) -> None:
        if self.size <= 0:
            raise ValueError(f"Output size must be positive, got {self.size}.")
        if not 1 <= self.quality <= 100:
            raise ValueError(f"JPEG quality must be within 1..100, got {self.quality}.")

    def canonicalize(self, raw: bytes) -> bytes:
        try:
            with Image.open(io.BytesIO(raw)) as source:
                source.load()
                image = _to_rgb(source)
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            ValueError,
        ) as error:
            raise DecodeFailure(
                f"Generated output is not a readable image: {error}",
                user_message="Failed to load generated image for processing.",
            ) from error

        resized = image.resize((self.size, self.size), Image.Resampling.LANCZOS)
        buffer = io.BytesIO()
        try:
            resized.save(buffer, format="JPEG", quality=self.quality)
        except (OSError, ValueError) as error:
            raise EncodeFailure(
                f"JPEG encoding failed: {error}",
                user_message="Failed to encode the processed image.",
            ) from error
        return buffer.getvalue()


def _to_rgb(image: Image.Image) -> Image.Image:
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, _BACKGROUND)
        background.paste(rgba, mask=rgba.split()[3])
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image.copy()
