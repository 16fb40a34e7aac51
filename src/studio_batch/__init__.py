"""Batch product image generation with a retrying async job queue."""

__version__ = "0.1.0"
