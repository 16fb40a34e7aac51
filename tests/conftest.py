"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import base64
import io
from typing import Any

import pytest
from PIL import Image

from studio_batch.orchestrator.artifacts import ArtifactStore
from studio_batch.orchestrator.errors import TransportError


def _image_bytes(
    width: int = 64,
    height: int = 32,
    color: tuple[int, ...] = (200, 30, 30),
    *,
    fmt: str = "PNG",
    mode: str = "RGB",
) -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def _image_response(data: bytes) -> dict[str, Any]:
    return {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "here you go"},
                        {
                            "inlineData": {
                                "mimeType": "image/png",
                                "data": base64.b64encode(data).decode("ascii"),
                            },
                        },
                    ],
                },
            },
        ],
    }


class ScriptedTransport:
    """Replays outcomes in call order; the last outcome repeats forever."""

    def __init__(self, outcomes: list[dict[str, Any] | TransportError]) -> None:
        self.outcomes = outcomes
        self.calls = 0
        self.payloads: list[dict[str, Any]] = []

    async def send(self, *, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.payloads.append(payload)
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, TransportError):
            raise outcome
        return outcome


class BlockingTransport:
    """Holds every call until ``release`` is set, then answers with an image."""

    def __init__(self, response: dict[str, Any]) -> None:
        self.response = response
        self.release = asyncio.Event()
        self.calls = 0

    async def send(self, *, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls += 1
        await self.release.wait()
        return self.response


class RecordingSleep:
    """Stands in for ``asyncio.sleep``; records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


@pytest.fixture()
def make_image():
    return _image_bytes


@pytest.fixture()
def image_response():
    return _image_response


@pytest.fixture()
def ok_response() -> dict[str, Any]:
    return _image_response(_image_bytes(120, 80, (10, 120, 200)))


@pytest.fixture()
def store() -> ArtifactStore:
    return ArtifactStore()


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def scripted_transport():
    return ScriptedTransport


@pytest.fixture()
def blocking_transport():
    return BlockingTransport
