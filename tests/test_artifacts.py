from __future__ import annotations

import asyncio
from pathlib import Path

import allure
import pytest

from studio_batch.orchestrator.artifacts import ArtifactStore
from studio_batch.orchestrator.errors import ArtifactError

pytestmark = [
    allure.epic("Batch Orchestrator"),
    allure.feature("Artifact Lifecycle"),
]


def test_shared_handles_keep_blob_alive_until_last_release(store: ArtifactStore) -> None:
    original = store.put(b"pixels", name="ring.png", media_type="image/png")
    shared = store.share(original)

    assert shared.blob_id == original.blob_id
    assert shared.handle_id != original.handle_id
    assert store.live_blobs == 1

    store.release(original)
    assert not store.is_live(original)
    assert store.is_live(shared)
    assert asyncio.run(store.read_bytes(shared)) == b"pixels"

    store.release(shared)
    assert store.live_handles == 0
    assert store.live_blobs == 0


def test_double_release_is_an_error(store: ArtifactStore) -> None:
    handle = store.put(b"x", name="a.jpg")
    store.release(handle)

    with pytest.raises(ArtifactError, match="already released"):
        store.release(handle)


def test_released_handle_cannot_be_read_or_shared(store: ArtifactStore) -> None:
    handle = store.put(b"x", name="a.jpg")
    store.release(handle)

    with pytest.raises(ArtifactError):
        asyncio.run(store.read_bytes(handle))
    with pytest.raises(ArtifactError):
        store.share(handle)


def test_put_file_guesses_media_type(store: ArtifactStore, tmp_path: Path) -> None:
    png = tmp_path / "bead.png"
    png.write_bytes(b"data")
    unknown = tmp_path / "notes.zzz"
    unknown.write_bytes(b"data")

    assert store.put_file(png).media_type == "image/png"
    assert store.put_file(png).name == "bead.png"
    assert store.put_file(unknown).media_type == "application/octet-stream"
