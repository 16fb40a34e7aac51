"""In-memory artifact store with exactly-once handle release.

Every job owns the handles it holds. Jobs that need the same bytes (a variant
and its parent, an execution borrowing the style reference) get their own
handle through ``share``; the underlying blob is dropped when the last handle
pointing at it is released.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from studio_batch.orchestrator.errors import ArtifactError

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPE = "image/jpeg"


@dataclass(slots=True, frozen=True)
class ArtifactHandle:
    """Opaque reference to stored bytes."""

    handle_id: str
    blob_id: str
    name: str
    media_type: str = DEFAULT_MEDIA_TYPE


@dataclass(slots=True)
class _Blob:
    data: bytes
    refs: int = 0


class ArtifactStore:
    """Owns artifact bytes for one process."""

    def __init__(self) -> None:
        self._blobs: dict[str, _Blob] = {}
        self._handles: dict[str, str] = {}

    def put(
        self,
        data: bytes,
        *,
        name: str,
        media_type: str = DEFAULT_MEDIA_TYPE,
    ) -> ArtifactHandle:
        """Store bytes and return the first handle on them."""

        blob_id = uuid4().hex
        self._blobs[blob_id] = _Blob(data=bytes(data))
        return self._new_handle(blob_id=blob_id, name=name, media_type=media_type)

    def put_file(self, path: Path) -> ArtifactHandle:
        media_type, _ = mimetypes.guess_type(path.name)
        return self.put(
            path.read_bytes(),
            name=path.name,
            media_type=media_type or "application/octet-stream",
        )

    async def read_bytes(self, handle: ArtifactHandle) -> bytes:
        return self._blob_for(handle).data

    def share(self, handle: ArtifactHandle) -> ArtifactHandle:
        """Issue an independently owned handle on the same bytes."""

        self._blob_for(handle)
        return self._new_handle(
            blob_id=handle.blob_id,
            name=handle.name,
            media_type=handle.media_type,
        )

    def release(self, handle: ArtifactHandle) -> None:
        """Release a handle. Releasing the same handle twice is an error."""

        blob_id = self._handles.pop(handle.handle_id, None)
        if blob_id is None:
            raise ArtifactError(f"Artifact handle already released or unknown: {handle.handle_id}")
        blob = self._blobs[blob_id]
        blob.refs -= 1
        if blob.refs == 0:
            del self._blobs[blob_id]
            logger.debug("Dropped artifact blob %s (%s)", blob_id, handle.name)

    def is_live(self, handle: ArtifactHandle) -> bool:
        return handle.handle_id in self._handles

    @property
    def live_handles(self) -> int:
        return len(self._handles)

    @property
    def live_blobs(self) -> int:
        return len(self._blobs)

    def _new_handle(self, *, blob_id: str, name: str, media_type: str) -> ArtifactHandle:
        handle = ArtifactHandle(
            handle_id=uuid4().hex,
            blob_id=blob_id,
            name=name,
            media_type=media_type,
        )
        self._handles[handle.handle_id] = blob_id
        self._blobs[blob_id].refs += 1
        return handle

    def _blob_for(self, handle: ArtifactHandle) -> _Blob:
        blob_id = self._handles.get(handle.handle_id)
        if blob_id is None:
            raise ArtifactError(f"Artifact handle already released or unknown: {handle.handle_id}")
        return self._blobs[blob_id]
