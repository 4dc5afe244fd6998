"""Explicit ownership of captured audio and the URIs derived from it.

Every audio message holds an ``AudioHandle`` acquired here. The handle's
``uri`` is what the playback layer resolves; releasing the handle (on
store reset or session close) drops the blob and invalidates the URI.
"""

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from src.core.exceptions import AudioResourceError
from src.core.models import AudioBlob, AudioHandle

logger = logging.getLogger(__name__)


class AudioResourceRegistry:
    """Handle table mapping ``blob:<uuid>`` URIs to live audio blobs."""

    def __init__(self) -> None:
        self._handles: dict[str, AudioHandle] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, uri: object) -> bool:
        return uri in self._handles

    def __enter__(self) -> "AudioResourceRegistry":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release_all()

    def acquire(self, blob: AudioBlob) -> AudioHandle:
        """Register ``blob`` and return a handle with a fresh URI."""
        handle = AudioHandle(f"blob:{uuid.uuid4()}", blob)
        with self._lock:
            self._handles[handle.uri] = handle
        logger.debug("Acquired %s (%d bytes)", handle.uri, blob.size)
        return handle

    def resolve(self, uri: str) -> AudioBlob:
        """Return the blob behind ``uri``.

        Raises:
            AudioResourceError: If the URI was never issued or was released.
        """
        with self._lock:
            handle = self._handles.get(uri)
        if handle is None or handle.blob is None:
            raise AudioResourceError(uri)
        return handle.blob

    def release(self, handle: AudioHandle | str) -> None:
        """Release one handle; unknown or already-released URIs are ignored."""
        uri = handle if isinstance(handle, str) else handle.uri
        with self._lock:
            found = self._handles.pop(uri, None)
        if found is not None:
            found._release()
            logger.debug("Released %s", uri)

    def release_all(self) -> None:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for h in handles:
            h._release()
        if handles:
            logger.debug("Released %d audio handle(s)", len(handles))

    @contextmanager
    def scoped(self, blob: AudioBlob) -> Iterator[AudioHandle]:
        """Acquire a handle that is released when the ``with`` block exits."""
        handle = self.acquire(blob)
        try:
            yield handle
        finally:
            self.release(handle)
