"""In-memory, append-only message list with change notification.

Transport continuations run on worker threads, so every read and write
goes through one lock. Listeners are called after the lock is released.
"""

import logging
import threading
from collections.abc import Callable

from src.core.models import Message
from src.services.audio.resources import AudioResourceRegistry

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class MessageStore:
    """Ordered sequence of ``Message`` records owned by one chat session.

    Args:
        resources: Registry owning the audio handles of stored messages;
            ``reset()`` releases them.
    """

    def __init__(self, resources: AudioResourceRegistry | None = None) -> None:
        self._resources = resources
        self._messages: list[Message] = []
        self._index: dict[int, int] = {}
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._version = 0

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def version(self) -> int:
        """Incremented on every mutation; cheap change detection for the UI."""
        return self._version

    def messages(self) -> list[Message]:
        """Snapshot of all messages in insertion order."""
        with self._lock:
            return list(self._messages)

    def get(self, message_id: int) -> Message | None:
        with self._lock:
            pos = self._index.get(message_id)
            return None if pos is None else self._messages[pos]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for change notifications.

        Returns:
            A callable that removes the listener again.
        """
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Message store listener failed")

    def append(self, message: Message) -> None:
        """Insert ``message`` at the tail.

        Raises:
            ValueError: If ``message.id`` does not exceed the last stored id.
        """
        with self._lock:
            if self._messages and message.id <= self._messages[-1].id:
                raise ValueError(
                    f"Message id {message.id} is not greater than last id {self._messages[-1].id}"
                )
            self._index[message.id] = len(self._messages)
            self._messages.append(message)
            self._version += 1
        self._notify()

    def patch_by_id(self, message_id: int, **fields) -> bool:
        """Merge ``fields`` into the message with ``message_id``.

        Unknown ids (e.g. after ``reset()``) are a silent no-op.

        Returns:
            True if a message was patched.
        """
        with self._lock:
            pos = self._index.get(message_id)
            if pos is None:
                logger.debug("Ignoring patch for unknown message %s", message_id)
                return False
            self._messages[pos] = self._messages[pos].model_copy(update=fields)
            self._version += 1
        self._notify()
        return True

    def reset(self) -> None:
        """Drop every message and release the audio they own."""
        with self._lock:
            dropped = self._messages
            self._messages = []
            self._index = {}
            self._version += 1
        if self._resources is not None:
            for msg in dropped:
                if msg.audio_handle is not None:
                    self._resources.release(msg.audio_handle)
        self._notify()
