"""Shared utility functions for VoiceChat."""

import threading
import time
from datetime import datetime


def format_time(value: datetime) -> str:
    """Format a message timestamp as two-digit ``HH:MM`` for display."""
    return value.strftime("%H:%M")


class MessageIdClock:
    """Millisecond timestamp source that never repeats within a session.

    Two sends in the same millisecond would otherwise collide, so each value
    is at least one greater than the previous one.
    """

    def __init__(self, now=None) -> None:
        self._now = now or (lambda: time.time_ns() // 1_000_000)
        self._last = 0
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            self._last = max(int(self._now()), self._last + 1)
            return self._last
