"""Single-active-clip playback across the message list.

``PlaybackController`` keeps a per-message table of lazily created players
and a "currently playing" marker. Starting one clip always stops the
previous one first, so at most one message is ever playing.

Two player backends exist. ``BrowserPlayer`` only marks its clip active; the
chat page renders the active clip with ``st.audio(..., autoplay=True)`` so it
plays on the user's device. ``SoundDevicePlayer`` plays through the server
host's speaker and needs the ``local-audio`` extra.
"""

import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol

import numpy as np

from src.core.exceptions import PlaybackError
from src.core.models import AudioBlob
from src.services.audio.processor import AudioProcessor
from src.services.audio.resources import AudioResourceRegistry

logger = logging.getLogger(__name__)


class Player(Protocol):
    """One playable clip. ``stop()`` pauses and rewinds to the start."""

    def play(self) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...

    def poll(self) -> None:
        """Fire ``on_finished`` if the clip has run to its end since the last call."""
        ...


PlayerFactory = Callable[[str, Callable[[], None], Callable[[Exception], None]], Player]


class BrowserPlayer:
    """Marks a clip as the page's active ``st.audio`` element.

    The browser plays the clip and reports nothing back to the server, so the
    end of the clip is inferred from the blob duration when ``poll()`` runs.
    Clips of unknown duration stay active until stopped.
    """

    # Allowance for the browser to fetch and start the clip
    END_SLACK = 0.5

    def __init__(
        self,
        blob: AudioBlob,
        on_finished: Callable[[], None],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.blob = blob
        self._on_finished = on_finished
        self._clock = clock
        self._started_at: float | None = None

    @property
    def active(self) -> bool:
        return self._started_at is not None

    def play(self) -> None:
        self._started_at = self._clock()

    def stop(self) -> None:
        self._started_at = None

    def close(self) -> None:
        self.stop()

    def poll(self) -> None:
        started_at = self._started_at
        if started_at is None or not self.blob.duration:
            return
        if self._clock() - started_at >= self.blob.duration + self.END_SLACK:
            self._started_at = None
            self._on_finished()


class BrowserPlayerFactory:
    """Builds ``BrowserPlayer`` instances for URIs issued by a registry."""

    def __init__(self, resources: AudioResourceRegistry) -> None:
        self._resources = resources

    def __call__(
        self,
        source_uri: str,
        on_finished: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> BrowserPlayer:
        blob = self._resources.resolve(source_uri)
        if not blob.data:
            raise PlaybackError("Cannot play an empty audio clip")
        return BrowserPlayer(blob, on_finished)


class SoundDevicePlayer:
    """Plays a decoded blob through a PortAudio output stream.

    ``on_finished`` fires when the clip runs to its end; ``on_error`` fires
    when the stream aborts for any other reason than ``stop()``.
    """

    def __init__(
        self,
        samples: np.ndarray,
        sample_rate: int,
        on_finished: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        self._samples = samples
        self._sample_rate = sample_rate
        self._on_finished = on_finished
        self._on_error = on_error
        self._position = 0
        self._stream = None
        self._stopping = False
        self._lock = threading.Lock()

    def _fill(self, outdata, frames, _time, status) -> None:
        import sounddevice as sd

        if status:
            logger.debug("Output stream status: %s", status)
        with self._lock:
            chunk = self._samples[self._position : self._position + frames]
            self._position += len(chunk)
        outdata[: len(chunk)] = chunk
        if len(chunk) < frames:
            outdata[len(chunk) :] = 0
            raise sd.CallbackStop

    def _finished(self) -> None:
        if self._stopping:
            return
        with self._lock:
            reached_end = self._position >= len(self._samples)
            self._position = 0
        if reached_end:
            self._on_finished()
        else:
            self._on_error(PlaybackError("Audio stream ended unexpectedly"))

    def play(self) -> None:
        try:
            import sounddevice as sd
        except OSError as exc:  # PortAudio shared library missing
            raise PlaybackError(f"Audio output unavailable: {exc}") from exc

        self._close_stream()
        self._stopping = False
        try:
            self._stream = sd.OutputStream(
                samplerate=self._sample_rate,
                channels=self._samples.shape[1],
                dtype="float32",
                callback=self._fill,
                finished_callback=self._finished,
            )
            self._stream.start()
        except sd.PortAudioError as exc:
            self._stream = None
            raise PlaybackError(f"Failed to play audio: {exc}") from exc

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            self._stopping = True
            stream.abort()
            stream.close()

    def stop(self) -> None:
        self._close_stream()
        with self._lock:
            self._position = 0

    def close(self) -> None:
        self.stop()

    def poll(self) -> None:
        # End of stream arrives through the stream's finished_callback
        pass


class SoundDevicePlayerFactory:
    """Builds ``SoundDevicePlayer`` instances for URIs issued by a registry."""

    def __init__(self, resources: AudioResourceRegistry) -> None:
        self._resources = resources

    def __call__(
        self,
        source_uri: str,
        on_finished: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> SoundDevicePlayer:
        blob = self._resources.resolve(source_uri)
        try:
            samples, sample_rate = AudioProcessor.decode(blob.data)
        except ValueError as exc:
            raise PlaybackError(str(exc)) from exc
        return SoundDevicePlayer(samples, sample_rate, on_finished, on_error)


class PlaybackController:
    """Enforces that at most one message is playing at any time.

    Players are started and stopped outside the controller lock: a player's
    own end-of-stream callback takes that lock to clear the marker.

    Args:
        player_factory: Creates a ``Player`` for a source URI; called lazily
            the first time a message is played and cached per message id.
    """

    def __init__(self, player_factory: PlayerFactory) -> None:
        self._factory = player_factory
        self._players: dict[int, Player] = {}
        self._playing: int | None = None
        self._lock = threading.RLock()

    @property
    def playing_id(self) -> int | None:
        return self._playing

    def is_playing(self, message_id: int) -> bool:
        return self._playing == message_id

    def _clear_if_current(self, message_id: int) -> None:
        with self._lock:
            if self._playing == message_id:
                self._playing = None

    def _player_for(self, message_id: int, source_uri: str) -> Player:
        player = self._players.get(message_id)
        if player is None:

            def _on_finished() -> None:
                self._clear_if_current(message_id)

            def _on_error(exc: Exception) -> None:
                logger.error("Audio playback error for message %s: %s", message_id, exc)
                self._clear_if_current(message_id)

            player = self._factory(source_uri, _on_finished, _on_error)
            self._players[message_id] = player
        return player

    def toggle_playback(self, message_id: int, source_uri: str) -> bool:
        """Play ``message_id``, or stop it if it is the one already playing.

        Returns:
            True if the message is playing after the call.

        Raises:
            PlaybackError: If the clip could not be started; the marker is cleared.
            AudioResourceError: If ``source_uri`` no longer resolves.
        """
        with self._lock:
            previous = self._playing
            player = None if previous == message_id else self._player_for(message_id, source_uri)
            current = self._players.get(previous) if previous is not None else None
            self._playing = None if player is None else message_id

        if current is not None:
            current.stop()
        if player is None:
            return False

        try:
            player.play()
        except PlaybackError:
            logger.exception("Failed to play audio for message %s", message_id)
            self._clear_if_current(message_id)
            raise
        return True

    def stop(self) -> None:
        """Stop whatever is playing."""
        with self._lock:
            current = self._players.get(self._playing) if self._playing is not None else None
            self._playing = None
        if current is not None:
            current.stop()

    def poll(self) -> None:
        """Let the active player report a clip that has run to its end."""
        with self._lock:
            current = self._players.get(self._playing) if self._playing is not None else None
        if current is not None:
            current.poll()

    def release(self, message_id: int) -> None:
        """Close and forget the cached player of one message."""
        with self._lock:
            player = self._players.pop(message_id, None)
            if self._playing == message_id:
                self._playing = None
        if player is not None:
            player.close()

    def close(self) -> None:
        """Close every cached player."""
        with self._lock:
            players = list(self._players.values())
            self._players.clear()
            self._playing = None
        for player in players:
            player.close()
