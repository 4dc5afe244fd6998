"""Voice message capture.

``RecorderController`` runs the idle -> recording -> idle state machine.
In the app the browser records: the chat page shows ``st.audio_input`` while
the recorder is recording and hands the finished upload to
``accept_upload()``. With a ``CaptureDevice`` (``SoundDeviceCapture`` from
the ``local-audio`` extra) the server host's microphone is captured instead
and ``stop()`` finalizes the buffered chunks.
"""

import logging
import threading
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Protocol

import numpy as np

from src.core.exceptions import MicrophonePermissionError, RecordingAlreadyActiveError
from src.core.models import AudioBlob
from src.services.audio.processor import AudioProcessor

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[np.ndarray], None]

# Browser recorders that do not report a type produce WebM
DEFAULT_UPLOAD_MIME = "audio/webm"


class CaptureStream(Protocol):
    """An armed capture session; ``close()`` releases the device."""

    def close(self) -> None: ...


class CaptureDevice(Protocol):
    """Source of microphone audio delivered as float32 chunks."""

    sample_rate: int
    channels: int

    def open(self, on_chunk: ChunkCallback) -> CaptureStream:
        """Acquire the microphone and start delivering chunks.

        Raises:
            MicrophonePermissionError: If the device cannot be opened.
        """
        ...


class _SoundDeviceStream:
    def __init__(self, stream) -> None:
        self._stream = stream

    def close(self) -> None:
        try:
            self._stream.stop()
        finally:
            self._stream.close()


class SoundDeviceCapture:
    """``CaptureDevice`` backed by a PortAudio input stream."""

    def __init__(self, sample_rate: int = 16000, channels: int = 1, device=None) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self._device = device

    def open(self, on_chunk: ChunkCallback) -> _SoundDeviceStream:
        try:
            import sounddevice as sd
        except OSError as exc:  # PortAudio shared library missing
            raise MicrophonePermissionError(f"Audio input unavailable: {exc}") from exc

        def _callback(indata, _frames, _time, status) -> None:
            if status:
                logger.debug("Input stream status: %s", status)
            on_chunk(indata.copy())

        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                device=self._device,
                callback=_callback,
            )
            stream.start()
        except sd.PortAudioError as exc:
            raise MicrophonePermissionError(f"Microphone unavailable: {exc}") from exc
        return _SoundDeviceStream(stream)


class RecorderState(StrEnum):
    """Possible states of the recorder."""

    idle = "idle"
    recording = "recording"


class RecorderController:
    """Owns one capture session at a time.

    Args:
        device: Local capture source, or None when the browser records and
            delivers the clip through ``accept_upload()``.
        on_finished: Called with each finalized blob.
    """

    def __init__(
        self,
        device: CaptureDevice | None = None,
        on_finished: Callable[[AudioBlob], None] | None = None,
    ) -> None:
        self._device = device
        self._on_finished = on_finished
        self._processor = (
            AudioProcessor(device.sample_rate, device.channels)
            if device is not None
            else AudioProcessor()
        )
        self._state = RecorderState.idle
        self._stream: CaptureStream | None = None
        self._chunks: list[np.ndarray] = []
        self._chunks_lock = threading.Lock()
        self._started_at: float | None = None

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state == RecorderState.recording

    @property
    def captures_locally(self) -> bool:
        """True when audio comes from a local device rather than a browser upload."""
        return self._device is not None

    @property
    def elapsed(self) -> float:
        """Seconds since the current recording started (0.0 when idle)."""
        if self._started_at is None:
            return 0.0
        return time.monotonic() - self._started_at

    def _buffer_chunk(self, chunk: np.ndarray) -> None:
        if chunk.size == 0:
            return
        with self._chunks_lock:
            self._chunks.append(chunk)

    def start(self) -> None:
        """Begin a recording; with a local device, acquire it and buffer audio.

        Raises:
            RecordingAlreadyActiveError: If a recording is already running.
            MicrophonePermissionError: If the device refuses; state stays idle.
        """
        if self.is_recording:
            raise RecordingAlreadyActiveError()

        with self._chunks_lock:
            self._chunks = []
        if self._device is not None:
            try:
                self._stream = self._device.open(self._buffer_chunk)
            except MicrophonePermissionError as exc:
                logger.warning("Mic access denied: %s", exc.detail)
                raise

        self._started_at = time.monotonic()
        self._state = RecorderState.recording
        if self._device is not None:
            logger.info(
                "Recording started (%d Hz, %d ch)",
                self._device.sample_rate,
                self._device.channels,
            )
        else:
            logger.info("Recording started (browser capture)")

    def _release_device(self) -> list[np.ndarray]:
        stream, self._stream = self._stream, None
        try:
            if stream is not None:
                stream.close()
        finally:
            self._state = RecorderState.idle
            self._started_at = None
            with self._chunks_lock:
                chunks, self._chunks = self._chunks, []
        return chunks

    def stop(self) -> AudioBlob | None:
        """Finish the recording, release the microphone, and finalize the audio.

        Returns:
            The WAV blob, or None when idle or when nothing was captured.
        """
        if not self.is_recording:
            return None

        chunks = self._release_device()
        audio = self._processor.join_chunks(chunks)
        if len(audio) == 0:
            logger.warning("Recording stopped with no captured audio")
            return None

        blob = AudioBlob(
            data=self._processor.encode_wav(audio),
            mime_type="audio/wav",
            sample_rate=self._processor.sample_rate,
            duration=self._processor.duration(audio),
        )
        logger.info("Recording stopped: %.1fs, %d bytes", blob.duration, blob.size)
        return self._finish(blob)

    def accept_upload(self, data: bytes, mime_type: str | None = None) -> AudioBlob | None:
        """Finish the recording with a clip the browser already encoded.

        Args:
            data: The uploaded bytes, kept as-is.
            mime_type: The upload's content type; WebM when not reported.

        Returns:
            The blob, or None when idle or when the upload is empty.
        """
        if not self.is_recording:
            logger.warning("Ignoring audio upload while the recorder is idle")
            return None

        self._release_device()
        if not data:
            logger.warning("Recording finished with an empty upload")
            return None

        blob = AudioBlob(
            data=data,
            mime_type=mime_type or DEFAULT_UPLOAD_MIME,
            duration=AudioProcessor.clip_duration(data),
        )
        logger.info("Recording uploaded: %s, %d bytes", blob.mime_type, blob.size)
        return self._finish(blob)

    def _finish(self, blob: AudioBlob) -> AudioBlob:
        if self._on_finished is not None:
            self._on_finished(blob)
        return blob

    def cancel(self) -> None:
        """End the recording without producing a clip."""
        if self.is_recording:
            self._release_device()
            logger.info("Recording cancelled")
