"""Audio conversion utilities for captured and played-back clips.

Joins float32 capture chunks, encodes them to an in-memory WAV container,
and decodes stored blobs back into sample arrays for playback.
"""

import io

import numpy as np
import soundfile as sf


class AudioProcessor:
    """Handles conversion between sample arrays and encoded audio bytes.

    Capture callbacks deliver float32 frames shaped ``(frames, channels)``;
    the processor turns a list of those into one WAV payload and back.
    """

    def __init__(self, sample_rate: int = 16000, channels: int = 1) -> None:
        """Initialize the audio processor.

        Args:
            sample_rate: Audio sample rate in Hz (default: 16 kHz).
            channels: Number of audio channels (1 = mono).
        """
        self.sample_rate = sample_rate
        self.channels = channels

    def join_chunks(self, chunks: list[np.ndarray]) -> np.ndarray:
        """Concatenate capture chunks into one ``(frames, channels)`` array.

        Returns:
            Float32 array; zero frames when ``chunks`` is empty.
        """
        if not chunks:
            return np.zeros((0, self.channels), dtype=np.float32)
        shaped = [c.reshape(-1, self.channels) for c in chunks]
        return np.concatenate(shaped).astype(np.float32, copy=False)

    def duration(self, audio: np.ndarray) -> float:
        """Length of ``audio`` in seconds at this processor's sample rate."""
        return len(audio) / self.sample_rate

    def encode_wav(self, audio: np.ndarray) -> bytes:
        """Encode float32 samples as a 16-bit PCM WAV file held in memory.

        Raises:
            ValueError: If ``audio`` has no frames.
        """
        if len(audio) == 0:
            raise ValueError("Cannot encode empty audio")
        buf = io.BytesIO()
        # Clip first: float samples outside [-1, 1] wrap around in PCM_16
        sf.write(buf, np.clip(audio, -1.0, 1.0), self.sample_rate, format="WAV", subtype="PCM_16")
        return buf.getvalue()

    @staticmethod
    def decode(data: bytes) -> tuple[np.ndarray, int]:
        """Decode encoded audio bytes into ``(frames, channels)`` float32 samples.

        Returns:
            Tuple of the sample array and the file's sample rate.

        Raises:
            ValueError: If ``data`` is empty or not a readable audio container.
        """
        if not data:
            raise ValueError("Cannot decode empty audio data")
        try:
            samples, sample_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
        except sf.LibsndfileError as exc:
            raise ValueError(f"Unreadable audio data: {exc}") from exc
        return samples, sample_rate

    @staticmethod
    def clip_duration(data: bytes) -> float:
        """Length in seconds of an encoded clip, or 0.0 when it cannot be read.

        libsndfile reads WAV, FLAC and Ogg but not WebM, so browser uploads in
        that container report 0.0 (unknown).
        """
        if not data:
            return 0.0
        try:
            return sf.info(io.BytesIO(data)).duration
        except sf.LibsndfileError:
            return 0.0
