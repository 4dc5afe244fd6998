"""Shared pytest fixtures for VoiceChat test suite.

Provides common test fixtures used across unit and e2e tests, including
synthetic audio, a mocked backend client, and in-memory stand-ins for the
microphone and speaker.
"""

from unittest.mock import MagicMock

import numpy as np
import pytest

from src.core.config import Settings
from src.core.models import AudioBlob
from src.services.audio.processor import AudioProcessor

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings():
    """Settings pointing at a fake backend, independent of any local .env."""
    return Settings(
        _env_file=None,
        api_base_url="http://test:3000",
        max_inflight_requests=4,
    )


# ---------------------------------------------------------------------------
# Audio Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_frames():
    """Generate 1 second of 440Hz sine-wave float32 audio (16kHz, mono).

    Returns:
        np.ndarray: Shape ``(16000, 1)``, amplitude 0.5.
    """
    t = np.arange(16000, dtype=np.float32) / 16000
    return (0.5 * np.sin(2 * np.pi * 440.0 * t)).astype(np.float32).reshape(-1, 1)


@pytest.fixture
def wav_blob(sample_frames):
    """A finalized WAV AudioBlob containing the sample sine wave."""
    processor = AudioProcessor(sample_rate=16000, channels=1)
    return AudioBlob(
        data=processor.encode_wav(sample_frames),
        mime_type="audio/wav",
        sample_rate=16000,
        duration=1.0,
    )


@pytest.fixture
def webm_blob():
    """An opaque browser-style blob; its bytes are never decoded."""
    return AudioBlob(data=b"\x1aE\xdf\xa3fake-webm", mime_type="audio/webm")


# ---------------------------------------------------------------------------
# Backend Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_client():
    """Create a mock APIClient with successful default responses.

    Returns:
        MagicMock: ``send_message`` returns ``{"ok": True}`` and
        ``transcribe_audio`` returns ``{"transcription": "hello"}``.
    """
    from src.services.transport.api_client import APIClient

    client = MagicMock(spec=APIClient)
    client.send_message.return_value = {"ok": True}
    client.transcribe_audio.return_value = {"transcription": "hello"}
    return client


# ---------------------------------------------------------------------------
# Device Fixtures
# ---------------------------------------------------------------------------


class FakeCaptureStream:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeCaptureDevice:
    """CaptureDevice that hands the chunk callback to the test."""

    def __init__(self, sample_rate: int = 16000, channels: int = 1, error=None) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.error = error
        self.on_chunk = None
        self.streams: list[FakeCaptureStream] = []

    def open(self, on_chunk):
        if self.error is not None:
            raise self.error
        self.on_chunk = on_chunk
        stream = FakeCaptureStream()
        self.streams.append(stream)
        return stream

    def feed(self, chunk: np.ndarray) -> None:
        self.on_chunk(chunk)


class FakePlayer:
    """Player that records calls; tests trigger end-of-stream explicitly."""

    def __init__(self, source_uri, on_finished, on_error) -> None:
        self.source_uri = source_uri
        self.on_finished = on_finished
        self.on_error = on_error
        self.playing = False
        self.position = 0
        self.play_calls = 0
        self.stop_calls = 0
        self.closed = False
        self.play_error = None

    def play(self) -> None:
        self.play_calls += 1
        if self.play_error is not None:
            raise self.play_error
        self.playing = True
        self.position = 100

    def stop(self) -> None:
        self.stop_calls += 1
        self.playing = False
        self.position = 0

    def close(self) -> None:
        self.stop()
        self.closed = True

    def poll(self) -> None:
        pass

    def finish(self) -> None:
        self.playing = False
        self.position = 0
        self.on_finished()


class FakePlayerFactory:
    """Creates FakePlayer instances and remembers them by URI."""

    def __init__(self) -> None:
        self.players: dict[str, FakePlayer] = {}
        self.calls = 0

    def __call__(self, source_uri, on_finished, on_error) -> FakePlayer:
        self.calls += 1
        player = FakePlayer(source_uri, on_finished, on_error)
        self.players[source_uri] = player
        return player


@pytest.fixture
def capture_device():
    return FakeCaptureDevice()


@pytest.fixture
def player_factory():
    return FakePlayerFactory()
