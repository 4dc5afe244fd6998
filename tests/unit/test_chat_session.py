"""Tests for ChatSession (optimistic send pipeline).

Validates blank-input handling, id ordering, the immediately visible
pending state, per-id patching on success / semantic failure / transport
failure, tolerance of resets, and teardown behaviour.
"""

import threading

import httpx
import pytest

from src.core.models import (
    AUDIO_PLACEHOLDER,
    TRANSCRIPTION_FAILED,
    DeliveryStatus,
    MessageType,
    TranscriptionFailure,
    TranscriptionStatus,
)
from src.core.utils import MessageIdClock
from src.services.audio.playback import (
    BrowserPlayerFactory,
    PlaybackController,
    SoundDevicePlayer,
    SoundDevicePlayerFactory,
)
from src.services.audio.resources import AudioResourceRegistry
from src.services.chat.session import ChatSession
from src.services.transport.api_client import APIError


@pytest.fixture
def session(mock_client, test_settings):
    s = ChatSession(mock_client, settings=test_settings)
    yield s
    s.close()


def _blocking(release: threading.Event, result):
    """side_effect that waits for ``release`` before returning ``result``."""

    def _call(*args, **kwargs):
        release.wait(timeout=5)
        if isinstance(result, Exception):
            raise result
        return result

    return _call


class TestSendText:
    """Verify send_text() appends and posts text messages."""

    @pytest.mark.parametrize("content", ["", "   ", "\n\t"])
    def test_blank_is_noop(self, session, mock_client, content):
        """Empty or whitespace-only content appends nothing and sends nothing."""
        assert session.send_text(content) is None
        assert session.messages() == []
        mock_client.send_message.assert_not_called()

    def test_appends_text_message(self, session, mock_client):
        msg = session.send_text("hi")
        assert session.wait_for_pending(timeout=5)

        assert msg.type == MessageType.text
        assert msg.content == "hi"
        assert msg.sender == "user"
        assert msg.transcription_status == TranscriptionStatus.not_applicable
        mock_client.send_message.assert_called_once_with("hi")
        assert session.store.get(msg.id).delivery_status == DeliveryStatus.sent

    def test_visible_before_response(self, session, mock_client):
        """The message is in the store, marked sending, while the call is blocked."""
        release = threading.Event()
        mock_client.send_message.side_effect = _blocking(release, {"ok": True})

        msg = session.send_text("hi")
        assert session.store.get(msg.id).delivery_status == DeliveryStatus.sending
        assert session.has_pending is True

        release.set()
        assert session.wait_for_pending(timeout=5)
        assert session.store.get(msg.id).delivery_status == DeliveryStatus.sent

    def test_transport_failure_marks_not_delivered(self, session, mock_client):
        mock_client.send_message.side_effect = APIError("down", category="connection")
        msg = session.send_text("hi")
        assert session.wait_for_pending(timeout=5)
        stored = session.store.get(msg.id)
        assert stored.delivery_status == DeliveryStatus.failed
        assert stored.content == "hi"

    @pytest.mark.parametrize(
        "error", [RuntimeError("client has been closed"), httpx.InvalidURL("Invalid port")]
    )
    def test_unexpected_error_marks_not_delivered(self, session, mock_client, error):
        """Errors outside APIError still resolve the message instead of leaving it sending."""
        mock_client.send_message.side_effect = error
        msg = session.send_text("hi")
        assert session.wait_for_pending(timeout=5)
        assert session.store.get(msg.id).delivery_status == DeliveryStatus.failed


class TestSendAudio:
    """Verify send_audio() pending state and transcription patching."""

    def test_pending_immediately(self, session, mock_client, webm_blob):
        """The audio message is visible as pending before transcription resolves."""
        release = threading.Event()
        mock_client.transcribe_audio.side_effect = _blocking(release, {"transcription": "hello"})

        msg = session.send_audio(webm_blob)
        stored = session.store.get(msg.id)
        assert stored.type == MessageType.audio
        assert stored.content == AUDIO_PLACEHOLDER
        assert stored.is_transcribing is True
        assert stored.audio_source_uri == msg.audio_handle.uri
        assert session.resources.resolve(stored.audio_source_uri) is webm_blob

        release.set()
        assert session.wait_for_pending(timeout=5)
        stored = session.store.get(msg.id)
        assert stored.transcription_status == TranscriptionStatus.completed
        assert stored.transcription == "hello"

    def test_upload_filename_follows_mime(self, session, mock_client, webm_blob, wav_blob):
        session.send_audio(webm_blob)
        session.send_audio(wav_blob)
        assert session.wait_for_pending(timeout=5)
        calls = mock_client.transcribe_audio.call_args_list
        filenames = sorted(c.kwargs["filename"] for c in calls)
        assert filenames == ["recording.wav", "recording.webm"]

    @pytest.mark.parametrize(
        "response", [{}, {"transcription": ""}, {"transcription": None}, ["x"]]
    )
    def test_missing_transcript_is_failure(self, session, mock_client, webm_blob, response):
        """A successful response without a transcript resolves to the failure marker."""
        mock_client.transcribe_audio.return_value = response
        msg = session.send_audio(webm_blob)
        assert session.wait_for_pending(timeout=5)

        stored = session.store.get(msg.id)
        assert stored.transcription_status == TranscriptionStatus.failed
        assert stored.transcription == TRANSCRIPTION_FAILED
        assert stored.transcription_error == TranscriptionFailure.missing_transcript

    def test_transport_failure(self, session, mock_client, webm_blob):
        mock_client.transcribe_audio.side_effect = APIError("timeout", category="timeout")
        msg = session.send_audio(webm_blob)
        assert session.wait_for_pending(timeout=5)

        stored = session.store.get(msg.id)
        assert stored.transcription_status == TranscriptionStatus.failed
        assert stored.transcription == TRANSCRIPTION_FAILED
        assert stored.transcription_error == TranscriptionFailure.transport

    @pytest.mark.parametrize(
        "error", [RuntimeError("client has been closed"), httpx.InvalidURL("Invalid port")]
    )
    def test_unexpected_error_is_transport_failure(self, session, mock_client, webm_blob, error):
        """Errors outside APIError end in "Transcription failed", not a stuck pending state."""
        mock_client.transcribe_audio.side_effect = error
        msg = session.send_audio(webm_blob)
        assert session.wait_for_pending(timeout=5)

        stored = session.store.get(msg.id)
        assert stored.is_transcribing is False
        assert stored.transcription == TRANSCRIPTION_FAILED
        assert stored.transcription_error == TranscriptionFailure.transport

    def test_patch_targets_only_own_message(self, session, mock_client, webm_blob):
        """Concurrent sends resolve independently; each patches its own id."""
        releases = {"one": threading.Event(), "two": threading.Event()}
        order = iter(["one", "two"])
        lock = threading.Lock()

        def transcribe(blob, filename):
            with lock:
                name = next(order)
            releases[name].wait(timeout=5)
            return {"transcription": name}

        mock_client.transcribe_audio.side_effect = transcribe
        first = session.send_audio(webm_blob)
        second = session.send_audio(webm_blob)

        releases["two"].set()
        releases["one"].set()
        assert session.wait_for_pending(timeout=5)

        texts = {session.store.get(m.id).transcription for m in (first, second)}
        assert texts == {"one", "two"}

    def test_reset_before_response_is_silent(self, session, mock_client, webm_blob):
        """A response arriving after reset patches nothing and raises nothing."""
        release = threading.Event()
        mock_client.transcribe_audio.side_effect = _blocking(release, {"transcription": "late"})
        msg = session.send_audio(webm_blob)

        session.reset()
        release.set()
        assert session.wait_for_pending(timeout=5)

        assert session.messages() == []
        assert msg.audio_handle.released is True


class TestSharedResources:
    """Verify sent audio lands in the registry the player factory reads from."""

    def test_keeps_injected_empty_registry(self, mock_client, test_settings):
        """An empty registry is falsy but is still the one the session uses."""
        registry = AudioResourceRegistry()
        assert len(registry) == 0
        with ChatSession(mock_client, resources=registry, settings=test_settings) as session:
            assert session.resources is registry

    def test_factories_resolve_sent_audio(self, mock_client, test_settings, wav_blob):
        """Both player factories resolve a sent message's URI through the shared registry."""
        registry = AudioResourceRegistry()
        playback = PlaybackController(BrowserPlayerFactory(registry))
        with ChatSession(
            mock_client, playback=playback, resources=registry, settings=test_settings
        ) as session:
            msg = session.send_audio(wav_blob)

            assert registry.resolve(msg.audio_source_uri) is wav_blob
            player = SoundDevicePlayerFactory(registry)(
                msg.audio_source_uri, lambda: None, lambda e: None
            )
            assert isinstance(player, SoundDevicePlayer)
            assert playback.toggle_playback(msg.id, msg.audio_source_uri) is True
            assert playback.playing_id == msg.id


class TestOrdering:
    def test_ids_strictly_increase(self, mock_client, test_settings, webm_blob):
        """Mixed sends in the same millisecond still get increasing ids."""
        clock = MessageIdClock(now=lambda: 1_000)
        with ChatSession(mock_client, settings=test_settings, clock=clock) as session:
            session.send_text("a")
            session.send_audio(webm_blob)
            session.send_text("   ")
            session.send_text("b")
            ids = [m.id for m in session.messages()]
            contents = [m.content for m in session.messages()]

        assert ids == [1_000, 1_001, 1_002]
        assert contents == ["a", AUDIO_PLACEHOLDER, "b"]


class TestLifecycle:
    """Verify reset and close semantics."""

    def test_reset_closes_players(self, mock_client, test_settings, player_factory, webm_blob):
        playback = PlaybackController(player_factory)
        with ChatSession(mock_client, playback=playback, settings=test_settings) as session:
            msg = session.send_audio(webm_blob)
            playback.toggle_playback(msg.id, msg.audio_source_uri)

            session.reset()

            assert playback.playing_id is None
            assert player_factory.players[msg.audio_source_uri].closed is True
            assert len(session.resources) == 0

    def test_close_drops_late_results(self, mock_client, test_settings, webm_blob):
        """Results arriving after close are discarded; the store stays empty."""
        release = threading.Event()
        mock_client.transcribe_audio.side_effect = _blocking(release, {"transcription": "late"})
        session = ChatSession(mock_client, settings=test_settings)
        session.send_audio(webm_blob)

        session.close()
        release.set()

        assert session.closed is True
        assert session.wait_for_pending(timeout=5)
        assert session.messages() == []

    def test_send_after_close_rejected(self, mock_client, test_settings):
        session = ChatSession(mock_client, settings=test_settings)
        session.close()
        with pytest.raises(RuntimeError, match="closed"):
            session.send_text("hi")

    def test_close_is_idempotent(self, session):
        session.close()
        session.close()
        assert session.closed is True
