"""Send pipeline: optimistic append, background transport, patch by id.

``ChatSession`` ties the message store to the backend client. Each send
appends its message immediately on the caller's thread, then runs the HTTP
call on a worker thread and patches only that message's record with the
outcome. Sends are independent; several may be in flight at once.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime

from pydantic import ValidationError

from src.core.config import Settings, get_settings
from src.core.exceptions import TranscriptionError
from src.core.models import (
    AUDIO_PLACEHOLDER,
    TRANSCRIPTION_FAILED,
    AudioBlob,
    DeliveryStatus,
    Message,
    MessageType,
    TranscriptionFailure,
    TranscriptionResponse,
    TranscriptionStatus,
)
from src.core.utils import MessageIdClock
from src.services.audio.playback import PlaybackController
from src.services.audio.resources import AudioResourceRegistry
from src.services.chat.store import MessageStore
from src.services.transport.api_client import APIClient, APIError

logger = logging.getLogger(__name__)


class ChatSession:
    """One mounted chat: store, audio resources, playback, and in-flight sends.

    Args:
        client: Backend HTTP client (shared; the session never closes it).
        playback: Playback controller for this session's audio messages.
        resources: Registry that owns captured audio; created if omitted.
        settings: Optional Settings instance (defaults to get_settings()).
        clock: Message id source; injectable for deterministic tests.
    """

    def __init__(
        self,
        client: APIClient,
        playback: PlaybackController | None = None,
        resources: AudioResourceRegistry | None = None,
        settings: Settings | None = None,
        clock: MessageIdClock | None = None,
    ) -> None:
        self._settings = settings if settings is not None else get_settings()
        self._client = client
        self.resources = resources if resources is not None else AudioResourceRegistry()
        self.store = MessageStore(self.resources)
        self.playback = playback
        self._clock = clock if clock is not None else MessageIdClock()
        self._executor = ThreadPoolExecutor(
            max_workers=self._settings.max_inflight_requests,
            thread_name_prefix="chat-send",
        )
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()
        self._closed = False

    def __enter__(self) -> "ChatSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_pending(self) -> bool:
        with self._pending_lock:
            return bool(self._pending)

    def messages(self) -> list[Message]:
        return self.store.messages()

    # -- sending --

    def _submit(self, fn, *args) -> None:
        future = self._executor.submit(fn, *args)
        with self._pending_lock:
            self._pending.add(future)

        def _done(f: Future) -> None:
            with self._pending_lock:
                self._pending.discard(f)

        future.add_done_callback(_done)

    def _patch(self, message_id: int, **fields) -> None:
        if self._closed:
            logger.debug("Session closed; dropping result for message %s", message_id)
            return
        self.store.patch_by_id(message_id, **fields)

    def send_text(self, content: str) -> Message | None:
        """Append a text message and post it to the backend in the background.

        Returns:
            The appended message, or None when ``content`` is blank.
        """
        if self._closed:
            raise RuntimeError("Chat session is closed")
        if not content or not content.strip():
            return None

        message = Message(
            id=self._clock.next_id(),
            type=MessageType.text,
            content=content,
            timestamp=datetime.now(),
            delivery_status=DeliveryStatus.sending,
        )
        self.store.append(message)
        self._submit(self._deliver_text, message.id, content)
        return message

    def _deliver_text(self, message_id: int, content: str) -> None:
        try:
            data = self._client.send_message(content)
        except APIError as exc:
            logger.error(
                "Failed to send message %s (%s): %s", message_id, exc.category, exc.message
            )
            self._patch(message_id, delivery_status=DeliveryStatus.failed)
            return
        except Exception:
            logger.exception("Unexpected error sending message %s", message_id)
            self._patch(message_id, delivery_status=DeliveryStatus.failed)
            return
        logger.info("Text message sent: %s", data)
        self._patch(message_id, delivery_status=DeliveryStatus.sent)

    def send_audio(self, blob: AudioBlob) -> Message:
        """Append an audio message in the pending state and transcribe it.

        Returns:
            The appended message; its transcription fields are filled in later.
        """
        if self._closed:
            raise RuntimeError("Chat session is closed")

        handle = self.resources.acquire(blob)
        message = Message(
            id=self._clock.next_id(),
            type=MessageType.audio,
            content=AUDIO_PLACEHOLDER,
            timestamp=datetime.now(),
            audio_handle=handle,
            audio_source_uri=handle.uri,
            transcription_status=TranscriptionStatus.pending,
        )
        self.store.append(message)
        self._submit(self._transcribe, message.id, blob)
        return message

    def _transcribe(self, message_id: int, blob: AudioBlob) -> None:
        filename = f"{self._settings.upload_filename_stem}.{blob.extension}"
        try:
            data = self._client.transcribe_audio(blob, filename=filename)
            try:
                text = TranscriptionResponse.model_validate(data).transcription
            except ValidationError as exc:
                raise TranscriptionError(f"Malformed transcription response: {exc}") from exc
            if not text:
                raise TranscriptionError("Response did not include a transcription")
        except APIError as exc:
            logger.error("Failed to send audio %s (%s): %s", message_id, exc.category, exc.message)
            self._patch(
                message_id,
                transcription_status=TranscriptionStatus.failed,
                transcription=TRANSCRIPTION_FAILED,
                transcription_error=TranscriptionFailure.transport,
            )
            return
        except TranscriptionError as exc:
            logger.warning("Transcription failed for message %s: %s", message_id, exc.detail)
            self._patch(
                message_id,
                transcription_status=TranscriptionStatus.failed,
                transcription=TRANSCRIPTION_FAILED,
                transcription_error=TranscriptionFailure.missing_transcript,
            )
            return
        except Exception:
            logger.exception("Unexpected error transcribing message %s", message_id)
            self._patch(
                message_id,
                transcription_status=TranscriptionStatus.failed,
                transcription=TRANSCRIPTION_FAILED,
                transcription_error=TranscriptionFailure.transport,
            )
            return

        logger.info("Audio transcribed for message %s (%d chars)", message_id, len(text))
        self._patch(
            message_id,
            transcription_status=TranscriptionStatus.completed,
            transcription=text,
        )

    def wait_for_pending(self, timeout: float | None = None) -> bool:
        """Block until every in-flight send has resolved.

        Returns:
            True if nothing is pending any more, False on timeout.
        """
        with self._pending_lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    # -- lifecycle --

    def reset(self) -> None:
        """Clear the conversation; in-flight results for old ids become no-ops."""
        if self.playback is not None:
            self.playback.close()
        self.store.reset()

    def close(self) -> None:
        """Tear the session down: cancel queued sends and ignore late results."""
        if self._closed:
            return
        self._closed = True
        with self._pending_lock:
            pending = list(self._pending)
        cancelled = sum(1 for f in pending if f.cancel())
        if pending:
            logger.info(
                "Closing chat session: %d send(s) cancelled, %d still running",
                cancelled,
                len(pending) - cancelled,
            )
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.reset()
