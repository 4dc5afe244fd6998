"""
Pydantic v2 models shared by the chat pipeline, transport, and UI layers.

Message   — one chat bubble (text or audio)
AudioBlob — finalized captured audio plus its container MIME type
Request / response bodies for the two backend endpoints
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

AUDIO_PLACEHOLDER = "Audio message"
TRANSCRIPTION_FAILED = "Transcription failed"

_MIME_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/ogg": "ogg",
    "audio/flac": "flac",
    "audio/mpeg": "mp3",
}


# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------


class AudioBlob(BaseModel):
    """A single opaque audio object produced by a finished recording."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str = "audio/webm"
    sample_rate: int | None = None
    duration: float = 0.0

    @property
    def extension(self) -> str:
        """File extension matching the container format (``bin`` if unknown)."""
        base = self.mime_type.split(";", 1)[0].strip().lower()
        return _MIME_EXTENSIONS.get(base, "bin")

    @property
    def size(self) -> int:
        return len(self.data)


class AudioHandle:
    """Owned reference to a captured blob, addressable by a short-lived URI.

    Handles are created and released by ``AudioResourceRegistry``; once
    released the blob is dropped and ``uri`` no longer resolves.
    """

    __slots__ = ("uri", "_blob")

    def __init__(self, uri: str, blob: AudioBlob) -> None:
        self.uri = uri
        self._blob: AudioBlob | None = blob

    @property
    def blob(self) -> AudioBlob | None:
        return self._blob

    @property
    def released(self) -> bool:
        return self._blob is None

    def _release(self) -> None:
        self._blob = None

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"AudioHandle({self.uri!r}, {state})"


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------


class MessageType(StrEnum):
    """Kinds of chat message."""

    text = "text"
    audio = "audio"


class TranscriptionStatus(StrEnum):
    """Transcription lifecycle of a message (text messages are not_applicable)."""

    not_applicable = "not_applicable"
    pending = "pending"
    completed = "completed"
    failed = "failed"


class TranscriptionFailure(StrEnum):
    """Why a transcription ended in the failed state."""

    transport = "transport"
    missing_transcript = "missing_transcript"


class DeliveryStatus(StrEnum):
    """Delivery lifecycle of a text message (audio messages are not_applicable)."""

    not_applicable = "not_applicable"
    sending = "sending"
    sent = "sent"
    failed = "failed"


class Message(BaseModel):
    """One entry of the chat message list.

    Records are replaced, not mutated, when patched; a snapshot handed to the
    UI therefore never changes underneath it.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    id: int
    type: MessageType
    content: str
    timestamp: datetime
    sender: str = "user"
    audio_handle: AudioHandle | None = None
    audio_source_uri: str | None = None
    transcription_status: TranscriptionStatus = TranscriptionStatus.not_applicable
    transcription: str | None = None
    transcription_error: TranscriptionFailure | None = None
    delivery_status: DeliveryStatus = DeliveryStatus.not_applicable

    @property
    def is_transcribing(self) -> bool:
        return self.transcription_status == TranscriptionStatus.pending

    @property
    def is_in_flight(self) -> bool:
        """True while a backend response for this message is outstanding."""
        return self.is_transcribing or self.delivery_status == DeliveryStatus.sending


# ---------------------------------------------------------------------------
# Backend request / response bodies
# ---------------------------------------------------------------------------


class SendMessageRequest(BaseModel):
    """POST /api/send-message request body."""

    message: str
    type: MessageType = MessageType.text


class TranscriptionResponse(BaseModel):
    """POST /api/whisper-transcribe response body.

    Unknown keys are ignored; only ``transcription`` is consumed.
    """

    model_config = ConfigDict(extra="ignore")

    transcription: str | None = Field(default=None)
