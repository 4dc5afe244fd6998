"""
VoiceChat exception hierarchy.

All application-specific exceptions inherit from VoiceChatError so the UI
layer can catch one base class and render ``detail`` to the user.
"""

from datetime import UTC, datetime


class VoiceChatError(Exception):
    """Base exception for all VoiceChat errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred",
        code: str = "VOICECHAT_ERROR",
    ) -> None:
        self.detail = detail
        self.code = code
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(detail)


class MicrophonePermissionError(VoiceChatError):
    """Raised when the microphone cannot be opened (denied or unavailable)."""

    def __init__(self, detail: str = "Microphone access denied") -> None:
        super().__init__(detail=detail, code="MICROPHONE_PERMISSION_DENIED")


class RecordingAlreadyActiveError(VoiceChatError):
    """Raised when trying to start a recording while one is already active."""

    def __init__(self) -> None:
        super().__init__(
            detail="A recording is already active",
            code="RECORDING_ALREADY_ACTIVE",
        )


class PlaybackError(VoiceChatError):
    """Raised when the audio output rejects playback."""

    def __init__(self, detail: str = "Failed to play audio") -> None:
        super().__init__(detail=detail, code="PLAYBACK_ERROR")


class AudioResourceError(VoiceChatError):
    """Raised when a source URI does not resolve to a live audio handle."""

    def __init__(self, uri: str) -> None:
        super().__init__(
            detail=f"Audio resource not available: {uri}",
            code="AUDIO_RESOURCE_NOT_FOUND",
        )


class TranscriptionError(VoiceChatError):
    """Raised when the backend answers without a usable transcript."""

    def __init__(self, detail: str = "Transcription failed") -> None:
        super().__init__(detail=detail, code="TRANSCRIPTION_ERROR")
