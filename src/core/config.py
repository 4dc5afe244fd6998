"""
Application configuration via pydantic-settings.

Loads values from .env file with sensible defaults for local development.
Use ``get_settings()`` to obtain the cached singleton instance.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """VoiceChat application settings loaded from environment / .env file.

    All settings can be overridden via environment variables or a `.env` file.
    Field names map directly to env var names (case-insensitive).

    Attributes:
        api_base_url: Base URL of the backend that owns the chat endpoints.
        max_inflight_requests: Upper bound on concurrent send / transcribe calls.
        audio_backend: "browser" records with st.audio_input and plays with
            st.audio; "sounddevice" uses the server host's own mic and speaker
            (needs the local-audio extra).
        sample_rate: Capture rate in Hz for the sounddevice backend.
        poll_interval: Seconds between UI refreshes while sends are pending or a
            clip is playing.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Silently ignore unrecognized env vars
    )

    # --- Backend ---
    api_base_url: str = "http://localhost:3000"
    send_message_path: str = "/api/send-message"
    transcribe_path: str = "/api/whisper-transcribe"
    request_timeout: float = 30.0
    transcribe_timeout: float = 120.0  # Whisper on long clips can be slow
    max_inflight_requests: int = 4

    # --- Audio ---
    audio_backend: Literal["browser", "sounddevice"] = "browser"
    sample_rate: int = 16000
    channels: int = 1
    upload_filename_stem: str = "recording"  # Multipart filename is "<stem>.<ext>"

    # --- Application ---
    poll_interval: float = 1.0
    log_level: str = "INFO"  # Python logging level


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings singleton.

    Uses ``functools.lru_cache`` so the .env file is read only once.
    Subsequent calls return the same ``Settings`` instance.

    Returns:
        Settings: The application-wide configuration object.
    """
    return Settings()
