"""
Per-browser-session objects kept in ``st.session_state``.

The chat session and recorder survive Streamlit reruns; the HTTP client is
shared across sessions through ``st.cache_resource``.
"""

import logging

import streamlit as st

from src.core.config import get_settings
from src.services.audio import (
    BrowserPlayerFactory,
    PlaybackController,
    RecorderController,
    SoundDeviceCapture,
    SoundDevicePlayerFactory,
)
from src.services.audio.resources import AudioResourceRegistry
from src.services.chat import ChatSession
from src.services.transport import APIClient, APIError

logger = logging.getLogger(__name__)


@st.cache_resource
def get_api_client(base_url: str) -> APIClient:
    """Return a cached APIClient, keyed by base_url.

    When the base URL changes (Profile tab), a new client is created
    automatically because the cache key includes the parameter.

    Raises:
        APIError: If ``base_url`` is malformed (not cached, so it is retried).
    """
    return APIClient(base_url=base_url)


def _new_chat_session(base_url: str) -> ChatSession:
    client = get_api_client(base_url)
    resources = AudioResourceRegistry()
    if get_settings().audio_backend == "sounddevice":
        factory = SoundDevicePlayerFactory(resources)
    else:
        factory = BrowserPlayerFactory(resources)
    return ChatSession(client, playback=PlaybackController(factory), resources=resources)


def sync_chat_session() -> str | None:
    """Make the session's ChatSession match the Backend API URL field.

    A new session replaces the old one when the URL changes. A malformed URL
    keeps the previous session so the app stays usable while it is fixed.

    Returns:
        An error message for the UI, or None when the session is current.
    """
    base_url = st.session_state.api_base_url
    session = st.session_state.get("chat_session")
    if session is not None and st.session_state.get("chat_session_url") == base_url:
        return None

    try:
        new_session = _new_chat_session(base_url)
    except APIError as exc:
        logger.warning("Keeping current chat session: %s", exc.message)
        if session is None:
            # First run with a bad URL: fall back to the configured default
            fallback = get_settings().api_base_url
            st.session_state.chat_session = _new_chat_session(fallback)
            st.session_state.chat_session_url = fallback
        return exc.message

    if session is not None:
        logger.info("Backend URL changed to %s; starting a new chat session", base_url)
        session.close()
    st.session_state.chat_session = new_session
    st.session_state.chat_session_url = base_url
    return None


def get_chat_session() -> ChatSession:
    """Return this browser session's ChatSession."""
    if "chat_session" not in st.session_state:
        sync_chat_session()
    return st.session_state.chat_session


def get_recorder() -> RecorderController:
    """Return this browser session's recorder; finished clips go to the chat session."""
    recorder = st.session_state.get("recorder")
    if recorder is None:
        settings = get_settings()
        device = None
        if settings.audio_backend == "sounddevice":
            device = SoundDeviceCapture(
                sample_rate=settings.sample_rate, channels=settings.channels
            )
        recorder = RecorderController(
            device,
            on_finished=lambda blob: get_chat_session().send_audio(blob),
        )
        st.session_state.recorder = recorder
    return recorder
