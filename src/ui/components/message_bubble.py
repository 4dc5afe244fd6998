"""
Chat bubble display component.
"""

from collections.abc import Callable

import streamlit as st

from src.core.models import DeliveryStatus, Message, MessageType, TranscriptionStatus
from src.core.utils import format_time


def render_message(
    message: Message,
    is_playing: bool,
    on_toggle_playback: Callable[[int, str], None],
    play_in_browser: bool = True,
) -> None:
    """Render one message as a user chat bubble.

    Args:
        message: Message snapshot from the store.
        is_playing: Whether this message holds the playback marker.
        on_toggle_playback: Button callback, called with (message id, source URI).
        play_in_browser: Render the playing clip as an autoplaying ``st.audio``.
    """
    with st.chat_message("user"):
        if message.type == MessageType.text:
            st.markdown(message.content)
            if message.delivery_status == DeliveryStatus.failed:
                st.caption(":red[Not delivered]")
        else:
            _render_audio_body(message, is_playing, on_toggle_playback, play_in_browser)

        st.caption(format_time(message.timestamp))


def _render_audio_body(
    message: Message,
    is_playing: bool,
    on_toggle_playback: Callable[[int, str], None],
    play_in_browser: bool,
) -> None:
    st.button(
        message.content,
        key=f"play_{message.id}",
        icon=":material/pause:" if is_playing else ":material/play_arrow:",
        on_click=on_toggle_playback,
        args=(message.id, message.audio_source_uri),
        disabled=not message.audio_source_uri,
    )
    blob = message.audio_handle.blob if message.audio_handle is not None else None
    if is_playing and play_in_browser and blob is not None:
        st.audio(blob.data, format=blob.mime_type, autoplay=True)

    status = message.transcription_status
    if status == TranscriptionStatus.pending:
        st.caption(":gray[:material/radio_button_checked: Transcribing...]")
    elif status == TranscriptionStatus.completed:
        with st.container(border=True):
            st.caption("Transcription:")
            st.write(message.transcription)
    elif status == TranscriptionStatus.failed:
        st.caption(f":red[{message.transcription}]")
