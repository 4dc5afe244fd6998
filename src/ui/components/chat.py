"""
Chat component — message list, voice recorder, and input bar.

Recorder states: idle -> recording -> idle. While recording, the browser
records through ``st.audio_input``; the finished upload goes to the chat
session, which shows it at once as "Transcribing..." and patches in the
transcript when the backend answers.
"""

import logging

import streamlit as st

from src.core.config import get_settings
from src.core.exceptions import VoiceChatError
from src.services.chat import ChatSession
from src.ui.components.message_bubble import render_message
from src.ui.state import get_chat_session, get_recorder

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Callbacks (run before the script body on the next rerun)
# ---------------------------------------------------------------------------


def _send_draft() -> None:
    draft = st.session_state.get("chat_draft") or ""
    get_chat_session().send_text(draft)


def _toggle_recording() -> None:
    recorder = get_recorder()
    if recorder.is_recording:
        if recorder.captures_locally:
            recorder.stop()
        else:
            recorder.cancel()
        return
    try:
        recorder.start()
    except VoiceChatError as exc:
        st.session_state.chat_error = exc.detail


def _voice_input_key() -> str:
    return f"voice_input_{st.session_state.get('voice_input_round', 0)}"


def _submit_voice_upload(key: str) -> None:
    upload = st.session_state.get(key)
    if upload is None:
        return
    get_recorder().accept_upload(upload.getvalue(), upload.type)
    # A fresh widget key clears the recorded clip from the input
    st.session_state.voice_input_round = st.session_state.get("voice_input_round", 0) + 1


def _toggle_playback(message_id: int, source_uri: str) -> None:
    playback = get_chat_session().playback
    try:
        playback.toggle_playback(message_id, source_uri)
    except VoiceChatError as exc:
        st.session_state.playback_error = exc.detail


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _needs_refresh(session: ChatSession) -> bool:
    """True while a send is in flight or a clip is playing."""
    playing = session.playback.playing_id if session.playback else None
    return session.has_pending or playing is not None


def _render_message_list() -> None:
    """Message bubbles; re-run on a timer while background work is outstanding."""
    session = get_chat_session()
    if session.playback is not None:
        session.playback.poll()

    # Play buttons only rerun this fragment, so their errors are shown here
    error = st.session_state.pop("playback_error", None)
    if error:
        st.error(error)

    messages = session.messages()
    if not messages:
        st.caption("No messages yet. Type below or record a voice message.")
    else:
        playing = session.playback.playing_id if session.playback else None
        play_in_browser = get_settings().audio_backend == "browser"
        for msg in messages:
            render_message(
                msg,
                is_playing=playing == msg.id,
                on_toggle_playback=_toggle_playback,
                play_in_browser=play_in_browser,
            )

    if _needs_refresh(session) != st.session_state.get("chat_polling", False):
        # The timer is fixed when the fragment is registered; re-register it
        st.rerun(scope="app")


def render_chat() -> None:
    """Render the full chat tab based on current session state."""
    recorder = get_recorder()
    session = get_chat_session()

    error = st.session_state.pop("chat_error", None)
    if error:
        st.error(error)

    if session.playback is not None:
        session.playback.poll()
    polling = _needs_refresh(session)
    st.session_state.chat_polling = polling
    with st.container(height=520):
        st.fragment(
            _render_message_list,
            run_every=get_settings().poll_interval if polling else None,
        )()

    if recorder.is_recording:
        if recorder.captures_locally:
            st.error(":material/radio_button_checked: Recording...", icon=":material/mic:")
        else:
            key = _voice_input_key()
            st.audio_input(
                "Record a voice message",
                key=key,
                on_change=_submit_voice_upload,
                args=(key,),
            )

    if not recorder.is_recording:
        icon, help_text = ":material/mic:", "Record a voice message"
    elif recorder.captures_locally:
        icon, help_text = ":material/stop:", "Stop recording"
    else:
        icon, help_text = ":material/close:", "Close the recorder"

    col_mic, col_input = st.columns([1, 12], vertical_alignment="center")
    with col_mic:
        st.button(
            "",
            key="mic_toggle",
            icon=icon,
            type="primary" if recorder.is_recording else "secondary",
            on_click=_toggle_recording,
            help=help_text,
        )
    with col_input:
        st.chat_input("Type a message...", key="chat_draft", on_submit=_send_draft)
