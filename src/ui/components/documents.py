"""
Documents tab — transcripts produced in the current chat session.
"""

import streamlit as st

from src.core.models import TranscriptionStatus
from src.core.utils import format_time
from src.ui.state import get_chat_session


def render_documents() -> None:
    """List every completed voice-message transcript, oldest first."""
    transcripts = [
        m for m in get_chat_session().messages()
        if m.transcription_status == TranscriptionStatus.completed
    ]
    if not transcripts:
        st.info("No transcripts yet. Voice messages appear here once transcribed.")
        return

    st.caption(f"{len(transcripts)} transcript(s)")
    for msg in transcripts:
        with st.container(border=True):
            st.markdown(f"**{format_time(msg.timestamp)}**")
            st.write(msg.transcription)

    combined = "\n\n".join(f"[{format_time(m.timestamp)}] {m.transcription}" for m in transcripts)
    st.download_button(
        "Download transcripts",
        data=combined,
        file_name="transcripts.txt",
        mime="text/plain",
    )
