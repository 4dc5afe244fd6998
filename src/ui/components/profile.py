"""
Profile tab — backend connection settings and session controls.
"""

import streamlit as st

from src.ui.state import get_chat_session


def render_profile() -> None:
    """Show the backend URL editor and a conversation reset button."""
    st.subheader("Backend")
    st.text_input(
        "Backend API URL",
        key="api_base_url",
        help="Base URL serving /api/send-message and /api/whisper-transcribe. "
        "Changing it starts a new conversation.",
    )

    st.divider()
    st.subheader("Conversation")
    session = get_chat_session()
    st.caption(f"{len(session.store)} message(s) in this session")
    if st.button("Clear conversation", disabled=len(session.store) == 0):
        session.reset()
        st.rerun()
