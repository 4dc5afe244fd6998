"""
VoiceChat Streamlit UI — main entry point.

Run with: ``streamlit run src/ui/app.py``
"""

# ---------------------------------------------------------------------------
# Ensure project root is on sys.path so ``from src.xxx`` imports work.
# Streamlit replaces sys.path[0] with the script directory (src/ui/),
# which removes the project root needed for absolute ``src.*`` imports.
# ---------------------------------------------------------------------------
import sys  # noqa: E402
from pathlib import Path  # noqa: E402

_project_root = str(Path(__file__).resolve().parent.parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

import logging  # noqa: E402

import streamlit as st  # noqa: E402

from src.core.config import get_settings  # noqa: E402

_settings = get_settings()
logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ---------------------------------------------------------------------------
# Page config (must be first Streamlit call)
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="VoiceChat",
    page_icon="\U0001f4ac",
    layout="wide",
)

# ---------------------------------------------------------------------------
# Session state defaults
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "api_base_url": _settings.api_base_url,
}

for key, value in _DEFAULTS.items():
    if key not in st.session_state:
        st.session_state[key] = value

from src.ui.components.chat import render_chat  # noqa: E402
from src.ui.components.documents import render_documents  # noqa: E402
from src.ui.components.profile import render_profile  # noqa: E402
from src.ui.state import sync_chat_session  # noqa: E402

# ---------------------------------------------------------------------------
# Tabs
# ---------------------------------------------------------------------------
_, center, _ = st.columns([1, 3, 1])
with center:
    backend_error = sync_chat_session()
    if backend_error:
        st.error(f"{backend_error}. Fix the URL in the Profile tab.", icon=":material/link_off:")
    chat_tab, documents_tab, profile_tab = st.tabs(["Chat", "Documents", "Profile"])
    with chat_tab:
        render_chat()
    with documents_tab:
        render_documents()
    with profile_tab:
        render_profile()
