"""
FileVault — Web Edition
=======================

Streamlit front-end for sending and receiving encrypted files through the
storage server.

Launch (from the repository root):
    pip install -e .            # once; puts the vault modules on the import path
    filevault-server            # in one terminal
    streamlit run WEB/app.py    # in another
"""

from __future__ import annotations

import streamlit as st

from vault_settings import configure_logging

from utils import get_settings

# ---------------------------------------------------------------------------
# Page config: must be the first Streamlit command
# ---------------------------------------------------------------------------

st.set_page_config(
    page_title="FileVault",
    page_icon="🔒",
    layout="centered",
    initial_sidebar_state="collapsed",
)

configure_logging(get_settings().log_level)

st.markdown(
    """
    <style>
    .stButton > button[kind="primary"] {
        background-color: #e94560;
        border-color: #e94560;
    }
    .stButton > button[kind="primary"]:hover {
        background-color: #d63a54;
        border-color: #d63a54;
    }
    .filevault-header {
        text-align: center;
        padding: 1rem 0 0.5rem 0;
    }
    .filevault-header p {
        color: #a0a0b8;
        font-size: 0.95rem;
    }
    </style>
    """,
    unsafe_allow_html=True,
)

st.markdown(
    """
    <div class="filevault-header">
        <h1>🔒 Secure File Vault</h1>
        <p>RSA-OAEP + AES-256-GCM envelope encryption over an untrusted store</p>
    </div>
    """,
    unsafe_allow_html=True,
)

# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------

with st.sidebar:
    st.markdown("### About")
    st.markdown(
        "Files are encrypted in this session with a one-time AES-256 key, "
        "which is wrapped with the recipient's RSA public key.  The server "
        "only ever holds ciphertext."
    )
    st.markdown("---")
    st.caption(f"Storage server: {get_settings().server_url}")

# ---------------------------------------------------------------------------
# Tabs
# ---------------------------------------------------------------------------

from tabs.upload_tab import render as render_upload  # noqa: E402
from tabs.download_tab import render as render_download  # noqa: E402
from tabs.files_tab import render as render_files  # noqa: E402

tab_upload, tab_download, tab_files = st.tabs(
    ["🔒 Encrypt & Upload", "🔓 Fetch & Decrypt", "📂 Stored Files"]
)

with tab_upload:
    render_upload()

with tab_download:
    render_download()

with tab_files:
    render_files()
