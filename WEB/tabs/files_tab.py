"""
FileVault Web — Stored Files Tab
=================================

Administrative listing of every metadata record on the server.
"""

from __future__ import annotations

import streamlit as st

import vault

from utils import get_client


def render() -> None:
    """Render the Stored Files tab."""

    if not st.button("🔄 Refresh", key="files_refresh"):
        st.caption("Press refresh to load the file list from the server.")
        return

    try:
        records = get_client().list_files()
    except vault.VaultError as e:
        st.error(f"Could not list files: {e}")
        return

    if not records:
        st.info("No files stored yet.")
        return

    st.caption(f"{len(records)} file(s) stored")
    rows = [
        {
            "id": r.get("id", ""),
            "file": r.get("originalFilename", ""),
            "uploaded": r.get("uploadTimestamp", ""),
            "sha-256": r.get("fileHashHex", ""),
        }
        for r in records
    ]
    st.dataframe(rows, use_container_width=True, hide_index=True)
