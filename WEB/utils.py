"""
FileVault Web — Utility Helpers
================================

Shared helpers for file size formatting, download filenames and the
storage client used by every tab.
"""

from __future__ import annotations

import streamlit as st

from vault_client import VaultClient
from vault_settings import Settings


# ---------------------------------------------------------------------------
# Storage client
# ---------------------------------------------------------------------------

@st.cache_resource
def get_settings() -> Settings:
    return Settings.from_env()


def get_client() -> VaultClient:
    """Client for the configured storage server."""
    settings = get_settings()
    return VaultClient(settings.server_url, timeout=settings.request_timeout)


# ---------------------------------------------------------------------------
# Human-readable file size
# ---------------------------------------------------------------------------

def human_file_size(size_bytes: int) -> str:
    """Convert byte count to a human-readable string (e.g. '1.5 MB')."""
    if size_bytes < 0:
        return "0 B"
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(size_bytes) < 1024.0:
            if unit == "B":
                return f"{size_bytes} {unit}"
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0  # type: ignore[assignment]
    return f"{size_bytes:.1f} PB"


# ---------------------------------------------------------------------------
# Download filename helper
# ---------------------------------------------------------------------------

def download_filename(original: str) -> str:
    """
    Filename offered for a decrypted download.

    Uses the stored original name without any directory part; a ``.enc``
    suffix is stripped, and an empty name becomes ``decrypted.file``.
    """
    name = original.replace("\\", "/").rsplit("/", 1)[-1].strip()
    if name.endswith(".enc"):
        name = name[:-4]
    return name or "decrypted.file"
