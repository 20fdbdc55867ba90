"""
FileVault Web — Session-State Recipient Key
============================================

Remember the recipient's RSA **public** key for the current browser
session, in ``st.session_state`` only.  The key is handed to the
encryptor explicitly; nothing here is persisted or sent to the server.
Private keys are never stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import streamlit as st
from cryptography.hazmat.primitives import hashes, serialization

import vault

_RECIPIENT_KEY = "filevault_recipient_key"


@dataclass
class RecipientKey:
    """A remembered recipient public key."""
    encoded: str       # exactly as pasted (PEM, hex or Base64 of DER)
    key_size: int
    fingerprint: str   # first 16 bytes of SHA-256 over the DER SubjectPublicKeyInfo, colon-separated hex
    saved: str


def fingerprint(public_key) -> str:
    """Truncated SHA-256 fingerprint of an RSA public key (16 bytes, colon-separated hex)."""
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    digest = hashes.Hash(hashes.SHA256())
    digest.update(der)
    return ":".join(f"{b:02x}" for b in digest.finalize()[:16])


def remember_public_key(encoded: str) -> RecipientKey:
    """
    Validate and remember a recipient public key for this session.

    Raises
    ------
    vault.KeyImportError
        If *encoded* is not a usable RSA public key.
    """
    pub = vault.load_public_key(encoded)
    entry = RecipientKey(
        encoded=encoded.strip(),
        key_size=pub.key_size,
        fingerprint=fingerprint(pub),
        saved=datetime.now(timezone.utc).isoformat(),
    )
    st.session_state[_RECIPIENT_KEY] = entry
    return entry


def get_public_key() -> Optional[RecipientKey]:
    return st.session_state.get(_RECIPIENT_KEY)


def forget_public_key() -> bool:
    """Drop the remembered key. Returns True if one was stored."""
    return st.session_state.pop(_RECIPIENT_KEY, None) is not None
