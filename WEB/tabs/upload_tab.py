"""
FileVault Web — Encrypt & Upload Tab
=====================================

Encrypt a file for a recipient's RSA public key and upload the
ciphertext to the storage server.  Only the ciphertext and the wrapped
key leave the browser session.
"""

from __future__ import annotations

import streamlit as st

import vault
from vault_client import encrypt_and_upload

from key_store import forget_public_key, get_public_key, remember_public_key
from utils import get_client, human_file_size


# ---------------------------------------------------------------------------
# Public render function
# ---------------------------------------------------------------------------

def render() -> None:
    """Render the Encrypt & Upload tab."""

    remembered = get_public_key()

    # ---- Recipient key ----
    st.markdown("**Recipient public key** (PEM, or hex / Base64 of SPKI DER)")
    pub_text = st.text_area(
        "Recipient public key",
        value=remembered.encoded if remembered else "",
        height=140,
        placeholder="Paste the recipient's public key here…",
        key="upload_public_key",
        label_visibility="collapsed",
    )

    cols = st.columns([1, 1, 3])
    with cols[0]:
        if st.button("💾 Remember key", key="upload_remember", use_container_width=True):
            try:
                entry = remember_public_key(pub_text)
                st.success(f"Remembered {entry.key_size}-bit key for this session.")
            except vault.KeyImportError as e:
                st.error(f"Invalid public key: {e}")
    with cols[1]:
        if remembered and st.button("Forget", key="upload_forget", use_container_width=True):
            forget_public_key()
            st.rerun()
    if remembered:
        st.caption(f"Session key: {remembered.key_size}-bit · `{remembered.fingerprint}`")

    # ---- File ----
    uploaded = st.file_uploader("Choose a file to encrypt", key="upload_file")
    if uploaded:
        st.caption(f"**{uploaded.name}**  —  {human_file_size(uploaded.size)}")

    st.markdown("---")

    if st.button("🔒 Encrypt & Upload", type="primary", use_container_width=True, key="upload_action"):
        if not uploaded:
            st.error("No file selected.")
            return
        if not pub_text.strip():
            st.error("Provide the recipient public key.")
            return

        try:
            with st.spinner("Encrypting and uploading…"):
                result = encrypt_and_upload(
                    get_client(), uploaded.getvalue(), uploaded.name, pub_text
                )
        except vault.KeyImportError as e:
            st.error(f"Invalid public key: {e}")
        except vault.TransientError as e:
            st.error(f"Storage server unreachable: {e}")
        except vault.VaultError as e:
            st.error(f"Upload failed: {e}")
        else:
            st.success("Upload successful!")
            st.markdown("**File id** — share this with the recipient:")
            st.code(result.id, language=None)
            st.caption(
                f"SHA-256 `{result.digest_hex}` · "
                f"ciphertext {human_file_size(result.ciphertext_size)}"
            )

    with st.expander("Important"):
        st.markdown(
            "• The private key is never saved, here or on the server.  \n"
            "• The server stores only the encrypted blob and its metadata, "
            "including the RSA-wrapped AES key in hex.  \n"
            "• Anyone holding the file id can download the ciphertext; only "
            "the private key holder can decrypt it."
        )
