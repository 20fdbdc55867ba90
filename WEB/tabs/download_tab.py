"""
FileVault Web — Fetch & Decrypt Tab
====================================

Fetch a stored ciphertext by id and decrypt it with the recipient's RSA
private key.  The key lives only in the widget for this run.
"""

from __future__ import annotations

import streamlit as st

import vault
from vault_client import fetch_and_decrypt

from utils import download_filename, get_client, human_file_size


def render() -> None:
    """Render the Fetch & Decrypt tab."""

    file_id = st.text_input("File id", placeholder="e.g. 3f2b…", key="download_file_id")
    priv_text = st.text_area(
        "Private key (PEM, or hex / Base64 of PKCS#8 DER)",
        height=140,
        placeholder="Paste your private key here…",
        key="download_private_key",
    )
    passphrase = st.text_input(
        "Key passphrase (if the PEM is encrypted)",
        type="password",
        key="download_passphrase",
    )

    st.markdown("---")

    if not st.button("🔓 Fetch & Decrypt", type="primary", use_container_width=True, key="download_action"):
        return
    if not file_id.strip():
        st.error("Provide file id.")
        return
    if not priv_text.strip():
        st.error("Provide private key.")
        return

    try:
        with st.spinner("Fetching and decrypting…"):
            result = fetch_and_decrypt(
                get_client(), file_id, priv_text, passphrase=passphrase or None
            )
    except vault.NotFoundError:
        st.error("No file with that id.")
    except vault.KeyImportError as e:
        st.error(f"Invalid private key: {e}")
    except vault.UnwrapError:
        st.error("This private key cannot open the file.")
    except vault.AuthenticationError:
        st.error("Authentication failed — the stored file was altered.")
    except vault.IntegrityError:
        st.error("Hash verification failed — file integrity compromised!")
    except vault.TransientError as e:
        st.error(f"Storage server unreachable: {e}")
    except vault.VaultError as e:
        st.error(f"Error: {e}")
    else:
        name = download_filename(result.filename)
        st.success(
            f"Integrity verified.  {name} ({human_file_size(len(result.data))})"
        )
        st.download_button(
            f"📥 Download {name}",
            data=result.data,
            file_name=name,
            mime="application/octet-stream",
            key="download_result",
        )
