"""
FileVault Envelope Engine
=========================

Hybrid envelope encryption for files handed to an untrusted store:

- RSA-OAEP (SHA-256 / MGF1-SHA-256) wrapping of a one-time AES key
- AES-256-GCM authenticated encryption of ``file || SHA-256(file)``
- SHA-256 re-verification of the plaintext after decryption

Uses the ``cryptography`` library exclusively.

Envelope layout
---------------
::

    payload    = file bytes || SHA-256(file bytes)      (32-byte suffix)
    ciphertext = AES-256-GCM(K, N, payload)            (payload + 16-byte tag)
    wrappedKey = RSA-OAEP(recipient public key, K)     (modulus-sized)

    K : 32 random bytes, fresh per envelope, never stored in clear
    N : 12 random bytes, fresh per envelope, public

The ciphertext travels as the stored blob; ``wrappedKey``, ``N`` and the
digest travel as hex strings in the file's metadata record.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os
import re
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Union

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.asymmetric.rsa import (
    RSAPrivateKey,
    RSAPublicKey,
)
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

KEY_SIZE: int = 32      # AES-256
NONCE_SIZE: int = 12    # AES-GCM recommended nonce
TAG_SIZE: int = 16      # GCM authentication tag
DIGEST_SIZE: int = 32   # SHA-256
MIN_RSA_BITS: int = 2048

_HEX_RE = re.compile(r"\A[0-9a-fA-F]*\Z")

KeyInput = Union[bytes, bytearray, str]

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class VaultError(Exception):
    """Base exception for all FileVault errors."""

    transient: bool = False


class InputValidationError(VaultError):
    """Missing or malformed input (key material, id, metadata field)."""


class CodecError(InputValidationError):
    """Hex or Base64 text could not be decoded."""


class KeyImportError(VaultError):
    """Key encoding is malformed or is not an RSA key of usable size."""


class CryptoOperationError(VaultError):
    """A cryptographic primitive failed unexpectedly."""


class DecryptionError(VaultError):
    """Base class for failures on the decrypt path."""


class UnwrapError(DecryptionError):
    """The wrapped key could not be recovered with the given private key."""


class AuthenticationError(DecryptionError):
    """AES-GCM tag verification failed: tampered data, wrong key or nonce."""


class MalformedPayloadError(DecryptionError):
    """Decrypted payload is too short to carry the digest suffix."""


class IntegrityError(DecryptionError):
    """Embedded SHA-256 digest does not match the decrypted file."""


class NotFoundError(VaultError):
    """No stored file exists for the given id."""


class StorageWriteError(VaultError):
    """A blob or metadata record could not be persisted."""


class TransientError(VaultError):
    """Network timeout or connection failure; the caller may retry."""

    transient = True


# ---------------------------------------------------------------------------
# Transport codec
# ---------------------------------------------------------------------------


def hex_encode(data: bytes) -> str:
    """Encode bytes as lowercase hex, two digits per byte, no separators."""
    return bytes(data).hex()


def hex_decode(text: str) -> bytes:
    """
    Decode hex text to bytes.

    Raises
    ------
    CodecError
        If *text* has odd length or contains anything but hex digits
        (whitespace included).
    """
    if not isinstance(text, str):
        raise CodecError("Hex input must be a string.")
    if len(text) % 2:
        raise CodecError(f"Hex input has odd length ({len(text)}).")
    if not _HEX_RE.match(text):
        raise CodecError("Hex input contains non-hex characters.")
    return binascii.unhexlify(text)


def b64_encode(data: bytes) -> str:
    """Encode bytes as standard, padded Base64."""
    return base64.b64encode(bytes(data)).decode("ascii")


def b64_decode(text: Union[str, bytes]) -> bytes:
    """Decode standard, padded Base64; anything outside the alphabet is rejected."""
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CodecError("Invalid Base64 encoding.") from exc


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------


def _key_bytes(encoded: KeyInput) -> tuple[bytes, bool]:
    """
    Normalise a key encoding to ``(raw, is_pem)``.

    Text that is not PEM is read as hex of the DER form when it is valid
    hex, otherwise as Base64 of the DER form.
    """
    if isinstance(encoded, (bytes, bytearray)):
        raw = bytes(encoded)
        return raw, raw.lstrip().startswith(b"-----BEGIN")
    if not isinstance(encoded, str):
        raise KeyImportError("Key must be bytes or text.")

    text = encoded.strip()
    if not text:
        raise KeyImportError("Key material is empty.")
    if text.startswith("-----BEGIN"):
        return text.encode("utf-8"), True

    compact = "".join(text.split())
    try:
        if _HEX_RE.match(compact):
            return hex_decode(compact), False
        return b64_decode(compact), False
    except CodecError as exc:
        raise KeyImportError("Key text is neither PEM, hex nor Base64.") from exc


def load_public_key(encoded: Union[KeyInput, RSAPublicKey]) -> RSAPublicKey:
    """
    Load an RSA public key (SubjectPublicKeyInfo).

    Accepts an ``RSAPublicKey``, DER or PEM bytes, or text holding PEM,
    hex-of-DER or Base64-of-DER.
    """
    if isinstance(encoded, RSAPublicKey):
        key = encoded
    else:
        raw, is_pem = _key_bytes(encoded)
        try:
            if is_pem:
                key = serialization.load_pem_public_key(raw)
            else:
                key = serialization.load_der_public_key(raw)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise KeyImportError("Could not parse public key.") from exc
    if not isinstance(key, RSAPublicKey):
        raise KeyImportError("Key is not an RSA public key.")
    if key.key_size < MIN_RSA_BITS:
        raise KeyImportError(
            f"RSA key must be at least {MIN_RSA_BITS} bits (got {key.key_size})."
        )
    return key


def load_private_key(
    encoded: Union[KeyInput, RSAPrivateKey],
    passphrase: Optional[str] = None,
) -> RSAPrivateKey:
    """
    Load an RSA private key (PKCS#8, optionally passphrase-protected).

    Accepts the same encodings as :func:`load_public_key`.
    """
    if isinstance(encoded, RSAPrivateKey):
        key = encoded
    else:
        raw, is_pem = _key_bytes(encoded)
        pwd = passphrase.encode("utf-8") if passphrase else None
        try:
            if is_pem:
                key = serialization.load_pem_private_key(raw, password=pwd)
            else:
                key = serialization.load_der_private_key(raw, password=pwd)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise KeyImportError("Could not parse private key.") from exc
    if not isinstance(key, RSAPrivateKey):
        raise KeyImportError("Key is not an RSA private key.")
    return key


def generate_key() -> bytes:
    """Generate a fresh random 256-bit AES key."""
    return AESGCM.generate_key(bit_length=KEY_SIZE * 8)


def generate_nonce() -> bytes:
    """Generate a fresh random 96-bit AES-GCM nonce."""
    return os.urandom(NONCE_SIZE)


def sha256(data: bytes) -> bytes:
    """Return the 32-byte SHA-256 digest of *data*."""
    return hashlib.sha256(data).digest()


def _oaep() -> asym_padding.OAEP:
    return asym_padding.OAEP(
        mgf=asym_padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EncryptedEnvelope:
    """Output of :func:`encrypt_envelope`."""

    ciphertext: bytes
    wrapped_key: bytes
    nonce: bytes
    digest: bytes

    def metadata(self) -> Dict[str, str]:
        """Metadata fields carried beside the ciphertext in the store."""
        return {
            "wrappedKeyHex": hex_encode(self.wrapped_key),
            "ivHex": hex_encode(self.nonce),
            "fileHashHex": hex_encode(self.digest),
        }


def _require_bytes(value, name: str) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise InputValidationError(f"{name} must be bytes.")
    return bytes(value)


def encrypt_envelope(
    plaintext: bytes,
    public_key: Union[KeyInput, RSAPublicKey],
) -> EncryptedEnvelope:
    """
    Encrypt *plaintext* for the holder of *public_key*.

    A new AES key and nonce are drawn on every call, so no (key, nonce)
    pair is ever used twice.  Empty input is valid.

    Raises
    ------
    KeyImportError
        If *public_key* cannot be loaded.
    CryptoOperationError
        If AES-GCM or RSA-OAEP fails.
    """
    plaintext = _require_bytes(plaintext, "Plaintext")
    pub = load_public_key(public_key)

    digest = sha256(plaintext)
    payload = plaintext + digest
    aes_key = generate_key()
    nonce = generate_nonce()
    try:
        ciphertext = AESGCM(aes_key).encrypt(nonce, payload, None)
        wrapped_key = pub.encrypt(aes_key, _oaep())
    except (ValueError, OverflowError) as exc:
        raise CryptoOperationError(f"Envelope encryption failed: {exc}") from exc
    finally:
        del aes_key

    return EncryptedEnvelope(
        ciphertext=ciphertext,
        wrapped_key=wrapped_key,
        nonce=nonce,
        digest=digest,
    )


def decrypt_envelope(
    ciphertext: bytes,
    wrapped_key: bytes,
    nonce: bytes,
    private_key: Union[KeyInput, RSAPrivateKey],
    passphrase: Optional[str] = None,
) -> bytes:
    """
    Decrypt an envelope produced by :func:`encrypt_envelope`.

    Steps run in order and stop at the first failure: unwrap the AES key,
    verify and decrypt the payload, check its length, then compare the
    embedded SHA-256 digest with a fresh one.  Only the file bytes are
    returned; the digest suffix is stripped.

    Raises
    ------
    UnwrapError
        Wrong private key or corrupted wrapped key.  The message is the
        same whatever the cause.
    AuthenticationError
        GCM tag check failed; no plaintext is released.
    MalformedPayloadError
        Payload shorter than the digest.
    IntegrityError
        Embedded digest does not match the file.
    """
    ciphertext = _require_bytes(ciphertext, "Ciphertext")
    wrapped_key = _require_bytes(wrapped_key, "Wrapped key")
    nonce = _require_bytes(nonce, "Nonce")
    if len(nonce) != NONCE_SIZE:
        raise InputValidationError(
            f"Nonce must be exactly {NONCE_SIZE} bytes (got {len(nonce)})."
        )
    priv = load_private_key(private_key, passphrase=passphrase)

    try:
        aes_key = priv.decrypt(wrapped_key, _oaep())
    except ValueError:
        raise UnwrapError("Could not unwrap the file key.") from None
    if len(aes_key) != KEY_SIZE:
        raise UnwrapError("Could not unwrap the file key.")

    try:
        payload = AESGCM(aes_key).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        raise AuthenticationError(
            "Authentication failed: ciphertext, key or nonce was altered."
        ) from None
    finally:
        del aes_key

    if len(payload) < DIGEST_SIZE:
        raise MalformedPayloadError(
            f"Decrypted payload too small ({len(payload)} bytes)."
        )

    data = payload[:-DIGEST_SIZE]
    claimed = payload[-DIGEST_SIZE:]
    # Second check on top of the GCM tag.
    if not hmac.compare_digest(sha256(data), claimed):
        raise IntegrityError("Hash verification failed: file integrity compromised.")
    return data


def _field(record: Mapping[str, object], name: str) -> str:
    value = record.get(name)
    if not isinstance(value, str) or not value:
        raise InputValidationError(f"Metadata field '{name}' is missing.")
    return value


def open_envelope(
    ciphertext: bytes,
    record: Mapping[str, object],
    private_key: Union[KeyInput, RSAPrivateKey],
    passphrase: Optional[str] = None,
) -> bytes:
    """Decrypt a stored blob using the hex fields of its metadata record."""
    wrapped_key = hex_decode(_field(record, "wrappedKeyHex"))
    nonce = hex_decode(_field(record, "ivHex"))
    return decrypt_envelope(
        ciphertext, wrapped_key, nonce, private_key, passphrase=passphrase
    )
