"""
FileVault — Storage Client
==========================

``requests``-based client for the storage server, plus the two end-to-end
pipelines:

* :func:`encrypt_and_upload`: encrypt locally, then store the ciphertext
* :func:`fetch_and_decrypt`: fetch ciphertext + record, then decrypt locally

Each pipeline is a straight sequence of fallible steps; the first failure
raises and nothing partial is returned.  Private keys never leave this
process.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import requests
from cryptography.hazmat.primitives.asymmetric.rsa import (
    RSAPrivateKey,
    RSAPublicKey,
)

from vault import (
    CodecError,
    InputValidationError,
    KeyInput,
    NotFoundError,
    StorageWriteError,
    TransientError,
    VaultError,
    b64_decode,
    encrypt_envelope,
    open_envelope,
)
from vault_settings import DEFAULT_SERVER_URL, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

METADATA_HEADER = "X-Metadata"


@dataclass(frozen=True)
class UploadResult:
    id: str
    record: Dict[str, Any]
    digest_hex: str
    ciphertext_size: int


@dataclass(frozen=True)
class DecryptedFile:
    id: str
    filename: str
    data: bytes
    record: Dict[str, Any]


class VaultClient:
    """
    Thin HTTP client for the storage server.

    Every request carries *timeout*.  Timeouts and connection failures
    raise :class:`TransientError`; HTTP errors map onto the
    :class:`VaultError` hierarchy.  Nothing is retried here.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_SERVER_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as exc:
            raise TransientError(f"Request to {url} timed out.") from exc
        except requests.exceptions.ConnectionError as exc:
            raise TransientError(f"Could not connect to {url}.") from exc
        except requests.exceptions.RequestException as exc:
            raise TransientError(f"Request to {url} failed: {exc}") from exc

        if response.ok:
            return response
        raise self._error_for(response, method)

    @staticmethod
    def _error_for(response: requests.Response, method: str) -> VaultError:
        try:
            message = response.json().get("error") or response.reason
        except (ValueError, AttributeError):
            message = response.reason or f"HTTP {response.status_code}"
        status = response.status_code
        if status == 404:
            return NotFoundError(message)
        if status in (400, 413):
            return InputValidationError(message)
        if status >= 500 and method == "POST":
            return StorageWriteError(message)
        return TransientError(f"HTTP {status}: {message}")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def upload(
        self,
        ciphertext: bytes,
        filename: str,
        metadata: Dict[str, Any],
    ) -> Tuple[str, Dict[str, Any]]:
        """Store *ciphertext* under a new id; returns ``(id, record)``."""
        files = {"file": (f"{filename}.enc", ciphertext, "application/octet-stream")}
        data = {"metadata": json.dumps(metadata)}
        body = self._request("POST", "/upload", files=files, data=data).json()
        return body["id"], body["metadata"]

    def fetch(self, file_id: str) -> Tuple[bytes, Dict[str, Any]]:
        """
        Download a stored blob.

        Returns ``(ciphertext, record)``; the record is read from the
        ``X-Metadata`` header, not from the body.
        """
        if not file_id or not file_id.strip():
            raise InputValidationError("Provide a file id.")
        quoted = requests.utils.quote(file_id.strip(), safe="")
        response = self._request("GET", f"/file/{quoted}")
        header = response.headers.get(METADATA_HEADER)
        if not header:
            raise InputValidationError("Missing metadata header.")
        try:
            record = json.loads(b64_decode(header).decode("utf-8"))
        except (CodecError, UnicodeDecodeError, ValueError) as exc:
            raise InputValidationError("Undecodable metadata header.") from exc
        if not isinstance(record, dict):
            raise InputValidationError("Undecodable metadata header.")
        return response.content, record

    def list_files(self) -> List[Dict[str, Any]]:
        """Return every metadata record known to the server."""
        return self._request("GET", "/list").json()


# ---------------------------------------------------------------------------
# Pipelines
# ---------------------------------------------------------------------------


def encrypt_and_upload(
    client: VaultClient,
    data: bytes,
    filename: str,
    public_key: Union[KeyInput, RSAPublicKey],
) -> UploadResult:
    """Encrypt *data* for *public_key* and store it; returns the new id."""
    if not filename:
        raise InputValidationError("Provide a filename.")
    envelope = encrypt_envelope(data, public_key)
    metadata = dict(envelope.metadata())
    metadata["filename"] = f"{filename}.enc"
    metadata["originalFilename"] = filename
    file_id, record = client.upload(envelope.ciphertext, filename, metadata)
    logger.info("Uploaded %s (%d bytes ciphertext)", file_id, len(envelope.ciphertext))
    return UploadResult(
        id=file_id,
        record=record,
        digest_hex=metadata["fileHashHex"],
        ciphertext_size=len(envelope.ciphertext),
    )


def fetch_and_decrypt(
    client: VaultClient,
    file_id: str,
    private_key: Union[KeyInput, RSAPrivateKey],
    passphrase: Optional[str] = None,
) -> DecryptedFile:
    """Fetch a stored file and decrypt it; plaintext is returned only after the digest check."""
    ciphertext, record = client.fetch(file_id)
    data = open_envelope(ciphertext, record, private_key, passphrase=passphrase)
    return DecryptedFile(
        id=file_id.strip(),
        filename=str(record.get("originalFilename") or "decrypted.file"),
        data=data,
        record=record,
    )
