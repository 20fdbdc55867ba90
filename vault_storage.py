"""
FileVault — Blob Store
======================

Opaque filesystem store for encrypted blobs and their metadata records.

Layout under the store root::

    uploads/<id>_<filename>     ciphertext blob, never parsed
    metadata/<id>.json          metadata record

Publication is two ``os.replace`` calls: the blob first, then the record.
The record is what makes an id visible, so a reader that finds a record
always finds a complete blob behind it.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from werkzeug.utils import secure_filename

from vault import (
    DIGEST_SIZE,
    NONCE_SIZE,
    CodecError,
    InputValidationError,
    NotFoundError,
    StorageWriteError,
    hex_decode,
)

logger = logging.getLogger(__name__)

UPLOADS_DIRNAME = "uploads"
METADATA_DIRNAME = "metadata"
RESERVED_FIELDS = ("id", "originalFilename", "storedName", "uploadTimestamp")

_ID_RE = re.compile(r"\A[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}\Z")
_TMP_PREFIX = ".tmp-"
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")


@dataclass(frozen=True)
class StoredFile:
    """Result of :meth:`FileStore.store`."""

    id: str
    record: Dict[str, Any]


def is_valid_id(file_id: str) -> bool:
    """True if *file_id* has the shape of an id issued by the store."""
    return isinstance(file_id, str) and bool(_ID_RE.match(file_id))


def validate_metadata(metadata: Mapping[str, Any]) -> None:
    """
    Check the envelope fields a caller must supply with a blob.

    Raises
    ------
    InputValidationError
        If a field is missing, not hex, or has the wrong decoded length.
    """
    if not isinstance(metadata, Mapping):
        raise InputValidationError("Metadata must be a JSON object.")
    expected = {
        "wrappedKeyHex": None,
        "ivHex": NONCE_SIZE,
        "fileHashHex": DIGEST_SIZE,
    }
    for name, size in expected.items():
        value = metadata.get(name)
        if not isinstance(value, str) or not value:
            raise InputValidationError(f"Metadata field '{name}' is missing.")
        try:
            raw = hex_decode(value)
        except CodecError as exc:
            raise InputValidationError(f"Metadata field '{name}': {exc}") from exc
        if size is not None and len(raw) != size:
            raise InputValidationError(
                f"Metadata field '{name}' must encode {size} bytes (got {len(raw)})."
            )


class FileStore:
    """
    Store-by-generated-id blob store with one JSON record per blob.

    The store never opens, parses or decrypts a blob.  Directories are
    created on first use.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.uploads_dir = self.root / UPLOADS_DIRNAME
        self.metadata_dir = self.root / METADATA_DIRNAME

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _ensure_dirs(self) -> None:
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.metadata_dir.mkdir(parents=True, exist_ok=True)

    def _record_path(self, file_id: str) -> Path:
        return self.metadata_dir / f"{file_id}.json"

    def _new_id(self) -> str:
        while True:
            file_id = str(uuid.uuid4())
            if not self._record_path(file_id).exists():
                return file_id

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    def store(
        self,
        blob: bytes,
        original_filename: str,
        metadata: Mapping[str, Any],
    ) -> StoredFile:
        """
        Persist *blob* with a metadata record and return its new id.

        The record is *metadata* merged with ``id``, ``originalFilename``,
        ``storedName`` and ``uploadTimestamp``; those four are always set
        by the store.

        Raises
        ------
        InputValidationError
            If the blob is not bytes, the filename is blank or holds control
            characters, or the metadata is incomplete or not JSON-serialisable.
        StorageWriteError
            If anything fails on disk.  Nothing is left published.
        """
        if not isinstance(blob, (bytes, bytearray, memoryview)):
            raise InputValidationError("Blob must be bytes.")
        if not isinstance(original_filename, str) or not original_filename.strip():
            raise InputValidationError("Original filename is required.")
        if _CONTROL_RE.search(original_filename):
            raise InputValidationError("Original filename contains control characters.")
        validate_metadata(metadata)

        try:
            self._ensure_dirs()
        except OSError as exc:
            raise StorageWriteError(f"Cannot create storage directories: {exc}") from exc

        file_id = self._new_id()
        stored_name = f"{file_id}_{secure_filename(original_filename) or 'blob'}"
        record: Dict[str, Any] = dict(metadata)
        record.update(
            id=file_id,
            originalFilename=original_filename,
            storedName=stored_name,
            uploadTimestamp=datetime.now(timezone.utc).isoformat(),
        )

        blob_path = self.uploads_dir / stored_name
        record_path = self._record_path(file_id)
        try:
            record_bytes = json.dumps(record, indent=2).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise InputValidationError(f"Metadata is not JSON-serialisable: {exc}") from exc

        tmp_blob: Optional[str] = None
        tmp_record: Optional[str] = None
        blob_published = False
        try:
            tmp_blob = _write_temp(self.uploads_dir, bytes(blob))
            tmp_record = _write_temp(self.metadata_dir, record_bytes)
            os.replace(tmp_blob, blob_path)
            tmp_blob = None
            blob_published = True
            os.replace(tmp_record, record_path)
            tmp_record = None
        except OSError as exc:
            logger.error("Store failed for %s: %s", file_id, exc)
            for leftover in (tmp_blob, tmp_record):
                if leftover:
                    _unlink_quietly(Path(leftover))
            if blob_published:
                _unlink_quietly(blob_path)
            raise StorageWriteError(f"Could not store file: {exc}") from exc

        logger.info("Stored %s (%d bytes) as %s", file_id, len(blob), stored_name)
        return StoredFile(id=file_id, record=record)

    # ------------------------------------------------------------------
    # Retrieve / list
    # ------------------------------------------------------------------

    def _load_record(self, path: Path) -> Dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            record = json.load(f)
        if not isinstance(record, dict):
            raise ValueError("record is not a JSON object")
        return record

    def get_record(self, file_id: str) -> Dict[str, Any]:
        """
        Return the metadata record for *file_id* without reading the blob.

        Raises
        ------
        InputValidationError
            If *file_id* is not a store-issued id.
        NotFoundError
            If no readable record exists.
        """
        if not is_valid_id(file_id):
            raise InputValidationError("Malformed file id.")
        path = self._record_path(file_id)
        try:
            return self._load_record(path)
        except FileNotFoundError:
            raise NotFoundError("Metadata not found") from None
        except (OSError, ValueError) as exc:
            logger.error("Unreadable metadata record %s: %s", file_id, exc)
            raise NotFoundError("Metadata not found") from exc

    def retrieve(self, file_id: str) -> Tuple[bytes, Dict[str, Any]]:
        """
        Return ``(blob, record)`` for *file_id*.

        A record whose blob has vanished is reported as not found and
        logged as data loss.
        """
        record = self.get_record(file_id)
        stored_name = record.get("storedName")
        if not isinstance(stored_name, str) or os.path.basename(stored_name) != stored_name:
            logger.error("Record %s has an invalid storedName %r", file_id, stored_name)
            raise NotFoundError("File missing")
        try:
            blob = (self.uploads_dir / stored_name).read_bytes()
        except FileNotFoundError:
            logger.error("Data loss: blob %s for record %s is missing", stored_name, file_id)
            raise NotFoundError("File missing") from None
        logger.info("Retrieved %s (%d bytes)", file_id, len(blob))
        return blob, record

    def exists(self, file_id: str) -> bool:
        return is_valid_id(file_id) and self._record_path(file_id).is_file()

    def list(self) -> List[Dict[str, Any]]:
        """
        Return every readable metadata record, oldest first.

        Not paginated; meant for small or administrative listings.
        """
        if not self.metadata_dir.is_dir():
            return []
        records = []
        for path in self.metadata_dir.glob("*.json"):
            if path.name.startswith(_TMP_PREFIX):
                continue
            try:
                records.append(self._load_record(path))
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable record %s: %s", path.name, exc)
        records.sort(key=lambda r: str(r.get("uploadTimestamp", "")))
        return records


# ---------------------------------------------------------------------------
# File helpers (module-private)
# ---------------------------------------------------------------------------


def _write_temp(directory: Path, data: bytes) -> str:
    fd, tmp_path = tempfile.mkstemp(prefix=_TMP_PREFIX, dir=directory)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except OSError:
        _unlink_quietly(Path(tmp_path))
        raise
    return tmp_path


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove %s: %s", path, exc)
