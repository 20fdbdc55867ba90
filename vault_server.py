"""
FileVault — Storage Server
==========================

Flask front-end for :class:`vault_storage.FileStore`.

The server only stores and returns ciphertext.  It never sees a private
key or an unwrapped AES key, and never decrypts anything.

Routes::

    POST /upload      multipart "file" + "metadata" (JSON)  -> {message, id, metadata}
    GET  /file/<id>   ciphertext body, record in X-Metadata (Base64 JSON)
    GET  /list        JSON array of records

Launch:
    filevault-server
"""

from __future__ import annotations

import json
import logging
import re
from typing import Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import RequestEntityTooLarge

from vault import (
    InputValidationError,
    NotFoundError,
    StorageWriteError,
    VaultError,
    b64_encode,
)
from vault_settings import Settings, configure_logging
from vault_storage import FileStore

logger = logging.getLogger(__name__)

METADATA_HEADER = "X-Metadata"

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")

_STATUS = {
    InputValidationError: 400,
    NotFoundError: 404,
    StorageWriteError: 500,
}


def _error(message: str, status: int, kind: str):
    return jsonify({"error": message, "kind": kind}), status


def _download_name(record) -> str:
    name = _CONTROL_RE.sub("", str(record.get("originalFilename") or "")).strip()
    return name or "download.bin"


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[FileStore] = None,
) -> Flask:
    """
    Build the storage application.

    Parameters
    ----------
    settings : Settings, optional
        Defaults to :meth:`Settings.from_env`.
    store : FileStore, optional
        Defaults to a store rooted at ``settings.storage_dir``.
    """
    settings = settings or Settings.from_env()
    store = store or FileStore(settings.storage_dir)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_bytes
    app.extensions["filevault_store"] = store

    # ------------------------------------------------------------------
    # Error handling & request log
    # ------------------------------------------------------------------

    @app.errorhandler(VaultError)
    def handle_vault_error(exc: VaultError):
        for cls, status in _STATUS.items():
            if isinstance(exc, cls):
                break
        else:
            status = 500
        return _error(str(exc), status, type(exc).__name__)

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(exc):
        return _error("Upload too large", 413, "InputValidationError")

    @app.after_request
    def log_request(response):
        logger.info("%s %s -> %s", request.method, request.path, response.status_code)
        return response

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    @app.post("/upload")
    def upload():
        uploaded = request.files.get("file")
        if uploaded is None:
            return _error("No file received", 400, "InputValidationError")

        raw_meta = request.form.get("metadata", "")
        metadata = {}
        if raw_meta:
            try:
                metadata = json.loads(raw_meta)
            except ValueError:
                return _error("Invalid metadata JSON", 400, "InputValidationError")
            if not isinstance(metadata, dict):
                return _error("Invalid metadata JSON", 400, "InputValidationError")

        original = metadata.get("originalFilename") or uploaded.filename or "upload.bin"
        blob = uploaded.read()
        stored = store.store(blob, str(original), metadata)
        return jsonify(
            {"message": "File uploaded successfully", "id": stored.id, "metadata": stored.record}
        )

    @app.get("/file/<file_id>")
    def download(file_id: str):
        blob, record = store.retrieve(file_id)
        header = b64_encode(json.dumps(record).encode("utf-8"))
        response = app.response_class(blob, mimetype="application/octet-stream")
        response.headers[METADATA_HEADER] = header
        response.headers.set(
            "Content-Disposition",
            "attachment",
            filename=_download_name(record),
        )
        return response

    @app.get("/list")
    def list_files():
        return jsonify(store.list())

    return app


def main() -> None:
    """Console entry point: run the storage server."""
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    app = create_app(settings)
    logger.info("Storage root: %s", settings.storage_dir.resolve())
    app.run(host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
