"""
FileVault — Settings
====================

Runtime configuration read from environment variables, plus the shared
console logging setup used by the server and the web front-end.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from vault import InputValidationError

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_STORAGE_DIR = "vault_data"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 4000
DEFAULT_SERVER_URL = "http://localhost:4000"
DEFAULT_TIMEOUT = 30.0           # seconds, per HTTP call
DEFAULT_MAX_UPLOAD_MB = 100
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


@dataclass(frozen=True)
class Settings:
    """Configuration shared by the storage server and its clients."""

    storage_dir: Path = Path(DEFAULT_STORAGE_DIR)
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    server_url: str = DEFAULT_SERVER_URL
    request_timeout: float = DEFAULT_TIMEOUT
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_MB * 1024 * 1024
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Parameters
        ----------
        environ : mapping, optional
            Defaults to ``os.environ``.

        Raises
        ------
        InputValidationError
            If a numeric variable cannot be parsed or is not positive.
        """
        env = os.environ if environ is None else environ
        return cls(
            storage_dir=Path(env.get("FILEVAULT_STORAGE_DIR", DEFAULT_STORAGE_DIR)),
            host=env.get("FILEVAULT_HOST", DEFAULT_HOST),
            port=_positive(env, "PORT", DEFAULT_PORT, int),
            server_url=env.get("FILEVAULT_SERVER_URL", DEFAULT_SERVER_URL).rstrip("/"),
            request_timeout=_positive(env, "FILEVAULT_TIMEOUT", DEFAULT_TIMEOUT, float),
            max_upload_bytes=_positive(
                env, "FILEVAULT_MAX_UPLOAD_MB", DEFAULT_MAX_UPLOAD_MB, int
            ) * 1024 * 1024,
            log_level=check_log_level(env.get("FILEVAULT_LOG_LEVEL", DEFAULT_LOG_LEVEL)),
        )


def _positive(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError as exc:
        raise InputValidationError(f"{name} must be a number (got {raw!r}).") from exc
    if not math.isfinite(value):
        raise InputValidationError(f"{name} must be finite (got {raw!r}).")
    if value <= 0:
        raise InputValidationError(f"{name} must be positive (got {raw!r}).")
    return value


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def check_log_level(level: str) -> str:
    """Return *level* upper-cased; unknown level names raise InputValidationError."""
    name = str(level).strip().upper()
    if not isinstance(logging.getLevelName(name), int):
        raise InputValidationError(f"Unknown log level {level!r}.")
    return name


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Attach one console handler to the root logger (idempotent)."""
    level = check_log_level(level)
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if getattr(handler, "_filevault", False):
            handler.setLevel(level)
            return
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._filevault = True  # type: ignore[attr-defined]
    root.addHandler(handler)
