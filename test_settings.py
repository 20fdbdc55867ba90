import logging
from pathlib import Path

import pytest

import vault
from vault_settings import Settings, configure_logging


def test_defaults():
    s = Settings.from_env({})
    assert s.storage_dir == Path("vault_data")
    assert s.port == 4000
    assert s.server_url == "http://localhost:4000"
    assert s.request_timeout == 30.0
    assert s.max_upload_bytes == 100 * 1024 * 1024
    assert s.log_level == "INFO"


def test_overrides():
    s = Settings.from_env({
        "FILEVAULT_STORAGE_DIR": "/srv/vault",
        "FILEVAULT_HOST": "0.0.0.0",
        "PORT": "8080",
        "FILEVAULT_SERVER_URL": "https://vault.example/",
        "FILEVAULT_TIMEOUT": "2.5",
        "FILEVAULT_MAX_UPLOAD_MB": "5",
        "FILEVAULT_LOG_LEVEL": "debug",
    })
    assert s.storage_dir == Path("/srv/vault")
    assert s.host == "0.0.0.0"
    assert s.port == 8080
    assert s.server_url == "https://vault.example"
    assert s.request_timeout == 2.5
    assert s.max_upload_bytes == 5 * 1024 * 1024
    assert s.log_level == "DEBUG"


@pytest.mark.parametrize(
    "env",
    [
        {"PORT": "http"},
        {"PORT": "0"},
        {"FILEVAULT_TIMEOUT": "-1"},
        {"FILEVAULT_TIMEOUT": "nan"},
        {"FILEVAULT_TIMEOUT": "inf"},
        {"FILEVAULT_MAX_UPLOAD_MB": "1.5"},
    ],
)
def test_invalid_numbers(env):
    with pytest.raises(vault.InputValidationError):
        Settings.from_env(env)


def test_configure_logging_is_idempotent():
    root = logging.getLogger()
    level = root.level
    configure_logging("WARNING")
    configure_logging("DEBUG")
    ours = [h for h in root.handlers if getattr(h, "_filevault", False)]
    try:
        assert len(ours) == 1
        assert ours[0].level == logging.DEBUG
    finally:
        for handler in ours:
            root.removeHandler(handler)
        root.setLevel(level)


def test_unknown_log_level_rejected():
    with pytest.raises(vault.InputValidationError, match="log level"):
        Settings.from_env({"FILEVAULT_LOG_LEVEL": "bogus"})
    with pytest.raises(vault.InputValidationError, match="log level"):
        configure_logging("NOPE")


def test_log_level_is_normalised():
    assert Settings.from_env({"FILEVAULT_LOG_LEVEL": " warning "}).log_level == "WARNING"
