import hashlib

import pytest
from cryptography.hazmat.primitives import serialization

from key_store import fingerprint
from utils import download_filename, human_file_size


@pytest.mark.parametrize(
    "original, expected",
    [
        ("report.pdf", "report.pdf"),
        ("dir/x.txt.enc", "x.txt"),
        ("a\\b.pdf", "b.pdf"),
        ("  spaced.txt  ", "spaced.txt"),
        ("", "decrypted.file"),
        ("only/.enc", "decrypted.file"),
    ],
)
def test_download_filename(original, expected):
    assert download_filename(original) == expected


@pytest.mark.parametrize(
    "size, expected",
    [(-5, "0 B"), (0, "0 B"), (1023, "1023 B"), (1536, "1.5 KB"), (5 * 1024 * 1024, "5.0 MB")],
)
def test_human_file_size(size, expected):
    assert human_file_size(size) == expected


def test_fingerprint_is_truncated_sha256_of_spki(public_key, other_private_key):
    value = fingerprint(public_key)
    parts = value.split(":")
    assert len(parts) == 16
    assert all(len(p) == 2 for p in parts)
    assert value == fingerprint(public_key)

    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    assert value.replace(":", "") == hashlib.sha256(der).hexdigest()[:32]
    assert fingerprint(other_private_key.public_key()) != value
