import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

import vault


@pytest.fixture(scope="session")
def private_key():
    # 2048 for speed in tests
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def public_key(private_key):
    return private_key.public_key()


@pytest.fixture(scope="session")
def other_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def public_der_b64(public_key):
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return vault.b64_encode(der)


@pytest.fixture(scope="session")
def private_der_b64(private_key):
    der = private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return vault.b64_encode(der)


@pytest.fixture
def envelope_metadata():
    return {
        "wrappedKeyHex": "ab" * 256,
        "ivHex": "00" * vault.NONCE_SIZE,
        "fileHashHex": "11" * vault.DIGEST_SIZE,
    }
