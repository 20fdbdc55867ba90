import json
import uuid
from unittest.mock import MagicMock

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

import vault
from vault_client import VaultClient, encrypt_and_upload, fetch_and_decrypt
from vault_server import create_app
from vault_settings import Settings

BASE_URL = "http://vault.test"


class FlaskAdapter(BaseAdapter):
    """Route requests from a ``requests.Session`` into a Flask test client."""

    def __init__(self, app):
        super().__init__()
        self.client = app.test_client()
        self.timeouts = []

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.timeouts.append(timeout)
        headers = {
            k: v for k, v in request.headers.items()
            if k.lower() not in ("content-type", "content-length")
        }
        resp = self.client.open(
            request.path_url,
            method=request.method,
            data=request.body,
            headers=headers,
            content_type=request.headers.get("Content-Type"),
        )
        out = requests.Response()
        out.status_code = resp.status_code
        out.reason = resp.status.split(" ", 1)[1]
        out.headers = CaseInsensitiveDict(dict(resp.headers))
        out._content = resp.data
        out.encoding = "utf-8"
        out.url = request.url
        out.request = request
        return out

    def close(self):
        pass


@pytest.fixture
def adapter(tmp_path):
    app = create_app(Settings(storage_dir=tmp_path / "data"))
    app.config.update(TESTING=True)
    return FlaskAdapter(app)


@pytest.fixture
def client(adapter):
    session = requests.Session()
    session.mount(BASE_URL, adapter)
    return VaultClient(BASE_URL, timeout=5.0, session=session)


def _mock_client(response=None, exc=None):
    session = MagicMock(spec=requests.Session)
    if exc is not None:
        session.request.side_effect = exc
    else:
        session.request.return_value = response
    return VaultClient(BASE_URL, timeout=1.5, session=session), session


def _response(status, body=None, headers=None):
    resp = requests.Response()
    resp.status_code = status
    resp.reason = "reason"
    resp._content = json.dumps(body).encode() if body is not None else b""
    resp.headers = CaseInsensitiveDict(headers or {})
    resp.encoding = "utf-8"
    return resp


# -- Pipelines over HTTP -----------------------------------------------------

def test_encrypt_upload_fetch_decrypt(client, adapter, public_der_b64, private_der_b64):
    result = encrypt_and_upload(client, b"hello", "hello.txt", public_der_b64)
    assert result.record["originalFilename"] == "hello.txt"
    assert result.record["filename"] == "hello.txt.enc"
    assert result.ciphertext_size == 5 + vault.DIGEST_SIZE + vault.TAG_SIZE

    decrypted = fetch_and_decrypt(client, result.id, private_der_b64)
    assert decrypted.data == b"hello"
    assert decrypted.filename == "hello.txt"
    assert decrypted.record["fileHashHex"] == result.digest_hex
    assert adapter.timeouts and all(t == 5.0 for t in adapter.timeouts)


def test_empty_file_pipeline(client, public_key, private_key):
    result = encrypt_and_upload(client, b"", "empty.bin", public_key)
    assert fetch_and_decrypt(client, result.id, private_key).data == b""


def test_fetch_with_wrong_private_key(client, public_key, other_private_key):
    result = encrypt_and_upload(client, b"secret", "s.txt", public_key)
    with pytest.raises(vault.UnwrapError):
        fetch_and_decrypt(client, result.id, other_private_key)


def test_fetch_unknown_id(client, private_key):
    with pytest.raises(vault.NotFoundError):
        fetch_and_decrypt(client, str(uuid.uuid4()), private_key)


def test_fetch_malformed_id(client):
    with pytest.raises(vault.InputValidationError):
        client.fetch("nope")


def test_fetch_blank_id(client):
    with pytest.raises(vault.InputValidationError):
        client.fetch("   ")


def test_list_files(client, public_key):
    ids = {encrypt_and_upload(client, b"x", f"f{i}", public_key).id for i in range(3)}
    assert {r["id"] for r in client.list_files()} == ids


def test_upload_with_bad_key_sends_nothing(client):
    with pytest.raises(vault.KeyImportError):
        encrypt_and_upload(client, b"x", "f", "garbage key")
    assert client.list_files() == []


def test_upload_requires_filename(client, public_key):
    with pytest.raises(vault.InputValidationError):
        encrypt_and_upload(client, b"x", "", public_key)


# -- Error classification ----------------------------------------------------

@pytest.mark.parametrize(
    "exc",
    [
        requests.exceptions.ConnectTimeout("slow"),
        requests.exceptions.ReadTimeout("slow"),
        requests.exceptions.ConnectionError("refused"),
    ],
)
def test_network_failures_are_transient(exc):
    client, session = _mock_client(exc=exc)
    with pytest.raises(vault.TransientError) as info:
        client.list_files()
    assert info.value.transient
    assert session.request.call_args.kwargs["timeout"] == 1.5


def test_server_error_on_upload_is_storage_write_error():
    client, _ = _mock_client(_response(500, {"error": "Upload failed"}))
    with pytest.raises(vault.StorageWriteError, match="Upload failed"):
        client.upload(b"x", "f", {})


def test_server_error_on_get_is_transient():
    client, _ = _mock_client(_response(503))
    with pytest.raises(vault.TransientError):
        client.list_files()


def test_bad_request_is_input_validation_error():
    client, _ = _mock_client(_response(400, {"error": "Invalid metadata JSON"}))
    with pytest.raises(vault.InputValidationError, match="Invalid metadata JSON"):
        client.upload(b"x", "f", {})


def test_missing_metadata_header():
    client, _ = _mock_client(_response(200))
    with pytest.raises(vault.InputValidationError, match="Missing metadata header"):
        client.fetch(str(uuid.uuid4()))


def test_undecodable_metadata_header():
    client, _ = _mock_client(_response(200, headers={"X-Metadata": "!!!"}))
    with pytest.raises(vault.InputValidationError):
        client.fetch(str(uuid.uuid4()))


def test_fetch_quotes_file_id_in_path():
    header = vault.b64_encode(json.dumps({"id": "x"}).encode())
    client, session = _mock_client(_response(200, headers={"X-Metadata": header}))
    client.fetch(" a/b?c#d ")
    method, url = session.request.call_args.args
    assert method == "GET"
    assert url == f"{BASE_URL}/file/a%2Fb%3Fc%23d"
