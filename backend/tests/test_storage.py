from unittest.mock import MagicMock

import pytest

from deaddrop.storage import BlobNotFoundError
from deaddrop.storage.local import LocalStorage


@pytest.fixture
def local(tmp_path):
    return LocalStorage(str(tmp_path / "blobs"))


def test_put_then_stream(local):
    assert local.is_configured()
    local.put("files/abc", b"payload", "text/plain")
    assert local.read_all("files/abc") == b"payload"


def test_missing_blob(local):
    with pytest.raises(BlobNotFoundError):
        local.get_stream("files/missing")


def test_delete_is_idempotent(local):
    local.put("files/abc", b"payload", "text/plain")
    assert local.delete("files/abc").success
    assert local.delete("files/abc").success


def test_open_stream_survives_delete(local):
    local.put("files/abc", b"payload", "text/plain")
    stream = local.get_stream("files/abc")
    assert local.delete("files/abc").success
    assert b"".join(stream) == b"payload"


def test_keys_can_not_escape_root(local):
    with pytest.raises(ValueError):
        local.put("../outside", b"x", "text/plain")
    result = local.delete("../outside")
    assert not result.success
    assert result.error


def make_s3():
    from deaddrop.storage.s3 import S3Storage

    storage = S3Storage("minio.local:9000", "key", "secret", "drops", secure=False)
    storage.client = MagicMock()
    return storage


def test_s3_put_and_stream():
    storage = make_s3()
    response = MagicMock()
    response.stream.return_value = iter([b"pay", b"load"])
    storage.client.get_object.return_value = response

    storage.put("files/abc", b"payload", "text/plain")
    assert storage.read_all("files/abc") == b"payload"

    _, kwargs = storage.client.put_object.call_args
    assert kwargs["length"] == 7
    assert kwargs["content_type"] == "text/plain"
    response.release_conn.assert_called_once()


def test_s3_delete_failure_is_reported_not_raised():
    storage = make_s3()
    storage.client.remove_object.side_effect = ConnectionError("endpoint unreachable")

    result = storage.delete("files/abc")

    assert not result.success
    assert "unreachable" in result.error


def test_s3_without_credentials_is_not_configured():
    from deaddrop.storage.s3 import S3Storage

    assert not S3Storage("", "", "", "drops").is_configured()
