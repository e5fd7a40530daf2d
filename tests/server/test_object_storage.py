"""Tests for S3ObjectStore."""

import hashlib

import pytest

from lightnotes.server.storage import ObjectNotFoundError, PreconditionFailedError

TEST_BUCKET = "test-notes-bucket"


def md5(content: bytes) -> str:
    return hashlib.md5(content).hexdigest()


def test_put_new_object(storage, mock_s3):
    """Test writing a new object returns its tag and stores it under the prefix."""
    is_new, etag = storage.put("notes/a.html", b"<p>a</p>", "text/html")

    assert is_new is True
    assert etag == md5(b"<p>a</p>")
    response = mock_s3.get_object(Bucket=TEST_BUCKET, Key="notes-test/notes/a.html")
    assert response["Body"].read() == b"<p>a</p>"


def test_put_update(storage):
    storage.put("index.json", b"[]")
    is_new, etag = storage.put("index.json", b'[{"id": "a"}]')

    assert is_new is False
    assert etag == md5(b'[{"id": "a"}]')


def test_get_returns_content_and_type(storage):
    storage.put("index.json", b"[]", "application/json")

    content, etag, content_type = storage.get("index.json")

    assert content == b"[]"
    assert etag == md5(b"[]")
    assert content_type == "application/json"


def test_get_missing(storage):
    with pytest.raises(ObjectNotFoundError):
        storage.get("notes/missing.html")


def test_head(storage):
    _, etag = storage.put("todos.json", b"[]")
    assert storage.head("todos.json") == etag

    with pytest.raises(ObjectNotFoundError):
        storage.head("notes/missing.html")


def test_create_only_fails_when_present(storage):
    """Test If-None-Match: * semantics."""
    storage.put("notes/a.html", b"theirs")

    with pytest.raises(PreconditionFailedError) as exc_info:
        storage.put("notes/a.html", b"mine", create_only=True)

    assert "already exists" in str(exc_info.value).lower()
    assert storage.get("notes/a.html")[0] == b"theirs"


def test_create_only_succeeds_when_absent(storage):
    is_new, _ = storage.put("notes/a.html", b"mine", create_only=True)
    assert is_new is True


def test_if_match_success(storage):
    _, etag = storage.put("index.json", b"[]")

    is_new, new_etag = storage.put("index.json", b"[1]", if_match=f'"{etag}"')

    assert is_new is False
    assert new_etag != etag


def test_if_match_mismatch(storage):
    storage.put("index.json", b"[]")

    with pytest.raises(PreconditionFailedError) as exc_info:
        storage.put("index.json", b"[1]", if_match="stale")

    assert exc_info.value.provided_etag == "stale"
    assert exc_info.value.current_etag == md5(b"[]")


def test_if_match_on_missing_object(storage):
    """An If-Match write never creates an object."""
    with pytest.raises(PreconditionFailedError):
        storage.put("index.json", b"[]", if_match="anything")


def test_delete_is_idempotent(storage):
    storage.put("notes/a.html", b"a")

    storage.delete("notes/a.html")
    storage.delete("notes/a.html")

    with pytest.raises(ObjectNotFoundError):
        storage.head("notes/a.html")


def test_list_keys_strips_prefix(storage):
    storage.put("notes/a.html", b"a")
    storage.put("notes/b.html", b"b")
    storage.put("index.json", b"[]")

    assert sorted(storage.list_keys("notes/")) == ["notes/a.html", "notes/b.html"]
    assert len(storage.list_keys()) == 3
