"""LocalBlobStore: storage, lookup and filename handling."""

import io

import pytest
from werkzeug.datastructures import FileStorage

from app.core.exceptions import NotFoundError, ValidationError
from app.integrations.blob_store import LocalBlobStore


def _file(name="passport.pdf", data=b"%PDF-1.4 test", content_type="application/pdf"):
    return FileStorage(stream=io.BytesIO(data), filename=name, content_type=content_type)


@pytest.fixture()
def store(tmp_path):
    return LocalBlobStore(str(tmp_path / "blobs"), {"pdf", "png"})


def test_store_and_fetch(store):
    blob = store.store(_file())
    assert blob.original_filename == "passport.pdf"
    assert blob.filename == "passport.pdf"
    assert blob.size == len(b"%PDF-1.4 test")
    assert blob.content_type == "application/pdf"
    assert blob.ref.endswith(".pdf")
    assert store.fetch(blob.ref) == b"%PDF-1.4 test"


def test_same_filename_gets_distinct_refs(store):
    first = store.store(_file(data=b"one"))
    second = store.store(_file(data=b"two"))
    assert first.ref != second.ref
    assert store.fetch(first.ref) == b"one"
    assert store.fetch(second.ref) == b"two"


def test_disallowed_extension(store):
    with pytest.raises(ValidationError) as exc_info:
        store.store(_file("script.exe"))
    assert "pdf" in exc_info.value.details["file"]


def test_missing_file(store):
    with pytest.raises(ValidationError):
        store.store(None)
    with pytest.raises(ValidationError):
        store.store(_file(name=""))


def test_any_extension_when_unrestricted(tmp_path):
    store = LocalBlobStore(str(tmp_path))
    blob = store.store(_file("notes.txt", b"hi", "text/plain"))
    assert store.fetch(blob.ref) == b"hi"


def test_unknown_ref(store):
    with pytest.raises(NotFoundError):
        store.fetch("0123456789abcdef.pdf")


def test_path_traversal_ref_is_not_found(store):
    with pytest.raises(NotFoundError):
        store.fetch("../../etc/passwd")


def test_delete(store):
    blob = store.store(_file())
    store.delete(blob.ref)
    with pytest.raises(NotFoundError):
        store.fetch(blob.ref)
    # Second delete is a no-op
    store.delete(blob.ref)
