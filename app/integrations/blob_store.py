"""
Blob store for uploaded documents.

The lifecycle only ever persists the opaque reference returned by
``store()``; reading the bytes back goes through ``fetch()``.

LocalBlobStore writes each upload under UPLOAD_FOLDER with a random name,
so two uploads with the same original filename never collide.

Usage:
    from app.integrations.blob_store import get_blob_store
    blob = get_blob_store().store(request.files["file"])
    data = get_blob_store().fetch(blob.ref)
"""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass

from flask import current_app
from werkzeug.utils import secure_filename

from app.core.exceptions import ExternalServiceError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class StoredBlob:
    """Metadata returned by ``store()``; ``ref`` is what the database keeps."""

    ref: str
    filename: str
    original_filename: str
    size: int
    content_type: str


class LocalBlobStore:
    """Filesystem-backed blob store.

    Args:
        root: Directory that holds the blobs (created on first store).
        allowed_extensions: Lower-case extensions without the dot; empty = any.
    """

    def __init__(self, root: str, allowed_extensions=None) -> None:
        self.root = root
        self.allowed_extensions = {e.lower() for e in (allowed_extensions or ())}

    def _path(self, ref: str) -> str:
        safe = secure_filename(ref)
        if not safe or safe != ref:
            raise NotFoundError("Blob", ref)
        return os.path.join(self.root, safe)

    def store(self, file) -> StoredBlob:
        """Persist a werkzeug ``FileStorage`` and return its reference.

        Raises:
            ValidationError: missing file or disallowed extension.
            ExternalServiceError: the write failed.
        """
        if file is None or not getattr(file, "filename", ""):
            raise ValidationError("A file is required", {"file": "missing"})

        original = file.filename
        safe_name = secure_filename(original) or "upload"
        ext = safe_name.rsplit(".", 1)[-1].lower() if "." in safe_name else ""
        if self.allowed_extensions and ext not in self.allowed_extensions:
            raise ValidationError(
                f"File type '.{ext}' is not allowed",
                {"file": f"allowed: {', '.join(sorted(self.allowed_extensions))}"},
            )

        ref = f"{uuid.uuid4().hex}.{ext}" if ext else uuid.uuid4().hex
        path = os.path.join(self.root, ref)
        try:
            os.makedirs(self.root, exist_ok=True)
            file.save(path)
            size = os.path.getsize(path)
        except OSError as exc:
            logger.error("Blob store write failed path=%s: %s", path, exc)
            raise ExternalServiceError("blob_store", str(exc)) from exc

        logger.info("Stored blob ref=%s size=%d original=%s", ref, size, original)
        return StoredBlob(
            ref=ref,
            filename=safe_name,
            original_filename=original,
            size=size,
            content_type=file.mimetype or "application/octet-stream",
        )

    def fetch(self, ref: str) -> bytes:
        """Return the bytes stored under *ref*.

        Raises:
            NotFoundError: unknown reference.
            ExternalServiceError: the read failed.
        """
        path = self._path(ref)
        if not os.path.exists(path):
            raise NotFoundError("Blob", ref)
        try:
            with open(path, "rb") as fh:
                return fh.read()
        except OSError as exc:
            logger.error("Blob store read failed ref=%s: %s", ref, exc)
            raise ExternalServiceError("blob_store", str(exc)) from exc

    def delete(self, ref: str) -> None:
        """Remove *ref*; a missing blob is not an error."""
        path = self._path(ref)
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.warning("Blob already absent ref=%s", ref)
        except OSError as exc:
            raise ExternalServiceError("blob_store", str(exc)) from exc


def get_blob_store() -> LocalBlobStore:
    """Return the app-scoped blob store, creating it on first use."""
    store = current_app.extensions.get("blob_store")
    if store is None:
        store = LocalBlobStore(
            current_app.config["UPLOAD_FOLDER"],
            current_app.config.get("ALLOWED_UPLOAD_EXTENSIONS"),
        )
        current_app.extensions["blob_store"] = store
    return store
