"""Blob uploader: writes the incoming document to the intake bucket."""

from __future__ import annotations

import logging
import uuid
from pathlib import PurePath

from ..errors import StorageError
from ..models.extraction import StorageKey, UploadedFile
from .interfaces import ObjectStore

_LOG = logging.getLogger("docextract.uploader")

DEFAULT_FILENAME = "document"


def _safe_basename(filename: str | None) -> str:
    # Browsers on Windows may send the full client path.
    name = PurePath((filename or "").replace("\\", "/")).name.strip()
    return name or DEFAULT_FILENAME


def build_storage_key(filename: str | None, *, prefix: str = "uploads") -> str:
    """Return ``<prefix>/<uuid4>-<basename>``; fresh on every call."""
    prefix = prefix.strip("/")
    name = f"{uuid.uuid4()}-{_safe_basename(filename)}"
    return f"{prefix}/{name}" if prefix else name


class BlobUploader:
    """Stores uploaded bytes under a newly generated key."""

    def __init__(self, *, store: ObjectStore, bucket: str, prefix: str = "uploads") -> None:
        self.store = store
        self.bucket = bucket
        self.prefix = prefix

    async def upload(self, file: UploadedFile) -> StorageKey:
        key = build_storage_key(file.filename, prefix=self.prefix)
        try:
            await self.store.put(self.bucket, key, file.data, file.content_type)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to upload {key} to bucket {self.bucket}: {exc}") from exc
        _LOG.info(
            "upload_complete",
            extra={"bucket": self.bucket, "key": key, "bytes": file.size},
        )
        return StorageKey(bucket=self.bucket, key=key)


__all__ = ["BlobUploader", "build_storage_key"]
