from __future__ import annotations

import hashlib
import logging
import mimetypes
import re
import time
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from app.settings import get_public_base_url, get_settings

logger = logging.getLogger("app.storage")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
IMAGE_ROUTE_PREFIX = "/api/images/"


class StorageError(Exception):
    pass


class PhotoTooLargeError(StorageError):
    pass


@dataclass(frozen=True, slots=True)
class StoredObject:
    key: str
    content_type: str
    data: bytes

    @property
    def etag(self) -> str:
        return f'"{hashlib.md5(self.data).hexdigest()}"'


@dataclass(frozen=True, slots=True)
class PhotoUpload:
    filename: str
    content_type: str | None
    data: bytes


class ObjectStorage(Protocol):
    def put(self, key: str, data: bytes, content_type: str | None) -> StoredObject: ...

    def get(self, key: str) -> StoredObject | None: ...

    def public_url(self, key: str) -> str: ...


def safe_filename(filename: str | None) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", (filename or "").strip())
    return cleaned or "upload.jpg"


def build_object_key(filename: str | None, *, prefix: str = "activities") -> str:
    timestamp_ms = int(time.time() * 1000)
    return f"{prefix}/{timestamp_ms}-{uuid4().hex[:8]}-{safe_filename(filename)}"


class LocalObjectStorage:
    def __init__(self, root: Path | str, *, public_base_url: str):
        self._root = Path(root)
        self._public_base_url = public_base_url.rstrip("/")

    def _path_for(self, key: str) -> Path:
        candidate = (self._root / key).resolve()
        root = self._root.resolve()
        if root != candidate and root not in candidate.parents:
            raise StorageError(f"Object key escapes storage root: {key}")
        return candidate

    def put(self, key: str, data: bytes, content_type: str | None) -> StoredObject:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to store object {key}") from exc
        resolved_type = content_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return StoredObject(key=key, content_type=resolved_type, data=data)

    def get(self, key: str) -> StoredObject | None:
        try:
            path = self._path_for(key)
        except StorageError:
            return None
        if not path.is_file():
            return None
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read object {key}") from exc
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return StoredObject(key=key, content_type=content_type, data=data)

    def public_url(self, key: str) -> str:
        return f"{self._public_base_url}{IMAGE_ROUTE_PREFIX}{key}"


@lru_cache
def _default_storage() -> LocalObjectStorage:
    return LocalObjectStorage(get_settings().storage_root, public_base_url=get_public_base_url())


def get_object_storage() -> ObjectStorage:
    return _default_storage()


def ensure_photo_sizes(photos: list[PhotoUpload]) -> None:
    max_bytes = get_settings().max_photo_bytes
    for photo in photos:
        if len(photo.data) > max_bytes:
            raise PhotoTooLargeError(f"Photo {photo.filename!r} exceeds {max_bytes} bytes")


def upload_photo_batch(storage: ObjectStorage, photos: list[PhotoUpload]) -> list[str]:
    """Store every photo and return their public URLs in submission order.

    Sizes are checked for the whole batch before the first write. After that
    the first storage failure aborts the batch; objects stored before it are
    left in place and callers must not create a record that references a
    partial batch.
    """
    ensure_photo_sizes(photos)
    urls: list[str] = []
    for index, photo in enumerate(photos):
        key = build_object_key(photo.filename)
        try:
            stored = storage.put(key, photo.data, photo.content_type)
        except StorageError:
            logger.warning(
                "photo_upload_failed",
                extra={"key": key, "batch_index": index, "orphaned_keys": len(urls)},
            )
            raise
        urls.append(storage.public_url(stored.key))
    return urls
