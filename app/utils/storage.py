from pathlib import Path
from typing import Iterator
from urllib.parse import quote
from uuid import uuid4
import logging

from fastapi.responses import StreamingResponse

from app.core.config import settings
from app.core.errors import NotFoundError

logger = logging.getLogger("projectdrop.storage")

CHUNK_SIZE = 64 * 1024


class StorageError(Exception):
    pass


class LocalStorage:
    """
    Stores uploaded bytes under ``root``.

    Keys are opaque ``<hex>.<ext>`` names; nothing about the project or
    uploader is encoded in them.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, storage_key: str) -> Path:
        path = (self.root / storage_key).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Invalid storage key: {storage_key!r}")
        return path

    def save(self, data: bytes, suffix: str = "") -> str:
        storage_key = f"{uuid4().hex}{suffix}"
        dest_path = self._path(storage_key)
        with open(dest_path, "wb") as f:
            f.write(data)
        logger.debug("Stored %d bytes as %s", len(data), storage_key)
        return storage_key

    def exists(self, storage_key: str) -> bool:
        return self._path(storage_key).is_file()

    def read(self, storage_key: str) -> Iterator[bytes]:
        path = self._path(storage_key)
        if not path.is_file():
            raise StorageError(f"Missing storage object: {storage_key}")

        def _chunks():
            with open(path, "rb") as f:
                while True:
                    chunk = f.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk

        return _chunks()

    def delete(self, storage_key: str) -> None:
        self._path(storage_key).unlink(missing_ok=True)


def delete_quietly(storage: LocalStorage, storage_keys: list[str]) -> None:
    """Remove stored objects whose metadata is already gone; failures are logged."""
    for key in storage_keys:
        try:
            storage.delete(key)
        except (OSError, StorageError):
            logger.exception("Failed to remove storage object %s", key)


_default_storage: LocalStorage | None = None


def get_storage() -> LocalStorage:
    global _default_storage
    if _default_storage is None:
        _default_storage = LocalStorage(settings.upload_dir)
    return _default_storage


def file_response(storage: LocalStorage, storage_key: str, filename: str, media_type: str | None) -> StreamingResponse:
    try:
        body = storage.read(storage_key)
    except StorageError:
        logger.error("Storage object %s missing for %s", storage_key, filename)
        raise NotFoundError("File not found")
    disposition = f"attachment; filename*=utf-8''{quote(filename)}"
    return StreamingResponse(
        body,
        media_type=media_type or "application/octet-stream",
        headers={"Content-Disposition": disposition},
    )
