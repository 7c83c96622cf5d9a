"""
Cloud blob storage used by backup and restore.

The cloud drive is treated as a flat, overwrite-only file store. Reading a
missing file raises BlobNotFoundError so callers can tell "no backup yet"
apart from a transport failure.
"""

import asyncio
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


class BlobNotFoundError(FileNotFoundError):
    """The requested blob does not exist."""


class BlobInfo(BaseModel):
    name: str
    size_bytes: int
    modified_at: datetime


class BlobStorage(Protocol):
    """Protocol for the remote file collaborator."""

    async def read_file(self, name: str) -> str: ...

    async def write_file(self, name: str, data: str) -> None: ...

    async def stat(self, name: str) -> BlobInfo: ...


class InMemoryBlobStorage:
    """Process-local blob store for tests and offline use."""

    def __init__(self) -> None:
        self._blobs: dict[str, tuple[str, datetime]] = {}

    async def read_file(self, name: str) -> str:
        try:
            return self._blobs[name][0]
        except KeyError:
            raise BlobNotFoundError(name) from None

    async def write_file(self, name: str, data: str) -> None:
        self._blobs[name] = (data, datetime.now(UTC))

    async def stat(self, name: str) -> BlobInfo:
        try:
            data, modified_at = self._blobs[name]
        except KeyError:
            raise BlobNotFoundError(name) from None
        return BlobInfo(name=name, size_bytes=len(data.encode("utf-8")), modified_at=modified_at)


class LocalDirectoryBlobStorage:
    """
    Blob store backed by a directory, e.g. a synced cloud-drive folder.

    File I/O runs in a worker thread so the event loop is never blocked.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.logger = logger.bind(component="local_directory_blob_storage", root=str(root))

    def _path(self, name: str) -> Path:
        path = self.root / name
        if name in {"", ".", ".."} or path.parent != self.root:
            raise ValueError(f"Invalid blob name: {name!r}")
        return path

    async def read_file(self, name: str) -> str:
        path = self._path(name)
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            raise BlobNotFoundError(name) from None

    async def write_file(self, name: str, data: str) -> None:
        path = self._path(name)

        def _write() -> None:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(path.suffix + ".tmp")
            tmp_path.write_text(data, encoding="utf-8")
            os.replace(tmp_path, path)

        await asyncio.to_thread(_write)
        self.logger.info("blob_written", name=name, size_bytes=len(data))

    async def stat(self, name: str) -> BlobInfo:
        path = self._path(name)
        try:
            result = await asyncio.to_thread(path.stat)
        except FileNotFoundError:
            raise BlobNotFoundError(name) from None
        return BlobInfo(
            name=name,
            size_bytes=result.st_size,
            modified_at=datetime.fromtimestamp(result.st_mtime, UTC),
        )
