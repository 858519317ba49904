# ruff: noqa: TC003
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath
from typing import Protocol, runtime_checkable

from hris_leave.config import get_settings

logger = logging.getLogger(__name__)


def _leave_attachment_path(employee_id: uuid.UUID, filename: str) -> str:
    """Build a unique storage key: ``leave/<employee>/<uuid>-<unix ts><ext>``."""
    ext = PurePosixPath(filename).suffix.lower()
    timestamp = int(datetime.now(UTC).timestamp())
    return str(PurePosixPath("leave", str(employee_id), f"{uuid.uuid4()}-{timestamp}{ext}"))


@runtime_checkable
class FileStorage(Protocol):
    """Interface for attachment storage."""

    async def upload(self, employee_id: uuid.UUID, content: bytes, filename: str) -> str:
        """Store a leave attachment and return its storage path."""
        ...

    async def delete(self, path: str) -> None:
        """Remove a stored file. Missing files are ignored."""
        ...

    def resolve_url(self, path: str) -> str:
        """Return the display URL for a stored path."""
        ...


class LocalFileStorage:
    """Stores files below a base directory and serves them from ``base_url``."""

    def __init__(self, base_dir: str | Path, base_url: str) -> None:
        self._base_dir = Path(base_dir).resolve()
        self._base_url = base_url.rstrip("/")

    def _full_path(self, path: str) -> Path:
        full = (self._base_dir / path).resolve()
        if not full.is_relative_to(self._base_dir):
            msg = f"Invalid file path: {path}"
            raise ValueError(msg)
        return full

    async def upload(self, employee_id: uuid.UUID, content: bytes, filename: str) -> str:
        path = _leave_attachment_path(employee_id, filename)
        full = self._full_path(path)

        def _write() -> None:
            full.parent.mkdir(parents=True, exist_ok=True)
            full.write_bytes(content)

        await asyncio.to_thread(_write)
        logger.info("Stored leave attachment %s (%d bytes)", path, len(content))
        return path

    async def delete(self, path: str) -> None:
        full = self._full_path(path)
        await asyncio.to_thread(full.unlink, missing_ok=True)

    def resolve_url(self, path: str) -> str:
        return f"{self._base_url}/uploads/{path}"


class InMemoryFileStorage:
    """In-memory stub implementation for development and tests."""

    def __init__(self, base_url: str = "http://files.test") -> None:
        self.files: dict[str, bytes] = {}
        self._base_url = base_url

    async def upload(self, employee_id: uuid.UUID, content: bytes, filename: str) -> str:
        path = _leave_attachment_path(employee_id, filename)
        self.files[path] = content
        return path

    async def delete(self, path: str) -> None:
        self.files.pop(path, None)

    def resolve_url(self, path: str) -> str:
        return f"{self._base_url}/{path}"


_file_storage: FileStorage | None = None


def get_file_storage() -> FileStorage:
    """FastAPI dependency for attachment storage."""
    global _file_storage
    if _file_storage is None:
        settings = get_settings()
        _file_storage = LocalFileStorage(settings.upload_dir, settings.public_base_url)
    return _file_storage


def set_file_storage(storage: FileStorage) -> None:
    """Override the storage (for testing or production wiring)."""
    global _file_storage
    _file_storage = storage
