"""Object storage for uploaded photos and generated reports.

Keys are slash-separated paths such as
``inspections/{inspection_id}/images/{image_id}.jpg``. The local backend
keeps files under ``LOCAL_STORAGE_PATH`` and hands out HMAC-signed,
expiring URLs that are served by the ``/files`` route.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import mimetypes
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote, urlencode

import structlog

from lukaut.config import get_config
from lukaut.errors import EINVALID, ENOTFOUND, LukautError

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class ObjectInfo:
    key: str
    content_type: str
    size: int


class Storage(ABC):
    """Storage backend interface."""

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> None:
        """Store ``data`` at ``key``, overwriting any existing object."""

    @abstractmethod
    async def get(self, key: str) -> tuple[bytes, ObjectInfo]:
        """Return the object's bytes and metadata. Raises ENOTFOUND if missing."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def url(self, key: str, ttl_seconds: int | None = None) -> str:
        """Return a time-limited URL for downloading ``key``."""


def validate_key(key: str) -> str:
    """Reject keys that could escape the storage root."""
    if not key or key.startswith("/") or "\\" in key or "\x00" in key:
        raise LukautError(EINVALID, "Invalid storage key", op="storage.validate_key")
    if any(part in ("", ".", "..") for part in key.split("/")):
        raise LukautError(EINVALID, "Invalid storage key", op="storage.validate_key")
    return key


def sign_key(secret: str, key: str, expires: int) -> str:
    """HMAC-SHA256 signature over ``key:expires``."""
    message = f"{key}:{expires}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_signature(secret: str, key: str, expires: int, signature: str, now: float | None = None) -> bool:
    """Check a signed URL's signature and expiry."""
    now = time.time() if now is None else now
    if expires < now:
        return False
    expected = sign_key(secret, key, expires)
    return hmac.compare_digest(expected, signature)


class LocalStorage(Storage):
    """Filesystem-backed storage."""

    def __init__(self, root: str | Path, base_url: str, secret: str, default_ttl: int = 3600):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.default_ttl = default_ttl

    def _path(self, key: str) -> Path:
        validate_key(key)
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise LukautError(EINVALID, "Invalid storage key", op="storage.path")
        return path

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(path)

        await asyncio.to_thread(_write)
        logger.debug("storage_put", key=key, size=len(data), content_type=content_type)

    async def get(self, key: str) -> tuple[bytes, ObjectInfo]:
        path = self._path(key)
        if not path.is_file():
            raise LukautError(ENOTFOUND, f"Object '{key}' not found", op="storage.get")
        data = await asyncio.to_thread(path.read_bytes)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return data, ObjectInfo(key=key, content_type=content_type, size=len(data))

    async def delete(self, key: str) -> None:
        path = self._path(key)
        await asyncio.to_thread(path.unlink, True)

    async def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def url(self, key: str, ttl_seconds: int | None = None) -> str:
        validate_key(key)
        expires = int(time.time()) + (ttl_seconds or self.default_ttl)
        query = urlencode({"expires": expires, "sig": sign_key(self.secret, key, expires)})
        return f"{self.base_url}/files/{quote(key)}?{query}"


# Global singleton
_storage: Storage | None = None


def get_storage() -> Storage:
    """Get the configured storage backend."""
    global _storage
    if _storage is None:
        config = get_config()
        if config.storage.provider != "local":
            raise LukautError(
                EINVALID,
                f"Unsupported storage provider: {config.storage.provider}",
                op="storage.get_storage",
            )
        _storage = LocalStorage(
            root=config.storage.local_path,
            base_url=config.base_url,
            secret=config.secret_key,
            default_ttl=config.storage.url_ttl_seconds,
        )
    return _storage


def set_storage(storage: Storage | None) -> None:
    """Override the storage backend (for tests)."""
    global _storage
    _storage = storage
