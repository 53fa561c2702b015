"""Binary object storage used by seed export and import.

The engine never embeds binary payloads in rows; rows hold URLs. A blob
store maps its own URLs (``<base_url><key>``) to keys and keeps bytes
under those keys. Keys of world-owned objects start with ``<world_id>/``.

Usage:
    blobs = LocalBlobStore(Path("blobs"))
    url = blobs.put("demo-1/cat.png", png_bytes)   # "blob://demo-1/cat.png"
    blobs.key_for_url(url)                          # "demo-1/cat.png"
    blobs.list_keys("demo-1/")                      # ["demo-1/cat.png"]
"""

from __future__ import annotations

import posixpath
from pathlib import Path
from typing import Protocol, runtime_checkable

from worldvault.core.errors import NotFoundError, UpstreamUnavailableError, ValidationError


@runtime_checkable
class BlobStore(Protocol):
    """Key/bytes store addressed by URL."""

    def url_for(self, key: str) -> str:
        ...

    def key_for_url(self, url: str) -> str | None:
        """Key of a URL this store manages, else None."""
        ...

    def exists(self, key: str) -> bool:
        ...

    def get(self, key: str) -> bytes:
        """Raises NotFoundError when the key is absent."""
        ...

    def put(self, key: str, data: bytes) -> str:
        """Store bytes (replacing any existing object) and return the URL."""
        ...

    def delete(self, key: str) -> bool:
        """Returns True if the key existed."""
        ...

    def list_keys(self, prefix: str = "") -> list[str]:
        """Keys starting with ``prefix``, sorted."""
        ...


def world_prefix(world_id: str) -> str:
    return f"{world_id}/"


def check_key(key: str) -> str:
    """Normalize a key and reject ones escaping the store root.

    Raises:
        ValidationError: For empty, absolute or ``..`` keys.
    """
    normalized = posixpath.normpath(key.replace("\\", "/"))
    if not key or normalized.startswith(("/", "../")) or normalized in (".", ".."):
        raise ValidationError(f"Invalid blob key {key!r}")
    return normalized


class LocalBlobStore:
    """Blob store on the local filesystem.

    Args:
        root: Directory holding one file per key.
        base_url: URL prefix of keys handed out by ``put``.
    """

    def __init__(self, root: Path | str, base_url: str = "blob://"):
        self._root = Path(root)
        self._base_url = base_url

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        return self._root / check_key(key)

    def url_for(self, key: str) -> str:
        return f"{self._base_url}{check_key(key)}"

    def key_for_url(self, url: str) -> str | None:
        if not url.startswith(self._base_url):
            return None
        key = url[len(self._base_url) :]
        try:
            return check_key(key)
        except ValidationError:
            return None

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise NotFoundError("Blob", key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise UpstreamUnavailableError(f"Cannot read blob '{key}': {e}") from e

    def put(self, key: str, data: bytes) -> str:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise UpstreamUnavailableError(f"Cannot write blob '{key}': {e}") from e
        return self.url_for(key)

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.is_file():
            return False
        path.unlink()
        return True

    def list_keys(self, prefix: str = "") -> list[str]:
        if not self._root.is_dir():
            return []
        keys = (
            path.relative_to(self._root).as_posix()
            for path in self._root.rglob("*")
            if path.is_file()
        )
        return sorted(key for key in keys if key.startswith(prefix))
