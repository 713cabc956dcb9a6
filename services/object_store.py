"""Object store gateway for uploaded image blobs.

Blobs live under `<root>/blobs` and are addressed by key
(e.g. `images/1700000000000-cat.png`). Upload metadata lives in a parallel
`<root>/meta` tree that no key can address. The `GET /media/{key:path}` route
serves blobs with `FileResponse`, so a blob written here is publicly reachable
at `{public_base_url}/{percent-encoded key}`.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import aiofiles
import aiofiles.os

LOGGER = logging.getLogger(__name__)

META_SUFFIX = ".json"


class StoreError(Exception):
    """Raised when the object store cannot complete a put or delete."""

    def __init__(self, key: str, message: str) -> None:
        super().__init__(f"{message} (key={key})")
        self.key = key


class ObjectStore(Protocol):
    async def put(self, key: str, content: bytes, content_type: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    def public_url(self, key: str) -> str: ...


class LocalObjectStore:
    """Filesystem-backed object store.

    Args:
        root_dir: Directory that holds the blob and metadata trees.
        public_base_url: Base URL blobs are served from.
    """

    def __init__(self, root_dir: Path | str, public_base_url: str) -> None:
        self.root_dir = Path(root_dir).expanduser().resolve()
        self.blob_root = self.root_dir / "blobs"
        self.meta_root = self.root_dir / "meta"
        self.public_base_url = public_base_url.rstrip("/")

    def ensure_root(self) -> None:
        self.blob_root.mkdir(parents=True, exist_ok=True)
        self.meta_root.mkdir(parents=True, exist_ok=True)

    def public_url(self, key: str) -> str:
        # Keys may carry '#', '?' or '%' from the original filename.
        return f"{self.public_base_url}/{quote(key, safe='/')}"

    def _resolve(self, key: str) -> Path:
        """Map a key to a blob path, rejecting keys that escape the blob tree."""
        if not key or key.endswith("/"):
            raise StoreError(key, "Store key must name a file")
        path = (self.blob_root / key).resolve()
        if self.blob_root not in path.parents:
            raise StoreError(key, "Store key resolves outside the object store root")
        return path

    def _meta_path(self, blob: Path) -> Path:
        relative = blob.relative_to(self.blob_root)
        return self.meta_root / relative.parent / f"{relative.name}{META_SUFFIX}"

    def blob_path(self, key: str) -> Path | None:
        """Return the on-disk path of an existing blob, or None."""
        path = self._resolve(key)
        return path if path.is_file() else None

    async def put(self, key: str, content: bytes, content_type: str) -> None:
        """Write `content` at `key` and record its content type.

        A failed metadata write removes the blob again, so a raised
        `StoreError` never leaves a partial object behind.

        Raises:
            StoreError: If the key is invalid or the write fails.
        """
        path = self._resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as exc:
            raise StoreError(key, f"Failed to write blob: {exc}") from exc

        meta_path = self._meta_path(path)
        try:
            meta_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(meta_path, "w") as f:
                await f.write(json.dumps({"content_type": content_type, "size": len(content)}))
        except OSError as exc:
            try:
                await aiofiles.os.remove(path)
            except OSError as cleanup_exc:
                LOGGER.warning("Could not remove partial blob %s: %s", key, cleanup_exc)
            raise StoreError(key, f"Failed to write blob metadata: {exc}") from exc
        LOGGER.debug("Stored %d bytes at %s", len(content), key)

    async def delete(self, key: str) -> None:
        """Remove the blob at `key` and its metadata. Missing files are not an error.

        Raises:
            StoreError: If the key is invalid or the removal fails.
        """
        path = self._resolve(key)
        for target in (path, self._meta_path(path)):
            try:
                await aiofiles.os.remove(target)
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise StoreError(key, f"Failed to delete blob: {exc}") from exc

    async def content_type(self, key: str) -> str | None:
        """Return the content type recorded at upload time, if any."""
        meta_path = self._meta_path(self._resolve(key))
        if not os.path.exists(meta_path):
            return None
        async with aiofiles.open(meta_path, "r") as f:
            meta = json.loads(await f.read())
        return meta.get("content_type")
