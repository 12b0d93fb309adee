"""Key/value blob storage for snapshots and their indexes."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol

_logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised when the blob store cannot satisfy a request."""


class BlobExistsError(StoreError):
    """Raised when a write would replace an existing blob without permission."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Blob {key!r} already exists")


class BlobStore(Protocol):
    """Minimal blob interface the archive relies on."""

    def read_text(self, key: str) -> str | None:
        """Return the blob stored under *key*, or ``None`` when absent."""

    def write_text(self, key: str, text: str, *, overwrite: bool = False) -> None:
        """Store *text* under *key*; refuse to replace unless *overwrite*."""

    def list_keys(self, prefix: str = "") -> list[str]:
        """Return stored keys starting with *prefix*, sorted."""

    def url_for(self, key: str) -> str:
        """Return a URL consumers can fetch *key* from."""


class FileBlobStore:
    """:class:`BlobStore` backed by one directory, one file per key."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise StoreError(f"Invalid blob key: {key!r}")
        return self.root / key

    def read_text(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write_text(self, key: str, text: str, *, overwrite: bool = False) -> None:
        path = self._path(key)
        if path.exists() and not overwrite:
            raise BlobExistsError(key)

        self.root.mkdir(parents=True, exist_ok=True)
        temp = path.with_name(f".{key}.{os.getpid()}.tmp")
        try:
            with temp.open("w", encoding="utf-8") as handle:
                handle.write(text)
            if overwrite:
                temp.replace(path)
            else:
                # link fails if the key appeared since the check above
                os.link(temp, path)
        except FileExistsError as exc:
            raise BlobExistsError(key) from exc
        except OSError as exc:
            raise StoreError(f"Failed to write {key!r}: {exc}") from exc
        finally:
            temp.unlink(missing_ok=True)
        _logger.debug("Wrote %s (%d bytes)", path, len(text))

    def list_keys(self, prefix: str = "") -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            path.name
            for path in self.root.iterdir()
            if path.is_file() and not path.name.startswith(".") and path.name.startswith(prefix)
        )

    def url_for(self, key: str) -> str:
        return self._path(key).resolve().as_uri()


__all__ = [
    "BlobExistsError",
    "BlobStore",
    "FileBlobStore",
    "StoreError",
]
