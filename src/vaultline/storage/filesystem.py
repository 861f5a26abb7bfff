"""Filesystem-based implementation of ObjectStorage."""

from __future__ import annotations

import os
from pathlib import Path

import structlog

logger = structlog.get_logger()


class FileSystemObjectStorage:
    """Object storage rooted in a local directory.

    Layout:
        <root>/
            ├── <execution_id>/meta.json
            └── <base_folder>/<output_id>/<entry>
    """

    def __init__(self, root: Path) -> None:
        """Initialize the storage.

        Args:
            root: Directory holding all objects. Created if missing.
        """
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)
        self._log = logger.bind(component="FileSystemObjectStorage")

    @property
    def root(self) -> Path:
        """Get the storage root."""
        return self._root

    def _safe_path(self, key: str) -> Path:
        """Resolve a key safely within the storage root.

        Args:
            key: Relative object key.

        Returns:
            Resolved path.

        Raises:
            ValueError: If the key is empty, absolute, or escapes the root.
        """
        if not key or key.startswith("/") or "\\" in key:
            msg = f"Invalid object key: {key!r}"
            raise ValueError(msg)

        resolved = (self._root / key).resolve()
        try:
            resolved.relative_to(self._root.resolve())
        except ValueError:
            msg = f"Object key escapes storage root: {key!r}"
            raise ValueError(msg) from None
        return resolved

    def put(self, key: str, content: bytes) -> None:
        path = self._safe_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write to a sibling temp file first so readers never see partial content
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_bytes(content)
        os.replace(tmp, path)
        self._log.debug("Object written", key=key, size_bytes=len(content))

    def get(self, key: str) -> bytes:
        path = self._safe_path(key)
        if not path.is_file():
            raise KeyError(key)
        return path.read_bytes()

    def delete(self, key: str) -> None:
        path = self._safe_path(key)
        if path.is_file():
            path.unlink()
            self._log.debug("Object deleted", key=key)

    def list(self, prefix: str = "") -> list[str]:
        keys = []
        for path in self._root.rglob("*"):
            if not path.is_file() or (path.name.startswith(".") and path.name.endswith(".tmp")):
                continue
            key = path.relative_to(self._root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    def exists(self, key: str) -> bool:
        return self._safe_path(key).is_file()
