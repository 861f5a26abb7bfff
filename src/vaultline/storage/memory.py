"""In-memory object storage, used by tests and dry runs."""

from __future__ import annotations

import threading


class InMemoryObjectStorage:
    """Object storage kept in a dict."""

    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, key: str, content: bytes) -> None:
        with self._lock:
            self._objects[key] = bytes(content)

    def get(self, key: str) -> bytes:
        with self._lock:
            if key not in self._objects:
                raise KeyError(key)
            return self._objects[key]

    def delete(self, key: str) -> None:
        with self._lock:
            self._objects.pop(key, None)

    def list(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(k for k in self._objects if k.startswith(prefix))

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._objects
