"""Protocol definitions for object storage."""

from __future__ import annotations

from typing import Protocol


class ObjectStorage(Protocol):
    """Protocol for object storage access.

    Keys are ``/``-separated relative paths. Implementations can be
    filesystem-based, in-memory, or backed by a remote bucket; the artifact
    store and the upload adapter depend only on this interface.
    """

    def put(self, key: str, content: bytes) -> None:
        """Store content under a key, replacing any previous value.

        Args:
            key: Object key.
            content: Raw bytes to store.
        """
        ...

    def get(self, key: str) -> bytes:
        """Read the content stored under a key.

        Args:
            key: Object key.

        Returns:
            Raw bytes.

        Raises:
            KeyError: If no object exists under the key.
        """
        ...

    def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing key is a no-op."""
        ...

    def list(self, prefix: str = "") -> list[str]:
        """List keys starting with a prefix, sorted."""
        ...

    def exists(self, key: str) -> bool:
        """Check whether an object exists."""
        ...
