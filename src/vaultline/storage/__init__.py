"""Object storage backends."""

from vaultline.storage.base import ObjectStorage
from vaultline.storage.filesystem import FileSystemObjectStorage
from vaultline.storage.memory import InMemoryObjectStorage

__all__ = [
    "FileSystemObjectStorage",
    "InMemoryObjectStorage",
    "ObjectStorage",
]
