"""Step adapters, one per step type."""

from __future__ import annotations

from vaultline.adapters.base import Adapter, AdapterContext, AdapterResult
from vaultline.adapters.compression import CompressionAdapter, DecompressionAdapter
from vaultline.adapters.encryption import DecryptionAdapter, EncryptionAdapter
from vaultline.adapters.filesystem import FilesystemReadAdapter, FilesystemWriteAdapter
from vaultline.adapters.folder import FilterAdapter, FolderFlattenAdapter, FolderGroupAdapter
from vaultline.adapters.postgres import PostgresBackupAdapter
from vaultline.adapters.script import CustomScriptAdapter
from vaultline.adapters.upload import ObjectStorageUploadAdapter
from vaultline.pipeline.definition import StepType


def default_adapters() -> dict[StepType, Adapter]:
    """Build the adapter table covering every step type."""
    return {
        StepType.FILESYSTEM_READ: FilesystemReadAdapter(),
        StepType.POSTGRES_BACKUP: PostgresBackupAdapter(),
        StepType.COMPRESSION: CompressionAdapter(),
        StepType.DECOMPRESSION: DecompressionAdapter(),
        StepType.ENCRYPTION: EncryptionAdapter(),
        StepType.DECRYPTION: DecryptionAdapter(),
        StepType.FOLDER_FLATTEN: FolderFlattenAdapter(),
        StepType.FOLDER_GROUP: FolderGroupAdapter(),
        StepType.FILTER: FilterAdapter(),
        StepType.CUSTOM_SCRIPT: CustomScriptAdapter(),
        StepType.OBJECT_STORAGE_UPLOAD: ObjectStorageUploadAdapter(),
        StepType.FILESYSTEM_WRITE: FilesystemWriteAdapter(),
    }


__all__ = [
    "Adapter",
    "AdapterContext",
    "AdapterResult",
    "CompressionAdapter",
    "CustomScriptAdapter",
    "DecompressionAdapter",
    "DecryptionAdapter",
    "EncryptionAdapter",
    "FilesystemReadAdapter",
    "FilesystemWriteAdapter",
    "FilterAdapter",
    "FolderFlattenAdapter",
    "FolderGroupAdapter",
    "ObjectStorageUploadAdapter",
    "PostgresBackupAdapter",
    "default_adapters",
]
