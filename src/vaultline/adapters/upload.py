"""Object storage upload adapter."""

from __future__ import annotations

import asyncio
from pathlib import Path

from vaultline.adapters.base import AdapterContext, AdapterResult, require_single_input
from vaultline.adapters.filesystem import write_receipt
from vaultline.exceptions import ExecutionError, ExecutionErrorKind
from vaultline.paths import generate_output_id
from vaultline.pipeline.definition import ObjectStorageUploadStep


def upload_entry(ctx: AdapterContext, entry: Path, prefix: str) -> list[str]:
    """Upload a file, or every file of a directory tree, under ``prefix``.

    Returns:
        Keys written, sorted.
    """
    if entry.is_file():
        key = f"{prefix}/{entry.name}"
        ctx.storage.put(key, entry.read_bytes())
        return [key]

    keys = []
    for path in sorted(entry.rglob("*")):
        if path.is_file():
            key = f"{prefix}/{entry.name}/{path.relative_to(entry).as_posix()}"
            ctx.storage.put(key, path.read_bytes())
            keys.append(key)
    return keys


class ObjectStorageUploadAdapter:
    """Sink: uploads the single input entry to ``<base_folder>/<output_id>/``."""

    async def run(
        self,
        step: ObjectStorageUploadStep,
        inputs: list[Path],
        output_dir: Path,
        ctx: AdapterContext,
    ) -> AdapterResult:
        entry = require_single_input(step, inputs)
        prefix = f"{step.base_folder.strip('/')}/{generate_output_id()}"

        try:
            keys = await asyncio.to_thread(upload_entry, ctx, entry, prefix)
        except (OSError, ValueError) as e:
            raise ExecutionError(
                ExecutionErrorKind.UPLOAD_FAILED,
                f"Upload failed: {e}",
                details={"base_folder": step.base_folder},
            ) from e

        remote_path = f"{prefix}/{entry.name}"
        write_receipt(output_dir, remote_path)
        ctx.log.info("Uploaded", remote_path=remote_path, object_count=len(keys))
        return AdapterResult(
            runtime={"object_count": len(keys)},
            remote_path=remote_path,
        )
