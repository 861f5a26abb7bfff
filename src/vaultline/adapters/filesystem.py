"""Filesystem read and write adapters."""

from __future__ import annotations

import asyncio
import json
import shutil
from pathlib import Path

from vaultline.adapters.base import AdapterContext, AdapterResult, require_single_input
from vaultline.exceptions import ExecutionError, ExecutionErrorKind
from vaultline.pipeline.definition import FilesystemReadStep, FilesystemWriteStep

RECEIPT_FILENAME = "receipt.json"


def copy_entry(source: Path, destination: Path) -> int:
    """Copy a file or directory tree.

    Returns:
        Total size in bytes of the copied files.
    """
    if source.is_dir():
        shutil.copytree(source, destination)
        return sum(p.stat().st_size for p in destination.rglob("*") if p.is_file())
    shutil.copy2(source, destination)
    return destination.stat().st_size


def write_receipt(output_dir: Path, path: str) -> None:
    """Record where a sink wrote its input, as the sink's single output entry."""
    (output_dir / RECEIPT_FILENAME).write_text(json.dumps({"path": path}, indent=2))


class FilesystemReadAdapter:
    """Source: copies a local file or directory into the output location."""

    async def run(
        self,
        step: FilesystemReadStep,
        inputs: list[Path],
        output_dir: Path,
        ctx: AdapterContext,
    ) -> AdapterResult:
        source = Path(step.path).expanduser()
        if not source.exists():
            raise ExecutionError(
                ExecutionErrorKind.FSPATH_DOES_NOT_EXIST,
                f"Path does not exist: {source}",
                details={"path": str(source)},
            )

        size = await asyncio.to_thread(copy_entry, source, output_dir / source.name)
        ctx.log.info("Filesystem read", source=str(source), size_bytes=size)
        return AdapterResult(
            runtime={"kind": "directory" if source.is_dir() else "file", "size_bytes": size}
        )


class FilesystemWriteAdapter:
    """Sink: copies the single input entry into ``folder``.

    An existing entry of the same name is replaced.
    """

    async def run(
        self,
        step: FilesystemWriteStep,
        inputs: list[Path],
        output_dir: Path,
        ctx: AdapterContext,
    ) -> AdapterResult:
        entry = require_single_input(step, inputs)
        folder = Path(step.folder).expanduser()
        destination = folder / entry.name

        def _write() -> int:
            folder.mkdir(parents=True, exist_ok=True)
            if destination.is_dir():
                shutil.rmtree(destination)
            elif destination.exists():
                destination.unlink()
            return copy_entry(entry, destination)

        size = await asyncio.to_thread(_write)
        write_receipt(output_dir, str(destination))
        ctx.log.info("Filesystem write", destination=str(destination), size_bytes=size)
        return AdapterResult(
            runtime={"destination": str(destination), "size_bytes": size},
            remote_path=str(destination),
        )
