"""Compression and decompression adapters (tar.gz)."""

from __future__ import annotations

import asyncio
import shutil
import tarfile
import tempfile
from pathlib import Path

from vaultline.adapters.base import (
    AdapterContext,
    AdapterResult,
    require_single_input,
    single_entry,
)
from vaultline.exceptions import ExecutionError, ExecutionErrorKind
from vaultline.pipeline.constants import COMPRESSION_EXTENSION
from vaultline.pipeline.definition import CompressionStep, DecompressionStep


def compress_entry(entry: Path, archive: Path, level: int) -> int:
    """Pack a file or directory into a gzip tarball.

    Returns:
        Size of the archive in bytes.
    """
    with tarfile.open(archive, "w:gz", compresslevel=level) as tar:
        tar.add(entry, arcname=entry.name)
    return archive.stat().st_size


def extract_single_entry(archive: Path, scratch: Path, output_dir: Path) -> Path:
    """Unpack an archive holding one top-level entry into ``output_dir``.

    Returns:
        Path of the extracted entry.
    """
    with tarfile.open(archive, "r:gz") as tar:
        tar.extractall(scratch, filter="data")
    entry = single_entry(scratch)
    destination = output_dir / entry.name
    shutil.move(entry, destination)
    return destination


class CompressionAdapter:
    """Transformer: ``<name>`` becomes ``<name>.tar.gz``."""

    async def run(
        self,
        step: CompressionStep,
        inputs: list[Path],
        output_dir: Path,
        ctx: AdapterContext,
    ) -> AdapterResult:
        entry = require_single_input(step, inputs)
        archive = output_dir / f"{entry.name}{COMPRESSION_EXTENSION}"
        try:
            size = await asyncio.to_thread(compress_entry, entry, archive, step.level)
        except (OSError, tarfile.TarError) as e:
            raise ExecutionError(
                ExecutionErrorKind.COMPRESSION_FAILED,
                f"Compression failed: {e}",
                details={"input": entry.name},
            ) from e

        ctx.log.info("Compressed", archive=archive.name, size_bytes=size)
        return AdapterResult(runtime={"level": step.level, "size_bytes": size})


class DecompressionAdapter:
    """Transformer: unpacks a ``.tar.gz`` holding exactly one entry."""

    async def run(
        self,
        step: DecompressionStep,
        inputs: list[Path],
        output_dir: Path,
        ctx: AdapterContext,
    ) -> AdapterResult:
        archive = require_single_input(step, inputs)
        if archive.is_dir():
            raise ExecutionError(
                ExecutionErrorKind.DECOMPRESSION_FAILED,
                f"Cannot decompress a directory: {archive.name}",
                details={"input": archive.name},
            )

        ctx.tmp_root.mkdir(parents=True, exist_ok=True)
        scratch = Path(tempfile.mkdtemp(prefix="decompress-", dir=ctx.tmp_root))
        try:
            extracted = await asyncio.to_thread(
                extract_single_entry, archive, scratch, output_dir
            )
        except (OSError, tarfile.TarError) as e:
            raise ExecutionError(
                ExecutionErrorKind.DECOMPRESSION_FAILED,
                f"Decompression failed: {e}",
                details={"input": archive.name},
            ) from e
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        ctx.log.info("Decompressed", entry=extracted.name)
        return AdapterResult(runtime={"entry": extracted.name})
