"""Folder flatten, folder group and filter adapters."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from vaultline.adapters.base import (
    AdapterContext,
    AdapterResult,
    require_directory,
    require_single_input,
)
from vaultline.adapters.filesystem import copy_entry
from vaultline.exceptions import ExecutionError, ExecutionErrorKind
from vaultline.pipeline.definition import FilterStep, FolderFlattenStep, FolderGroupStep


def _claim(target: Path, step_id: str) -> Path:
    """Return ``target`` unless an earlier entry already took that name."""
    if target.exists():
        raise ExecutionError(
            ExecutionErrorKind.ARTIFACT_NAME_CONFLICT,
            f"Step '{step_id}' produced '{target.name}' twice",
            details={"step_id": step_id, "name": target.name},
        )
    return target


class FolderFlattenAdapter:
    """Transformer: copies every file of a directory tree into one directory.

    Files keep their names; subdirectories disappear. Two files with the
    same name anywhere in the tree are a conflict.
    """

    async def run(
        self,
        step: FolderFlattenStep,
        inputs: list[Path],
        output_dir: Path,
        ctx: AdapterContext,
    ) -> AdapterResult:
        source = require_directory(step, require_single_input(step, inputs))
        destination = output_dir / source.name

        def _flatten() -> int:
            destination.mkdir()
            count = 0
            for path in sorted(source.rglob("*")):
                if path.is_file():
                    shutil.copy2(path, _claim(destination / path.name, step.id))
                    count += 1
            return count

        count = await asyncio.to_thread(_flatten)
        ctx.log.info("Folder flattened", file_count=count)
        return AdapterResult(runtime={"file_count": count})


class FolderGroupAdapter:
    """Transformer: gathers the entries of all producers into one directory.

    The only adapter that joins branches; the grouped directory is named
    ``folder_name``.
    """

    async def run(
        self,
        step: FolderGroupStep,
        inputs: list[Path],
        output_dir: Path,
        ctx: AdapterContext,
    ) -> AdapterResult:
        if not inputs:
            raise ExecutionError(
                ExecutionErrorKind.ARTIFACT_COUNT_INVALID,
                f"Step '{step.id}' expects at least one input",
                details={"step_id": step.id, "count": 0, "min": 1},
            )
        destination = output_dir / step.folder_name

        def _group() -> list[str]:
            destination.mkdir()
            for entry in inputs:
                copy_entry(entry, _claim(destination / entry.name, step.id))
            return [entry.name for entry in inputs]

        names = await asyncio.to_thread(_group)
        ctx.log.info("Entries grouped", folder=step.folder_name, count=len(names))
        return AdapterResult(runtime={"entries": names})


class FilterAdapter:
    """Transformer: keeps the children of a directory that match a selection.

    The output is a directory of the same name, possibly empty.
    """

    async def run(
        self,
        step: FilterStep,
        inputs: list[Path],
        output_dir: Path,
        ctx: AdapterContext,
    ) -> AdapterResult:
        source = require_directory(step, require_single_input(step, inputs))
        destination = output_dir / source.name

        def _filter() -> tuple[list[str], int]:
            destination.mkdir()
            kept: list[str] = []
            dropped = 0
            for child in sorted(source.iterdir()):
                if step.selection.matches(child.name):
                    copy_entry(child, destination / child.name)
                    kept.append(child.name)
                else:
                    dropped += 1
            return kept, dropped

        kept, dropped = await asyncio.to_thread(_filter)
        ctx.log.info("Entries filtered", kept=len(kept), dropped=dropped)
        return AdapterResult(runtime={"kept": kept, "dropped": dropped})
