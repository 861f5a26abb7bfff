"""Base protocol and types for step adapters."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from vaultline.exceptions import ExecutionError, ExecutionErrorKind

if TYPE_CHECKING:
    from vaultline.infra.command import CommandRunner
    from vaultline.pipeline.definition import BaseStep
    from vaultline.storage.base import ObjectStorage

logger = structlog.get_logger()


@dataclass
class AdapterResult:
    """Result of one adapter invocation.

    Attributes:
        runtime: Information recorded in the step's trail entry.
        remote_path: Object storage path written by a sink, if any.
    """

    runtime: dict[str, Any] | None = None
    remote_path: str | None = None


@dataclass
class AdapterContext:
    """Dependencies available to adapters.

    Attributes:
        execution_id: Execution the step belongs to.
        pipeline_id: Pipeline being executed.
        storage: Object storage backend for sinks.
        tmp_root: Scratch directory.
        command_runner: Runner for external tools.
        env: Environment used to resolve connection and key references.
        log: Bound logger for the step.
    """

    execution_id: str
    pipeline_id: str
    storage: ObjectStorage
    tmp_root: Path
    command_runner: CommandRunner
    env: Mapping[str, str] = field(default_factory=lambda: os.environ)
    log: Any = field(default_factory=lambda: logger)


class Adapter(Protocol):
    """Protocol for step adapters.

    An adapter consumes the single entries of its upstream output
    directories and writes exactly one entry into ``output_dir``.
    """

    async def run(
        self,
        step: BaseStep,
        inputs: list[Path],
        output_dir: Path,
        ctx: AdapterContext,
    ) -> AdapterResult:
        """Run the step.

        Args:
            step: Step definition with its options.
            inputs: One entry per upstream step, in reference order.
            output_dir: Freshly allocated, empty output directory.
            ctx: Adapter context.

        Returns:
            AdapterResult with runtime information.

        Raises:
            ExecutionError: On any failure.
        """
        ...


def require_single_input(step: BaseStep, inputs: list[Path]) -> Path:
    """Return the only input of a step that consumes exactly one artifact.

    Raises:
        ExecutionError: ``artifact_count_invalid`` otherwise.
    """
    if len(inputs) != 1:
        raise ExecutionError(
            ExecutionErrorKind.ARTIFACT_COUNT_INVALID,
            f"Step '{step.id}' expects exactly one input, got {len(inputs)}",
            details={"step_id": step.id, "count": len(inputs)},
        )
    return inputs[0]


def require_directory(step: BaseStep, entry: Path) -> Path:
    """Return ``entry`` if it is a directory.

    Raises:
        ExecutionError: ``artifact_type_invalid`` for a file.
    """
    if not entry.is_dir():
        raise ExecutionError(
            ExecutionErrorKind.ARTIFACT_TYPE_INVALID,
            f"Step '{step.id}' expects a directory, got file '{entry.name}'",
            details={
                "step_id": step.id,
                "name": entry.name,
                "type": "file",
                "required_type": "directory",
            },
        )
    return entry


def read_env(ctx: AdapterContext, name: str) -> str:
    """Resolve an environment variable reference.

    Raises:
        ExecutionError: ``environment_variable_missing`` if unset or empty.
    """
    value = ctx.env.get(name)
    if not value:
        raise ExecutionError(
            ExecutionErrorKind.ENVIRONMENT_VARIABLE_MISSING,
            f"Environment variable '{name}' is not set",
            details={"name": name},
        )
    return value


def single_entry(directory: Path) -> Path:
    """Return the only child of a directory.

    Raises:
        ExecutionError: ``fspath_does_not_exist`` if the directory is
            missing, ``fsdir_children_count_invalid`` unless it holds
            exactly one entry.
    """
    if not directory.is_dir():
        raise ExecutionError(
            ExecutionErrorKind.FSPATH_DOES_NOT_EXIST,
            f"Directory does not exist: {directory}",
            details={"path": str(directory)},
        )
    children = sorted(directory.iterdir())
    if len(children) != 1:
        raise ExecutionError(
            ExecutionErrorKind.FSDIR_CHILDREN_COUNT_INVALID,
            f"Expected exactly one entry in {directory}, found {len(children)}",
            details={"path": str(directory), "count": len(children)},
        )
    return children[0]


def strip_suffix(name: str, suffix: str) -> str:
    """Remove ``suffix`` from ``name`` if present."""
    return name[: -len(suffix)] if suffix and name.endswith(suffix) else name
