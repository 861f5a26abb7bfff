"""Service facade used by the CLI and by transport layers."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import structlog

from vaultline.adapters import Adapter, default_adapters
from vaultline.config import VaultlineConfig
from vaultline.exceptions import ExecutionError, ExecutionErrorKind
from vaultline.infra.command import CommandRunner
from vaultline.metadata import (
    InMemoryMetadataStore,
    JsonFileMetadataStore,
    MetadataRepository,
    NotificationPolicyMetadata,
    ScheduleMetadata,
    notification_policy_repository,
    schedule_repository,
)
from vaultline.paths import StatePaths, generate_execution_id
from vaultline.pipeline.artifacts import ArtifactStore
from vaultline.pipeline.definition import (
    PipelineDefinition,
    StepType,
    parse_pipeline_definition,
)
from vaultline.pipeline.execution import (
    Execution,
    ExecutionStore,
    FileSystemExecutionStore,
)
from vaultline.pipeline.executor import StepExecutor
from vaultline.pipeline.guard import ExecutionGuard
from vaultline.pipeline.registry import PipelineRegistry
from vaultline.pipeline.validator import GraphValidator, ValidatedGraph
from vaultline.storage.base import ObjectStorage
from vaultline.storage.filesystem import FileSystemObjectStorage

logger = structlog.get_logger()


class BackupService:
    """Entry point for validating pipelines and driving executions.

    Executions run as tasks on the caller's event loop; use ``wait_for``
    to await one, or ``run`` to start and await in one call. Schedules and
    notification policies are defined elsewhere; the service only keeps
    their metadata (the ``active`` flag) through ``schedules`` and
    ``notification_policies``.
    """

    def __init__(
        self,
        *,
        registry: PipelineRegistry,
        executor: StepExecutor,
        executions: ExecutionStore,
        validator: GraphValidator | None = None,
        schedules: MetadataRepository | None = None,
        notification_policies: MetadataRepository | None = None,
        log: Any | None = None,
    ) -> None:
        self.registry = registry
        self.executor = executor
        self.executions = executions
        self.validator = validator or GraphValidator()
        self.schedules = schedules or schedule_repository(InMemoryMetadataStore())
        self.notification_policies = notification_policies or notification_policy_repository(
            InMemoryMetadataStore()
        )
        self._log = log or logger.bind(component="BackupService")
        self._tasks: dict[str, asyncio.Task[Execution]] = {}

    @classmethod
    def from_config(
        cls,
        config: VaultlineConfig,
        *,
        adapters: Mapping[StepType, Adapter] | None = None,
        storage: ObjectStorage | None = None,
        env: Mapping[str, str] | None = None,
    ) -> BackupService:
        """Wire a service with file-backed stores from configuration."""
        config.ensure_directories()
        storage = storage or FileSystemObjectStorage(config.storage_root)
        paths = StatePaths(config.state_dir)
        executions = FileSystemExecutionStore(paths)
        executor = StepExecutor(
            adapters=adapters or default_adapters(),
            artifacts=ArtifactStore(config.artifact_root, storage),
            guard=ExecutionGuard(),
            executions=executions,
            tmp_root=config.tmp_root,
            command_runner=CommandRunner(),
            env=env,
            step_delay_seconds=config.step_delay_seconds,
            keep_intermediate_outputs=config.keep_intermediate_outputs,
        )
        return cls(
            registry=PipelineRegistry(config.pipelines_dir),
            executor=executor,
            executions=executions,
            schedules=schedule_repository(
                JsonFileMetadataStore(paths.metadata_json("schedules"), ScheduleMetadata)
            ),
            notification_policies=notification_policy_repository(
                JsonFileMetadataStore(
                    paths.metadata_json("notification_policies"), NotificationPolicyMetadata
                )
            ),
        )

    def validate_pipeline(
        self, definition: PipelineDefinition | dict[str, Any]
    ) -> ValidatedGraph:
        """Validate a pipeline definition.

        Args:
            definition: A parsed definition or raw data (e.g. loaded YAML).

        Returns:
            The validated graph.

        Raises:
            PipelineError: ``invalid_definition`` for schema problems, or a
                structural kind from ``GraphValidator``; ``details["paths"]``
                names the offending properties.
        """
        if not isinstance(definition, PipelineDefinition):
            definition = parse_pipeline_definition(definition)
        return self.validator.validate(definition)

    async def start_execution(self, pipeline_id: str) -> str:
        """Start an execution of a registered pipeline.

        The definition is validated again right before the run.

        Returns:
            The new execution id.

        Raises:
            PipelineError: ``not_found`` or a validation kind.
            ExecutionError: ``already_exists`` if the pipeline is running.
        """
        graph = self.validate_pipeline(self.registry.get(pipeline_id))
        acquisition = self.executor.reserve(pipeline_id)

        execution_id = generate_execution_id()
        try:
            self.executions.save(Execution(id=execution_id, pipeline_id=pipeline_id))
        except BaseException:
            acquisition.release()
            raise

        task = asyncio.create_task(
            self.executor.execute(graph, execution_id, acquisition),
            name=f"execution:{execution_id}",
        )
        self._tasks[execution_id] = task
        task.add_done_callback(lambda t: self._on_done(execution_id, t))
        self._log.info("Execution started", pipeline_id=pipeline_id, execution_id=execution_id)
        return execution_id

    def get_execution_status(self, execution_id: str) -> Execution:
        """Get an execution record.

        Raises:
            ExecutionError: ``not_found`` if the id is unknown.
        """
        execution = self.executions.get(execution_id)
        if execution is None:
            raise ExecutionError(
                ExecutionErrorKind.NOT_FOUND,
                f"Execution '{execution_id}' not found",
                details={"id": execution_id},
            )
        return execution

    def cancel_execution(self, execution_id: str) -> Execution:
        """Ask a running execution to stop after its current steps.

        Cancelling a finished execution changes nothing.

        Raises:
            ExecutionError: ``not_found`` if the id is unknown.
        """
        execution = self.get_execution_status(execution_id)
        if execution.status.is_terminal:
            return execution

        if not self.executor.request_cancel(execution_id):
            # Not started yet on this process; the executor reads the flag
            # from the stored record when it picks the execution up.
            execution.cancel_requested = True
            self.executions.save(execution)
        return self.get_execution_status(execution_id)

    async def wait_for(self, execution_id: str) -> Execution:
        """Wait until an execution started by this service is terminal.

        Raises:
            ExecutionError: ``not_found`` if the id is unknown.
        """
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.shield(task)
        execution = self.get_execution_status(execution_id)
        if task is None and not execution.status.is_terminal:
            self._log.warning(
                "Execution is not driven by this process", execution_id=execution_id
            )
        return execution

    async def run(self, pipeline_id: str) -> Execution:
        """Start an execution and wait for it to finish."""
        return await self.wait_for(await self.start_execution(pipeline_id))

    def _on_done(self, execution_id: str, task: asyncio.Task[Execution]) -> None:
        self._tasks.pop(execution_id, None)
        if task.cancelled():
            self._log.warning("Execution task cancelled", execution_id=execution_id)
        elif task.exception() is not None:
            self._log.error(
                "Execution task crashed",
                execution_id=execution_id,
                error=str(task.exception()),
            )
