"""Step executor - runs validated pipeline graphs."""

from __future__ import annotations

import asyncio
import os
import shutil
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from vaultline.adapters.base import Adapter, AdapterContext, AdapterResult, single_entry
from vaultline.exceptions import ExecutionError, ExecutionErrorKind
from vaultline.infra.command import CommandRunner
from vaultline.paths import OutputLocation
from vaultline.pipeline.artifacts import ArtifactStore, MetaArtifact
from vaultline.pipeline.definition import StepType
from vaultline.pipeline.execution import (
    ActionStatus,
    Execution,
    ExecutionStatus,
    ExecutionStore,
    StepAction,
)
from vaultline.pipeline.guard import Acquisition, ExecutionGuard
from vaultline.pipeline.validator import ValidatedGraph

logger = structlog.get_logger()


@dataclass
class _RunState:
    """Per-execution bookkeeping shared by the step tasks."""

    graph: ValidatedGraph
    execution: Execution
    log: Any
    outputs: dict[str, OutputLocation] = field(default_factory=dict)
    trails: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    results: dict[str, AdapterResult] = field(default_factory=dict)
    tasks: dict[str, asyncio.Task[ActionStatus]] = field(default_factory=dict)


class StepExecutor:
    """Runs a validated graph's adapters in dependency order.

    Every step runs in its own task that first awaits the tasks of its
    producers, so independent branches run concurrently while steps on
    the same chain stay strictly ordered. A failed step fails only its
    branch: downstream steps are skipped, siblings keep running.

    Example:
        >>> executor = StepExecutor(adapters=default_adapters(), ...)
        >>> acquisition = executor.reserve(graph.pipeline_id)
        >>> execution = await executor.execute(graph, execution_id, acquisition)
        >>> execution.status
        <ExecutionStatus.SUCCEEDED: 'succeeded'>
    """

    def __init__(
        self,
        *,
        adapters: Mapping[StepType, Adapter],
        artifacts: ArtifactStore,
        guard: ExecutionGuard,
        executions: ExecutionStore,
        tmp_root: Path,
        command_runner: CommandRunner | None = None,
        env: Mapping[str, str] | None = None,
        step_delay_seconds: float = 0.0,
        keep_intermediate_outputs: bool = False,
        log: Any | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            adapters: Adapter for each step type.
            artifacts: Store allocating output locations and persisting meta.
            guard: Per-pipeline execution guard.
            executions: Store for execution records.
            tmp_root: Scratch directory handed to adapters.
            command_runner: Runner for tool-backed adapters.
            env: Environment for connection and key references.
            step_delay_seconds: Pause before each step.
            keep_intermediate_outputs: Keep output directories of
                non-terminal steps after the execution ends.
            log: Logger to use instead of the module logger.

        Raises:
            ValueError: If some step type has no adapter.
        """
        missing = sorted(t.value for t in StepType if t not in adapters)
        if missing:
            msg = f"No adapter for step types: {', '.join(missing)}"
            raise ValueError(msg)

        self._adapters = dict(adapters)
        self._artifacts = artifacts
        self._guard = guard
        self._executions = executions
        self._tmp_root = tmp_root
        self._command_runner = command_runner or CommandRunner()
        self._env = env if env is not None else os.environ
        self._step_delay_seconds = step_delay_seconds
        self._keep_intermediate_outputs = keep_intermediate_outputs
        self._log = log or logger.bind(component="StepExecutor")
        self._running: dict[str, Execution] = {}

    def reserve(self, pipeline_id: str) -> Acquisition:
        """Take the guard slot for a pipeline without waiting.

        Raises:
            ExecutionError: ``already_exists`` if an execution of the
                pipeline is already in flight.
        """
        acquisition = self._guard.try_acquire(pipeline_id)
        if acquisition is None:
            raise ExecutionError(
                ExecutionErrorKind.ALREADY_EXISTS,
                f"An execution of pipeline '{pipeline_id}' is already running",
                details={"pipeline_id": pipeline_id},
            )
        return acquisition

    def is_running(self, execution_id: str) -> bool:
        """Whether this executor is currently driving an execution."""
        return execution_id in self._running

    def request_cancel(self, execution_id: str) -> bool:
        """Flag a running execution for cancellation.

        Steps already running finish; steps not yet started are skipped.

        Returns:
            True if the execution was running here and is now flagged.
        """
        execution = self._running.get(execution_id)
        if execution is None:
            return False
        execution.cancel_requested = True
        self._executions.save(execution)
        self._log.info("Cancellation requested", execution_id=execution_id)
        return True

    async def execute(
        self,
        graph: ValidatedGraph,
        execution_id: str,
        acquisition: Acquisition | None = None,
    ) -> Execution:
        """Execute a validated graph.

        Args:
            graph: Graph returned by ``GraphValidator.validate``.
            execution_id: Identity of the execution record to drive. A new
                record is created if the store does not have one.
            acquisition: Guard slot already taken with ``reserve``; taken
                here when omitted.

        Returns:
            The terminal execution record.

        Raises:
            ExecutionError: ``already_exists`` if the guard slot is held.
        """
        if acquisition is None:
            acquisition = self.reserve(graph.pipeline_id)

        log = self._log.bind(pipeline_id=graph.pipeline_id, execution_id=execution_id)
        try:
            execution = self._executions.get(execution_id) or Execution(
                id=execution_id, pipeline_id=graph.pipeline_id
            )
            execution.actions = [
                StepAction(step_id=step.id, step_type=step.step_type.value)
                for step in graph.ordered_steps
            ]
            execution.status = ExecutionStatus.RUNNING
            self._executions.save(execution)
        except BaseException:
            acquisition.release()
            raise

        self._running[execution_id] = execution
        state = _RunState(graph=graph, execution=execution, log=log)
        log.info("Starting execution", step_count=len(graph.order))

        try:
            for step_id in graph.order:
                state.tasks[step_id] = asyncio.create_task(
                    self._run_step(state, step_id), name=f"{execution_id}:{step_id}"
                )
            outcomes = await asyncio.gather(*state.tasks.values(), return_exceptions=True)
            for step_id, outcome in zip(state.tasks, outcomes, strict=True):
                if isinstance(outcome, BaseException):
                    log.warning("Step task ended abnormally", step_id=step_id, error=repr(outcome))
        except asyncio.CancelledError:
            execution.cancel_requested = True
            for task in state.tasks.values():
                task.cancel()
            # The guard is only released once no step task is left running.
            await asyncio.gather(*state.tasks.values(), return_exceptions=True)
            raise
        finally:
            acquisition.release()
            self._running.pop(execution_id, None)
            self._finish(state)

        return execution

    async def _run_step(self, state: _RunState, step_id: str) -> ActionStatus:
        action = state.execution.get_action(step_id)
        log = state.log.bind(step_id=step_id, step_type=state.graph.step(step_id).step_type.value)
        try:
            return await self._drive_step(state, step_id, log)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return self._fail_step(state, action, e, log)

    async def _drive_step(self, state: _RunState, step_id: str, log: Any) -> ActionStatus:
        graph, execution = state.graph, state.execution
        step = graph.step(step_id)
        action = execution.get_action(step_id)

        producers = graph.producers[step_id]
        upstream = [await state.tasks[p] for p in producers]
        if any(status != ActionStatus.SUCCEEDED for status in upstream):
            log.info("Skipping step, upstream did not succeed")
            return self._settle(execution, action, ActionStatus.SKIPPED)

        if self._step_delay_seconds:
            await asyncio.sleep(self._step_delay_seconds)
        if execution.cancel_requested:
            log.info("Skipping step, execution cancelled")
            return self._settle(execution, action, ActionStatus.SKIPPED)

        action.status = ActionStatus.RUNNING
        action.started_at = datetime.now(UTC)
        self._executions.save(execution)
        log.info("Executing step")

        ctx = AdapterContext(
            execution_id=execution.id,
            pipeline_id=graph.pipeline_id,
            storage=self._artifacts.storage,
            tmp_root=self._tmp_root,
            command_runner=self._command_runner,
            env=self._env,
            log=log,
        )
        inputs = [single_entry(state.outputs[p].path) for p in producers]
        location = self._artifacts.allocate_output_location()
        action.output_path = str(location.path)
        result = await self._adapters[step.step_type].run(step, inputs, location.path, ctx)
        single_entry(location.path)

        entry = step.descriptor(runtime=result.runtime)
        inherited: dict[str, dict[str, Any]] = {}
        for p in producers:
            for upstream_entry in state.trails[p]:
                inherited.setdefault(upstream_entry["id"], upstream_entry)
        execution.step_trail.append(entry)
        status = self._settle(execution, action, ActionStatus.SUCCEEDED)

        # Published only once the success is on record, so consumers never
        # read the output of a step that ends up failed.
        state.trails[step_id] = [
            *sorted(inherited.values(), key=lambda e: graph.position(e["id"])),
            entry,
        ]
        state.outputs[step_id] = location
        state.results[step_id] = result
        log.info("Step succeeded", output_id=location.id)
        return status

    def _settle(
        self, execution: Execution, action: StepAction, status: ActionStatus
    ) -> ActionStatus:
        action.status = status
        action.completed_at = datetime.now(UTC)
        self._executions.save(execution)
        return status

    def _fail_step(
        self, state: _RunState, action: StepAction, exc: Exception, log: Any
    ) -> ActionStatus:
        """Record a step failure, whether raised by the adapter or the store."""
        execution = state.execution
        error = ExecutionError.wrap(exc)
        log.error("Step failed", problem=error.problem, error=str(error))
        action.error = error.to_problem()
        action.status = ActionStatus.FAILED
        action.completed_at = datetime.now(UTC)
        if execution.error is None:
            execution.error = action.error
        execution.step_trail = [e for e in execution.step_trail if e["id"] != action.step_id]
        try:
            self._executions.save(execution)
        except Exception as e:
            # The terminal record is written again when the execution ends.
            log.warning("Could not save step failure", error=str(e))
        return ActionStatus.FAILED

    def _finish(self, state: _RunState) -> None:
        """Mark the execution terminal and persist its meta document."""
        graph, execution, log = state.graph, state.execution, state.log

        for action in execution.actions:
            if action.status in (ActionStatus.PENDING, ActionStatus.RUNNING):
                action.status = ActionStatus.SKIPPED
                action.completed_at = datetime.now(UTC)

        artifacts = []
        for step_id in graph.terminal_step_ids:
            if step_id not in state.outputs:
                continue
            result = state.results[step_id]
            path = result.remote_path or str(single_entry(state.outputs[step_id].path))
            artifacts.append(
                MetaArtifact.model_validate({"path": path, "stepTrail": state.trails[step_id]})
            )

        succeeded = all(a.status == ActionStatus.SUCCEEDED for a in execution.actions)
        if not succeeded and execution.error is None and execution.cancel_requested:
            execution.error = ExecutionError(
                ExecutionErrorKind.CANCELLED,
                details={"id": execution.id},
            ).to_problem()
        execution.status = ExecutionStatus.SUCCEEDED if succeeded else ExecutionStatus.FAILED
        execution.artifacts = [a.model_dump(mode="json", by_alias=True) for a in artifacts]

        try:
            execution.meta_path = self._artifacts.persist_meta(execution.id, artifacts)
        except Exception as e:
            log.error("Failed to persist meta document", error=str(e))
            execution.status = ExecutionStatus.FAILED
            execution.error = ExecutionError.wrap(e).to_problem()

        if not self._keep_intermediate_outputs:
            terminal = set(graph.terminal_step_ids)
            for step_id, location in state.outputs.items():
                if step_id not in terminal:
                    shutil.rmtree(location.path, ignore_errors=True)

        execution.completed_at = datetime.now(UTC)
        self._executions.save(execution)
        log.info(
            "Execution finished",
            status=execution.status.value,
            artifact_count=len(artifacts),
        )
