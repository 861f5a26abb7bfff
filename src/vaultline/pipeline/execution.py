"""Execution records and their stores."""

from __future__ import annotations

import json
import threading
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, Field, ValidationError

from vaultline.paths import StatePaths

logger = structlog.get_logger()


class ExecutionStatus(str, Enum):
    """Lifecycle status of an execution."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether the execution can no longer change."""
        return self in (ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED)


class ActionStatus(str, Enum):
    """Status of one step within an execution."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepAction(BaseModel):
    """Progress of a single step.

    Attributes:
        step_id: Step identifier.
        step_type: Step type value.
        status: Current status.
        started_at: When the adapter was invoked.
        completed_at: When the step finished, failed or was skipped.
        output_path: Output directory allocated for the step.
        error: Problem document if the step failed.
    """

    step_id: str
    step_type: str
    status: ActionStatus = ActionStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    output_path: str | None = None
    error: dict[str, Any] | None = None


class Execution(BaseModel):
    """One run of a pipeline.

    Attributes:
        id: Execution identifier.
        pipeline_id: Pipeline being executed.
        status: Lifecycle status.
        started_at: When the execution was created.
        completed_at: When it reached a terminal status.
        step_trail: Trail entries in completion order.
        actions: Per-step progress in topological order.
        artifacts: Terminal artifacts as ``{"path", "stepTrail"}``.
        meta_path: Storage path of the persisted meta document.
        cancel_requested: Whether a caller asked to stop the execution.
        error: Problem document of the first failure, if any.
    """

    id: str
    pipeline_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    step_trail: list[dict[str, Any]] = Field(default_factory=list)
    actions: list[StepAction] = Field(default_factory=list)
    artifacts: list[dict[str, Any]] = Field(default_factory=list)
    meta_path: str | None = None
    cancel_requested: bool = False
    error: dict[str, Any] | None = None

    def get_action(self, step_id: str) -> StepAction:
        """Get the action for a step.

        Raises:
            KeyError: If the step is not part of this execution.
        """
        for action in self.actions:
            if action.step_id == step_id:
                return action
        raise KeyError(step_id)


class ExecutionStore(Protocol):
    """Protocol for execution record persistence."""

    def save(self, execution: Execution) -> None:
        """Insert or replace an execution record."""
        ...

    def get(self, execution_id: str) -> Execution | None:
        """Get an execution by id.

        Returns:
            A copy of the record, or None if unknown.
        """
        ...

    def list(self, pipeline_id: str | None = None) -> list[Execution]:
        """List executions, oldest first, optionally for one pipeline."""
        ...


class InMemoryExecutionStore:
    """Execution store kept in a dict. Records are copied in and out."""

    def __init__(self) -> None:
        self._records: dict[str, Execution] = {}
        self._lock = threading.Lock()

    def save(self, execution: Execution) -> None:
        with self._lock:
            self._records[execution.id] = execution.model_copy(deep=True)

    def get(self, execution_id: str) -> Execution | None:
        with self._lock:
            record = self._records.get(execution_id)
            return record.model_copy(deep=True) if record else None

    def list(self, pipeline_id: str | None = None) -> list[Execution]:
        with self._lock:
            records = [
                r.model_copy(deep=True)
                for r in self._records.values()
                if pipeline_id is None or r.pipeline_id == pipeline_id
            ]
        return sorted(records, key=lambda r: r.id)


class FileSystemExecutionStore:
    """Execution store writing one JSON file per execution.

    Layout:
        <state_dir>/executions/<execution_id>.json
    """

    def __init__(self, paths: StatePaths) -> None:
        self.paths = paths
        self.paths.create_directories()
        self._lock = threading.Lock()
        self._log = logger.bind(component="FileSystemExecutionStore")

    def save(self, execution: Execution) -> None:
        path = self.paths.execution_json(execution.id)
        with self._lock:
            path.write_text(json.dumps(execution.model_dump(mode="json"), indent=2))

    def get(self, execution_id: str) -> Execution | None:
        path = self.paths.execution_json(execution_id)
        if not path.exists():
            return None
        try:
            return Execution.model_validate_json(path.read_text())
        except ValidationError as e:
            self._log.warning(
                "Failed to parse execution record", path=str(path), error=str(e)
            )
            return None

    def list(self, pipeline_id: str | None = None) -> list[Execution]:
        records = []
        for path in sorted(self.paths.executions_dir.glob("*.json")):
            record = self.get(path.stem)
            if record and (pipeline_id is None or record.pipeline_id == pipeline_id):
                records.append(record)
        return records
