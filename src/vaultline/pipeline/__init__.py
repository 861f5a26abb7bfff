"""Pipeline engine for validated, graph-ordered step execution."""

from vaultline.pipeline.artifacts import (
    ArtifactStore,
    MetaArtifact,
    MetaDocument,
    parse_meta,
    serialize_meta,
)
from vaultline.pipeline.definition import (
    PipelineDefinition,
    StepType,
    parse_pipeline_definition,
)
from vaultline.pipeline.execution import (
    ActionStatus,
    Execution,
    ExecutionStatus,
    FileSystemExecutionStore,
    InMemoryExecutionStore,
)
from vaultline.pipeline.executor import StepExecutor
from vaultline.pipeline.guard import ExecutionGuard, FifoMutex
from vaultline.pipeline.registry import PipelineRegistry
from vaultline.pipeline.validator import GraphValidator, ValidatedGraph

__all__ = [
    "ActionStatus",
    "ArtifactStore",
    "Execution",
    "ExecutionGuard",
    "ExecutionStatus",
    "FifoMutex",
    "FileSystemExecutionStore",
    "GraphValidator",
    "InMemoryExecutionStore",
    "MetaArtifact",
    "MetaDocument",
    "PipelineDefinition",
    "PipelineRegistry",
    "StepExecutor",
    "StepType",
    "ValidatedGraph",
    "parse_meta",
    "parse_pipeline_definition",
    "serialize_meta",
]
