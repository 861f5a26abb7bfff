"""Pytest fixtures for vaultline tests."""

from __future__ import annotations

import stat
import sys
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

import pytest
import structlog

from vaultline.config import VaultlineConfig
from vaultline.infra.command import CommandRunner
from vaultline.pipeline.artifacts import ArtifactStore
from vaultline.pipeline.definition import StepType
from vaultline.pipeline.execution import InMemoryExecutionStore
from vaultline.pipeline.executor import StepExecutor
from vaultline.pipeline.guard import ExecutionGuard
from vaultline.storage.memory import InMemoryObjectStorage

from fakes import RecordingAdapter

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_structlog() -> Iterator[None]:
    """Undo logging configuration done by CLI tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def config(tmp_path: Path) -> VaultlineConfig:
    """Create a config rooted in a temporary directory."""
    root = tmp_path / "vaultline"
    cfg = VaultlineConfig(
        artifact_root=root / "artifacts",
        tmp_root=root / "tmp",
        storage_root=root / "storage",
        state_dir=root / "state",
        pipelines_dir=root / "pipelines",
    )
    cfg.ensure_directories()
    return cfg


@pytest.fixture
def storage() -> InMemoryObjectStorage:
    """Create an empty in-memory object storage."""
    return InMemoryObjectStorage()


@pytest.fixture
def artifact_store(config: VaultlineConfig, storage: InMemoryObjectStorage) -> ArtifactStore:
    """Create an artifact store over the in-memory storage."""
    return ArtifactStore(config.artifact_root, storage)


@pytest.fixture
def execution_store() -> InMemoryExecutionStore:
    """Create an empty execution store."""
    return InMemoryExecutionStore()


@pytest.fixture
def recording_adapter() -> RecordingAdapter:
    """Create a recording adapter."""
    return RecordingAdapter()


@pytest.fixture
def make_executor(
    config: VaultlineConfig,
    artifact_store: ArtifactStore,
    execution_store: InMemoryExecutionStore,
) -> Callable[..., StepExecutor]:
    """Factory for executors sharing the test stores."""

    def _make(adapters: dict[StepType, Any], **kwargs: Any) -> StepExecutor:
        options: dict[str, Any] = {
            "artifacts": artifact_store,
            "guard": ExecutionGuard(),
            "executions": execution_store,
            "tmp_root": config.tmp_root,
            "command_runner": CommandRunner(heartbeat_interval=0),
            "env": {},
        }
        options.update(kwargs)
        return StepExecutor(adapters=adapters, **options)

    return _make


@pytest.fixture
def fake_pg_dump(tmp_path: Path) -> Path:
    """Create an executable standing in for ``pg_dump``.

    It writes a small dump to the path given by ``--file=``.
    """
    script = tmp_path / "bin" / "pg_dump"
    script.parent.mkdir(parents=True)
    script.write_text(
        "#!/bin/sh\n"
        "for arg in \"$@\"; do\n"
        "  case \"$arg\" in\n"
        "    --file=*) echo 'PGDMP fake dump' > \"${arg#--file=}\" ;;\n"
        "  esac\n"
        "done\n"
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script
