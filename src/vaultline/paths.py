"""Identifier generation and on-disk layout for vaultline."""

from __future__ import annotations

import secrets
import string
import threading
import time
from dataclasses import dataclass
from pathlib import Path

_ALPHABET = string.ascii_lowercase + string.digits
_SUFFIX_LENGTH = 6

_lock = threading.Lock()
_last_epoch_ms = 0


def short_random_string(length: int = _SUFFIX_LENGTH) -> str:
    """Generate a short random ``[a-z0-9]`` string."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def generate_output_id() -> str:
    """Generate a unique, time-ordered identifier.

    Returns:
        An id in format ``<13-digit epoch ms>-<6 random chars>``. Ids sort
        in creation order within a process: when the clock has not moved
        since the previous call, the millisecond part is bumped by one.

    Example:
        >>> a, b = generate_output_id(), generate_output_id()
        >>> a < b
        True
    """
    global _last_epoch_ms
    with _lock:
        now = time.time_ns() // 1_000_000
        if now <= _last_epoch_ms:
            now = _last_epoch_ms + 1
        _last_epoch_ms = now
    return f"{now:013d}-{short_random_string()}"


def generate_execution_id() -> str:
    """Generate an execution identifier (same shape as output ids)."""
    return generate_output_id()


@dataclass(frozen=True)
class OutputLocation:
    """A freshly allocated output directory.

    Attributes:
        id: The unique output id.
        path: Directory the adapter writes its single entry into.
    """

    id: str
    path: Path


@dataclass
class StatePaths:
    """Layout of the JSON state kept by the file-backed stores.

    Attributes:
        state_dir: Root directory for state files.
    """

    state_dir: Path

    @property
    def executions_dir(self) -> Path:
        """Directory holding one JSON file per execution."""
        return self.state_dir / "executions"

    @property
    def metadata_dir(self) -> Path:
        """Directory holding one JSON file per metadata table."""
        return self.state_dir / "metadata"

    def execution_json(self, execution_id: str) -> Path:
        """Path of an execution record."""
        return self.executions_dir / f"{execution_id}.json"

    def metadata_json(self, table: str) -> Path:
        """Path of a metadata table."""
        return self.metadata_dir / f"{table}.json"

    def create_directories(self) -> None:
        """Create all state directories (idempotent)."""
        self.executions_dir.mkdir(parents=True, exist_ok=True)
        self.metadata_dir.mkdir(parents=True, exist_ok=True)
