"""Subprocess command runner used by the tool-backed adapters."""

from __future__ import annotations

import contextlib
import os
import subprocess
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

import structlog

from vaultline.exceptions import CommandError

logger = structlog.get_logger()


@dataclass
class CommandResult:
    """Outcome of one tool invocation.

    Attributes:
        command: Argument vector that was executed.
        returncode: Process exit status.
        stdout_path: File holding the streamed standard output, if requested.
        stderr: Tail of the decoded standard error.
    """

    command: list[str]
    returncode: int
    stdout_path: Path | None = None
    stderr: str = field(default="", repr=False)

    @property
    def ok(self) -> bool:
        """True when the process exited with status 0."""
        return self.returncode == 0


@contextlib.contextmanager
def _heartbeat(log: structlog.BoundLogger, interval: int) -> Iterator[None]:
    """Log periodically while the wrapped block is running."""
    if interval <= 0:
        yield
        return

    done = threading.Event()

    def beat() -> None:
        ticks = 0
        while not done.wait(interval):
            ticks += 1
            log.info("Command still running", elapsed_seconds=ticks * interval)

    thread = threading.Thread(target=beat, name="command-heartbeat", daemon=True)
    thread.start()
    try:
        yield
    finally:
        done.set()
        thread.join(timeout=1)


@contextlib.contextmanager
def _stdout_target(path: Path | None) -> Iterator[IO[bytes] | int]:
    """Open ``path`` for the child's stdout, or discard it."""
    if path is None:
        yield subprocess.DEVNULL
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as handle:
        yield handle


class CommandRunner:
    """Runs external tools such as pg_dump.

    Dumps can be large, so stdout is streamed to a file instead of being
    buffered. Only the tail of stderr is kept for error reporting. Calls
    block; adapters run them through ``asyncio.to_thread``.

    Example:
        >>> runner = CommandRunner(heartbeat_interval=0)
        >>> runner.run(["pg_dump", "--version"]).ok
        True
    """

    STDERR_TAIL_CHARS = 8_000

    def __init__(self, dry_run: bool = False, heartbeat_interval: int = 30) -> None:
        """Create a runner.

        Args:
            dry_run: Log commands without executing them.
            heartbeat_interval: Seconds between progress logs; 0 turns them off.
        """
        self.dry_run = dry_run
        self.heartbeat_interval = heartbeat_interval

    def run(
        self,
        command: list[str],
        *,
        cwd: Path | None = None,
        stdout_path: Path | None = None,
        timeout: int | None = None,
        check: bool = False,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Execute ``command`` and wait for it.

        Args:
            command: Program followed by its arguments.
            cwd: Working directory of the child.
            stdout_path: File receiving stdout; stdout is discarded when None.
            timeout: Seconds before the child is killed.
            check: Raise when the exit status is non-zero.
            env: Variables layered over the current environment.

        Returns:
            The CommandResult of the finished process.

        Raises:
            CommandError: The program is missing, timed out, or failed
                while ``check`` is set.
        """
        program = command[0] if command else None
        log = logger.bind(command=program)
        log.info("Running command", cwd=str(cwd) if cwd else None)

        if self.dry_run:
            log.info("Dry run, command not executed")
            with _stdout_target(stdout_path):
                pass
            return CommandResult(command=command, returncode=0, stdout_path=stdout_path)

        child_env = {**os.environ, **(env or {})}
        beat_every = self.heartbeat_interval
        if timeout is not None and timeout <= beat_every:
            beat_every = 0

        try:
            with _stdout_target(stdout_path) as stdout, _heartbeat(log, beat_every):
                completed = subprocess.run(
                    command,
                    cwd=cwd,
                    env=child_env,
                    stdout=stdout,
                    stderr=subprocess.PIPE,
                    timeout=timeout,
                    check=False,
                )
        except FileNotFoundError as e:
            log.error("Command not found")
            raise CommandError(
                f"Command not found: {program}", command=command, cwd=cwd
            ) from e
        except subprocess.TimeoutExpired as e:
            log.error("Command timed out", timeout=timeout)
            raise CommandError(
                f"Command timed out after {timeout}s: {program}", command=command, cwd=cwd
            ) from e

        log.info("Command completed", returncode=completed.returncode)
        if check and completed.returncode != 0:
            raise CommandError(
                f"Command failed with exit code {completed.returncode}: {program}",
                command=command,
                returncode=completed.returncode,
                cwd=cwd,
            )

        return CommandResult(
            command=command,
            returncode=completed.returncode,
            stdout_path=stdout_path,
            stderr=completed.stderr.decode(errors="replace")[-self.STDERR_TAIL_CHARS :],
        )
