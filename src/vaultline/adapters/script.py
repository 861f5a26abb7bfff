"""Custom script adapter."""

from __future__ import annotations

import asyncio
import os
import shutil
from pathlib import Path

from vaultline.adapters.base import AdapterContext, AdapterResult, require_single_input
from vaultline.adapters.filesystem import copy_entry
from vaultline.exceptions import CommandError, ExecutionError, ExecutionErrorKind
from vaultline.pipeline.definition import CustomScriptStep

ARTIFACTS_IN_VAR = "VAULTLINE_ARTIFACTS_IN"
ARTIFACTS_OUT_VAR = "VAULTLINE_ARTIFACTS_OUT"

# Characters of stdout kept in a nonzero_script_exit problem
STDOUT_TAIL_CHARS = 4_000


class CustomScriptAdapter:
    """Transformer: runs a user script through ``CommandRunner``.

    Environment seen by the script:
        VAULTLINE_ARTIFACTS_IN: directory holding the single input entry.
        VAULTLINE_ARTIFACTS_OUT: directory for the single output entry. For
            a passthrough script this is scratch space that is thrown away.
    """

    async def run(
        self,
        step: CustomScriptStep,
        inputs: list[Path],
        output_dir: Path,
        ctx: AdapterContext,
    ) -> AdapterResult:
        entry = require_single_input(step, inputs)
        script = Path(step.path).expanduser()
        if not script.exists():
            raise ExecutionError(
                ExecutionErrorKind.FSPATH_DOES_NOT_EXIST,
                f"Script does not exist: {script}",
                details={"path": str(script)},
            )
        if not script.is_file() or not os.access(script, os.X_OK):
            raise ExecutionError(
                ExecutionErrorKind.FSPATH_TYPE_INVALID,
                f"Script is not an executable file: {script}",
                details={"path": str(script), "required_type": "executable"},
            )

        scratch = ctx.tmp_root / f"script-{ctx.execution_id}-{step.id}"
        script_out = scratch / "out" if step.passthrough else output_dir
        script_out.mkdir(parents=True, exist_ok=True)
        stdout_path = scratch / "stdout.log"
        try:
            try:
                result = await asyncio.to_thread(
                    ctx.command_runner.run,
                    [str(script)],
                    cwd=ctx.tmp_root,
                    stdout_path=stdout_path,
                    timeout=step.timeout_seconds,
                    env={
                        ARTIFACTS_IN_VAR: str(entry.parent),
                        ARTIFACTS_OUT_VAR: str(script_out),
                    },
                )
            except CommandError as e:
                raise ExecutionError(
                    ExecutionErrorKind.NONZERO_SCRIPT_EXIT,
                    str(e),
                    details={"path": str(script)},
                ) from e

            stdout = stdout_path.read_text(errors="replace")[-STDOUT_TAIL_CHARS:]
            if not result.ok:
                ctx.log.error("Script failed", path=str(script), returncode=result.returncode)
                raise ExecutionError(
                    ExecutionErrorKind.NONZERO_SCRIPT_EXIT,
                    f"{script.name} exited with code {result.returncode}",
                    details={
                        "path": str(script),
                        "exit_code": result.returncode,
                        "stdout": stdout,
                        "stderr": result.stderr,
                    },
                )

            if step.passthrough:
                await asyncio.to_thread(copy_entry, entry, output_dir / entry.name)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        ctx.log.info("Script finished", path=str(script), passthrough=step.passthrough)
        return AdapterResult(runtime={"passthrough": step.passthrough})
