"""CLI interface for vaultline."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Any

import structlog
import typer

from vaultline import __version__
from vaultline.config import VaultlineConfig
from vaultline.exceptions import ConfigError, MetaDocumentError, ProblemError
from vaultline.pipeline.artifacts import parse_meta
from vaultline.pipeline.execution import Execution, ExecutionStatus
from vaultline.pipeline.registry import load_pipeline_file
from vaultline.pipeline.validator import GraphValidator
from vaultline.service import BackupService

app = typer.Typer(
    name="vaultline",
    help="Validate and run multi-step backup pipelines",
    no_args_is_help=True,
)


def configure_logging(level: str) -> None:
    """Configure structlog for console output on stderr."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"vaultline version {__version__}")
        raise typer.Exit()


def _fail(error: ProblemError, *, json_output: bool = False) -> typer.Exit:
    """Print a problem and build the exit to raise."""
    if json_output:
        typer.echo(json.dumps(error.to_problem(), indent=2))
    else:
        typer.echo(f"Error: {error.problem}: {error}", err=True)
        for path in error.details.get("paths", []):
            typer.echo(f"  at {path}", err=True)
    return typer.Exit(1)


def _echo_execution(execution: Execution, *, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps(execution.model_dump(mode="json"), indent=2))
        return

    typer.echo(f"Execution: {execution.id}")
    typer.echo(f"Pipeline: {execution.pipeline_id}")
    color = typer.colors.GREEN if execution.status == ExecutionStatus.SUCCEEDED else None
    if execution.status == ExecutionStatus.FAILED:
        color = typer.colors.RED
    typer.echo(f"Status: {typer.style(execution.status.value, fg=color)}")
    if execution.cancel_requested:
        typer.echo("Cancel requested: yes")
    typer.echo("")
    typer.echo("Steps:")
    for action in execution.actions:
        line = f"  {action.step_id:20} {action.step_type:22} {action.status.value}"
        if action.error:
            line += f"  ({action.error['problem']})"
        typer.echo(line)
    if execution.artifacts:
        typer.echo("")
        typer.echo("Artifacts:")
        for artifact in execution.artifacts:
            typer.echo(f"  {artifact['path']}  ({len(artifact['stepTrail'])} steps)")
    if execution.meta_path:
        typer.echo("")
        typer.echo(f"Meta: {execution.meta_path}")


def _config(ctx: typer.Context) -> VaultlineConfig:
    config: VaultlineConfig = ctx.obj["config"]
    return config


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to a vaultline YAML config file",
            resolve_path=True,
        ),
    ] = None,
) -> None:
    """vaultline - backup pipeline engine."""
    try:
        loaded = VaultlineConfig.load(config)
    except ConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    configure_logging(loaded.log_level)
    ctx.obj = {"config": loaded}


@app.command()
def validate(
    file: Annotated[Path, typer.Argument(help="Pipeline YAML file")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Validate a pipeline definition file."""
    try:
        graph = GraphValidator().validate(load_pipeline_file(file))
    except ProblemError as e:
        raise _fail(e, json_output=json_output) from e

    if json_output:
        output: dict[str, Any] = {
            "id": graph.pipeline_id,
            "order": list(graph.order),
            "starting_step_id": graph.starting_step_id,
        }
        typer.echo(json.dumps(output, indent=2))
    else:
        typer.echo(f"Pipeline '{graph.pipeline_id}' is valid.")
        typer.echo(f"Order: {' -> '.join(graph.order)}")


@app.command()
def run(
    ctx: typer.Context,
    pipeline_id: Annotated[str, typer.Argument(help="Pipeline ID to execute")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Execute a pipeline and wait for it to finish."""
    service = BackupService.from_config(_config(ctx))
    try:
        execution = asyncio.run(service.run(pipeline_id))
    except ProblemError as e:
        raise _fail(e, json_output=json_output) from e

    _echo_execution(execution, json_output=json_output)
    if execution.status != ExecutionStatus.SUCCEEDED:
        raise typer.Exit(1)


@app.command()
def status(
    ctx: typer.Context,
    execution_id: Annotated[str, typer.Argument(help="Execution ID")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show the status and step trail of an execution."""
    service = BackupService.from_config(_config(ctx))
    try:
        execution = service.get_execution_status(execution_id)
    except ProblemError as e:
        raise _fail(e, json_output=json_output) from e

    _echo_execution(execution, json_output=json_output)


@app.command()
def meta(
    path: Annotated[
        Path,
        typer.Argument(help="Meta document file", exists=True, dir_okay=False),
    ],
) -> None:
    """Parse a meta document and print it."""
    try:
        doc = parse_meta(path.read_bytes())
    except MetaDocumentError as e:
        raise _fail(e) from e

    typer.echo(json.dumps(doc.model_dump(mode="json", by_alias=True), indent=2))


if __name__ == "__main__":
    app()
