"""Pipeline registry for managing pipeline definitions."""

from __future__ import annotations

from pathlib import Path

import structlog
import yaml

from vaultline.exceptions import PipelineError, PipelineErrorKind
from vaultline.pipeline.constants import MAX_PIPELINES
from vaultline.pipeline.definition import PipelineDefinition, parse_pipeline_definition

logger = structlog.get_logger()


def load_pipeline_file(path: Path) -> PipelineDefinition:
    """Load a pipeline definition from a YAML file.

    Raises:
        PipelineError: ``not_found`` if the file does not exist,
            ``invalid_definition`` if it does not parse or validate.
    """
    if not path.is_file():
        raise PipelineError(
            PipelineErrorKind.NOT_FOUND,
            f"Pipeline file not found: {path}",
            details={"path": str(path)},
        )
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise PipelineError(
            PipelineErrorKind.INVALID_DEFINITION,
            f"Invalid YAML in {path}: {e}",
            details={"path": str(path), "paths": []},
        ) from e
    return parse_pipeline_definition(data)


class PipelineRegistry:
    """Registry for pipeline definitions.

    Pipelines live in ``pipelines_dir`` as one ``<pipeline_id>.yaml`` each
    and are loaded lazily on first lookup.

    Attributes:
        pipelines: List of all loaded pipelines.
    """

    def __init__(self, pipelines_dir: Path):
        """Initialize the registry.

        Args:
            pipelines_dir: Directory holding pipeline YAML files.
        """
        self._pipelines_dir = pipelines_dir
        self._pipelines: dict[str, PipelineDefinition] = {}

    @property
    def pipelines_dir(self) -> Path:
        """Get the pipelines directory."""
        return self._pipelines_dir

    @property
    def pipelines(self) -> list[PipelineDefinition]:
        """Get all loaded pipelines."""
        return list(self._pipelines.values())

    def get(self, pipeline_id: str) -> PipelineDefinition:
        """Get a pipeline by ID.

        Args:
            pipeline_id: Pipeline identifier.

        Returns:
            PipelineDefinition.

        Raises:
            PipelineError: ``not_found`` if the pipeline is unknown,
                ``invalid_definition`` if its file does not validate.
        """
        if pipeline_id not in self._pipelines:
            path = self._path_for(pipeline_id)
            if path.exists():
                self._pipelines[pipeline_id] = load_pipeline_file(path)

        if pipeline_id not in self._pipelines:
            raise PipelineError(
                PipelineErrorKind.NOT_FOUND,
                f"Pipeline '{pipeline_id}' not found",
                details={"id": pipeline_id},
            )

        return self._pipelines[pipeline_id]

    def exists(self, pipeline_id: str) -> bool:
        """Check if a pipeline exists.

        Args:
            pipeline_id: Pipeline identifier.

        Returns:
            True if pipeline exists.
        """
        return pipeline_id in self._pipelines or self._path_for(pipeline_id).exists()

    def add(self, pipeline: PipelineDefinition, *, replace: bool = False) -> None:
        """Add a pipeline to the registry.

        Args:
            pipeline: Pipeline definition to add.
            replace: Overwrite an existing pipeline with the same ID.

        Raises:
            PipelineError: ``already_exists`` if the ID is taken and
                ``replace`` is False.
            ValueError: If the pipeline limit is exceeded.
        """
        if not replace and self.exists(pipeline.id):
            raise PipelineError(
                PipelineErrorKind.ALREADY_EXISTS,
                f"Pipeline '{pipeline.id}' already exists",
                details={"id": pipeline.id},
            )

        if len(self._pipelines) >= MAX_PIPELINES and pipeline.id not in self._pipelines:
            msg = f"Maximum number of pipelines ({MAX_PIPELINES}) exceeded"
            raise ValueError(msg)

        self._pipelines[pipeline.id] = pipeline

    def delete(self, pipeline_id: str) -> None:
        """Delete a pipeline from the registry and from disk.

        Args:
            pipeline_id: Pipeline identifier.

        Raises:
            PipelineError: ``not_found`` if the pipeline is unknown.
        """
        if not self.exists(pipeline_id):
            raise PipelineError(
                PipelineErrorKind.NOT_FOUND,
                f"Pipeline '{pipeline_id}' not found",
                details={"id": pipeline_id},
            )

        self._pipelines.pop(pipeline_id, None)
        path = self._path_for(pipeline_id)
        if path.exists():
            path.unlink()

    def save(self) -> None:
        """Save all loaded pipelines to disk."""
        self._pipelines_dir.mkdir(parents=True, exist_ok=True)

        for pipeline in self._pipelines.values():
            path = self._path_for(pipeline.id)
            path.write_text(pipeline.to_yaml())
            logger.debug("Saved pipeline", id=pipeline.id, path=str(path))

    def load_all(self) -> None:
        """Load every pipeline file in the directory.

        Files that fail to load are logged and skipped.
        """
        if not self._pipelines_dir.exists():
            return

        for path in sorted(self._pipelines_dir.glob("*.yaml")):
            try:
                pipeline = load_pipeline_file(path)
            except PipelineError as e:
                logger.warning("Failed to load pipeline", path=str(path), error=str(e))
                continue
            if pipeline.id != path.stem:
                logger.warning(
                    "Pipeline id does not match file name", path=str(path), id=pipeline.id
                )
                continue
            self._pipelines[pipeline.id] = pipeline
            logger.debug("Loaded pipeline", id=pipeline.id)

    def _path_for(self, pipeline_id: str) -> Path:
        return self._pipelines_dir / f"{pipeline_id}.yaml"
