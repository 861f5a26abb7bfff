"""Pipeline and step definition models."""

from __future__ import annotations

import fnmatch
import re
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from vaultline.exceptions import PipelineError, PipelineErrorKind
from vaultline.pipeline.constants import (
    DEFAULT_COMPRESSION_LEVEL,
    MAX_STEPS_PER_PIPELINE,
    STEP_ID_PATTERN,
)


class StepType(str, Enum):
    """Type of pipeline step. Each type binds to exactly one adapter."""

    FILESYSTEM_READ = "filesystem_read"
    POSTGRES_BACKUP = "postgres_backup"
    COMPRESSION = "compression"
    DECOMPRESSION = "decompression"
    ENCRYPTION = "encryption"
    DECRYPTION = "decryption"
    FOLDER_FLATTEN = "folder_flatten"
    FOLDER_GROUP = "folder_group"
    FILTER = "filter"
    CUSTOM_SCRIPT = "custom_script"
    OBJECT_STORAGE_UPLOAD = "object_storage_upload"
    FILESYSTEM_WRITE = "filesystem_write"


class BaseStep(BaseModel):
    """Fields shared by every step.

    Attributes:
        id: Unique identifier of the step within its pipeline.
        previous_ids: Steps whose output this step consumes.
        description: Human-readable description.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., min_length=1, max_length=64, pattern=STEP_ID_PATTERN)
    previous_ids: list[str] = Field(default_factory=list)
    description: str = ""

    @field_validator("previous_ids")
    @classmethod
    def validate_unique_references(cls, v: list[str]) -> list[str]:
        """Reject a step that references the same producer twice."""
        if len(v) != len(set(v)):
            msg = "Duplicate step references"
            raise ValueError(msg)
        return v

    @property
    def step_type(self) -> StepType:
        """The step type as an enum member."""
        return StepType(self.type)  # type: ignore[attr-defined]

    @property
    def is_source(self) -> bool:
        """True if the step consumes no upstream output."""
        return not self.previous_ids

    @property
    def options(self) -> dict[str, Any]:
        """Adapter-specific configuration of this step."""
        return self.model_dump(
            mode="json", exclude={"id", "type", "previous_ids", "description"}
        )

    def descriptor(self, runtime: dict[str, Any] | None = None) -> dict[str, Any]:
        """Build the step-trail entry for this step."""
        return {
            "id": self.id,
            "type": self.step_type.value,
            "options": self.options,
            "runtime": runtime,
        }


class FilesystemReadStep(BaseStep):
    """Read a file or directory from the local filesystem."""

    type: Literal["filesystem_read"] = "filesystem_read"
    path: str = Field(..., min_length=1)


class PostgresBackupStep(BaseStep):
    """Dump a Postgres database with ``pg_dump``.

    ``connection_reference`` names an environment variable that holds the
    connection URL, so secrets never appear in the definition.
    """

    type: Literal["postgres_backup"] = "postgres_backup"
    connection_reference: str = Field(..., min_length=1)
    database: str = Field(..., min_length=1)
    binary: str = "pg_dump"
    timeout_seconds: int = Field(default=3600, ge=1)


class CompressionStep(BaseStep):
    """Pack the input into a ``.tar.gz`` archive."""

    type: Literal["compression"] = "compression"
    level: int = Field(default=DEFAULT_COMPRESSION_LEVEL, ge=1, le=9)


class DecompressionStep(BaseStep):
    """Unpack a ``.tar.gz`` archive holding a single entry."""

    type: Literal["decompression"] = "decompression"


class EncryptionStep(BaseStep):
    """Encrypt the input file with a key read from the environment."""

    type: Literal["encryption"] = "encryption"
    key_reference: str = Field(..., min_length=1)


class DecryptionStep(BaseStep):
    """Decrypt a file produced by an encryption step."""

    type: Literal["decryption"] = "decryption"
    key_reference: str = Field(..., min_length=1)


class FolderFlattenStep(BaseStep):
    """Collect every file of the input directory tree into one flat directory."""

    type: Literal["folder_flatten"] = "folder_flatten"


class FolderGroupStep(BaseStep):
    """Gather the entries of all upstream steps into a single directory."""

    type: Literal["folder_group"] = "folder_group"
    folder_name: str = Field(default="group", max_length=128, pattern=STEP_ID_PATTERN)


class ExactSelection(BaseModel):
    """Keep entries whose name equals ``name``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: Literal["exact"] = "exact"
    name: str = Field(..., min_length=1)

    def matches(self, entry_name: str) -> bool:
        return entry_name == self.name


class GlobSelection(BaseModel):
    """Keep entries whose name matches a shell-style pattern."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: Literal["glob"] = "glob"
    name_glob: str = Field(..., min_length=1)

    def matches(self, entry_name: str) -> bool:
        return fnmatch.fnmatchcase(entry_name, self.name_glob)


class RegexSelection(BaseModel):
    """Keep entries whose name contains a match of ``name_regex``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: Literal["regex"] = "regex"
    name_regex: str = Field(..., min_length=1)

    @field_validator("name_regex")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        """Reject patterns that do not compile."""
        try:
            re.compile(v)
        except re.error as e:
            msg = f"Invalid regular expression: {e}"
            raise ValueError(msg) from e
        return v

    def matches(self, entry_name: str) -> bool:
        return re.search(self.name_regex, entry_name) is not None


FilterSelection = Annotated[
    Union[ExactSelection, GlobSelection, RegexSelection],
    Field(discriminator="method"),
]


class FilterStep(BaseStep):
    """Keep only the children of the input directory that match ``selection``."""

    type: Literal["filter"] = "filter"
    selection: FilterSelection


class CustomScriptStep(BaseStep):
    """Run an executable script over the input.

    The script finds the input entry in the directory named by
    ``VAULTLINE_ARTIFACTS_IN`` and writes exactly one entry into
    ``VAULTLINE_ARTIFACTS_OUT``. With ``passthrough`` the script runs for
    its side effects only and the input is forwarded unchanged.
    """

    type: Literal["custom_script"] = "custom_script"
    path: str = Field(..., min_length=1)
    passthrough: bool = False
    timeout_seconds: int = Field(default=3600, ge=1)


class ObjectStorageUploadStep(BaseStep):
    """Upload the input file to object storage under ``base_folder``."""

    type: Literal["object_storage_upload"] = "object_storage_upload"
    base_folder: str = Field(..., min_length=1)


class FilesystemWriteStep(BaseStep):
    """Copy the input into a local directory."""

    type: Literal["filesystem_write"] = "filesystem_write"
    folder: str = Field(..., min_length=1)


Step = Annotated[
    Union[
        FilesystemReadStep,
        PostgresBackupStep,
        CompressionStep,
        DecompressionStep,
        EncryptionStep,
        DecryptionStep,
        FolderFlattenStep,
        FolderGroupStep,
        FilterStep,
        CustomScriptStep,
        ObjectStorageUploadStep,
        FilesystemWriteStep,
    ],
    Field(discriminator="type"),
]

class PipelineDefinition(BaseModel):
    """Complete definition of a pipeline.

    Attributes:
        id: Unique identifier for the pipeline.
        name: Human-readable name.
        steps: Steps in editor order.
        version: Schema version for future compatibility.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, max_length=64, pattern=STEP_ID_PATTERN)
    name: str = Field(..., min_length=1, max_length=128)
    steps: list[Step] = Field(default_factory=list)
    version: str = "1.0"

    @field_validator("steps")
    @classmethod
    def validate_steps(cls, v: list[BaseStep]) -> list[BaseStep]:
        """Validate step list size and identity uniqueness."""
        if len(v) > MAX_STEPS_PER_PIPELINE:
            msg = f"Pipeline cannot have more than {MAX_STEPS_PER_PIPELINE} steps"
            raise ValueError(msg)

        ids = [s.id for s in v]
        if len(ids) != len(set(ids)):
            msg = "Duplicate step IDs found"
            raise ValueError(msg)

        return v

    def get_step(self, step_id: str) -> BaseStep | None:
        """Get a step by ID."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def references(self) -> list[tuple[str, str]]:
        """All ``(consumer_id, producer_id)`` references in the pipeline."""
        return [(s.id, p) for s in self.steps for p in s.previous_ids]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return self.model_dump(mode="json")

    def to_yaml(self) -> str:
        """Serialize to YAML string."""
        import yaml

        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)


def error_path(loc: tuple[int | str, ...]) -> str:
    """Format a pydantic error location as a property path.

    The discriminator tags pydantic inserts after a step index and after
    a filter selection are dropped, so
    ``("steps", 0, "compression", "level")`` becomes ``steps[0].level``.
    """
    step_types = {t.value for t in StepType}
    selection_methods = {"exact", "glob", "regex"}
    path = ""
    previous: int | str | None = None
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif isinstance(previous, int) and part in step_types:
            pass
        elif previous == "selection" and part in selection_methods:
            pass
        else:
            path += f".{part}" if path else str(part)
        previous = part
    return path


def parse_pipeline_definition(data: Any) -> PipelineDefinition:
    """Validate raw data as a pipeline definition.

    Raises:
        PipelineError: ``invalid_definition`` with the failing property
            paths in ``details["paths"]``.
    """
    try:
        return PipelineDefinition.model_validate(data)
    except ValidationError as e:
        errors = [
            {"path": error_path(tuple(err["loc"])), "message": err["msg"]}
            for err in e.errors()
        ]
        raise PipelineError(
            PipelineErrorKind.INVALID_DEFINITION,
            "Invalid pipeline definition: "
            + "; ".join(f"{err['path'] or '<root>'}: {err['message']}" for err in errors),
            details={"paths": [err["path"] for err in errors], "errors": errors},
        ) from e
