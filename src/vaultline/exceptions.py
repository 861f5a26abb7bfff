"""Custom exceptions for vaultline."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, ClassVar

PROBLEM_SEPARATOR = "::"


class VaultlineError(Exception):
    """Base exception for all vaultline errors."""

    pass


class ProblemError(VaultlineError):
    """Error belonging to a closed group of problem kinds.

    Subclasses set ``group`` and ``Kind``. The ``problem`` string
    (``"<GROUP>::<kind>"``) is what crosses process boundaries, together
    with the optional structured ``details``.

    Example:
        >>> err = PipelineError(PipelineErrorKind.NOT_FOUND, details={"id": "p1"})
        >>> err.problem
        'PIPELINE::not_found'
        >>> PipelineError.matches(err.to_problem(), PipelineErrorKind.NOT_FOUND)
        True
    """

    group: ClassVar[str] = ""
    Kind: ClassVar[type[Enum]]

    def __init__(
        self,
        kind: Enum | str,
        message: str = "",
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.kind = self.Kind(kind)
        self.details = details or {}
        super().__init__(message or self.problem)

    @property
    def problem(self) -> str:
        """Stable problem identifier."""
        return f"{self.group}{PROBLEM_SEPARATOR}{self.kind.value}"

    def to_problem(self) -> dict[str, Any]:
        """Convert to a JSON-able problem document."""
        return {"problem": self.problem, "details": self.details or None}

    @classmethod
    def matches(cls, value: Any, kind: Enum | str | None = None) -> bool:
        """Check whether a value is a problem of this group (and kind).

        Args:
            value: An exception, a problem dict (``{"problem": ...}``) or a
                bare problem string.
            kind: Optional kind to match; any kind of the group matches if omitted.

        Returns:
            True if the value names a problem of this group and kind.
        """
        if isinstance(value, ProblemError):
            problem = value.problem
        elif isinstance(value, dict):
            problem = value.get("problem")
        else:
            problem = value

        if not isinstance(problem, str) or PROBLEM_SEPARATOR not in problem:
            return False

        group, _, raw_kind = problem.partition(PROBLEM_SEPARATOR)
        if group != cls.group:
            return False
        if kind is None:
            return raw_kind in {k.value for k in cls.Kind}
        return raw_kind == cls.Kind(kind).value


class PipelineErrorKind(str, Enum):
    """Structural problems with a pipeline definition."""

    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    INVALID_DEFINITION = "invalid_definition"
    MISSING_STARTING_STEP = "missing_starting_step"
    TOO_MANY_STARTING_STEPS = "too_many_starting_steps"
    INVALID_STEP_REFERENCES = "invalid_step_references"
    INVALID_STRUCTURE = "invalid_structure"


class PipelineError(ProblemError):
    """Raised when a pipeline definition is unusable."""

    group = "PIPELINE"
    Kind = PipelineErrorKind


class ExecutionErrorKind(str, Enum):
    """Runtime and concurrency problems during an execution."""

    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    UNKNOWN = "unknown"
    CANCELLED = "cancelled"
    NONZERO_SCRIPT_EXIT = "nonzero_script_exit"
    ENVIRONMENT_VARIABLE_MISSING = "environment_variable_missing"
    ARTIFACT_COUNT_INVALID = "artifact_count_invalid"
    ARTIFACT_TYPE_INVALID = "artifact_type_invalid"
    ARTIFACT_NAME_CONFLICT = "artifact_name_conflict"
    FSPATH_DOES_NOT_EXIST = "fspath_does_not_exist"
    FSPATH_TYPE_INVALID = "fspath_type_invalid"
    FSDIR_CHILDREN_COUNT_INVALID = "fsdir_children_count_invalid"
    COMPRESSION_FAILED = "compression_failed"
    DECOMPRESSION_FAILED = "decompression_failed"
    ENCRYPTION_FAILED = "encryption_failed"
    DECRYPTION_FAILED = "decryption_failed"
    POSTGRES_BACKUP_FAILED = "postgres_backup_failed"
    UPLOAD_FAILED = "upload_failed"


class ExecutionError(ProblemError):
    """Raised when running a pipeline fails."""

    group = "EXECUTION"
    Kind = ExecutionErrorKind

    @classmethod
    def wrap(cls, exc: BaseException) -> ExecutionError:
        """Wrap an arbitrary exception as an ``EXECUTION::unknown`` problem."""
        if isinstance(exc, ExecutionError):
            return exc
        if isinstance(exc, ProblemError):
            return cls(
                ExecutionErrorKind.UNKNOWN,
                str(exc),
                details={"cause": exc.problem, **exc.details},
            )
        return cls(ExecutionErrorKind.UNKNOWN, str(exc), details={"cause": str(exc)})


class MetadataErrorKind(str, Enum):
    """Problems with core/metadata records."""

    NOT_FOUND = "not_found"
    INCONSISTENT = "inconsistent"


class MetadataError(ProblemError):
    """Raised for recoverable metadata lookups."""

    group = "METADATA"
    Kind = MetadataErrorKind


class MetadataInconsistencyError(VaultlineError):
    """Raised when a core record has no metadata even after synthesis.

    This signals a broken persistence layer and is not meant to be handled.
    """

    def __init__(self, core_id: str) -> None:
        super().__init__(f"Missing metadata; id={core_id}")
        self.core_id = core_id


class MetaDocumentErrorKind(str, Enum):
    """Problems parsing a lineage meta document."""

    MALFORMED = "malformed"
    UNSUPPORTED_VERSION = "unsupported_version"


class MetaDocumentError(ProblemError):
    """Raised when a meta document does not match the schema."""

    group = "META"
    Kind = MetaDocumentErrorKind


class ConfigError(VaultlineError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        config_path: Path | None = None,
        field: str = "",
    ) -> None:
        super().__init__(message)
        self.config_path = config_path
        self.field = field


class CommandError(VaultlineError):
    """Raised when a subprocess command fails."""

    def __init__(
        self,
        message: str,
        *,
        command: list[str] | None = None,
        returncode: int | None = None,
        cwd: Path | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command or []
        self.returncode = returncode
        self.cwd = cwd
