"""Artifact storage and the lineage meta document."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vaultline.exceptions import MetaDocumentError, MetaDocumentErrorKind
from vaultline.paths import OutputLocation, generate_output_id
from vaultline.pipeline.constants import META_FILENAME, META_OBJECT, META_VERSION
from vaultline.storage.base import ObjectStorage

logger = structlog.get_logger()


class MetaArtifact(BaseModel):
    """One artifact listed in a meta document.

    Attributes:
        path: Where the artifact was written.
        step_trail: Ordered step descriptors the artifact passed through.
    """

    # Alias only: "step_trail" is not a wire key.
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str
    step_trail: list[dict[str, Any]] = Field(..., alias="stepTrail")


class MetaDocument(BaseModel):
    """Versioned envelope describing the artifacts of an execution."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    version: Literal[1] = META_VERSION
    object: Literal["meta"] = META_OBJECT
    artifacts: list[MetaArtifact]


def serialize_meta(doc: MetaDocument) -> bytes:
    """Serialize a meta document to its JSON wire form."""
    data = doc.model_dump(mode="json", by_alias=True)
    return json.dumps(data, indent=2).encode()


def parse_meta(raw: bytes | str) -> MetaDocument:
    """Parse a meta document, failing closed on anything unexpected.

    Args:
        raw: JSON content.

    Returns:
        The parsed document.

    Raises:
        MetaDocumentError: ``unsupported_version`` if the version is an
            integer other than the current one, ``malformed`` for every
            other deviation from the schema.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MetaDocumentError(
            MetaDocumentErrorKind.MALFORMED,
            f"Meta document is not valid JSON: {e}",
        ) from e

    if not isinstance(data, dict):
        raise MetaDocumentError(
            MetaDocumentErrorKind.MALFORMED, "Meta document must be a JSON object"
        )

    version = data.get("version")
    # bool is an int subclass; true must not pass for version 1
    if not isinstance(version, int) or isinstance(version, bool):
        raise MetaDocumentError(
            MetaDocumentErrorKind.MALFORMED,
            "Meta document has no integer version",
            details={"paths": ["version"]},
        )
    if version != META_VERSION:
        raise MetaDocumentError(
            MetaDocumentErrorKind.UNSUPPORTED_VERSION,
            f"Unsupported meta document version: {version}",
            details={"version": version},
        )

    try:
        return MetaDocument.model_validate_json(raw, strict=True)
    except ValidationError as e:
        paths = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise MetaDocumentError(
            MetaDocumentErrorKind.MALFORMED,
            f"Meta document does not match schema: {', '.join(paths)}",
            details={"paths": paths},
        ) from e


class ArtifactStore:
    """Storage for execution outputs and their lineage.

    Output locations are local directories under ``artifact_root``; raw
    content and meta documents go to the object storage backend.

    Attributes:
        artifact_root: Directory where output locations are allocated.
        storage: Object storage backend.
    """

    def __init__(
        self,
        artifact_root: Path,
        storage: ObjectStorage,
        *,
        log: Any | None = None,
    ) -> None:
        self.artifact_root = artifact_root
        self.storage = storage
        self._log = log or logger.bind(component="ArtifactStore")

    def allocate_output_location(self) -> OutputLocation:
        """Allocate a fresh, empty output directory.

        Returns:
            OutputLocation whose id sorts after every previously allocated id.
        """
        output_id = generate_output_id()
        path = self.artifact_root / output_id
        path.mkdir(parents=True, exist_ok=False)
        self._log.debug("Output location allocated", output_id=output_id)
        return OutputLocation(id=output_id, path=path)

    def write(self, path: str, content: bytes) -> None:
        """Write raw content to the storage backend."""
        self.storage.put(path, content)

    def read(self, path: str) -> bytes:
        """Read raw content from the storage backend.

        Raises:
            KeyError: If nothing is stored at ``path``.
        """
        return self.storage.get(path)

    def persist_meta(
        self,
        execution_id: str,
        artifacts: list[MetaArtifact] | list[dict[str, Any]],
    ) -> str:
        """Write the meta document for an execution.

        Args:
            execution_id: Execution whose outputs are described.
            artifacts: Terminal artifacts as ``MetaArtifact`` or
                ``{"path", "stepTrail"}`` dicts.

        Returns:
            Storage path of the written document.
        """
        doc = MetaDocument(
            version=META_VERSION,
            object=META_OBJECT,
            artifacts=[
                a if isinstance(a, MetaArtifact) else MetaArtifact.model_validate(a)
                for a in artifacts
            ],
        )
        meta_path = f"{execution_id}/{META_FILENAME}"
        self.write(meta_path, serialize_meta(doc))
        self._log.info(
            "Meta document persisted",
            execution_id=execution_id,
            path=meta_path,
            artifact_count=len(doc.artifacts),
        )
        return meta_path

    def read_meta(self, meta_path: str) -> MetaDocument:
        """Read and parse a persisted meta document.

        Raises:
            KeyError: If the document does not exist.
            MetaDocumentError: If it does not parse.
        """
        return parse_meta(self.read(meta_path))
