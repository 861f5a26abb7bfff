"""Metadata row stores."""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Generic, Protocol, TypeVar

import structlog

from vaultline.metadata.models import MetadataRecord

logger = structlog.get_logger()

M = TypeVar("M", bound=MetadataRecord)


class MetadataStore(Protocol[M]):
    """Protocol for metadata row persistence, keyed by id."""

    def query(self, ids: Iterable[str]) -> list[M]:
        """Get the rows for the given ids; unknown ids are left out."""
        ...

    def list_all(self) -> list[M]:
        """Get every row, sorted by id."""
        ...

    def upsert_many(self, rows: list[M], *, only_missing: bool = False) -> None:
        """Write a batch of rows in one operation.

        Args:
            rows: Rows to write, keyed by id.
            only_missing: Keep rows that already exist instead of replacing
                them, so concurrent synthesis never clobbers a toggle.
        """
        ...

    def delete_many(self, ids: Iterable[str]) -> None:
        """Delete rows by id; unknown ids are ignored."""
        ...


class InMemoryMetadataStore(Generic[M]):
    """Metadata rows kept in a dict."""

    def __init__(self) -> None:
        self._rows: dict[str, M] = {}
        self._lock = threading.Lock()

    def query(self, ids: Iterable[str]) -> list[M]:
        with self._lock:
            return [self._rows[i].model_copy() for i in dict.fromkeys(ids) if i in self._rows]

    def list_all(self) -> list[M]:
        with self._lock:
            return [self._rows[i].model_copy() for i in sorted(self._rows)]

    def upsert_many(self, rows: list[M], *, only_missing: bool = False) -> None:
        with self._lock:
            for row in rows:
                if only_missing and row.id in self._rows:
                    continue
                self._rows[row.id] = row.model_copy()

    def delete_many(self, ids: Iterable[str]) -> None:
        with self._lock:
            for i in ids:
                self._rows.pop(i, None)


class JsonFileMetadataStore(Generic[M]):
    """Metadata rows kept in one JSON file per table.

    The file holds ``{"<id>": {...row...}}`` and is rewritten atomically on
    every batch.
    """

    def __init__(self, path: Path, model: type[M]) -> None:
        """Initialize the store.

        Args:
            path: JSON file of the table (created on first write).
            model: Row model used to parse the file.
        """
        self.path = path
        self.model = model
        self._lock = threading.Lock()
        self._log = logger.bind(component="JsonFileMetadataStore", table=path.stem)

    def _load(self) -> dict[str, M]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text())
        return {row_id: self.model.model_validate(row) for row_id, row in data.items()}

    def _dump(self, rows: dict[str, M]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {row_id: rows[row_id].model_dump(mode="json") for row_id in sorted(rows)}
        tmp = self.path.with_name(f".{self.path.name}.tmp")
        tmp.write_text(json.dumps(data, indent=2))
        os.replace(tmp, self.path)

    def query(self, ids: Iterable[str]) -> list[M]:
        with self._lock:
            rows = self._load()
        return [rows[i] for i in dict.fromkeys(ids) if i in rows]

    def list_all(self) -> list[M]:
        with self._lock:
            rows = self._load()
        return [rows[i] for i in sorted(rows)]

    def upsert_many(self, rows: list[M], *, only_missing: bool = False) -> None:
        with self._lock:
            current = self._load()
            for row in rows:
                if only_missing and row.id in current:
                    continue
                current[row.id] = row
            self._dump(current)
        self._log.debug("Metadata rows written", count=len(rows))

    def delete_many(self, ids: Iterable[str]) -> None:
        with self._lock:
            current = self._load()
            for i in ids:
                current.pop(i, None)
            self._dump(current)
