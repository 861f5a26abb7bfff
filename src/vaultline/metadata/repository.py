"""Merging of core records with their separately stored metadata."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Generic, TypeVar

import structlog

from vaultline.exceptions import (
    MetadataError,
    MetadataErrorKind,
    MetadataInconsistencyError,
)
from vaultline.metadata.models import (
    CoreRecord,
    MetadataRecord,
    NotificationPolicy,
    NotificationPolicyCore,
    NotificationPolicyMetadata,
    Schedule,
    ScheduleCore,
    ScheduleMetadata,
)
from vaultline.metadata.store import MetadataStore

logger = structlog.get_logger()

C = TypeVar("C", bound=CoreRecord)
M = TypeVar("M", bound=MetadataRecord)
V = TypeVar("V", bound=CoreRecord)


class MetadataRepository(Generic[C, M, V]):
    """Presents core records and their metadata as one merged view.

    Every core record has exactly one metadata row with the same id. Rows
    that are missing are synthesized with default values and written in a
    single batch before any view is returned.

    Example:
        >>> repo = schedule_repository(InMemoryMetadataStore())
        >>> core = ScheduleCore(id="s1", pipeline_id="p", cron="0 * * * *")
        >>> [schedule] = repo.attach_metadata([core])
        >>> schedule.active
        False
    """

    def __init__(
        self,
        store: MetadataStore[M],
        *,
        view_type: type[V],
        default_metadata: Callable[[str], M],
        log: Any | None = None,
    ) -> None:
        """Initialize the repository.

        Args:
            store: Metadata row store.
            view_type: Model of the merged view.
            default_metadata: Builds the default row for a core id.
            log: Logger to use instead of the module logger.
        """
        self._store = store
        self._view_type = view_type
        self._default_metadata = default_metadata
        self._log = log or logger.bind(
            component="MetadataRepository", view=view_type.__name__
        )

    def attach_metadata(self, cores: Sequence[C]) -> list[V]:
        """Merge each core record with its metadata.

        Args:
            cores: Core records, in the order the views are returned.

        Returns:
            One merged view per core record.

        Raises:
            MetadataInconsistencyError: If a row is still missing after
                synthesis.
        """
        ids = list(dict.fromkeys(core.id for core in cores))
        metadatas = {m.id: m for m in self._store.query(ids)}

        missing = [i for i in ids if i not in metadatas]
        if missing:
            self._store.upsert_many(
                [self._default_metadata(i) for i in missing], only_missing=True
            )
            self._log.info("Synthesized missing metadata", count=len(missing), ids=missing)
            # Re-read so a row written concurrently by another reader wins
            metadatas.update({m.id: m for m in self._store.query(missing)})

        return [self._combine(core, metadatas) for core in cores]

    def attach_one(self, core: C) -> V:
        """Merge a single core record with its metadata."""
        return self.attach_metadata([core])[0]

    def synchronize(self, cores: Sequence[C]) -> list[V]:
        """Align metadata rows with the current set of core records.

        Rows whose core no longer exists are deleted, missing rows are
        synthesized.

        Returns:
            Merged views of ``cores``.
        """
        core_ids = {core.id for core in cores}
        superfluous = [m.id for m in self._store.list_all() if m.id not in core_ids]
        if superfluous:
            self._store.delete_many(superfluous)
            self._log.info("Deleted superfluous metadata", count=len(superfluous))
        return self.attach_metadata(cores)

    def get_metadata(self, core_id: str) -> M:
        """Get the stored metadata row of a core record.

        Raises:
            MetadataError: ``not_found`` if no row exists.
        """
        rows = self._store.query([core_id])
        if not rows:
            raise MetadataError(
                MetadataErrorKind.NOT_FOUND,
                f"No metadata for id={core_id}",
                details={"id": core_id},
            )
        return rows[0]

    def set_active(self, core: C, active: bool) -> V:
        """Toggle the ``active`` flag of a core record.

        Returns:
            The merged view after the update.
        """
        current = self._store.query([core.id])
        row = current[0] if current else self._default_metadata(core.id)
        updated = row.model_copy(update={"active": active})
        self._store.upsert_many([updated])
        self._log.info("Metadata updated", id=core.id, active=active)
        return self._combine(core, {core.id: updated})

    def delete(self, core_id: str) -> None:
        """Remove the metadata row of a deleted core record."""
        self._store.delete_many([core_id])

    def _combine(self, core: C, metadatas: dict[str, M]) -> V:
        meta = metadatas.get(core.id)
        if meta is None:
            raise MetadataInconsistencyError(core.id)
        return self._view_type.model_validate({**core.model_dump(), **meta.model_dump()})


def schedule_repository(
    store: MetadataStore[ScheduleMetadata], *, log: Any | None = None
) -> MetadataRepository[ScheduleCore, ScheduleMetadata, Schedule]:
    """Build the repository for schedules."""
    return MetadataRepository(
        store,
        view_type=Schedule,
        default_metadata=lambda core_id: ScheduleMetadata(id=core_id),
        log=log,
    )


def notification_policy_repository(
    store: MetadataStore[NotificationPolicyMetadata], *, log: Any | None = None
) -> MetadataRepository[
    NotificationPolicyCore, NotificationPolicyMetadata, NotificationPolicy
]:
    """Build the repository for notification policies."""
    return MetadataRepository(
        store,
        view_type=NotificationPolicy,
        default_metadata=lambda core_id: NotificationPolicyMetadata(id=core_id),
        log=log,
    )
