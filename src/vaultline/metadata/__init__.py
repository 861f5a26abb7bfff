"""Hybrid entities: core records merged with separately stored metadata."""

from vaultline.metadata.models import (
    NotificationPolicy,
    NotificationPolicyCore,
    NotificationPolicyMetadata,
    Schedule,
    ScheduleCore,
    ScheduleMetadata,
)
from vaultline.metadata.repository import (
    MetadataRepository,
    notification_policy_repository,
    schedule_repository,
)
from vaultline.metadata.store import (
    InMemoryMetadataStore,
    JsonFileMetadataStore,
    MetadataStore,
)

__all__ = [
    "InMemoryMetadataStore",
    "JsonFileMetadataStore",
    "MetadataRepository",
    "MetadataStore",
    "NotificationPolicy",
    "NotificationPolicyCore",
    "NotificationPolicyMetadata",
    "Schedule",
    "ScheduleCore",
    "ScheduleMetadata",
    "notification_policy_repository",
    "schedule_repository",
]
