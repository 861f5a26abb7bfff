"""Core records, their metadata, and the merged views."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class MetadataRecord(BaseModel):
    """Mutable state stored apart from its core record, sharing its id."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)


class CoreRecord(BaseModel):
    """Structural fields of an entity."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)


class ScheduleCore(CoreRecord):
    """When a pipeline should run.

    Attributes:
        pipeline_id: Pipeline to start.
        cron: Cron expression, evaluated by the external scheduler.
    """

    pipeline_id: str
    cron: str


class ScheduleMetadata(MetadataRecord):
    """Schedules start inactive until explicitly enabled."""

    active: bool = False


class Schedule(ScheduleCore):
    """Schedule with its metadata merged in."""

    active: bool


class NotificationPolicyCore(CoreRecord):
    """Where execution events are delivered.

    Attributes:
        channel: Delivery channel identifier (e.g. a webhook name).
        event_subscriptions: Event types the policy reacts to.
    """

    channel: str
    event_subscriptions: list[str] = Field(default_factory=list)


class NotificationPolicyMetadata(MetadataRecord):
    """Notification policies start active."""

    active: bool = True


class NotificationPolicy(NotificationPolicyCore):
    """Notification policy with its metadata merged in."""

    active: bool
