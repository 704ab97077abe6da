"""Normalized ingestion events.

Snapshot rows and realtime change frames are both converted into these
events. Only the reconciler is allowed to apply them to the marker store.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pylivetrack.models.participant import ParticipantRecord


class IngestionSource(StrEnum):
    SNAPSHOT = "snapshot"
    REALTIME = "realtime"
    MANUAL = "manual"


class UpdateKind(StrEnum):
    UPSERT = "upsert"
    DELETE = "delete"


class UpdateEvent(BaseModel):
    """A normalized participant update to reconcile."""

    model_config = ConfigDict(frozen=True)

    participant_id: str = Field(..., description="Participant identity")
    kind: UpdateKind = UpdateKind.UPSERT
    source: IngestionSource
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    commit_timestamp: datetime | None = Field(
        default=None,
        description="Upstream commit time of the change, if any.",
    )
    record: ParticipantRecord | None = Field(default=None, description="Full row or partial patch")

    @field_validator("participant_id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        identity = value.strip()
        if not identity:
            raise ValueError("participant_id must be non-empty")
        return identity

    @field_validator("observed_at", "commit_timestamp")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def freshness(self) -> datetime:
        """Best-effort freshness: row timestamp, then commit time, then receipt time."""
        if self.record is not None and self.record.updated_at is not None:
            return self.record.updated_at
        if self.commit_timestamp is not None:
            return self.commit_timestamp
        return self.observed_at
