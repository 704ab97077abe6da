"""Ingestion application helpers.

This module centralizes the common pattern used across ingestion paths:

- parse a raw row into a typed :class:`ParticipantRecord`
- pick the best-effort commit timestamp
- create/apply a :class:`pylivetrack.state.events.UpdateEvent`

Malformed rows are logged and skipped so one bad row cannot stall the feed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from pylivetrack._redact import redact_for_log
from pylivetrack.ingestion.normalize import normalize_identity
from pylivetrack.models.change import ChangeType, PostgresChange
from pylivetrack.models.participant import ParticipantRecord
from pylivetrack.state.events import IngestionSource, UpdateEvent, UpdateKind

_logger = logging.getLogger(__name__)

_ID_KEYS = ("participant_id", "id", "participantId", "uid")


def build_event_from_row(
    row: dict[str, Any],
    *,
    source: IngestionSource,
    observed_at: datetime | None = None,
    commit_timestamp: datetime | None = None,
) -> UpdateEvent | None:
    """Build an upsert event from one row, or ``None`` when the row is unusable."""
    try:
        record = ParticipantRecord.from_row(row)
    except ValidationError:
        _logger.debug("Skipping malformed participant row: %s", redact_for_log(row), exc_info=True)
        return None

    return UpdateEvent(
        participant_id=record.participant_id,
        kind=UpdateKind.UPSERT,
        source=source,
        observed_at=observed_at or datetime.now(UTC),
        commit_timestamp=commit_timestamp,
        record=record,
    )


def build_events_from_snapshot(
    rows: Iterable[Any],
    *,
    observed_at: datetime | None = None,
    source: IngestionSource = IngestionSource.SNAPSHOT,
) -> list[UpdateEvent]:
    observed = observed_at or datetime.now(UTC)
    events: list[UpdateEvent] = []
    for row in rows:
        if not isinstance(row, dict):
            _logger.debug("Skipping non-object %s row: %r", source, row)
            continue
        event = build_event_from_row(row, source=source, observed_at=observed)
        if event is not None:
            events.append(event)
    return events


def build_event_from_change(
    change: PostgresChange,
    *,
    observed_at: datetime | None = None,
) -> UpdateEvent | None:
    """Translate one realtime change into an update event."""
    observed = observed_at or datetime.now(UTC)

    if change.change_type == ChangeType.DELETE:
        participant_id = _identity_of(change.old_record)
        if participant_id is None:
            _logger.debug("Delete without primary key ignored: %s", redact_for_log(change.old_record))
            return None
        return UpdateEvent(
            participant_id=participant_id,
            kind=UpdateKind.DELETE,
            source=IngestionSource.REALTIME,
            observed_at=observed,
            commit_timestamp=change.commit_timestamp,
        )

    row = change.record
    if _identity_of(row) is None and change.old_record:
        # Partial patches may omit the key; take it from the old row.
        old_id = _identity_of(change.old_record)
        if old_id is not None:
            row = {**row, "id": old_id}
    return build_event_from_row(
        row,
        source=IngestionSource.REALTIME,
        observed_at=observed,
        commit_timestamp=change.commit_timestamp,
    )


def apply_rows_to_store(
    store_apply: Callable[[UpdateEvent], Any],
    rows: Iterable[Any],
    *,
    source: IngestionSource = IngestionSource.SNAPSHOT,
    observed_at: datetime | None = None,
) -> list[UpdateEvent]:
    """Build and apply row events; returns the applied events."""
    events = build_events_from_snapshot(rows, observed_at=observed_at, source=source)
    for event in events:
        store_apply(event)
    return events


def _identity_of(row: dict[str, Any]) -> str | None:
    for key in _ID_KEYS:
        if key in row:
            identity = normalize_identity(row[key])
            if identity is not None:
                return identity
    return None
