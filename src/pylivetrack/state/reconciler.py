"""Reconcile participant updates against the marker store.

One event in, one store mutation out. The decision order is:

1. merge the (possibly partial) record over the current marker
2. reject anything older than what the marker already shows
3. drop the marker when the merged position is not placeable
4. drop the marker when the merged freshness is already stale
5. otherwise create or mutate in place
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pylivetrack._constants import DEFAULT_STALE_AFTER
from pylivetrack.ingestion.normalize import is_valid_position
from pylivetrack.state.events import UpdateEvent, UpdateKind
from pylivetrack.state.policy import is_stale, should_accept_update
from pylivetrack.state.store import Marker, MarkerStore

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Mutation(StrEnum):
    CREATED = "created"
    MOVED = "moved"
    RESTYLED = "restyled"
    UNCHANGED = "unchanged"
    REMOVED = "removed"
    EXPIRED = "expired"
    IGNORED = "ignored"
    REJECTED_STALE = "rejected_stale"


class Reconciler:
    """Apply :class:`UpdateEvent`s to a :class:`MarkerStore`.

    Given the same sequence of events and clock readings, it produces
    the same marker set.
    """

    def __init__(
        self,
        store: MarkerStore,
        *,
        stale_after: timedelta = timedelta(seconds=DEFAULT_STALE_AFTER),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._stale_after = stale_after
        self._clock = clock

    @property
    def store(self) -> MarkerStore:
        return self._store

    @property
    def stale_after(self) -> timedelta:
        return self._stale_after

    def apply(self, event: UpdateEvent) -> Mutation:
        pid = event.participant_id
        if event.kind == UpdateKind.DELETE:
            return Mutation.REMOVED if self._store.remove(pid) else Mutation.IGNORED

        record = event.record
        if record is None:
            _logger.debug("Upsert without record ignored id=%s", pid)
            return Mutation.IGNORED

        existing = self._store.get(pid)
        merged = _merge(existing, record)
        freshness = event.freshness()

        if existing is not None and not should_accept_update(
            cached_freshness=existing.freshness,
            incoming_freshness=freshness,
        ):
            _logger.debug(
                "Out-of-order update rejected id=%s incoming=%s cached=%s",
                pid,
                freshness.isoformat(),
                existing.freshness.isoformat(),
            )
            return Mutation.REJECTED_STALE

        latitude = merged["latitude"]
        longitude = merged["longitude"]
        if not is_valid_position(latitude, longitude):
            if existing is None:
                return Mutation.IGNORED
            self._store.remove(pid)
            return Mutation.REMOVED

        now = self._clock()
        if is_stale(now, freshness, self._stale_after):
            if existing is None:
                return Mutation.IGNORED
            self._store.remove(pid)
            return Mutation.EXPIRED

        if existing is None:
            self._store.create(
                pid,
                latitude=latitude,
                longitude=longitude,
                freshness=freshness,
                name=merged["name"],
                category=merged["category"],
                created_at=now,
            )
            return Mutation.CREATED

        moved, restyled = self._store.update(
            pid,
            latitude=latitude,
            longitude=longitude,
            freshness=freshness,
            name=merged["name"],
            category=merged["category"],
        )
        if moved:
            return Mutation.MOVED
        if restyled:
            return Mutation.RESTYLED
        return Mutation.UNCHANGED

    def apply_all(self, events: Iterable[UpdateEvent]) -> Counter[Mutation]:
        counts: Counter[Mutation] = Counter()
        for event in events:
            counts[self.apply(event)] += 1
        return counts


def _merge(existing: Marker | None, record: Any) -> dict[str, Any]:
    """Fields the record did not carry keep the marker's current values."""
    current: dict[str, Any] = {
        "latitude": existing.latitude if existing is not None else None,
        "longitude": existing.longitude if existing is not None else None,
        "name": existing.name if existing is not None else None,
        "category": existing.category if existing is not None else None,
    }
    return {key: getattr(record, key) if record.carries(key) else value for key, value in current.items()}
