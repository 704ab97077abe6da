"""Deterministic reconciliation policy.

This module intentionally contains *no* payload parsing. The
ingestion/Pydantic boundary is responsible for producing normalized
records and timestamps.
"""

from __future__ import annotations

from datetime import datetime, timedelta


def should_accept_update(*, cached_freshness: datetime | None, incoming_freshness: datetime) -> bool:
    """Freshness must never move backwards; equal timestamps are accepted."""
    if cached_freshness is None:
        return True
    return incoming_freshness >= cached_freshness


def is_stale(now: datetime, freshness: datetime, stale_after: timedelta) -> bool:
    """Shared by the reconciler and the expiry sweeper."""
    return now - freshness > stale_after
