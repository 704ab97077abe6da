"""Periodic eviction of stale markers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from pylivetrack._constants import DEFAULT_STALE_AFTER, DEFAULT_SWEEP_INTERVAL
from pylivetrack.state.store import MarkerStore

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ExpirySweeper:
    """Timer-driven sweep using the same staleness check as the reconciler."""

    def __init__(
        self,
        store: MarkerStore,
        *,
        stale_after: timedelta = timedelta(seconds=DEFAULT_STALE_AFTER),
        interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], datetime] = _utcnow,
        on_evict: Callable[[list[str]], None] | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"sweep interval must be positive, got {interval}")
        self._store = store
        self._stale_after = stale_after
        self._interval = interval
        self._clock = clock
        self._on_evict = on_evict
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self, now: datetime | None = None) -> list[str]:
        """Evict every stale marker; returns the evicted ids."""
        now = now or self._clock()
        evicted = self._store.stale_ids(now, self._stale_after)
        for participant_id in evicted:
            self._store.remove(participant_id)
        if evicted:
            _logger.debug("Swept %d stale marker(s): %s", len(evicted), evicted)
            if self._on_evict is not None:
                try:
                    self._on_evict(evicted)
                except Exception:
                    _logger.debug("on_evict callback failed", exc_info=True)
        return evicted

    def start(self) -> None:
        """Schedule sweeps on the running loop (idempotent)."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="pylivetrack-expiry-sweeper")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.sweep()
            except Exception:
                _logger.warning("Expiry sweep failed", exc_info=True)
