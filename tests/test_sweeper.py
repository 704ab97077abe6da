from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from pylivetrack._constants import PARTICIPANT_LAYER_ID
from pylivetrack.state.store import MarkerStore
from pylivetrack.state.sweeper import ExpirySweeper
from pylivetrack.surface import GeoJsonSurface, Layer, LayerKind


def _dt(minute: int = 0) -> datetime:
    return datetime(2026, 5, 17, 9, minute, tzinfo=UTC)


def _store(surface: GeoJsonSurface | None = None) -> MarkerStore:
    store = MarkerStore(surface=surface)
    store.create("old", latitude=51.98, longitude=7.78, freshness=_dt(0))
    store.create("new", latitude=51.97, longitude=7.77, freshness=_dt(15))
    return store


def test_sweep_evicts_only_stale_markers() -> None:
    surface = GeoJsonSurface()
    surface.set_layers([Layer(layer_id=PARTICIPANT_LAYER_ID, kind=LayerKind.PARTICIPANT, z_index=100)])
    store = _store(surface)
    evicted_batches: list[list[str]] = []
    sweeper = ExpirySweeper(
        store,
        stale_after=timedelta(minutes=10),
        clock=lambda: _dt(20),
        on_evict=evicted_batches.append,
    )

    assert sweeper.sweep() == ["old"]
    assert store.ids() == {"new"}
    assert surface.feature_ids(PARTICIPANT_LAYER_ID) == {"new"}
    assert evicted_batches == [["old"]]


def test_sweep_with_nothing_stale_is_a_noop() -> None:
    calls: list[list[str]] = []
    sweeper = ExpirySweeper(_store(), stale_after=timedelta(minutes=10), clock=lambda: _dt(5), on_evict=calls.append)

    assert sweeper.sweep() == []
    assert calls == []


def test_failing_evict_callback_does_not_break_sweep() -> None:
    def _boom(_: list[str]) -> None:
        raise RuntimeError("listener failed")

    store = _store()
    sweeper = ExpirySweeper(store, stale_after=timedelta(minutes=10), on_evict=_boom)

    assert sweeper.sweep(now=_dt(30)) == ["old", "new"]
    assert len(store) == 0


def test_non_positive_interval_is_rejected() -> None:
    with pytest.raises(ValueError):
        ExpirySweeper(MarkerStore(), interval=0)


@pytest.mark.asyncio
async def test_background_sweeps_run_until_stopped() -> None:
    store = _store()
    sweeper = ExpirySweeper(store, stale_after=timedelta(minutes=10), interval=0.01, clock=lambda: _dt(20))

    sweeper.start()
    sweeper.start()
    assert sweeper.is_running

    for _ in range(100):
        if "old" not in store:
            break
        await asyncio.sleep(0.01)

    await sweeper.stop()
    assert not sweeper.is_running
    assert store.ids() == {"new"}

    # Stopping twice is harmless.
    await sweeper.stop()


class _FlakyStore(MarkerStore):
    """Fails the first stale scan, then behaves."""

    def __init__(self) -> None:
        super().__init__()
        self.scans = 0

    def stale_ids(self, now: datetime, stale_after: timedelta) -> list[str]:
        self.scans += 1
        if self.scans == 1:
            raise RuntimeError("store unavailable")
        return super().stale_ids(now, stale_after)


@pytest.mark.asyncio
async def test_background_loop_survives_a_failing_sweep() -> None:
    store = _FlakyStore()
    store.create("old", latitude=51.98, longitude=7.78, freshness=_dt(0))
    sweeper = ExpirySweeper(store, stale_after=timedelta(minutes=10), interval=0.01, clock=lambda: _dt(20))

    sweeper.start()
    try:
        for _ in range(100):
            if "old" not in store:
                break
            await asyncio.sleep(0.01)
        assert sweeper.is_running
    finally:
        await sweeper.stop()

    assert store.scans >= 2
    assert len(store) == 0
