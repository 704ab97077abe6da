"""High-level async live tracker (the map view lifecycle)."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import aiohttp

from pylivetrack.auth import AuthGate, FileLoginStore, LoginStateStore, MemoryLoginStore
from pylivetrack.config import TrackerConfig
from pylivetrack.exceptions import LiveTrackError
from pylivetrack.ingestion.apply import apply_rows_to_store, build_event_from_change, build_events_from_snapshot
from pylivetrack.ingestion.realtime import RealtimeSubscription
from pylivetrack.ingestion.snapshot import fetch_snapshot
from pylivetrack.layers import apply_route_filter, build_layers, build_legend, load_static_features
from pylivetrack.models.change import PostgresChange
from pylivetrack.models.layer import LegendEntry
from pylivetrack.projection import WebMercatorProjection
from pylivetrack.state.events import IngestionSource, UpdateEvent
from pylivetrack.state.filters import FilterSelection
from pylivetrack.state.reconciler import Mutation, Reconciler
from pylivetrack.state.store import Marker, MarkerStore
from pylivetrack.state.sweeper import ExpirySweeper
from pylivetrack.surface import GeoJsonSurface, MapSurface

_logger = logging.getLogger(__name__)

SnapshotFetcher = Callable[[], Awaitable[list[dict[str, Any]]]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _default_login_store(config: TrackerConfig) -> LoginStateStore:
    if config.login_state_path is None:
        return MemoryLoginStore()
    return FileLoginStore(config.login_state_path)


class LiveTracker:
    """Live participant map.

    Usage::

        async with LiveTracker(config) as tracker:
            tracker.login(code)
            await tracker.start()
            tracker.set_filter({"Olymp"})
    """

    def __init__(
        self,
        config: TrackerConfig,
        *,
        surface: MapSurface | None = None,
        session: aiohttp.ClientSession | None = None,
        gate: AuthGate | None = None,
        base_dir: Path | None = None,
        clock: Callable[[], datetime] = _utcnow,
        snapshot_fetcher: SnapshotFetcher | None = None,
        on_mutation: Callable[[str, Mutation], None] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._base_dir = base_dir
        self._clock = clock
        self._snapshot_fetcher = snapshot_fetcher
        self._on_mutation = on_mutation

        if surface is None:
            surface = GeoJsonSurface(projection=WebMercatorProjection() if config.web_mercator else None)
        self._surface = surface
        self._gate = gate or AuthGate(
            config.event_code,
            store=_default_login_store(config),
            login_duration=config.login_duration,
        )
        stale_after = timedelta(seconds=config.stale_after)
        self._selection = FilterSelection.all()
        self._store = MarkerStore(surface=surface, style=config.participant_style, selection=self._selection)
        self._reconciler = Reconciler(self._store, stale_after=stale_after, clock=clock)
        self._sweeper = ExpirySweeper(
            self._store,
            stale_after=stale_after,
            interval=config.sweep_interval,
            clock=clock,
        )
        self._realtime: RealtimeSubscription | None = None
        self._started = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> LiveTracker:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> TrackerConfig:
        return self._config

    @property
    def surface(self) -> MapSurface:
        return self._surface

    @property
    def gate(self) -> AuthGate:
        return self._gate

    @property
    def store(self) -> MarkerStore:
        return self._store

    @property
    def sweeper(self) -> ExpirySweeper:
        return self._sweeper

    @property
    def selection(self) -> FilterSelection:
        return self._selection

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def legend(self) -> list[LegendEntry]:
        return build_legend(self._config)

    def markers(self) -> list[Marker]:
        return self._store.markers()

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    def login(self, code: str) -> None:
        """Open the gate with the event code (raises ``InvalidEventCodeError``)."""
        self._gate.login(code)

    # ------------------------------------------------------------------
    # View lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Build the map, load the snapshot and begin live updates.

        A start that fails partway leaves no markers or layers behind, so it
        can simply be retried.

        Raises
        ------
        GateLockedError
            When the gate is enabled and no valid login exists.
        """
        if self._started:
            return
        self._gate.require()
        self._gate.touch()

        try:
            layers = build_layers(self._config)
            self._surface.set_layers(layers)
            await load_static_features(self._surface, layers, http=self._http_session, base_dir=self._base_dir)
            self._apply_route_filter()

            await self.refresh()

            if self._config.realtime_enabled:
                self._start_realtime()
            self._sweeper.start()
        except BaseException:
            _logger.warning("Live tracker start failed; tearing the view down")
            await self._teardown()
            raise
        self._started = True
        _logger.info("Live tracker started with %d marker(s)", len(self._store))

    async def stop(self) -> None:
        """Tear the view down: stop timers and feeds, drop every marker."""
        if self._started:
            await self._teardown()
            self._started = False
            _logger.debug("Live tracker stopped")
            return
        await self._sweeper.stop()
        await self._stop_realtime()

    async def _teardown(self) -> None:
        await self._sweeper.stop()
        await self._stop_realtime()
        self._store.clear()
        self._surface.detach()

    async def _stop_realtime(self) -> None:
        realtime = self._realtime
        self._realtime = None
        if realtime is not None:
            await realtime.stop()

    async def refresh(self) -> Counter[Mutation]:
        """Fetch the full table and reconcile it.

        Markers whose identity is absent from the snapshot are removed, so a
        resync after a disconnect also catches upstream deletes.
        """
        rows = await self._fetch_snapshot()
        events = build_events_from_snapshot(rows, observed_at=self._clock())
        counts = Counter(self.apply(event) for event in events)

        seen = {event.participant_id for event in events}
        for participant_id in self._store.ids() - seen:
            self._store.remove(participant_id)
            counts[Mutation.REMOVED] += 1
            self._notify(participant_id, Mutation.REMOVED)

        _logger.debug("Snapshot reconciled: %s", dict(counts))
        return counts

    def apply(self, event: UpdateEvent) -> Mutation:
        mutation = self._reconciler.apply(event)
        self._notify(event.participant_id, mutation)
        return mutation

    def apply_rows(self, rows: Iterable[dict[str, Any]]) -> Counter[Mutation]:
        """Reconcile rows received out of band (no pruning)."""
        counts: Counter[Mutation] = Counter()

        def _apply(event: UpdateEvent) -> None:
            counts[self.apply(event)] += 1

        apply_rows_to_store(_apply, rows, source=IngestionSource.MANUAL, observed_at=self._clock())
        return counts

    def set_filter(self, tags: Iterable[str] | str | None) -> FilterSelection:
        """Change the category filter; ``None`` (or empty) shows everything."""
        self._selection = FilterSelection.of(tags)
        changed = self._store.set_selection(self._selection)
        if self._started:
            self._apply_route_filter()
        _logger.debug("Filter set to %s; %d marker(s) re-styled", self._selection.tags, len(changed))
        return self._selection

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            raise LiveTrackError("Tracker not initialized. Use 'async with LiveTracker(...) as tracker:'")
        return self._http_session

    async def _fetch_snapshot(self) -> list[dict[str, Any]]:
        if self._snapshot_fetcher is not None:
            return await self._snapshot_fetcher()
        return await fetch_snapshot(self._config, self._require_session())

    def _apply_route_filter(self) -> None:
        apply_route_filter(
            self._surface,
            self._config.routes,
            self._selection,
            dimmed_opacity=self._config.dimmed_opacity,
        )

    def _start_realtime(self) -> None:
        realtime = RealtimeSubscription(
            config=self._config,
            http=self._require_session(),
            on_change=self._on_change,
            on_join=self._on_join,
            logger=_logger,
        )
        realtime.start()
        self._realtime = realtime

    def _on_change(self, change: PostgresChange) -> None:
        event = build_event_from_change(change, observed_at=self._clock())
        if event is None:
            return
        self.apply(event)

    async def _on_join(self, rejoined: bool) -> None:
        if rejoined:
            _logger.info("Realtime reconnected; resyncing snapshot")
            await self.refresh()

    def _notify(self, participant_id: str, mutation: Mutation) -> None:
        if self._on_mutation is None:
            return
        try:
            self._on_mutation(participant_id, mutation)
        except Exception:
            _logger.debug("on_mutation callback failed", exc_info=True)
