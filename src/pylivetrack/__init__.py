"""pylivetrack - Async live participant tracking for race maps."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pylivetrack")
except PackageNotFoundError:
    __version__ = "0+local"
from pylivetrack.auth import AuthGate, FileLoginStore, MemoryLoginStore
from pylivetrack.config import TrackerConfig
from pylivetrack.exceptions import (
    GateError,
    GateLockedError,
    InvalidEventCodeError,
    LayerLoadError,
    LiveTrackError,
    RealtimeJoinError,
    SurfaceError,
    TrackerApiError,
    TrackerConfigError,
    TrackerTransportError,
)
from pylivetrack.models import (
    LayerStyle,
    LegendEntry,
    ParticipantRecord,
    ParticipantStyle,
    PointLayerConfig,
    RouteLayerConfig,
)
from pylivetrack.state.events import IngestionSource, UpdateEvent, UpdateKind
from pylivetrack.state.filters import FilterSelection, Visibility
from pylivetrack.state.reconciler import Mutation, Reconciler
from pylivetrack.state.store import Marker, MarkerStore
from pylivetrack.state.sweeper import ExpirySweeper
from pylivetrack.surface import GeoJsonSurface, Layer, LayerKind, MapSurface
from pylivetrack.tracker import LiveTracker

__all__ = [
    "__version__",
    "AuthGate",
    "ExpirySweeper",
    "FileLoginStore",
    "FilterSelection",
    "GateError",
    "GateLockedError",
    "GeoJsonSurface",
    "IngestionSource",
    "InvalidEventCodeError",
    "Layer",
    "LayerKind",
    "LayerLoadError",
    "LayerStyle",
    "LegendEntry",
    "LiveTrackError",
    "LiveTracker",
    "MapSurface",
    "Marker",
    "MarkerStore",
    "MemoryLoginStore",
    "Mutation",
    "ParticipantRecord",
    "ParticipantStyle",
    "PointLayerConfig",
    "RealtimeJoinError",
    "Reconciler",
    "RouteLayerConfig",
    "SurfaceError",
    "TrackerApiError",
    "TrackerConfig",
    "TrackerConfigError",
    "TrackerTransportError",
    "UpdateEvent",
    "UpdateKind",
    "Visibility",
]
