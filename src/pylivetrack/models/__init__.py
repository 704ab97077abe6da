"""Data models for upstream payloads and static layers."""

from pylivetrack.models._base import TrackerBaseModel, UtcTimestamp
from pylivetrack.models.layer import (
    DEFAULT_POINTS,
    DEFAULT_ROUTES,
    LayerStyle,
    LegendEntry,
    ParticipantStyle,
    PointLayerConfig,
    RouteLayerConfig,
)
from pylivetrack.models.participant import ParticipantRecord

__all__ = [
    "DEFAULT_POINTS",
    "DEFAULT_ROUTES",
    "LayerStyle",
    "LegendEntry",
    "ParticipantRecord",
    "ParticipantStyle",
    "PointLayerConfig",
    "RouteLayerConfig",
    "TrackerBaseModel",
    "UtcTimestamp",
]
