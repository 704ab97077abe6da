"""In-memory marker store.

This is the only component allowed to create, mutate, or destroy
participant markers, and it mirrors every change onto the rendering
surface so the two never disagree.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pylivetrack._constants import PARTICIPANT_LAYER_ID
from pylivetrack.exceptions import LiveTrackError
from pylivetrack.models.layer import LayerStyle, ParticipantStyle
from pylivetrack.state.filters import FilterSelection, Visibility, marker_visibility
from pylivetrack.state.policy import is_stale
from pylivetrack.surface import MapSurface, point_geometry

_logger = logging.getLogger(__name__)


class Marker(BaseModel):
    """Renderable state of one participant."""

    model_config = ConfigDict(extra="forbid")

    participant_id: str
    latitude: float
    longitude: float
    name: str | None = None
    category: str | None = None
    freshness: datetime
    visible: bool = True
    opacity: float = 1.0
    created_at: datetime | None = Field(default=None, description="When the marker was first placed")

    @property
    def label(self) -> str:
        return self.name or self.participant_id

    @property
    def position(self) -> tuple[float, float]:
        return self.latitude, self.longitude

    def properties(self) -> dict[str, Any]:
        return {
            "participant_id": self.participant_id,
            "name": self.label,
            "category": self.category,
            "updated_at": self.freshness.isoformat(),
        }


class MarkerStore:
    """Identity-keyed marker set.

    At most one marker exists per participant id. Returned markers are
    copies; mutate only through the store.
    """

    def __init__(
        self,
        *,
        surface: MapSurface | None = None,
        layer_id: str = PARTICIPANT_LAYER_ID,
        style: ParticipantStyle | None = None,
        selection: FilterSelection | None = None,
    ) -> None:
        self._surface = surface
        self._layer_id = layer_id
        self._style = style or ParticipantStyle()
        self._selection = selection or FilterSelection.all()
        self._markers: dict[str, Marker] = {}

    def __len__(self) -> int:
        return len(self._markers)

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._markers

    @property
    def selection(self) -> FilterSelection:
        return self._selection

    def get(self, participant_id: str) -> Marker | None:
        marker = self._markers.get(participant_id)
        return marker.model_copy() if marker is not None else None

    def ids(self) -> set[str]:
        return set(self._markers)

    def markers(self) -> list[Marker]:
        return [marker.model_copy() for marker in self._markers.values()]

    def freshness(self, participant_id: str) -> datetime | None:
        marker = self._markers.get(participant_id)
        return marker.freshness if marker is not None else None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def create(
        self,
        participant_id: str,
        *,
        latitude: float,
        longitude: float,
        freshness: datetime,
        name: str | None = None,
        category: str | None = None,
        created_at: datetime | None = None,
    ) -> Marker:
        if participant_id in self._markers:
            raise LiveTrackError(f"Marker for {participant_id!r} already exists")
        visibility = marker_visibility(self._selection, category)
        marker = Marker(
            participant_id=participant_id,
            latitude=latitude,
            longitude=longitude,
            name=name,
            category=category,
            freshness=freshness,
            visible=visibility.visible,
            opacity=visibility.opacity,
            created_at=created_at or freshness,
        )
        self._markers[participant_id] = marker
        if self._surface is not None:
            self._surface.add_feature(
                self._layer_id,
                participant_id,
                point_geometry(longitude, latitude),
                marker.properties(),
            )
            self._surface.set_feature_style(self._layer_id, participant_id, self._marker_style(marker))
        _logger.debug("Marker created id=%s lat=%s lon=%s", participant_id, latitude, longitude)
        return marker.model_copy()

    def update(
        self,
        participant_id: str,
        *,
        latitude: float,
        longitude: float,
        freshness: datetime,
        name: str | None = None,
        category: str | None = None,
    ) -> tuple[bool, bool]:
        """Mutate a marker in place.

        Returns ``(moved, restyled)``. Freshness is recorded in both cases.
        """
        marker = self._markers.get(participant_id)
        if marker is None:
            raise LiveTrackError(f"No marker for {participant_id!r}")

        moved = (marker.latitude, marker.longitude) != (latitude, longitude)
        restyled = (marker.name, marker.category) != (name, category)

        marker.latitude = latitude
        marker.longitude = longitude
        marker.name = name
        marker.category = category
        marker.freshness = max(marker.freshness, freshness)

        if restyled:
            visibility = marker_visibility(self._selection, category)
            marker.visible = visibility.visible
            marker.opacity = visibility.opacity

        if self._surface is not None:
            self._surface.update_feature(
                self._layer_id,
                participant_id,
                geometry=point_geometry(longitude, latitude) if moved else None,
                properties=marker.properties(),
            )
            if restyled:
                self._surface.set_feature_style(self._layer_id, participant_id, self._marker_style(marker))
        return moved, restyled

    def remove(self, participant_id: str) -> bool:
        marker = self._markers.pop(participant_id, None)
        if marker is None:
            return False
        if self._surface is not None:
            self._surface.remove_feature(self._layer_id, participant_id)
        _logger.debug("Marker removed id=%s", participant_id)
        return True

    def clear(self) -> None:
        for participant_id in list(self._markers):
            self.remove(participant_id)

    def stale_ids(self, now: datetime, stale_after: timedelta) -> list[str]:
        return [pid for pid, marker in self._markers.items() if is_stale(now, marker.freshness, stale_after)]

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    def set_selection(self, selection: FilterSelection) -> list[str]:
        """Re-project every marker; returns the ids whose visibility changed."""
        self._selection = selection
        changed: list[str] = []
        for participant_id, marker in self._markers.items():
            visibility = marker_visibility(selection, marker.category)
            if self._set_visibility(marker, visibility):
                changed.append(participant_id)
        return changed

    def _set_visibility(self, marker: Marker, visibility: Visibility) -> bool:
        if (marker.visible, marker.opacity) == (visibility.visible, visibility.opacity):
            return False
        marker.visible = visibility.visible
        marker.opacity = visibility.opacity
        if self._surface is not None:
            self._surface.set_feature_style(self._layer_id, marker.participant_id, self._marker_style(marker))
        return True

    def _marker_style(self, marker: Marker) -> LayerStyle:
        return self._style.marker_style(marker.label, visible=marker.visible, opacity=marker.opacity)
