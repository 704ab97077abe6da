"""Map rendering surface.

The surface is the only thing the rest of the library draws on. It accepts
a layer list and exposes per-feature add/update/remove/style operations
keyed by identity. :class:`GeoJsonSurface` keeps every layer as an in-memory
GeoJSON FeatureCollection so a web front end (or a file dump) can render it.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from pylivetrack.exceptions import SurfaceError
from pylivetrack.models.layer import LayerStyle
from pylivetrack.projection import Projection, project_geometry

_logger = logging.getLogger(__name__)


class LayerKind(StrEnum):
    BASEMAP = "basemap"
    ROUTE = "route"
    POINT = "point"
    PARTICIPANT = "participant"


@dataclass(frozen=True)
class Layer:
    """A renderable layer description."""

    layer_id: str
    kind: LayerKind
    z_index: int
    style: LayerStyle = field(default_factory=LayerStyle)
    source: str | None = None
    label: str | None = None


@dataclass
class _Feature:
    geometry: dict[str, Any]
    properties: dict[str, Any]
    style: LayerStyle | None = None


class MapSurface(Protocol):
    """Structural interface of a rendering surface.

    Implementations may be a browser bridge, a tile renderer, or the
    in-memory :class:`GeoJsonSurface`. Geometries are always passed in
    lon/lat (EPSG:4326); projecting is the surface's job.
    """

    def set_layers(self, layers: Sequence[Layer]) -> None: ...

    def add_feature(
        self, layer_id: str, feature_id: str, geometry: dict[str, Any], properties: dict[str, Any]
    ) -> None: ...

    def update_feature(
        self,
        layer_id: str,
        feature_id: str,
        *,
        geometry: dict[str, Any] | None = None,
        properties: dict[str, Any] | None = None,
    ) -> None: ...

    def remove_feature(self, layer_id: str, feature_id: str) -> None: ...

    def set_feature_style(self, layer_id: str, feature_id: str, style: LayerStyle) -> None: ...

    def set_layer_style(self, layer_id: str, style: LayerStyle) -> None: ...

    def detach(self) -> None: ...


def point_geometry(longitude: float, latitude: float) -> dict[str, Any]:
    return {"type": "Point", "coordinates": [longitude, latitude]}


class GeoJsonSurface:
    """In-memory surface backed by GeoJSON feature collections.

    Parameters
    ----------
    projection : Projection or None
        When given, exported geometries are projected (e.g. web mercator)
        and the collection carries a ``crs`` member naming the projection.
    """

    def __init__(self, *, projection: Projection | None = None) -> None:
        self._projection = projection
        self._layers: dict[str, Layer] = {}
        self._features: dict[str, dict[str, _Feature]] = {}
        self._attached = True

    @property
    def attached(self) -> bool:
        return self._attached

    @property
    def layers(self) -> list[Layer]:
        """Layers in draw order (lowest z-index first)."""
        return sorted(self._layers.values(), key=lambda layer: layer.z_index)

    def layer(self, layer_id: str) -> Layer:
        try:
            return self._layers[layer_id]
        except KeyError:
            raise SurfaceError(f"Unknown layer {layer_id!r}") from None

    def set_layers(self, layers: Sequence[Layer]) -> None:
        self._layers = {layer.layer_id: layer for layer in layers}
        # Keep features of layers that survive the reset.
        self._features = {layer_id: self._features.get(layer_id, {}) for layer_id in self._layers}
        self._attached = True
        _logger.debug("Surface layers set: %s", [layer.layer_id for layer in self.layers])

    def _layer_features(self, layer_id: str) -> dict[str, _Feature]:
        if layer_id not in self._layers:
            raise SurfaceError(f"Unknown layer {layer_id!r}")
        return self._features[layer_id]

    def add_feature(
        self, layer_id: str, feature_id: str, geometry: dict[str, Any], properties: dict[str, Any]
    ) -> None:
        features = self._layer_features(layer_id)
        if feature_id in features:
            raise SurfaceError(f"Feature {feature_id!r} already exists in layer {layer_id!r}")
        features[feature_id] = _Feature(geometry=copy.deepcopy(geometry), properties=dict(properties))

    def update_feature(
        self,
        layer_id: str,
        feature_id: str,
        *,
        geometry: dict[str, Any] | None = None,
        properties: dict[str, Any] | None = None,
    ) -> None:
        feature = self._get_feature(layer_id, feature_id)
        if geometry is not None:
            feature.geometry = copy.deepcopy(geometry)
        if properties is not None:
            feature.properties.update(properties)

    def remove_feature(self, layer_id: str, feature_id: str) -> None:
        features = self._layer_features(layer_id)
        if features.pop(feature_id, None) is None:
            raise SurfaceError(f"Feature {feature_id!r} not found in layer {layer_id!r}")

    def set_feature_style(self, layer_id: str, feature_id: str, style: LayerStyle) -> None:
        self._get_feature(layer_id, feature_id).style = style

    def set_layer_style(self, layer_id: str, style: LayerStyle) -> None:
        layer = self.layer(layer_id)
        self._layers[layer_id] = Layer(
            layer_id=layer.layer_id,
            kind=layer.kind,
            z_index=layer.z_index,
            style=style,
            source=layer.source,
            label=layer.label,
        )

    def detach(self) -> None:
        """Drop every layer and feature (view teardown)."""
        self._layers.clear()
        self._features.clear()
        self._attached = False

    def _get_feature(self, layer_id: str, feature_id: str) -> _Feature:
        features = self._layer_features(layer_id)
        feature = features.get(feature_id)
        if feature is None:
            raise SurfaceError(f"Feature {feature_id!r} not found in layer {layer_id!r}")
        return feature

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def feature_ids(self, layer_id: str) -> set[str]:
        return set(self._layer_features(layer_id))

    def feature_properties(self, layer_id: str, feature_id: str) -> dict[str, Any]:
        return dict(self._get_feature(layer_id, feature_id).properties)

    def feature_style(self, layer_id: str, feature_id: str) -> LayerStyle | None:
        return self._get_feature(layer_id, feature_id).style

    def feature_geometry(self, layer_id: str, feature_id: str) -> dict[str, Any]:
        return copy.deepcopy(self._get_feature(layer_id, feature_id).geometry)

    def to_geojson(self, layer_id: str) -> dict[str, Any]:
        """Export one layer as a FeatureCollection.

        The feature style is merged into ``properties["style"]``; a layer-level
        style is used for features without their own.
        """
        layer = self.layer(layer_id)
        features: list[dict[str, Any]] = []
        for feature_id, feature in self._features[layer_id].items():
            geometry = feature.geometry
            if self._projection is not None:
                geometry = project_geometry(geometry, self._projection)
            style = feature.style or layer.style
            features.append(
                {
                    "type": "Feature",
                    "id": feature_id,
                    "geometry": geometry,
                    "properties": {**feature.properties, "style": style.as_properties()},
                }
            )
        collection: dict[str, Any] = {"type": "FeatureCollection", "features": features}
        if self._projection is not None:
            collection["crs"] = {"type": "name", "properties": {"name": self._projection.code}}
        return collection

    def to_dict(self) -> dict[str, Any]:
        """All layers, in draw order, with their features."""
        return {
            "layers": [
                {
                    "id": layer.layer_id,
                    "kind": str(layer.kind),
                    "z_index": layer.z_index,
                    "label": layer.label,
                    "source": layer.source,
                    "style": layer.style.as_properties(),
                    "data": self.to_geojson(layer.layer_id),
                }
                for layer in self.layers
            ]
        }
