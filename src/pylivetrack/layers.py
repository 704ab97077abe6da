"""Static layers: basemap, routes, start/finish points, legend."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import aiohttp

from pylivetrack._constants import (
    BASEMAP_Z_INDEX,
    PARTICIPANT_LAYER_ID,
    PARTICIPANT_Z_INDEX,
    POINT_Z_INDEX,
    ROUTE_Z_INDEX,
)
from pylivetrack.config import TrackerConfig
from pylivetrack.exceptions import LayerLoadError
from pylivetrack.models.layer import LayerStyle, LegendEntry, RouteLayerConfig
from pylivetrack.state.filters import FilterSelection, route_visibility
from pylivetrack.surface import Layer, LayerKind, MapSurface

_logger = logging.getLogger(__name__)

BASEMAP_LAYER_ID = "basemap"


def build_layers(config: TrackerConfig) -> list[Layer]:
    """Layer list in draw order: basemap, routes, points, participants."""
    layers: list[Layer] = [
        Layer(layer_id=BASEMAP_LAYER_ID, kind=LayerKind.BASEMAP, z_index=BASEMAP_Z_INDEX, source=config.basemap_url)
    ]
    layers.extend(
        Layer(
            layer_id=route.layer_id,
            kind=LayerKind.ROUTE,
            z_index=ROUTE_Z_INDEX,
            style=route.style(),
            source=route.url,
            label=route.label,
        )
        for route in config.routes
    )
    layers.extend(
        Layer(
            layer_id=point.layer_id,
            kind=LayerKind.POINT,
            z_index=POINT_Z_INDEX,
            style=point.style(),
            source=point.url,
            label=point.label,
        )
        for point in config.points
    )
    layers.append(
        Layer(
            layer_id=PARTICIPANT_LAYER_ID,
            kind=LayerKind.PARTICIPANT,
            z_index=PARTICIPANT_Z_INDEX,
            style=config.participant_style.marker_style(""),
        )
    )
    return layers


def build_legend(config: TrackerConfig) -> list[LegendEntry]:
    entries = [LegendEntry(label=route.label, color=route.color, kind="route") for route in config.routes]
    entries.extend(LegendEntry(label=point.label, color=point.color, kind="point") for point in config.points)
    return entries


def parse_geojson(data: Any, *, source: str = "") -> list[dict[str, Any]]:
    """Return the features of a GeoJSON document (FeatureCollection, Feature, or bare geometry)."""
    if not isinstance(data, dict):
        raise LayerLoadError(f"GeoJSON from {source} is not an object", source=source)
    gtype = data.get("type")
    if gtype == "FeatureCollection":
        features = data.get("features")
        if not isinstance(features, list):
            raise LayerLoadError(f"FeatureCollection from {source} has no features list", source=source)
        return [f for f in features if isinstance(f, dict) and isinstance(f.get("geometry"), dict)]
    if gtype == "Feature":
        if not isinstance(data.get("geometry"), dict):
            raise LayerLoadError(f"Feature from {source} has no geometry", source=source)
        return [data]
    if (isinstance(gtype, str) and "coordinates" in data) or gtype == "GeometryCollection":
        return [{"type": "Feature", "geometry": data, "properties": {}}]
    raise LayerLoadError(f"Unsupported GeoJSON type {gtype!r} from {source}", source=source)


async def load_geojson(
    source: str,
    *,
    http: aiohttp.ClientSession | None = None,
    base_dir: Path | None = None,
) -> list[dict[str, Any]]:
    """Load features from an http(s) URL or a local path (relative to *base_dir*)."""
    if source.startswith(("http://", "https://")):
        if http is None:
            raise LayerLoadError(f"No HTTP session to fetch {source}", source=source)
        try:
            async with http.get(source) as resp:
                if resp.status != 200:
                    raise LayerLoadError(f"HTTP {resp.status} fetching {source}", source=source)
                text = await resp.text()
        except aiohttp.ClientError as exc:
            raise LayerLoadError(f"Request to {source} failed: {exc}", source=source) from exc
    else:
        path = Path(source)
        if base_dir is not None and not path.is_absolute():
            path = base_dir / path
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except OSError as exc:
            raise LayerLoadError(f"Cannot read {path}: {exc}", source=source) from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise LayerLoadError(f"Invalid JSON in {source}", source=source) from exc
    return parse_geojson(data, source=source)


async def load_static_features(
    surface: MapSurface,
    layers: Sequence[Layer],
    *,
    http: aiohttp.ClientSession | None = None,
    base_dir: Path | None = None,
    strict: bool = False,
) -> dict[str, int]:
    """Load route/point GeoJSON onto the surface.

    A layer that fails to load (unreadable, malformed, or with duplicate
    feature ids) is logged and left empty unless *strict*.
    Returns the number of features loaded per layer id.
    """
    loaded: dict[str, int] = {}
    for layer in layers:
        if layer.kind not in (LayerKind.ROUTE, LayerKind.POINT) or not layer.source:
            continue
        try:
            features = await load_geojson(layer.source, http=http, base_dir=base_dir)
            feature_ids = _feature_ids(layer, features)
        except LayerLoadError:
            if strict:
                raise
            _logger.warning("Static layer %s could not be loaded from %s", layer.layer_id, layer.source, exc_info=True)
            loaded[layer.layer_id] = 0
            continue
        for feature_id, feature in zip(feature_ids, features, strict=True):
            properties = feature.get("properties")
            surface.add_feature(
                layer.layer_id,
                feature_id,
                feature["geometry"],
                properties if isinstance(properties, dict) else {},
            )
        loaded[layer.layer_id] = len(features)
        _logger.debug("Loaded %d feature(s) into %s", len(features), layer.layer_id)
    return loaded


def _feature_ids(layer: Layer, features: Sequence[dict[str, Any]]) -> list[str]:
    ids = [str(feature.get("id", f"{layer.layer_id}#{index}")) for index, feature in enumerate(features)]
    seen: set[str] = set()
    for feature_id in ids:
        if feature_id in seen:
            raise LayerLoadError(f"Duplicate feature id {feature_id!r} in {layer.source}", source=layer.source or "")
        seen.add(feature_id)
    return ids


def apply_route_filter(
    surface: MapSurface,
    routes: Sequence[RouteLayerConfig],
    selection: FilterSelection,
    *,
    dimmed_opacity: float,
) -> dict[str, LayerStyle]:
    """Re-style every route layer for *selection*; returns the applied styles."""
    applied: dict[str, LayerStyle] = {}
    for route in routes:
        visibility = route_visibility(selection, route.categories, dimmed_opacity=dimmed_opacity)
        style = route.style().with_visibility(visible=visibility.visible, opacity=visibility.opacity)
        surface.set_layer_style(route.layer_id, style)
        applied[route.layer_id] = style
    return applied
