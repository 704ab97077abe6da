from __future__ import annotations

import json
from pathlib import Path

import pytest

from pylivetrack._constants import PARTICIPANT_LAYER_ID
from pylivetrack.config import TrackerConfig
from pylivetrack.exceptions import LayerLoadError
from pylivetrack.layers import (
    BASEMAP_LAYER_ID,
    apply_route_filter,
    build_layers,
    build_legend,
    load_geojson,
    load_static_features,
    parse_geojson,
)
from pylivetrack.models.layer import DEFAULT_ROUTES, PointLayerConfig, RouteLayerConfig
from pylivetrack.state.filters import FilterSelection
from pylivetrack.surface import GeoJsonSurface, LayerKind

_LINE = {"type": "LineString", "coordinates": [[7.78, 51.98], [7.79, 51.99]]}


def _config(**kwargs: object) -> TrackerConfig:
    return TrackerConfig(
        supabase_url="https://demo.supabase.co",
        supabase_key="anon-key",
        login_state_path=None,
        **kwargs,  # type: ignore[arg-type]
    )


def _write(path: Path, data: object) -> str:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path.name


def test_default_layers_are_stacked_basemap_routes_points_participants() -> None:
    layers = build_layers(_config())

    assert layers[0].layer_id == BASEMAP_LAYER_ID
    assert layers[-1].layer_id == PARTICIPANT_LAYER_ID
    assert [layer.kind for layer in layers] == (
        [LayerKind.BASEMAP] + [LayerKind.ROUTE] * 5 + [LayerKind.POINT] * 2 + [LayerKind.PARTICIPANT]
    )
    assert [layer.z_index for layer in layers] == [0, 1, 1, 1, 1, 1, 50, 50, 100]
    assert layers[1].style.stroke_color == "#5485f4"
    assert layers[6].label == "START"


def test_legend_lists_routes_then_points() -> None:
    legend = build_legend(_config())

    assert [entry.label for entry in legend] == [
        "Schwimmen",
        "Rad Volks",
        "Lauf Volks",
        "Rad Olymp",
        "Lauf Olymp",
        "START",
        "ZIEL",
    ]
    assert legend[-1].kind == "point"
    assert legend[-1].color == "#000000"


def test_parse_geojson_accepts_collections_features_and_geometries() -> None:
    collection = {"type": "FeatureCollection", "features": [{"type": "Feature", "geometry": _LINE}, {"bad": 1}]}

    assert len(parse_geojson(collection)) == 1
    assert parse_geojson({"type": "Feature", "geometry": _LINE})[0]["geometry"] == _LINE
    assert parse_geojson(_LINE)[0]["properties"] == {}


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"type": "FeatureCollection"},
        {"type": "Feature", "geometry": None},
        {"type": "Topology"},
    ],
)
def test_parse_geojson_rejects_unusable_documents(data: object) -> None:
    with pytest.raises(LayerLoadError):
        parse_geojson(data, source="routes/x.json")


@pytest.mark.asyncio
async def test_load_geojson_resolves_relative_paths(tmp_path: Path) -> None:
    name = _write(tmp_path / "route.json", {"type": "Feature", "geometry": _LINE})

    features = await load_geojson(name, base_dir=tmp_path)

    assert features[0]["geometry"] == _LINE


@pytest.mark.asyncio
async def test_load_geojson_reports_missing_and_invalid_files(tmp_path: Path) -> None:
    (tmp_path / "broken.json").write_text("{", encoding="utf-8")

    with pytest.raises(LayerLoadError) as exc_info:
        await load_geojson("missing.json", base_dir=tmp_path)
    assert exc_info.value.source == "missing.json"

    with pytest.raises(LayerLoadError):
        await load_geojson("broken.json", base_dir=tmp_path)

    with pytest.raises(LayerLoadError):
        await load_geojson("https://example.com/route.json")


@pytest.mark.asyncio
async def test_static_features_load_and_missing_layers_stay_empty(tmp_path: Path) -> None:
    route = _write(tmp_path / "swim.json", {"type": "FeatureCollection", "features": [{"geometry": _LINE}]})
    start = {"type": "Feature", "id": "start", "geometry": {"type": "Point", "coordinates": [7.78, 51.98]}}
    point = _write(tmp_path / "start.json", start)
    config = _config(
        routes=(
            RouteLayerConfig(url=route, label="Schwimmen", color="#5485f4"),
            RouteLayerConfig(url="gone.json", label="Rad", color="#f06c00"),
        ),
        points=(PointLayerConfig(url=point, label="START", color="#049c04"),),
    )
    layers = build_layers(config)
    surface = GeoJsonSurface()
    surface.set_layers(layers)

    loaded = await load_static_features(surface, layers, base_dir=tmp_path)

    assert loaded == {"route:Schwimmen": 1, "route:Rad": 0, "point:START": 1}
    assert surface.feature_ids("route:Schwimmen") == {"route:Schwimmen#0"}
    assert surface.feature_ids("point:START") == {"start"}

    strict_surface = GeoJsonSurface()
    strict_surface.set_layers(layers)
    with pytest.raises(LayerLoadError):
        await load_static_features(strict_surface, layers, base_dir=tmp_path, strict=True)


def test_route_filter_dims_routes_of_other_categories() -> None:
    config = _config()
    surface = GeoJsonSurface()
    surface.set_layers(build_layers(config))

    applied = apply_route_filter(surface, DEFAULT_ROUTES, FilterSelection.of("olymp"), dimmed_opacity=0.2)

    assert applied["route:Schwimmen"].opacity == 1.0
    assert applied["route:Rad Olymp"].opacity == 1.0
    assert applied["route:Rad Volks"].opacity == 0.2
    assert surface.layer("route:Lauf Volks").style.opacity == 0.2
    assert surface.layer("route:Lauf Volks").style.visible is True

    apply_route_filter(surface, DEFAULT_ROUTES, FilterSelection.all(), dimmed_opacity=0.2)
    assert surface.layer("route:Lauf Volks").style.opacity == 1.0


@pytest.mark.asyncio
async def test_duplicate_feature_ids_fail_only_that_layer(tmp_path: Path) -> None:
    point = {"type": "Point", "coordinates": [7.78, 51.98]}
    twice = _write(
        tmp_path / "twice.json",
        {
            "type": "FeatureCollection",
            "features": [{"id": "p", "geometry": point}, {"id": "p", "geometry": point}],
        },
    )
    swim = _write(tmp_path / "swim.json", {"type": "Feature", "geometry": _LINE})
    config = _config(
        routes=(RouteLayerConfig(url=swim, label="Schwimmen", color="#5485f4"),),
        points=(PointLayerConfig(url=twice, label="START", color="#049c04"),),
    )
    layers = build_layers(config)
    surface = GeoJsonSurface()
    surface.set_layers(layers)

    loaded = await load_static_features(surface, layers, base_dir=tmp_path)

    assert loaded == {"route:Schwimmen": 1, "point:START": 0}
    assert surface.feature_ids("point:START") == set()

    strict_surface = GeoJsonSurface()
    strict_surface.set_layers(layers)
    with pytest.raises(LayerLoadError, match="Duplicate feature id"):
        await load_static_features(strict_surface, layers, base_dir=tmp_path, strict=True)
