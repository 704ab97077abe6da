"""Coordinate projections for rendering surfaces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from pyproj import Transformer


class Projection(Protocol):
    code: str

    def lonlat_to_xy(self, lon: float, lat: float) -> tuple[float, float]: ...
    def xy_to_lonlat(self, x: float, y: float) -> tuple[float, float]: ...


@dataclass(frozen=True)
class WebMercatorProjection:
    """EPSG:4326 <-> EPSG:3857"""

    code: str = "EPSG:3857"

    def __post_init__(self) -> None:
        object.__setattr__(self, "_to_merc", Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True))
        object.__setattr__(self, "_to_geo", Transformer.from_crs("EPSG:3857", "EPSG:4326", always_xy=True))

    def lonlat_to_xy(self, lon: float, lat: float) -> tuple[float, float]:
        x, y = self._to_merc.transform(lon, lat)  # type: ignore[attr-defined]
        return float(x), float(y)

    def xy_to_lonlat(self, x: float, y: float) -> tuple[float, float]:
        lon, lat = self._to_geo.transform(x, y)  # type: ignore[attr-defined]
        return float(lon), float(lat)


def from_lon_lat(lon: float, lat: float, projection: Projection | None = None) -> tuple[float, float]:
    """Project a lon/lat pair; defaults to web mercator."""
    proj = projection or _default_projection()
    return proj.lonlat_to_xy(lon, lat)


_DEFAULT: WebMercatorProjection | None = None


def _default_projection() -> WebMercatorProjection:
    global _DEFAULT
    if _DEFAULT is None:
        _DEFAULT = WebMercatorProjection()
    return _DEFAULT


def project_geometry(geometry: dict, projection: Projection) -> dict:
    """Return a copy of a GeoJSON geometry with every position projected."""
    gtype = geometry.get("type")
    if gtype == "GeometryCollection":
        return {
            "type": gtype,
            "geometries": [project_geometry(g, projection) for g in geometry.get("geometries", [])],
        }
    return {"type": gtype, "coordinates": _project_coords(geometry.get("coordinates"), projection)}


def _project_coords(coords: object, projection: Projection) -> object:
    if isinstance(coords, (list, tuple)) and coords and isinstance(coords[0], (int, float)):
        x, y = projection.lonlat_to_xy(float(coords[0]), float(coords[1]))
        return [x, y, *coords[2:]]
    if isinstance(coords, (list, tuple)):
        return [_project_coords(c, projection) for c in coords]
    return coords
