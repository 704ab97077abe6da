"""Static layer configuration models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LayerStyle(BaseModel):
    """Renderer-neutral style description.

    Only the keys a layer kind uses are set; the rest stay ``None``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    stroke_color: str | None = None
    stroke_width: float | None = None
    fill_color: str | None = None
    radius: float | None = None
    text: str | None = None
    text_color: str | None = None
    text_stroke_color: str | None = None
    text_stroke_width: float | None = None
    font: str | None = None
    offset_y: float | None = None
    opacity: float = 1.0
    visible: bool = True

    def with_visibility(self, *, visible: bool, opacity: float) -> LayerStyle:
        return self.model_copy(update={"visible": visible, "opacity": opacity})

    def as_properties(self) -> dict[str, Any]:
        """Style as a flat dict, dropping unset keys."""
        return self.model_dump(exclude_none=True)


class RouteLayerConfig(BaseModel):
    """A race route drawn as a line layer.

    ``categories`` lists the classification tags the route belongs to.
    An empty tuple means the route is shared by every category.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    url: str
    label: str
    color: str
    width: float = 4.0
    categories: tuple[str, ...] = ()

    @field_validator("categories", mode="before")
    @classmethod
    def _coerce_categories(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return value

    @property
    def layer_id(self) -> str:
        return f"route:{self.label}"

    def style(self) -> LayerStyle:
        return LayerStyle(stroke_color=self.color, stroke_width=self.width)


class PointLayerConfig(BaseModel):
    """A labelled start/finish point layer."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    url: str
    label: str
    color: str
    text_color: str = "#ffffff"
    radius: float = 10.0

    @property
    def layer_id(self) -> str:
        return f"point:{self.label}"

    def style(self) -> LayerStyle:
        return LayerStyle(
            fill_color=self.color,
            stroke_color="white",
            stroke_width=3,
            radius=self.radius,
            text=self.label,
            text_color=self.text_color,
            text_stroke_color=self.color,
            text_stroke_width=2,
            font="bold 10px sans-serif",
            offset_y=0,
        )


class ParticipantStyle(BaseModel):
    """Style of participant markers; the label text comes from each marker."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    radius: float = 8.0
    fill_color: str = "white"
    stroke_color: str = "blue"
    stroke_width: float = 3.0
    font: str = "bold 14px Roboto, sans-serif"
    text_color: str = "#000"
    text_stroke_color: str = "#fff"
    text_stroke_width: float = 3.0
    label_offset_y: float = -18.0

    def marker_style(self, label: str, *, visible: bool = True, opacity: float = 1.0) -> LayerStyle:
        return LayerStyle(
            fill_color=self.fill_color,
            stroke_color=self.stroke_color,
            stroke_width=self.stroke_width,
            radius=self.radius,
            text=label,
            text_color=self.text_color,
            text_stroke_color=self.text_stroke_color,
            text_stroke_width=self.text_stroke_width,
            font=self.font,
            offset_y=self.label_offset_y,
            visible=visible,
            opacity=opacity,
        )


class LegendEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    color: str
    kind: str = Field(description="'route' or 'point'")


DEFAULT_ROUTES: tuple[RouteLayerConfig, ...] = (
    RouteLayerConfig(url="routes/Strecke_Schwimmen.json", color="#5485f4", width=4, label="Schwimmen"),
    RouteLayerConfig(
        url="routes/Strecke_Fahrrad_Volks.json", color="#f06c00", width=4, label="Rad Volks", categories=("Volks",)
    ),
    RouteLayerConfig(
        url="routes/Strecke_Laufen_Volks.json", color="#f153d5", width=4, label="Lauf Volks", categories=("Volks",)
    ),
    RouteLayerConfig(
        url="routes/Strecke_Fahrrad_Olymp.json", color="#f06c00", width=4, label="Rad Olymp", categories=("Olymp",)
    ),
    RouteLayerConfig(
        url="routes/Strecke_Laufen_Olymp.json", color="#f153d5", width=4, label="Lauf Olymp", categories=("Olymp",)
    ),
)

DEFAULT_POINTS: tuple[PointLayerConfig, ...] = (
    PointLayerConfig(url="points/start_point.json", label="START", color="#049c04", text_color="#ffffff", radius=10),
    PointLayerConfig(url="points/end_point.json", label="ZIEL", color="#000000", text_color="#ffffff", radius=10),
)
