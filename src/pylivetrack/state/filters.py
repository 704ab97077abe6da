"""Category filter.

A pure projection from (active selection, classification) to visibility
and opacity, applied uniformly to route overlays and participant markers.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict

from pylivetrack._constants import DEFAULT_DIMMED_OPACITY
from pylivetrack.ingestion.normalize import normalize_tag


class Visibility(BaseModel):
    model_config = ConfigDict(frozen=True)

    visible: bool
    opacity: float


VISIBLE = Visibility(visible=True, opacity=1.0)
HIDDEN = Visibility(visible=False, opacity=0.0)


class FilterSelection(BaseModel):
    """Active filter selection.

    ``tags`` of ``None`` means "all" (no filtering). Tags are stored in
    canonical (stripped, case-folded) form.
    """

    model_config = ConfigDict(frozen=True)

    tags: frozenset[str] | None = None

    @classmethod
    def all(cls) -> FilterSelection:
        return cls()

    @classmethod
    def of(cls, tags: Iterable[str] | str | None) -> FilterSelection:
        if tags is None:
            return cls()
        if isinstance(tags, str):
            tags = (tags,)
        canonical = {tag for tag in (normalize_tag(t) for t in tags) if tag is not None}
        # An empty selection is treated as "all" rather than "nothing".
        return cls(tags=frozenset(canonical)) if canonical else cls()

    @property
    def is_all(self) -> bool:
        return self.tags is None

    def matches(self, classification: str | None) -> bool:
        if self.tags is None:
            return True
        tag = normalize_tag(classification)
        return tag is not None and tag in self.tags

    def matches_any(self, classifications: Iterable[str]) -> bool:
        """Route semantics: no tags means shared by every category."""
        tags = [tag for tag in (normalize_tag(c) for c in classifications) if tag is not None]
        if self.tags is None or not tags:
            return True
        return any(tag in self.tags for tag in tags)


def marker_visibility(selection: FilterSelection, classification: str | None) -> Visibility:
    return VISIBLE if selection.matches(classification) else HIDDEN


def route_visibility(
    selection: FilterSelection,
    categories: Iterable[str],
    *,
    dimmed_opacity: float = DEFAULT_DIMMED_OPACITY,
) -> Visibility:
    if selection.matches_any(categories):
        return VISIBLE
    return Visibility(visible=True, opacity=dimmed_opacity)
