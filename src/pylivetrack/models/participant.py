"""Participant position record."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from pylivetrack.ingestion.normalize import is_valid_position, normalize_identity, safe_float, safe_str
from pylivetrack.models._base import TrackerBaseModel, UtcTimestamp


class ParticipantRecord(TrackerBaseModel):
    """One row of the participants table, full or partial.

    Coordinate fields are ``None`` when the value is absent or
    unparseable. Whether a field was present in the payload at all is
    tracked separately (see :meth:`carries`), so a partial patch that
    omits ``latitude`` is not confused with a row whose latitude is null.

    Parameters
    ----------
    participant_id : str
        Stable participant identity.
    name : str or None
        Display name shown as the marker label.
    latitude : float or None
        Latitude in degrees.
    longitude : float or None
        Longitude in degrees.
    updated_at : datetime or None
        Freshness timestamp of the position report.
    category : str or None
        Free-text classification tag (race distance).
    raw : dict
        Full upstream row.
    """

    participant_id: str = Field(
        validation_alias=AliasChoices("participant_id", "id", "participantId", "uid"),
    )
    name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("name", "display_name", "displayName", "full_name"),
    )
    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float | None = Field(default=None, validation_alias=AliasChoices("longitude", "lon", "lng"))
    updated_at: UtcTimestamp = Field(
        default=None,
        validation_alias=AliasChoices(
            "updated_at",
            "updatedAt",
            "last_update",
            "lastUpdate",
            "timestamp",
            "last_seen",
        ),
    )
    category: str | None = Field(
        default=None,
        validation_alias=AliasChoices("category", "classification", "distance", "race_distance"),
    )

    @field_validator("participant_id", mode="before")
    @classmethod
    def _coerce_identity(cls, value: Any) -> str:
        identity = normalize_identity(value)
        if identity is None:
            raise ValueError("participant id must be non-empty")
        return identity

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("name", "category", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        return safe_str(value)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ParticipantRecord:
        return cls.model_validate(row)

    def carries(self, field: str) -> bool:
        """Whether the upstream payload supplied *field* (even as null)."""
        return field in self.model_fields_set

    @property
    def has_position(self) -> bool:
        return is_valid_position(self.latitude, self.longitude)

    @property
    def label(self) -> str:
        return self.name or self.participant_id
