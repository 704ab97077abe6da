"""Base model for upstream payloads.

Every payload model inherits from :class:`TrackerBaseModel` which
provides:

* frozen instances with unknown keys ignored
* population by field name as well as by upstream alias
* a ``raw`` dict that captures the original payload
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from pylivetrack.ingestion.normalize import normalize_timestamp

UtcTimestamp = Annotated[datetime | None, BeforeValidator(normalize_timestamp)]
"""Annotated type that coerces ISO strings and epoch numbers to aware UTC datetimes."""


class TrackerBaseModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict)
    """Original upstream payload."""

    @model_validator(mode="before")
    @classmethod
    def _stash_raw(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        # Only auto-stash raw when not explicitly provided (i.e. model_validate
        # from an upstream dict).
        if "raw" in values:
            return values
        return {**values, "raw": dict(values)}
