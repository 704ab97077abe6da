"""Realtime change-feed payload models."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from pylivetrack.models._base import UtcTimestamp


class ChangeType(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class PostgresChange(BaseModel):
    """The ``data`` member of a ``postgres_changes`` realtime message.

    ``record`` is the new row (empty for deletes); ``old_record`` carries
    at least the primary key for updates and deletes.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    schema_name: str = Field(default="", validation_alias=AliasChoices("schema", "schema_name"))
    table: str = ""
    change_type: ChangeType = Field(validation_alias=AliasChoices("type", "eventType", "change_type"))
    commit_timestamp: UtcTimestamp = None
    record: dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("record", "new"))
    old_record: dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("old_record", "old"))
    errors: Any = None

    @field_validator("change_type", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("record", "old_record", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value
