"""Normalization helpers.

Centralizes defensive parsing of upstream participant rows.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any

# Threshold to distinguish epoch seconds from milliseconds.
_MS_THRESHOLD = 1e11


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--":
        return None
    if isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def normalize_identity(value: Any) -> str | None:
    """Participant ids may arrive as ints (serial keys) or strings (uuids)."""
    if isinstance(value, bool):
        return None
    return safe_str(value)


def normalize_timestamp(value: Any) -> datetime | None:
    """Normalize an upstream timestamp to an aware UTC datetime.

    - Empty/missing -> None
    - ``datetime`` -> made tz-aware (naive values are taken as UTC)
    - Epoch numbers (seconds or milliseconds) -> UTC datetime
    - ISO-8601 strings, including the ``Z`` suffix Postgres emits -> UTC datetime
    """

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _from_epoch(float(value))
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        numeric = safe_float(text)
        if numeric is not None:
            return _from_epoch(numeric)
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    return None


def _from_epoch(ts: float) -> datetime | None:
    if math.isnan(ts) or ts <= 0:
        return None
    if ts > _MS_THRESHOLD:
        ts /= 1000.0
    try:
        return datetime.fromtimestamp(ts, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def is_valid_position(latitude: float | None, longitude: float | None) -> bool:
    """Return True if the pair can be placed on the map.

    ``(0, 0)`` is treated as missing: trackers report it before the first fix.
    """

    if latitude is None or longitude is None:
        return False
    if not -90.0 <= latitude <= 90.0:
        return False
    if not -180.0 <= longitude <= 180.0:
        return False
    return not (latitude == 0.0 and longitude == 0.0)


def normalize_tag(value: str | None) -> str | None:
    """Canonical form used to compare classification tags."""
    if value is None:
        return None
    tag = value.strip().casefold()
    return tag or None
