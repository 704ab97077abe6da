from __future__ import annotations

from datetime import UTC, datetime

from pylivetrack.ingestion.normalize import (
    is_valid_position,
    normalize_identity,
    normalize_tag,
    normalize_timestamp,
    safe_float,
)


def test_safe_float_rejects_placeholders_and_nan() -> None:
    assert safe_float("51.98") == 51.98
    assert safe_float("") is None
    assert safe_float("--") is None
    assert safe_float(float("nan")) is None
    assert safe_float(True) is None
    assert safe_float("abc") is None


def test_normalize_timestamp_accepts_iso_with_z_suffix() -> None:
    ts = normalize_timestamp("2026-05-17T09:30:00Z")

    assert ts == datetime(2026, 5, 17, 9, 30, tzinfo=UTC)


def test_normalize_timestamp_postgres_offset_and_microseconds() -> None:
    ts = normalize_timestamp("2026-05-17T11:30:00.123456+02:00")

    assert ts is not None
    assert ts.astimezone(UTC) == datetime(2026, 5, 17, 9, 30, 0, 123456, tzinfo=UTC)


def test_normalize_timestamp_epoch_seconds_and_milliseconds() -> None:
    seconds = normalize_timestamp(1_770_928_447)
    millis = normalize_timestamp(1_770_928_447_000)

    assert seconds == datetime.fromtimestamp(1_770_928_447, tz=UTC)
    assert millis == seconds


def test_normalize_timestamp_naive_datetime_is_utc() -> None:
    ts = normalize_timestamp(datetime(2026, 1, 1, 12, 0))

    assert ts is not None
    assert ts.tzinfo is UTC


def test_normalize_timestamp_garbage_is_none() -> None:
    assert normalize_timestamp("yesterday") is None
    assert normalize_timestamp(0) is None
    assert normalize_timestamp(-5) is None
    assert normalize_timestamp(None) is None


def test_is_valid_position_rules() -> None:
    assert is_valid_position(51.981, 7.785)
    assert not is_valid_position(None, 7.785)
    assert not is_valid_position(51.981, None)
    assert not is_valid_position(0.0, 0.0)
    assert not is_valid_position(91.0, 7.0)
    assert not is_valid_position(51.0, -181.0)
    # Only the exact origin is a placeholder; a zero latitude alone is valid.
    assert is_valid_position(0.0, 7.785)


def test_normalize_identity_accepts_serial_keys() -> None:
    assert normalize_identity(42) == "42"
    assert normalize_identity("  abc ") == "abc"
    assert normalize_identity("") is None
    assert normalize_identity(True) is None


def test_normalize_tag_is_case_and_whitespace_insensitive() -> None:
    assert normalize_tag(" Olymp ") == normalize_tag("olymp")
    assert normalize_tag("   ") is None
    assert normalize_tag(None) is None
