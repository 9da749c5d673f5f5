from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from calbridge.errors import InvalidTimestamp
from calbridge.timecodec import parse_timestamp, render_timestamp


def test_parse_second_granularity_utc() -> None:
    assert parse_timestamp("2025-05-07T00:00:00Z") == datetime(2025, 5, 7, tzinfo=UTC)


def test_parse_fractional_seconds() -> None:
    parsed = parse_timestamp("2025-05-07T00:00:00.123Z")
    assert parsed == datetime(2025, 5, 7, 0, 0, 0, 123000, tzinfo=UTC)


def test_parse_truncates_nanosecond_precision() -> None:
    parsed = parse_timestamp("2025-05-07T00:00:00.123456789Z")
    assert parsed.microsecond == 123456


def test_parse_normalizes_offsets_to_utc() -> None:
    parsed = parse_timestamp("2025-05-07T02:30:00+02:30")
    assert parsed == datetime(2025, 5, 7, 0, 0, tzinfo=UTC)
    assert parsed.tzinfo == UTC


@pytest.mark.parametrize(
    "raw",
    [
        "2025-05-07T00:00:00",
        "2025-05-07",
        "2025-05-07 00:00:00Z",
        "2025-13-07T00:00:00Z",
        "2025-05-07T00:00:00.Z",
        "2025-05-07T00:00:00+25:00",
        "tomorrow",
        "２０２５-05-07T00:00:00Z",
        "2025-05-07T00:00:00+٠٢:00",
        "",
    ],
)
def test_parse_rejects_non_rfc3339_values(raw: str) -> None:
    with pytest.raises(InvalidTimestamp):
        parse_timestamp(raw)


def test_parse_error_names_the_field() -> None:
    with pytest.raises(InvalidTimestamp) as excinfo:
        parse_timestamp("nope", field="--start")
    assert "--start" in str(excinfo.value)
    assert "2025-05-07T00:00:00Z" in str(excinfo.value)


@pytest.mark.parametrize(
    "raw",
    [
        "2025-05-07T10:00:00Z",
        "2025-05-07T10:00:00.5Z",
        "2025-05-07T10:00:00.999999Z",
        "2025-05-07t10:00:00z",
        "2025-05-07T12:00:00+02:00",
    ],
)
def test_render_is_canonical_for_parsed_values(raw: str) -> None:
    assert render_timestamp(parse_timestamp(raw)) == "2025-05-07T10:00:00Z"


def test_render_converts_aware_datetimes_to_utc() -> None:
    eastern = timezone(-timedelta(hours=5))
    assert render_timestamp(datetime(2025, 1, 1, 19, 0, tzinfo=eastern)) == "2025-01-02T00:00:00Z"


def test_render_rejects_naive_datetimes() -> None:
    with pytest.raises(ValueError):
        render_timestamp(datetime(2025, 1, 1))
