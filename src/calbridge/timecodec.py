from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
import re

from calbridge.errors import InvalidTimestamp

_BASE = r"([0-9]{4})-([0-9]{2})-([0-9]{2})[Tt]([0-9]{2}):([0-9]{2}):([0-9]{2})"
_OFFSET = r"([Zz]|[+-][0-9]{2}:[0-9]{2})"

# Second granularity is tried first, fractional seconds second.
_SECONDS_PATTERN = re.compile(_BASE + _OFFSET + r"$")
_FRACTIONAL_PATTERN = re.compile(_BASE + r"\.([0-9]{1,9})" + _OFFSET + r"$")


def _offset(designator: str) -> timezone:
    if designator in ("Z", "z"):
        return UTC
    sign = -1 if designator[0] == "-" else 1
    hours, minutes = int(designator[1:3]), int(designator[4:6])
    if hours > 23 or minutes > 59:
        raise ValueError("offset out of range")
    return timezone(sign * timedelta(hours=hours, minutes=minutes))


def _build(fields: tuple[str, ...], fraction: str, designator: str) -> datetime:
    year, month, day, hour, minute, second = (int(value) for value in fields)
    microsecond = int(fraction[:6].ljust(6, "0")) if fraction else 0
    return datetime(
        year, month, day, hour, minute, second, microsecond, tzinfo=_offset(designator)
    ).astimezone(UTC)


def parse_timestamp(text: str, *, field: str | None = None) -> datetime:
    """Parse an RFC-3339 timestamp into an aware UTC datetime.

    A timezone designator is mandatory. Fractional seconds are accepted
    with up to nine digits; digits beyond microseconds are dropped.
    """
    value = text.strip() if isinstance(text, str) else ""
    label = field or "timestamp"
    match = _SECONDS_PATTERN.match(value)
    fraction = ""
    if match:
        *fields, designator = match.groups()
    else:
        match = _FRACTIONAL_PATTERN.match(value)
        if not match:
            raise InvalidTimestamp(
                f"Unable to parse {label} {text!r}; supply RFC-3339 timestamps like "
                "2025-05-07T00:00:00Z"
            )
        *fields, fraction, designator = match.groups()
    try:
        return _build(tuple(fields), fraction, designator)
    except (ValueError, OverflowError) as exc:
        raise InvalidTimestamp(f"Unable to parse {label} {text!r}: {exc}") from exc


def render_timestamp(instant: datetime) -> str:
    if instant.tzinfo is None:
        raise ValueError("Cannot render a naive datetime as an instant")
    return instant.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
