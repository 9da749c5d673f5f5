from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import json
import re

from calbridge.calendar.store import EventRecord
from calbridge.errors import MalformedPayload
from calbridge.timecodec import parse_timestamp, render_timestamp

UNTITLED = "(untitled)"

_SCHEME_PREFIX = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


# Marks an update field that was absent from the payload.
UNSET = _Unset()


@dataclass(frozen=True)
class NewEventRequest:
    title: str
    start: datetime
    end: datetime
    location: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class UpdateEventRequest:
    id: str
    title: str | _Unset = UNSET
    start: datetime | _Unset = UNSET
    end: datetime | _Unset = UNSET
    location: str | _Unset = UNSET
    notes: str | _Unset = UNSET

    def present_fields(self) -> dict[str, object]:
        values = {
            "title": self.title,
            "start": self.start,
            "end": self.end,
            "location": self.location,
            "notes": self.notes,
        }
        return {key: value for key, value in values.items() if value is not UNSET}


def strip_scheme(identifier: str) -> str:
    return _SCHEME_PREFIX.sub("", identifier, count=1)


def to_dto(record: EventRecord) -> dict[str, object]:
    return {
        "id": record.id,
        "title": record.title if record.title is not None else UNTITLED,
        "start": render_timestamp(record.start),
        "end": render_timestamp(record.end),
        "location": record.location,
        "notes": record.notes,
        "attendees": [strip_scheme(attendee) for attendee in record.attendees],
    }


def from_create_request(request: NewEventRequest, *, calendar: str | None = None) -> EventRecord:
    return EventRecord(
        title=request.title,
        start=request.start,
        end=request.end,
        location=request.location,
        notes=request.notes,
        calendar=calendar,
    )


def apply_update(record: EventRecord, request: UpdateEventRequest) -> EventRecord:
    """Merge the fields present in `request` into `record` in place.

    Absent fields are left untouched. There is no way to clear a field:
    `null` in the payload decodes as absent.
    """
    for key, value in request.present_fields().items():
        setattr(record, key, value)
    return record


def _load_object(raw: str | bytes) -> dict[str, object]:
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedPayload(f"Malformed JSON payload: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedPayload("Payload must be a JSON object")
    return payload


def _required_str(payload: dict[str, object], key: str) -> str:
    value = payload.get(key)
    if value is None:
        raise MalformedPayload(f"Payload missing required key: {key}")
    if not isinstance(value, str):
        raise MalformedPayload(f"{key} must be a string")
    return value


def _optional_str(payload: dict[str, object], key: str) -> str | None:
    value = payload.get(key)
    if value is not None and not isinstance(value, str):
        raise MalformedPayload(f"{key} must be a string or null")
    return value


def _timestamp(payload: dict[str, object], key: str) -> datetime:
    return parse_timestamp(_required_str(payload, key), field=key)


def decode_new_event(raw: str | bytes) -> NewEventRequest:
    payload = _load_object(raw)
    return NewEventRequest(
        title=_required_str(payload, "title"),
        start=_timestamp(payload, "start"),
        end=_timestamp(payload, "end"),
        location=_optional_str(payload, "location"),
        notes=_optional_str(payload, "notes"),
    )


def decode_update_event(raw: str | bytes) -> UpdateEventRequest:
    payload = _load_object(raw)
    event_id = _required_str(payload, "id")
    if not event_id.strip():
        raise MalformedPayload("id must not be empty")

    fields: dict[str, object] = {}
    for key in ("title", "location", "notes"):
        value = _optional_str(payload, key)
        if value is not None:
            fields[key] = value
    for key in ("start", "end"):
        if payload.get(key) is not None:
            fields[key] = _timestamp(payload, key)
    return UpdateEventRequest(id=event_id, **fields)
