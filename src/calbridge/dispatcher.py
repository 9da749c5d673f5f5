from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import logging
from typing import IO, Union

from calbridge.authorization import AuthorizationGate
from calbridge.calendar.store import CalendarStore, EventRecord
from calbridge.codec import (
    NewEventRequest,
    UpdateEventRequest,
    apply_update,
    decode_new_event,
    decode_update_event,
    from_create_request,
    to_dto,
)
from calbridge.errors import (
    AccessDenied,
    ConflictingModes,
    InvalidRange,
    MalformedPayload,
    MissingParameter,
    RecordNotFound,
)
from calbridge.timecodec import parse_timestamp

logger = logging.getLogger(__name__)

DEMO_TITLE = "calendar-bridge demo"
DEMO_NOTES = "Created by calendar-bridge --create"
DEMO_LEAD_TIME = timedelta(minutes=5)
DEMO_DURATION = timedelta(minutes=30)


@dataclass(frozen=True)
class DeleteMode:
    event_id: str


@dataclass(frozen=True)
class CreateMode:
    request: NewEventRequest


@dataclass(frozen=True)
class UpdateMode:
    request: UpdateEventRequest


@dataclass(frozen=True)
class ReadMode:
    start: datetime
    end: datetime
    create_demo: bool = False


Invocation = Union[DeleteMode, CreateMode, UpdateMode, ReadMode]


def _requested_modes(args: argparse.Namespace) -> list[str]:
    # Ordered by precedence: delete, create-json, update-json, read.
    modes: list[str] = []
    if args.delete_id is not None:
        modes.append("--delete-id")
    if args.create_json:
        modes.append("--create-json")
    if args.update_json:
        modes.append("--update-json")
    if args.start is not None or args.end is not None or args.create:
        modes.append("read (--start/--end/--create)")
    return modes


def _read_payload(stdin: IO[str]) -> str:
    try:
        raw = stdin.read()
    except (UnicodeDecodeError, OSError) as exc:
        raise MalformedPayload(f"Unable to read JSON payload from standard input: {exc}") from exc
    if not raw.strip():
        raise MalformedPayload("Expected a JSON object on standard input")
    return raw


def select_invocation(args: argparse.Namespace, stdin: IO[str]) -> Invocation:
    """Validate the parsed flags once and build the single invocation mode.

    Nothing here touches the calendar store. Flags belonging to more than
    one mode are rejected rather than resolved by precedence.
    """
    modes = _requested_modes(args)
    if len(modes) > 1:
        raise ConflictingModes("Choose one command mode; got " + ", ".join(modes))

    if args.delete_id is not None:
        if not args.delete_id.strip():
            raise MissingParameter("--delete-id requires a non-empty event id")
        return DeleteMode(event_id=args.delete_id)
    if args.create_json:
        request = decode_new_event(_read_payload(stdin))
        if request.start >= request.end:
            raise InvalidRange("start must be earlier than end")
        return CreateMode(request=request)
    if args.update_json:
        return UpdateMode(request=decode_update_event(_read_payload(stdin)))

    if args.start is None or args.end is None:
        missing = [flag for flag, value in (("--start", args.start), ("--end", args.end)) if value is None]
        raise MissingParameter("Missing required option(s): " + ", ".join(missing))
    start = parse_timestamp(args.start, field="--start")
    end = parse_timestamp(args.end, field="--end")
    if start >= end:
        raise InvalidRange("--start must be earlier than --end.")
    return ReadMode(start=start, end=end, create_demo=bool(args.create))


def _lookup(store: CalendarStore, event_id: str) -> EventRecord:
    record = store.event_by_id(event_id)
    if record is None:
        raise RecordNotFound(event_id)
    return record


def delete_event(store: CalendarStore, mode: DeleteMode) -> dict[str, object]:
    record = _lookup(store, mode.event_id)
    store.remove(record)
    logger.info("Deleted event %s", mode.event_id)
    return {"success": True}


def create_event(store: CalendarStore, mode: CreateMode) -> dict[str, object]:
    record = from_create_request(mode.request, calendar=store.default_calendar)
    event_id = store.save(record)
    logger.info("Created event %s", event_id)
    return {"id": event_id, "success": True}


def update_event(store: CalendarStore, mode: UpdateMode) -> dict[str, object]:
    record = apply_update(_lookup(store, mode.request.id), mode.request)
    if record.start >= record.end:
        raise InvalidRange("Updated event must start before it ends")
    store.save(record)
    logger.info("Updated event %s", mode.request.id)
    return {"success": True}


def _demo_record(store: CalendarStore, now: datetime) -> EventRecord:
    start = now + DEMO_LEAD_TIME
    return EventRecord(
        title=DEMO_TITLE,
        start=start,
        end=start + DEMO_DURATION,
        notes=DEMO_NOTES,
        calendar=store.default_calendar,
    )


def read_events(
    store: CalendarStore,
    mode: ReadMode,
    *,
    now: datetime | None = None,
) -> list[dict[str, object]]:
    if mode.create_demo:
        demo_id = store.save(_demo_record(store, now or datetime.now(UTC)))
        logger.info("Created demo event %s", demo_id)
    records = store.events_in_range(mode.start, mode.end)
    logger.debug("Store returned %d event(s)", len(records))
    return [to_dto(record) for record in records]


def dispatch(
    invocation: Invocation,
    *,
    store: CalendarStore,
    gate: AuthorizationGate,
    now: datetime | None = None,
) -> dict[str, object] | list[dict[str, object]]:
    decision = gate.ensure_access()
    if not decision.granted:
        raise AccessDenied(decision.reason)

    if isinstance(invocation, DeleteMode):
        return delete_event(store, invocation)
    if isinstance(invocation, CreateMode):
        return create_event(store, invocation)
    if isinstance(invocation, UpdateMode):
        return update_event(store, invocation)
    return read_events(store, invocation, now=now)
