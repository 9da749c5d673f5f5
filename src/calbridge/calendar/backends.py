from __future__ import annotations

from contextlib import contextmanager
from datetime import UTC, datetime
import json
import logging
import os
from pathlib import Path
import tempfile
import threading
from typing import Iterator
import uuid

from calbridge.calendar.store import AccessCallback, CalendarStore, EventRecord
from calbridge.config import Config
from calbridge.errors import InvalidTimestamp, StoreFailure
from calbridge.timecodec import parse_timestamp

try:
    from EventKit import EKEntityTypeEvent, EKEvent, EKEventStore, EKSpanThisEvent
    from Foundation import NSDate
except ImportError:
    EKEntityTypeEvent = None  # type: ignore[misc, assignment]
    EKEvent = None  # type: ignore[misc, assignment]
    EKEventStore = None  # type: ignore[misc, assignment]
    EKSpanThisEvent = 0  # type: ignore[misc, assignment]
    NSDate = None  # type: ignore[misc, assignment]

logger = logging.getLogger(__name__)

# EKAuthorizationStatus: 0=NotDetermined, 1=Restricted, 2=Denied,
# 3=FullAccess (formerly Authorized), 4=WriteOnly. Write-only cannot read events.
EK_STATUS_FULL_ACCESS = 3


class BackendUnavailableError(StoreFailure):
    pass


def _error_description(error: object, fallback: str) -> str:
    if error is None:
        return fallback
    describe = getattr(error, "localizedDescription", None)
    if callable(describe):
        return str(describe())
    return str(error) or fallback


class EventKitStore:
    backend_name = "eventkit"

    def __init__(self, store: object | None = None) -> None:
        if store is None:
            if EKEventStore is None:
                raise BackendUnavailableError(
                    "EventKit framework not available. Install pyobjc-framework-EventKit "
                    "or set CALBRIDGE_STORE=file."
                )
            store = EKEventStore.alloc().init()
        self._store = store

    @property
    def default_calendar(self) -> str | None:
        calendar = self._store.defaultCalendarForNewEvents()
        return str(calendar.title()) if calendar is not None else None

    def is_authorized(self) -> bool:
        status = EKEventStore.authorizationStatusForEntityType_(EKEntityTypeEvent)
        return status == EK_STATUS_FULL_ACCESS

    def request_access(self, callback: AccessCallback) -> None:
        def _completion(granted: bool, error: object) -> None:
            callback(bool(granted), _error_description(error, "user denied") if not granted else None)

        # macOS 14 replaced requestAccessToEntityType:completion: with a full-access request.
        if hasattr(self._store, "requestFullAccessToEventsWithCompletion_"):
            self._store.requestFullAccessToEventsWithCompletion_(_completion)
        else:
            self._store.requestAccessToEntityType_completion_(EKEntityTypeEvent, _completion)

    def events_in_range(self, start: datetime, end: datetime) -> list[EventRecord]:
        predicate = self._store.predicateForEventsWithStartDate_endDate_calendars_(
            NSDate.dateWithTimeIntervalSince1970_(start.timestamp()),
            NSDate.dateWithTimeIntervalSince1970_(end.timestamp()),
            None,
        )
        events = self._store.eventsMatchingPredicate_(predicate) or []
        return [_record_from_native(event) for event in events]

    def event_by_id(self, event_id: str) -> EventRecord | None:
        native = self._store.eventWithIdentifier_(event_id)
        if native is None:
            return None
        return _record_from_native(native)

    def save(self, record: EventRecord) -> str:
        if record.id:
            native = self._store.eventWithIdentifier_(record.id)
            if native is None:
                raise StoreFailure(f"Event {record.id!r} disappeared before it could be saved")
        else:
            native = EKEvent.eventWithEventStore_(self._store)
            native.setCalendar_(self._store.defaultCalendarForNewEvents())

        # Attendees are read-only through EventKit and are never written back.
        native.setTitle_(record.title)
        native.setStartDate_(NSDate.dateWithTimeIntervalSince1970_(record.start.timestamp()))
        native.setEndDate_(NSDate.dateWithTimeIntervalSince1970_(record.end.timestamp()))
        native.setLocation_(record.location)
        native.setNotes_(record.notes)

        ok, error = self._store.saveEvent_span_error_(native, EKSpanThisEvent, None)
        if not ok:
            raise StoreFailure(_error_description(error, "Calendar store failed to save the event"))
        record.id = str(native.eventIdentifier())
        logger.debug("Saved EventKit event %s", record.id)
        return record.id

    def remove(self, record: EventRecord) -> None:
        native = self._store.eventWithIdentifier_(record.id)
        if native is None:
            raise StoreFailure(f"Event {record.id!r} disappeared before it could be removed")
        ok, error = self._store.removeEvent_span_error_(native, EKSpanThisEvent, None)
        if not ok:
            raise StoreFailure(_error_description(error, "Calendar store failed to remove the event"))
        logger.debug("Removed EventKit event %s", record.id)


def _instant(nsdate: object) -> datetime:
    return datetime.fromtimestamp(nsdate.timeIntervalSince1970(), UTC)


def _optional_text(value: object) -> str | None:
    return str(value) if value is not None else None


def _record_from_native(event: object) -> EventRecord:
    attendees: list[str] = []
    for participant in event.attendees() or []:
        url = participant.URL()
        if url is not None:
            attendees.append(str(url.absoluteString()))
    calendar = event.calendar()
    return EventRecord(
        id=_optional_text(event.eventIdentifier()),
        title=_optional_text(event.title()),
        start=_instant(event.startDate()),
        end=_instant(event.endDate()),
        location=_optional_text(event.location()),
        notes=_optional_text(event.notes()),
        attendees=attendees,
        calendar=str(calendar.title()) if calendar is not None else None,
    )


class JsonFileStore:
    """Calendar store kept in a single JSON document on disk.

    Writers take an exclusive lock file and replace the document
    atomically, so an interrupted save never leaves a partial file.
    """

    backend_name = "file"

    def __init__(
        self,
        path: Path,
        *,
        default_calendar: str = "Calendar",
        grant_access: bool = True,
    ) -> None:
        self.path = path
        self.lock_file = path.with_suffix(".lock")
        self._default_calendar = default_calendar
        self._grant_access = grant_access

    @property
    def default_calendar(self) -> str | None:
        return self._default_calendar

    def is_authorized(self) -> bool:
        # No persisted authorization status; every process asks again.
        return False

    def request_access(self, callback: AccessCallback) -> None:
        reason = None if self._grant_access else "access denied by CALBRIDGE_ACCESS_DENIED"
        worker = threading.Thread(
            target=callback,
            args=(self._grant_access, reason),
            name="calbridge-access",
            daemon=True,
        )
        worker.start()

    @contextmanager
    def lock(self) -> Iterator[None]:
        try:
            self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreFailure(f"Unable to create calendar store directory: {exc}") from exc
        try:
            fd = os.open(self.lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as exc:
            raise StoreFailure(
                f"Calendar store is locked at {self.lock_file}. If stale, remove the lock file."
            ) from exc
        except OSError as exc:
            raise StoreFailure(f"Unable to lock calendar store: {exc}") from exc
        try:
            os.close(fd)
            yield
        finally:
            if self.lock_file.exists():
                self.lock_file.unlink()

    def _load(self) -> list[EventRecord]:
        if not self.path.exists():
            return []
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreFailure(f"Unable to read calendar store {self.path}: {exc}") from exc
        try:
            document = json.loads(text)
            rows = document["events"]
            if not isinstance(rows, list):
                raise TypeError("events must be a list")
            return [_record_from_row(row) for row in rows]
        except (ValueError, KeyError, TypeError, AttributeError, InvalidTimestamp) as exc:
            raise StoreFailure(f"Calendar store file is corrupt: {self.path} ({exc})") from exc

    def _write(self, records: list[EventRecord]) -> None:
        document = {"events": [_row_from_record(record) for record in records]}
        tmp_path: Path | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w", encoding="utf-8", delete=False, dir=self.path.parent
            ) as tmp:
                tmp_path = Path(tmp.name)
                json.dump(document, tmp, indent=2, sort_keys=True)
                tmp.flush()
                os.fsync(tmp.fileno())
            tmp_path.replace(self.path)
        except OSError as exc:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise StoreFailure(f"Unable to write calendar store {self.path}: {exc}") from exc

    def events_in_range(self, start: datetime, end: datetime) -> list[EventRecord]:
        return [record for record in self._load() if record.start < end and record.end > start]

    def event_by_id(self, event_id: str) -> EventRecord | None:
        for record in self._load():
            if record.id == event_id:
                return record
        return None

    def save(self, record: EventRecord) -> str:
        with self.lock():
            records = self._load()
            if record.id is None:
                record.id = str(uuid.uuid4()).upper()
                record.calendar = record.calendar or self._default_calendar
                records.append(record)
            else:
                index = _index_of(records, record.id)
                if index is None:
                    raise StoreFailure(f"Event {record.id!r} disappeared before it could be saved")
                records[index] = record
            self._write(records)
        logger.debug("Saved event %s to %s", record.id, self.path)
        return record.id

    def remove(self, record: EventRecord) -> None:
        with self.lock():
            records = self._load()
            index = _index_of(records, record.id)
            if index is None:
                raise StoreFailure(f"Event {record.id!r} disappeared before it could be removed")
            del records[index]
            self._write(records)
        logger.debug("Removed event %s from %s", record.id, self.path)


def _index_of(records: list[EventRecord], event_id: str | None) -> int | None:
    for index, record in enumerate(records):
        if record.id == event_id:
            return index
    return None


def _row_from_record(record: EventRecord) -> dict[str, object]:
    return {
        "id": record.id,
        "title": record.title,
        "start": _stored_instant(record.start),
        "end": _stored_instant(record.end),
        "location": record.location,
        "notes": record.notes,
        "attendees": list(record.attendees),
        "calendar": record.calendar,
    }


def _record_from_row(row: dict[str, object]) -> EventRecord:
    return EventRecord(
        id=row.get("id"),
        title=row.get("title"),
        start=parse_timestamp(str(row["start"])),
        end=parse_timestamp(str(row["end"])),
        location=row.get("location"),
        notes=row.get("notes"),
        attendees=[str(attendee) for attendee in row.get("attendees") or []],
        calendar=row.get("calendar"),
    )


def open_store(config: Config) -> CalendarStore:
    backend = config.store_backend
    if backend == "auto":
        backend = "eventkit" if EKEventStore is not None else "file"
    logger.debug("Using %s calendar store", backend)
    if backend == "eventkit":
        return EventKitStore()
    return JsonFileStore(
        config.store_file,
        default_calendar=config.default_calendar,
        grant_access=not config.access_denied,
    )


def _stored_instant(instant: datetime) -> str:
    # Microseconds are kept so sub-second ranges survive a reload.
    return instant.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")
