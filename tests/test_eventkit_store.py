from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

from calbridge.calendar import backends
from calbridge.calendar.backends import BackendUnavailableError, EventKitStore
from calbridge.calendar.store import EventRecord
from calbridge.errors import StoreFailure


def _nsdate(instant: datetime) -> MagicMock:
    value = MagicMock()
    value.timeIntervalSince1970.return_value = instant.timestamp()
    return value


def _native_event(
    *,
    identifier: str = "EK-1",
    title: str | None = "Planning",
    attendees: list[str] | None = None,
) -> MagicMock:
    event = MagicMock()
    event.eventIdentifier.return_value = identifier
    event.title.return_value = title
    event.startDate.return_value = _nsdate(datetime(2025, 5, 7, 10, tzinfo=UTC))
    event.endDate.return_value = _nsdate(datetime(2025, 5, 7, 11, tzinfo=UTC))
    event.location.return_value = None
    event.notes.return_value = "agenda"
    participants = []
    for address in attendees or []:
        participant = MagicMock()
        participant.URL.return_value.absoluteString.return_value = address
        participants.append(participant)
    event.attendees.return_value = participants or None
    event.calendar.return_value.title.return_value = "Work"
    return event


@pytest.fixture
def nsdate():
    with patch.object(backends, "NSDate") as mock_nsdate:
        mock_nsdate.dateWithTimeIntervalSince1970_.side_effect = lambda seconds: ("NSDate", seconds)
        yield mock_nsdate


def test_missing_eventkit_is_backend_unavailable() -> None:
    with patch.object(backends, "EKEventStore", None):
        with pytest.raises(BackendUnavailableError) as excinfo:
            EventKitStore()
    assert "pyobjc-framework-EventKit" in str(excinfo.value)
    assert excinfo.value.kind == "StoreFailure"


def test_events_in_range_maps_native_events(nsdate: MagicMock) -> None:
    native_store = MagicMock()
    native_store.eventsMatchingPredicate_.return_value = [
        _native_event(attendees=["mailto:ana@example.com", "mailto:bo@example.com"])
    ]
    store = EventKitStore(native_store)

    records = store.events_in_range(
        datetime(2025, 5, 7, tzinfo=UTC), datetime(2025, 5, 8, tzinfo=UTC)
    )

    native_store.predicateForEventsWithStartDate_endDate_calendars_.assert_called_once_with(
        ("NSDate", datetime(2025, 5, 7, tzinfo=UTC).timestamp()),
        ("NSDate", datetime(2025, 5, 8, tzinfo=UTC).timestamp()),
        None,
    )
    assert records == [
        EventRecord(
            id="EK-1",
            title="Planning",
            start=datetime(2025, 5, 7, 10, tzinfo=UTC),
            end=datetime(2025, 5, 7, 11, tzinfo=UTC),
            location=None,
            notes="agenda",
            attendees=["mailto:ana@example.com", "mailto:bo@example.com"],
            calendar="Work",
        )
    ]


def test_event_by_id_returns_none_when_missing() -> None:
    native_store = MagicMock()
    native_store.eventWithIdentifier_.return_value = None
    assert EventKitStore(native_store).event_by_id("missing") is None


def test_save_new_event_uses_default_calendar(nsdate: MagicMock) -> None:
    native_store = MagicMock()
    native_store.saveEvent_span_error_.return_value = (True, None)
    native_event = MagicMock()
    native_event.eventIdentifier.return_value = "EK-NEW"
    record = EventRecord(
        title="X",
        start=datetime(2025, 1, 1, tzinfo=UTC),
        end=datetime(2025, 1, 1, 1, tzinfo=UTC),
    )

    with patch.object(backends, "EKEvent") as mock_ekevent:
        mock_ekevent.eventWithEventStore_.return_value = native_event
        event_id = EventKitStore(native_store).save(record)

    assert event_id == "EK-NEW"
    assert record.id == "EK-NEW"
    native_event.setCalendar_.assert_called_once_with(native_store.defaultCalendarForNewEvents())
    native_event.setTitle_.assert_called_once_with("X")
    native_store.saveEvent_span_error_.assert_called_once()


def test_save_failure_surfaces_store_description(nsdate: MagicMock) -> None:
    native_store = MagicMock()
    error = MagicMock()
    error.localizedDescription.return_value = "Calendar is read-only"
    native_store.saveEvent_span_error_.return_value = (False, error)
    record = EventRecord(
        id="EK-1",
        title="X",
        start=datetime(2025, 1, 1, tzinfo=UTC),
        end=datetime(2025, 1, 1, 1, tzinfo=UTC),
    )

    with pytest.raises(StoreFailure) as excinfo:
        EventKitStore(native_store).save(record)
    assert str(excinfo.value) == "Calendar is read-only"


def test_remove_failure_without_description_is_generic() -> None:
    native_store = MagicMock()
    native_store.removeEvent_span_error_.return_value = (False, None)
    record = EventRecord(
        id="EK-1",
        start=datetime(2025, 1, 1, tzinfo=UTC),
        end=datetime(2025, 1, 1, 1, tzinfo=UTC),
    )
    with pytest.raises(StoreFailure) as excinfo:
        EventKitStore(native_store).remove(record)
    assert "failed to remove" in str(excinfo.value)


@patch("calbridge.calendar.backends.EKEventStore")
def test_is_authorized_requires_full_access(mock_ekstore_class: MagicMock) -> None:
    store = EventKitStore(MagicMock())
    mock_ekstore_class.authorizationStatusForEntityType_.return_value = 3
    assert store.is_authorized() is True
    mock_ekstore_class.authorizationStatusForEntityType_.return_value = 4
    assert store.is_authorized() is False


def test_request_access_prefers_full_access_api() -> None:
    native_store = MagicMock()
    native_store.requestFullAccessToEventsWithCompletion_.side_effect = (
        lambda completion: completion(False, None)
    )
    outcomes: list[tuple[bool, str | None]] = []

    EventKitStore(native_store).request_access(lambda granted, reason: outcomes.append((granted, reason)))

    assert outcomes == [(False, "user denied")]
    native_store.requestAccessToEntityType_completion_.assert_not_called()


def test_request_access_falls_back_to_entity_type_api() -> None:
    native_store = MagicMock(spec=["requestAccessToEntityType_completion_"])
    native_store.requestAccessToEntityType_completion_.side_effect = (
        lambda entity, completion: completion(True, None)
    )
    outcomes: list[tuple[bool, str | None]] = []

    EventKitStore(native_store).request_access(lambda granted, reason: outcomes.append((granted, reason)))

    assert outcomes == [(True, None)]
