from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Protocol

AccessCallback = Callable[[bool, str | None], None]


@dataclass
class EventRecord:
    start: datetime
    end: datetime
    title: str | None = None
    location: str | None = None
    notes: str | None = None
    attendees: list[str] = field(default_factory=list)
    id: str | None = None
    calendar: str | None = None


class CalendarStore(Protocol):
    """Calendar system of record the bridge reads from and writes to.

    Stores are expected to serialize concurrent writers themselves and to
    apply `save`/`remove` atomically; failures surface as `StoreFailure`.
    """

    @property
    def default_calendar(self) -> str | None:
        ...

    def is_authorized(self) -> bool:
        ...

    def request_access(self, callback: AccessCallback) -> None:
        """Ask for calendar access; `callback(granted, reason)` fires once, possibly on another thread."""
        ...

    def events_in_range(self, start: datetime, end: datetime) -> list[EventRecord]:
        ...

    def event_by_id(self, event_id: str) -> EventRecord | None:
        ...

    def save(self, record: EventRecord) -> str:
        ...

    def remove(self, record: EventRecord) -> None:
        ...
