from __future__ import annotations

EXIT_FAILURE = 1
EXIT_USAGE = 2


class BridgeError(RuntimeError):
    kind = "BridgeError"
    exit_code = EXIT_FAILURE
    default_message = "calendar-bridge failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict[str, object]:
        return {
            "error": self.message,
            "kind": self.kind,
            "success": False,
        }


class InvalidTimestamp(BridgeError):
    kind = "InvalidTimestamp"
    exit_code = EXIT_USAGE
    default_message = "Unable to parse timestamp; supply RFC-3339 values like 2025-05-07T00:00:00Z"


class InvalidRange(BridgeError):
    kind = "InvalidRange"
    exit_code = EXIT_USAGE
    default_message = "start must be earlier than end"


class MissingParameter(BridgeError):
    kind = "MissingParameter"
    exit_code = EXIT_USAGE
    default_message = "Missing required parameter"


class MalformedPayload(BridgeError):
    kind = "MalformedPayload"
    exit_code = EXIT_USAGE
    default_message = "Malformed JSON payload"


class ConflictingModes(BridgeError):
    kind = "ConflictingModes"
    exit_code = EXIT_USAGE
    default_message = "More than one command mode was requested"


class RecordNotFound(BridgeError):
    kind = "RecordNotFound"
    default_message = "Event not found"

    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        super().__init__(f"No event with id {event_id!r}")


class AccessDenied(BridgeError):
    kind = "AccessDenied"
    default_message = "user denied"

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason or self.default_message
        super().__init__(f"Calendar access not granted: {self.reason}")


class StoreFailure(BridgeError):
    kind = "StoreFailure"
    default_message = "Calendar store operation failed"
