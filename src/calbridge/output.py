from __future__ import annotations

from datetime import datetime
import json
from typing import IO

from calbridge.timecodec import render_timestamp

PROGRAM = "calendar-bridge"


def _default(value: object) -> object:
    if isinstance(value, datetime):
        return render_timestamp(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def write_response(value: object, stream: IO[str]) -> None:
    # Serialize fully before writing so a failure never leaves partial JSON.
    document = json.dumps(value, default=_default, sort_keys=True, indent=2)
    stream.write(document + "\n")
    stream.flush()


def write_failure(error: Exception, stream: IO[str], *, as_json: bool = False) -> None:
    to_payload = getattr(error, "to_payload", None)
    if as_json and callable(to_payload):
        stream.write(json.dumps(to_payload(), sort_keys=True) + "\n")
    else:
        stream.write(f"{PROGRAM}: {error}\n")
    stream.flush()
